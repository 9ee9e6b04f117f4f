"""
Pytest configuration for unit tests.

Provides sample NF-e documents and a fast AppConfig so that no unit test
launches a browser or waits on real timeouts.
"""

import pytest
from pathlib import Path

from danfe_retriever.config import AppConfig
from danfe_retriever.models.payload import RawDocumentPayload


FIXTURES_DIR = Path(__file__).parent.parent / "fixtures"

SAMPLE_KEY = "35241145070190000232550010006198721341979067"
PLAIN_KEY = "35241145070190000232550010000001231000000016"


@pytest.fixture
def fixtures_dir() -> Path:
    return FIXTURES_DIR


@pytest.fixture
def sample_key() -> str:
    """Valid key (check digit 7) of the nfeProc sample."""
    return SAMPLE_KEY


@pytest.fixture
def plain_key() -> str:
    """Valid key (check digit 6) of the plain multi-item sample."""
    return PLAIN_KEY


@pytest.fixture
def sample_xml_bytes() -> bytes:
    """nfeProc envelope: one item, protocol, delivery, billing, payment."""
    return (FIXTURES_DIR / "nfe_proc_sample.xml").read_bytes()


@pytest.fixture
def plain_xml_bytes() -> bytes:
    """Plain NFe root (layout 3.10 style): two items, no protocol, no billing."""
    return (FIXTURES_DIR / "nfe_plain_multi_item.xml").read_bytes()


@pytest.fixture
def sample_payload(sample_xml_bytes) -> RawDocumentPayload:
    return RawDocumentPayload(content=sample_xml_bytes, file_name=f"NFe{SAMPLE_KEY}.xml")


@pytest.fixture
def plain_payload(plain_xml_bytes) -> RawDocumentPayload:
    return RawDocumentPayload(content=plain_xml_bytes, file_name=f"NFe{PLAIN_KEY}.xml")


@pytest.fixture
def fast_config(tmp_path) -> AppConfig:
    """AppConfig with tiny bounds and a temporary downloads directory."""
    return AppConfig(
        downloads_dir=str(tmp_path / "downloads"),
        settle_delay_ms=0,
        result_poll_attempts=3,
        result_poll_interval_ms=10,
        trigger_poll_attempts=3,
        trigger_poll_interval_ms=10,
        trigger_settle_ms=0,
        click_retries=2,
        click_backoff_ms=0,
        download_timeout_ms=1000,
        max_attempts=2,
        retry_backoff_ms=0,
    )
