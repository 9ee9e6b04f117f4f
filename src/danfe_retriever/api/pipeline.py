"""
High-level pipeline orchestrator for DANFE retrieval.

DanfePipeline coordinates the complete workflow:
- Validate the access key (FetchRequest)
- Retrieve the XML through the portal (DanfeDownloadService)
- Normalize it (DanfeXmlReader)
- Delete the transient file

Design Philosophy:
- The core classifies and raises; retry policy lives here
- Retryable kinds (timeouts, browser errors) are retried with linear backoff
- Terminal kinds (not found, invalid key or payload) surface at once
- Transient files never outlive the request
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic import ValidationError

from danfe_retriever.config import AppConfig, get_app_config
from danfe_retriever.exceptions import (
    DanfeError,
    InvalidAccessKeyError,
    PayloadInvalidError,
)
from danfe_retriever.log import mask_access_key
from danfe_retriever.models.payload import RawDocumentPayload
from danfe_retriever.models.record import FiscalRecord
from danfe_retriever.models.requests import FetchRequest
from danfe_retriever.parsers.danfe_parser import DanfeXmlReader
from danfe_retriever.services.danfe_download import DanfeDownloadService

logger = logging.getLogger(__name__)


def _validation_message(error: ValidationError) -> str:
    """First validator message without pydantic's 'Value error, ' prefix."""
    first = error.errors()[0]
    ctx_error = first.get('ctx', {}).get('error')
    if ctx_error is not None:
        return str(ctx_error)
    return first.get('msg', str(error))


def _remove_file(path: Optional[Path]) -> None:
    if path is None:
        return
    try:
        if path.exists():
            path.unlink()
            logger.debug(f"Removed transient file {path.name}")
    except OSError as e:
        logger.warning(f"Failed to remove transient file {path}: {e}")


class DanfePipeline:
    """
    Orchestrates retrieval and normalization of one NF-e per call.

    Components are injectable for tests; by default each pipeline builds its
    own DanfeDownloadService (one isolated browser per retrieval).

    Example:
        pipeline = DanfePipeline()

        record, payload = pipeline.fetch_record('35241145070190000232550010006198721341979067')
        print(record.emitente.razao_social)

        envelope = pipeline.fetch('35241145070190000232550010006198721341979067')
        print(envelope['success'], envelope['durationMs'])
    """

    def __init__(
        self,
        download_service: Optional[DanfeDownloadService] = None,
        reader: Optional[DanfeXmlReader] = None,
        config: Optional[AppConfig] = None,
        sleep: Callable[[float], None] = time.sleep
    ):
        self.config = config or get_app_config()
        self._download_service = download_service or DanfeDownloadService(config=self.config)
        self._reader = reader or DanfeXmlReader()
        self._sleep = sleep

    def validate_key(self, access_key: str) -> str:
        """
        Validate an access key through FetchRequest.

        Returns:
            Normalized key (separators removed)

        Raises:
            InvalidAccessKeyError: With the first failing rule as message
        """
        try:
            request = FetchRequest(
                chave_acesso=access_key,
                verify_checksum=self.config.verify_checksum,
            )
        except ValidationError as e:
            raise InvalidAccessKeyError(
                _validation_message(e),
                details={'chave': mask_access_key(str(access_key))}
            ) from e
        return request.chave_acesso

    def fetch_record(self, access_key: str) -> Tuple[FiscalRecord, RawDocumentPayload]:
        """
        Retrieve and normalize one NF-e.

        The downloaded file is deleted before returning (or raising); the
        returned payload still holds the bytes in memory.

        Args:
            access_key: 44-digit access key (spaces/dots allowed)

        Returns:
            Tuple of (FiscalRecord, RawDocumentPayload)

        Raises:
            InvalidAccessKeyError: Key failed validation (no browser launched)
            NotFoundError: Portal reported the key does not exist
            TriggerTimeoutError, DownloadTimeoutError, AutomationError:
                Still failing after config.max_attempts attempts
            PayloadInvalidError: Captured file is not an NF-e XML, or the
                parsed document belongs to another key
            XmlParseError: NF-e structure not found in the XML
        """
        key = self.validate_key(access_key)
        masked = mask_access_key(key)

        payload = self._retrieve_with_retry(key)
        try:
            record = self._reader.parse(payload)
            if record.nfe.chave_acesso != key:
                raise PayloadInvalidError(
                    "Downloaded document belongs to a different access key",
                    details={
                        'chave': masked,
                        'chave_documento': mask_access_key(record.nfe.chave_acesso),
                    }
                )
        finally:
            _remove_file(payload.path)

        logger.info(
            f"Fetched {masked}: NF-e {record.nfe.numero}/{record.nfe.serie}, "
            f"{len(record.produtos)} item(s)"
        )
        return record, payload

    def fetch(self, access_key: str) -> Dict[str, Any]:
        """
        Retrieve and normalize one NF-e, reporting the outcome as an envelope.

        Classified failures never raise; they are reported with success=False.

        Returns:
            Success envelope:
            {
                'success': True,
                'requestId': str,
                'chaveAcesso': str,
                'fileName': str,
                'filePath': str,
                'timestamp': str,   # ISO-8601 UTC
                'durationMs': int,
                'data': dict        # FiscalRecord with camelCase keys
            }

            Failure envelope:
            {
                'success': False,
                'requestId': str,
                'chaveAcesso': str,
                'timestamp': str,
                'durationMs': int,
                'error': str,
                'errorCode': str,
                'retryable': bool
            }
        """
        request_id = str(uuid.uuid4())
        started = time.monotonic()

        try:
            record, payload = self.fetch_record(access_key)
        except DanfeError as e:
            return {
                'success': False,
                'requestId': request_id,
                'chaveAcesso': access_key,
                'timestamp': self._timestamp(),
                'durationMs': self._elapsed_ms(started),
                'error': str(e),
                'errorCode': e.code,
                'retryable': e.retryable,
            }

        return {
            'success': True,
            'requestId': request_id,
            'chaveAcesso': record.nfe.chave_acesso,
            'fileName': payload.file_name,
            'filePath': str(payload.path) if payload.path else None,
            'timestamp': self._timestamp(),
            'durationMs': self._elapsed_ms(started),
            'data': record.to_dict(),
        }

    def _retrieve_with_retry(self, key: str) -> RawDocumentPayload:
        max_attempts = self.config.max_attempts
        masked = mask_access_key(key)

        attempt = 0
        while True:
            attempt += 1
            try:
                return self._download_service.retrieve(key)
            except PayloadInvalidError as e:
                saved = e.details.get('path')
                _remove_file(Path(saved) if saved else None)
                raise
            except DanfeError as e:
                if not e.retryable or attempt >= max_attempts:
                    raise
                backoff_ms = self.config.retry_backoff_ms * attempt
                logger.warning(
                    f"Attempt {attempt}/{max_attempts} for {masked} failed "
                    f"[{e.code}], retrying in {backoff_ms}ms"
                )
                self._sleep(backoff_ms / 1000)

    @staticmethod
    def _timestamp() -> str:
        return datetime.now(timezone.utc).isoformat()

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
