"""
danfe-retriever: NF-e XML retrieval from meudanfe.com.br and normalization.

Main package exports for user-facing API.
"""

from danfe_retriever.api import DanfePipeline, BatchFetchPipeline
from danfe_retriever.parsers import DanfeXmlReader
from danfe_retriever.services import DanfeDownloadService
from danfe_retriever.models import FiscalRecord, RawDocumentPayload
from danfe_retriever.exceptions import (
    DanfeError,
    InvalidAccessKeyError,
    NotFoundError,
    TriggerTimeoutError,
    DownloadTimeoutError,
    AutomationError,
    PayloadInvalidError,
    XmlParseError,
)

__version__ = "0.1.0"

__all__ = [
    'DanfePipeline',
    'BatchFetchPipeline',
    'DanfeXmlReader',
    'DanfeDownloadService',
    'FiscalRecord',
    'RawDocumentPayload',
    'DanfeError',
    'InvalidAccessKeyError',
    'NotFoundError',
    'TriggerTimeoutError',
    'DownloadTimeoutError',
    'AutomationError',
    'PayloadInvalidError',
    'XmlParseError',
]
