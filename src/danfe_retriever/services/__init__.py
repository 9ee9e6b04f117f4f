"""
Business logic layer services for danfe-retriever.

This module contains service classes that implement core business logic:
- BrowserSession: One isolated, Cloudflare-masked Playwright page
- DanfeDownloadService: Retrieval state machine for one access key
- poll_until: Bounded polling shared by the waiting steps
"""

from danfe_retriever.services.browser_session import BrowserSession
from danfe_retriever.services.danfe_download import (
    DanfeDownloadService,
    RetrievalState,
    SearchOutcome,
)
from danfe_retriever.services.polling import poll_until

__all__ = [
    'BrowserSession',
    'DanfeDownloadService',
    'RetrievalState',
    'SearchOutcome',
    'poll_until',
]
