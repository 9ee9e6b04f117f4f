"""
DANFE Download Service

Drives a real browser through meudanfe.com.br (behind Cloudflare) to capture
the NF-e XML for one access key:

    IDLE -> LAUNCHED -> NAVIGATED -> SUBMITTED -> {NOT_FOUND | RESULTS_READY}
         -> TRIGGER_VISIBLE -> ACTIVATED -> DOWNLOAD_CAPTURED -> VALIDATED -> DONE

Failure classification:
- Positive "not found" signal on the result page -> NotFoundError (terminal)
- Neither result nor error within the polling bound -> TriggerTimeoutError
- Download event never fires -> DownloadTimeoutError
- Launch, navigation, input or forced click failures -> AutomationError
- Captured file is not an NF-e XML -> PayloadInvalidError

Every path, successful or not, closes the browser session.
"""

import logging
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from playwright.sync_api import Download, ElementHandle, Page
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from danfe_retriever.config import AppConfig, get_app_config
from danfe_retriever.exceptions import (
    AutomationError,
    DanfeError,
    DownloadTimeoutError,
    InvalidAccessKeyError,
    NotFoundError,
    PayloadInvalidError,
    TriggerTimeoutError,
)
from danfe_retriever.log import mask_access_key
from danfe_retriever.models.payload import RawDocumentPayload
from danfe_retriever.parsers.xml_tree import has_nfe_signature
from danfe_retriever.services.browser_session import BrowserSession
from danfe_retriever.services.polling import poll_until
from danfe_retriever.validators import ACCESS_KEY_LENGTH

logger = logging.getLogger(__name__)


class RetrievalState(str, Enum):
    """Last state reached by a retrieval (exposed as service.state)."""

    IDLE = 'idle'
    LAUNCHED = 'launched'
    NAVIGATED = 'navigated'
    SUBMITTED = 'submitted'
    NOT_FOUND = 'not_found'
    RESULTS_READY = 'results_ready'
    TRIGGER_VISIBLE = 'trigger_visible'
    ACTIVATED = 'activated'
    DOWNLOAD_CAPTURED = 'download_captured'
    VALIDATED = 'validated'
    DONE = 'done'


class SearchOutcome(str, Enum):
    """Classification of the page after the search is submitted."""

    NOT_FOUND = 'not_found'
    RESULTS_READY = 'results_ready'


class DanfeDownloadService:
    """
    Service for retrieving one NF-e XML through the DANFE portal.

    Each retrieve() call launches its own browser session; one service
    instance must not be used from several threads at once (state is
    per-call).

    Usage:
        service = DanfeDownloadService()
        payload = service.retrieve('35241145070190000232550010006198721341979067')
        print(payload.path, payload.size)
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        session_factory: Optional[Callable[[AppConfig], BrowserSession]] = None
    ):
        """
        Initialize download service.

        Args:
            config: Application config (defaults to get_app_config())
            session_factory: Builds a BrowserSession from the config
                (injectable for tests; defaults to BrowserSession)
        """
        self.config = config or get_app_config()
        self._session_factory = session_factory or BrowserSession
        self.state = RetrievalState.IDLE

    # === Public API ===

    def retrieve(self, access_key: str) -> RawDocumentPayload:
        """
        Retrieve the NF-e XML for an access key.

        Any 44-digit string is accepted; checksum validation belongs to the
        caller and the portal reports unknown keys itself.

        Args:
            access_key: 44-digit NF-e access key

        Returns:
            RawDocumentPayload with the saved file path set

        Raises:
            InvalidAccessKeyError: If access_key is not 44 digits
            NotFoundError: Portal reported the key does not exist
            TriggerTimeoutError: No result and no download button in time
            DownloadTimeoutError: Download event did not fire in time
            AutomationError: Browser launch, navigation, input or click failed
            PayloadInvalidError: Captured file is not an NF-e XML
        """
        if (
            not isinstance(access_key, str)
            or len(access_key) != ACCESS_KEY_LENGTH
            or not access_key.isdigit()
        ):
            raise InvalidAccessKeyError(
                f"Access key must be {ACCESS_KEY_LENGTH} digits",
                details={'chave': mask_access_key(str(access_key))}
            )

        masked = mask_access_key(access_key)
        started = time.monotonic()
        self.state = RetrievalState.IDLE
        session = self._session_factory(self.config)

        logger.info(f"Retrieving DANFE {masked}")

        try:
            page = self._launch(session)
            self._navigate(page)
            self._submit_query(page, access_key)

            outcome = self._classify_result(page)
            if outcome == SearchOutcome.NOT_FOUND:
                self.state = RetrievalState.NOT_FOUND
                raise NotFoundError(
                    "DANFE not found for the given access key",
                    details={'chave': masked}
                )
            self.state = RetrievalState.RESULTS_READY

            self._await_trigger(page)
            download = self._capture_download(page)
            payload = self._save_and_validate(download, access_key)

            self.state = RetrievalState.DONE
            logger.info(
                f"Retrieved DANFE {masked}: {payload.file_name} "
                f"({payload.size} bytes) in {self._elapsed_ms(started)}ms"
            )
            return payload

        except DanfeError as e:
            e.elapsed_ms = self._elapsed_ms(started)
            logger.error(
                f"Retrieval of {masked} failed in state {self.state.value}: "
                f"[{e.code}] {e.message} ({e.elapsed_ms}ms)"
            )
            raise

        except PlaywrightError as e:
            elapsed = self._elapsed_ms(started)
            logger.error(
                f"Retrieval of {masked} failed in state {self.state.value}: "
                f"browser error ({elapsed}ms): {e}"
            )
            raise AutomationError(
                f"Browser error after state '{self.state.value}'",
                details={'chave': masked, 'state': self.state.value},
                elapsed_ms=elapsed
            ) from e

        finally:
            session.close()

    # === Steps ===

    def _launch(self, session: BrowserSession) -> Page:
        try:
            page = session.open()
        except PlaywrightError as e:
            raise AutomationError(
                "Failed to launch browser",
                details={'step': 'launch'}
            ) from e
        self.state = RetrievalState.LAUNCHED
        return page

    def _navigate(self, page: Page) -> None:
        config = self.config
        try:
            page.goto(
                config.target_url,
                wait_until='networkidle',
                timeout=config.navigation_timeout_ms,
            )
        except PlaywrightError as e:
            raise AutomationError(
                f"Failed to load {config.target_url}",
                details={'step': 'navigate'}
            ) from e

        # Passive Cloudflare check settles on its own in headed mode
        page.wait_for_timeout(config.settle_delay_ms)
        self.state = RetrievalState.NAVIGATED
        logger.debug(f"Navigated to {config.target_url}")

    def _submit_query(self, page: Page, access_key: str) -> None:
        config = self.config
        try:
            page.wait_for_selector(
                config.search_input_selector,
                state='visible',
                timeout=config.input_timeout_ms,
            )
            page.fill(config.search_input_selector, access_key)
            page.click(config.search_button_selector, timeout=config.click_timeout_ms)
        except PlaywrightError as e:
            raise AutomationError(
                "Failed to submit the search form",
                details={'step': 'submit'}
            ) from e
        self.state = RetrievalState.SUBMITTED
        logger.debug("Search submitted")

    def _classify_result(self, page: Page) -> SearchOutcome:
        """
        Poll until the page shows either a not-found signal or the download trigger.

        The not-found check runs on every attempt, so an error page is never
        misread as a loading state. Once the trigger is rendered the body
        holds the document's own text, so only an error container quoting a
        not-found phrase can override it.

        Raises:
            TriggerTimeoutError: If neither appears within the polling bound
        """
        config = self.config

        def check() -> Optional[SearchOutcome]:
            try:
                trigger_present = page.query_selector(config.download_button_selector) is not None
                if self._has_not_found_signal(page, trigger_present):
                    return SearchOutcome.NOT_FOUND
                if trigger_present:
                    return SearchOutcome.RESULTS_READY
            except PlaywrightError as e:
                # Page may be mid-render; next attempt re-reads it
                logger.debug(f"Result check failed: {e}")
            return None

        outcome = poll_until(
            check,
            interval_s=config.result_poll_interval_ms / 1000,
            max_attempts=config.result_poll_attempts,
            sleep=self._page_sleep(page),
        )
        if outcome is None:
            raise TriggerTimeoutError(
                f"No search result after {config.result_poll_timeout_ms}ms",
                details={'step': 'result', 'attempts': config.result_poll_attempts}
            )

        logger.debug(f"Search outcome: {outcome.value}")
        return outcome

    def _has_not_found_signal(self, page: Page, trigger_present: bool) -> bool:
        """
        Look for a positive "not found" answer from the portal.

        Without a trigger, any visible non-empty error element or a phrase
        anywhere in the body counts. With the trigger present, only an error
        element whose text contains a configured phrase counts.
        """
        config = self.config

        for selector in config.error_selectors:
            for element in page.query_selector_all(selector):
                if not element.is_visible():
                    continue
                text = (element.inner_text() or '').strip()
                if not text:
                    continue
                if not trigger_present or self._match_phrase(text):
                    logger.debug(f"Error element detected: {selector}")
                    return True

        if trigger_present:
            return False

        phrase = self._match_phrase(page.inner_text('body') or '')
        if phrase:
            logger.debug(f"Not-found phrase detected: '{phrase}'")
            return True
        return False

    def _match_phrase(self, text: str) -> Optional[str]:
        lowered = text.lower()
        for phrase in self.config.not_found_phrases:
            if phrase.lower() in lowered:
                return phrase
        return None

    def _await_trigger(self, page: Page) -> ElementHandle:
        """
        Wait until the download trigger exists, is visible and is enabled.

        Raises:
            TriggerTimeoutError: If the trigger never becomes clickable
        """
        config = self.config
        selector = config.download_button_selector
        last_status = {'exists': False, 'visible': False, 'enabled': False}

        def check() -> Optional[ElementHandle]:
            try:
                handle = page.query_selector(selector)
                last_status['exists'] = handle is not None
                if handle is None:
                    return None
                last_status['visible'] = handle.is_visible()
                last_status['enabled'] = handle.is_enabled()
            except PlaywrightError as e:
                logger.debug(f"Trigger check failed: {e}")
                return None
            if last_status['visible'] and last_status['enabled']:
                return handle
            return None

        handle = poll_until(
            check,
            interval_s=config.trigger_poll_interval_ms / 1000,
            max_attempts=config.trigger_poll_attempts,
            sleep=self._page_sleep(page),
        )
        if handle is None:
            raise TriggerTimeoutError(
                f"Download button not clickable after {config.trigger_poll_timeout_ms}ms",
                details={'step': 'trigger', **last_status}
            )

        try:
            handle.scroll_into_view_if_needed()
        except PlaywrightError as e:
            logger.debug(f"Scroll into view failed: {e}")

        page.wait_for_timeout(config.trigger_settle_ms)
        self.state = RetrievalState.TRIGGER_VISIBLE
        return handle

    def _capture_download(self, page: Page) -> Download:
        """
        Activate the trigger with the download listener already registered.

        Raises:
            DownloadTimeoutError: If no download starts within the bound
            AutomationError: If even the forced click fails
        """
        config = self.config
        try:
            with page.expect_download(timeout=config.download_timeout_ms) as download_info:
                self._activate_trigger(page)
                self.state = RetrievalState.ACTIVATED
            download = download_info.value
        except PlaywrightTimeoutError as e:
            raise DownloadTimeoutError(
                f"Download did not start within {config.download_timeout_ms}ms",
                details={'step': 'download'}
            ) from e

        self.state = RetrievalState.DOWNLOAD_CAPTURED
        return download

    def _activate_trigger(self, page: Page) -> None:
        config = self.config
        selector = config.download_button_selector

        for attempt in range(1, config.click_retries + 1):
            try:
                handle = page.query_selector(selector)
                if handle is not None and handle.is_visible() and handle.is_enabled():
                    page.click(selector, timeout=config.click_timeout_ms)
                    logger.debug(f"Download button clicked on attempt {attempt}")
                    return
                logger.warning(
                    f"Download button not clickable (attempt {attempt}/{config.click_retries})"
                )
            except PlaywrightError as e:
                logger.warning(
                    f"Click failed (attempt {attempt}/{config.click_retries}): {e}"
                )

            if attempt < config.click_retries:
                page.wait_for_timeout(config.click_backoff_ms * attempt)

        logger.warning("Falling back to forced click on the download button")
        try:
            page.click(selector, force=True, timeout=config.click_timeout_ms)
        except PlaywrightError as e:
            raise AutomationError(
                f"Could not activate download button after {config.click_retries} attempts",
                details={'step': 'activate'}
            ) from e

    def _save_and_validate(self, download: Download, access_key: str) -> RawDocumentPayload:
        config = self.config
        downloads_dir = Path(config.downloads_dir)
        downloads_dir.mkdir(parents=True, exist_ok=True)

        # Basename only: never let the portal choose a directory
        file_name = Path(download.suggested_filename or '').name or f"{access_key}.xml"
        target = downloads_dir / file_name

        try:
            download.save_as(target)
        except PlaywrightError as e:
            raise AutomationError(
                "Failed to save downloaded file",
                details={'step': 'save'}
            ) from e

        payload = RawDocumentPayload.from_path(target)
        logger.debug(f"Saved {payload.file_name} ({payload.size} bytes)")

        if payload.size < config.min_payload_bytes:
            raise PayloadInvalidError(
                f"Downloaded file too small ({payload.size} bytes)",
                details={'path': str(target), 'size': payload.size}
            )
        if not has_nfe_signature(payload.content):
            raise PayloadInvalidError(
                "Downloaded file is not an NF-e XML",
                details={'path': str(target), 'size': payload.size}
            )

        self.state = RetrievalState.VALIDATED
        return payload

    # === Helpers ===

    @staticmethod
    def _page_sleep(page: Page) -> Callable[[float], None]:
        # page.wait_for_timeout keeps the driver's event loop running
        return lambda seconds: page.wait_for_timeout(int(seconds * 1000))

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int((time.monotonic() - started) * 1000)
