"""
Isolated Playwright browser session.

One session owns one Playwright driver, one Chromium browser, one context and
one page. Sessions are never shared or pooled: every retrieval opens its own
and closes it in a finally block.

Cloudflare masking:
- --disable-blink-features=AutomationControlled
- navigator.webdriver forced to false before any page script runs
- realistic desktop user agent and viewport
- headed mode by default (run under xvfb on servers)
"""

import logging
from typing import Optional

from playwright.sync_api import Browser, BrowserContext, Page, Playwright, Response, sync_playwright

from danfe_retriever.config import AppConfig, get_app_config

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    '--disable-blink-features=AutomationControlled',
    '--no-sandbox',
    '--disable-dev-shm-usage',
    '--ignore-certificate-errors',
]

WEBDRIVER_MASK_SCRIPT = (
    "Object.defineProperty(navigator, 'webdriver', { get: () => false });"
)

# Portal API endpoint answering the search; logged for diagnostics
FISCAL_DOC_API_PATH = '/v2/fiscal-doc/'


class BrowserSession:
    """
    Owns the lifecycle of one Playwright page.

    Usage:
        with BrowserSession() as page:
            page.goto('https://meudanfe.com.br/')

    Or explicitly (as the download service does, to classify launch errors):
        session = BrowserSession(config)
        try:
            page = session.open()
            ...
        finally:
            session.close()
    """

    def __init__(self, config: Optional[AppConfig] = None):
        self.config = config or get_app_config()
        self._playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None

    def open(self) -> Page:
        """
        Start the driver, launch Chromium and open a masked page.

        Returns:
            Ready-to-use Page with downloads enabled

        Raises:
            playwright.sync_api.Error: If any launch step fails. Components
                created before the failure are released by close().
        """
        config = self.config

        self._playwright = sync_playwright().start()
        self.browser = self._playwright.chromium.launch(
            headless=config.headless,
            slow_mo=config.slow_mo_ms,
            args=LAUNCH_ARGS,
        )
        self.context = self.browser.new_context(
            user_agent=config.user_agent,
            viewport={'width': config.viewport_width, 'height': config.viewport_height},
            accept_downloads=True,
            ignore_https_errors=True,
        )
        self.context.add_init_script(WEBDRIVER_MASK_SCRIPT)

        self.page = self.context.new_page()
        self.page.set_default_navigation_timeout(config.navigation_timeout_ms)
        self.page.on('response', self._log_response)

        logger.debug(
            f"Browser session opened (headless={config.headless}, "
            f"viewport={config.viewport_width}x{config.viewport_height})"
        )
        return self.page

    def close(self) -> None:
        """
        Release page, context, browser and driver.

        Each component is closed independently; a failure is logged as a
        warning and never raised, so it cannot mask the caller's own error.
        """
        for name, component in (
            ('page', self.page),
            ('context', self.context),
            ('browser', self.browser),
        ):
            if component is None:
                continue
            try:
                component.close()
            except Exception as e:
                logger.warning(f"Failed to close {name}: {e}")

        if self._playwright is not None:
            try:
                self._playwright.stop()
            except Exception as e:
                logger.warning(f"Failed to stop Playwright driver: {e}")

        self.page = None
        self.context = None
        self.browser = None
        self._playwright = None
        logger.debug("Browser session closed")

    def _log_response(self, response: Response) -> None:
        if FISCAL_DOC_API_PATH in response.url:
            logger.debug(f"Portal fiscal-doc API answered HTTP {response.status}")

    def __enter__(self) -> Page:
        try:
            return self.open()
        except Exception:
            self.close()
            raise

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
