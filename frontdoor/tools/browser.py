"""
Browser launcher for sf-frontdoor.

Starts Chromium through Playwright and hands out a single page for the
front-door login. The login flow itself only borrows the page.
"""

from pathlib import Path
from typing import Optional, Union

from playwright.async_api import Browser, BrowserContext, Page, async_playwright

from frontdoor.config.settings import get_settings
from frontdoor.utils.logging import LoggingMixin


class BrowserSessionError(Exception):
    """Raised when the browser cannot be started or used."""
    pass


class BrowserSession(LoggingMixin):
    """
    Playwright Chromium session with one page.

    Usage:
        async with BrowserSession(headless=False) as browser:
            await LoginPage(browser.page).login(connection)
    """

    def __init__(self, headless: Optional[bool] = None):
        """Initialize the session; ``headless`` overrides BROWSER_HEADLESS."""
        super().__init__()
        self.setup_logging("browser")

        self.settings = get_settings()

        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

        self.headless = self.settings.browser.headless if headless is None else headless
        self.timeout = self.settings.browser.timeout_ms
        self.viewport = {
            "width": self.settings.browser.viewport_width,
            "height": self.settings.browser.viewport_height,
        }
        self.user_agent = self.settings.browser.user_agent

        self._session_active = False

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    @property
    def page(self) -> Page:
        """The page owned by this session."""
        if not self._session_active or self._page is None:
            raise BrowserSessionError("Browser session not active. Call start() first.")
        return self._page

    async def start(self) -> None:
        """Start the browser and create a new page."""
        if self._session_active:
            self.logger.warning("Browser session already active")
            return

        try:
            self.logger.info("Starting browser session", headless=self.headless)

            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=self.headless,
                args=[
                    "--no-sandbox",
                    "--disable-dev-shm-usage",
                    "--disable-extensions",
                    "--no-first-run",
                ],
            )
            self._context = await self._browser.new_context(
                viewport=self.viewport,
                user_agent=self.user_agent,
            )
            self._page = await self._context.new_page()
            self._page.set_default_timeout(self.timeout)

            self._session_active = True
            self.logger.info("Browser session started")

        except Exception as e:
            self.log_error("start", e)
            await self._shutdown()
            raise BrowserSessionError(f"Failed to start browser: {e}") from e

    async def save_storage_state(self, path: Union[str, Path]) -> Path:
        """
        Write cookies and local storage to a Playwright storage-state file.

        The file holds a live session and should be treated as a secret.
        """
        if not self._session_active or self._context is None:
            raise BrowserSessionError("Browser session not active. Call start() first.")

        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        await self._context.storage_state(path=str(path))
        self.logger.info("Storage state saved", path=str(path))
        return path

    async def close(self) -> None:
        """Close the browser and clean up resources."""
        if not self._session_active:
            return

        self.logger.info("Closing browser session")
        await self._shutdown()
        self.logger.info("Browser session closed")

    async def _shutdown(self) -> None:
        try:
            if self._context:
                await self._context.close()
            if self._browser:
                await self._browser.close()
            if self._playwright:
                await self._playwright.stop()
        except Exception as e:
            self.log_error("close", e)
        finally:
            self._page = None
            self._context = None
            self._browser = None
            self._playwright = None
            self._session_active = False
