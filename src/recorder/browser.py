"""
Browser Session - Playwright-driven Chrome on the virtual display

Handles browser lifecycle, navigation with a fallback ladder of load
strategies, sign-in detection and keyboard input for the presentation.
"""

import asyncio
import logging
from typing import Callable, Optional

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Page,
    Playwright,
    async_playwright,
)

from .config import STEALTH_INIT_SCRIPT, AuthPatterns, Keys, RecorderConfig
from .display import DisplaySession
from .errors import AuthRequiredError, NavigationError, RecorderError

logger = logging.getLogger(__name__)


# Chrome flags for full-screen, GPU-less rendering inside Xvfb
CHROME_ARGS = [
    "--start-fullscreen",
    "--kiosk",
    "--enable-gpu",
    "--use-gl=swiftshader",
    "--enable-webgl",
    "--enable-accelerated-2d-canvas",
    "--disable-gpu-sandbox",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-web-security",
    "--disable-features=VizDisplayCompositor",
    "--disable-infobars",
    "--no-first-run",
    "--disable-extensions",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
    "--force-device-scale-factor=1",
    "--high-dpi-support=1",
    "--force-color-profile=srgb",
    "--window-position=0,0",
    "--disable-blink-features=AutomationControlled",
    "--disable-ipc-flooding-protection",
    "--ignore-certificate-errors",
    "--disable-default-apps",
]

# Default flags that would announce automation to the page
IGNORED_DEFAULT_ARGS = [
    "--enable-automation",
    "--enable-blink-features=AutomationControlled",
]


class BrowserSession:
    """
    One Chrome instance rendering the presentation.

    Usage:
        session = BrowserSession(config)
        await session.launch("/usr/bin/google-chrome", display_session)
        await session.navigate(url)
        await session.prime_for_capture()
        await session.advance_slide()
        await session.close()
    """

    def __init__(
        self,
        config: Optional[RecorderConfig] = None,
        playwright_factory: Callable = async_playwright,
    ):
        self.config = config or RecorderConfig()
        self._playwright_factory = playwright_factory
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None

    @property
    def page(self) -> Page:
        """Get the current page"""
        if not self._page:
            raise RuntimeError("Browser session not launched. Call launch() first")
        return self._page

    @property
    def is_open(self) -> bool:
        return self._browser is not None

    async def launch(self, executable_path: str, display: DisplaySession) -> None:
        """Start Chrome on the given display with automation signals removed"""
        logger.info("Launching Chrome on virtual display...")
        width, height = display.resolution.width, display.resolution.height

        self._playwright = await self._playwright_factory().start()
        self._browser = await self._playwright.chromium.launch(
            headless=False,
            executable_path=executable_path,
            env=display.env,
            ignore_default_args=IGNORED_DEFAULT_ARGS,
            args=CHROME_ARGS + [f"--window-size={width},{height}"],
        )
        self._context = await self._browser.new_context(
            viewport={"width": width, "height": height},
            device_scale_factor=1,
        )
        await self._context.add_init_script(STEALTH_INIT_SCRIPT)
        self._page = await self._context.new_page()

    async def navigate(self, url: str) -> None:
        """
        Load the presentation, trying each load strategy in order.

        Raises:
            NavigationError: every strategy failed
            AuthRequiredError: the page redirected to a sign-in screen
        """
        logger.info("Loading presentation...")
        attempts: list[tuple[str, str]] = []

        for wait_until, timeout in self.config.navigation_strategies:
            try:
                await self.page.goto(url, wait_until=wait_until, timeout=timeout)
            except PlaywrightError as e:
                logger.info(f"Load with {wait_until} failed: {e.message}")
                attempts.append((wait_until, e.message))
                continue
            logger.info(f"Page loaded with {wait_until}")
            break
        else:
            raise NavigationError(url, attempts)

        # Let client-side rendering settle before looking at the final URL
        await asyncio.sleep(self.config.page_settle_delay)

        current_url = self.page.url
        if AuthPatterns.matches(current_url):
            raise AuthRequiredError(current_url)

    async def prime_for_capture(self) -> None:
        """Dismiss overlays and enter presentation mode. Best effort."""
        try:
            await self.page.keyboard.press(Keys.DISMISS_OVERLAY)
            await asyncio.sleep(self.config.overlay_dismiss_delay)
            await self.page.keyboard.press(Keys.PRESENTATION_MODE)
            await asyncio.sleep(self.config.presentation_mode_delay)
        except (PlaywrightError, RecorderError, RuntimeError) as e:
            logger.warning(f"Popup dismissal failed, continuing: {e}")

    async def advance_slide(self) -> None:
        """Send one advance key press, then let the transition settle"""
        await self.page.keyboard.press(Keys.ADVANCE)
        await asyncio.sleep(self.config.advance_settle_delay)

    async def close(self) -> None:
        """Release the browser. Safe to call more than once."""
        browser, playwright = self._browser, self._playwright
        self._page = None
        self._context = None
        self._browser = None
        self._playwright = None

        if browser is not None:
            logger.info("Closing browser...")
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.warning(f"Browser close failed: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except PlaywrightError as e:
                logger.warning(f"Playwright stop failed: {e}")
