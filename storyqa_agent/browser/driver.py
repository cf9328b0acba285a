import asyncio
import logging
from typing import Any, Dict, Optional

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")
CHROMIUM_ARGS = [
    "--disable-dev-shm-usage",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-gpu",
    "--force-device-scale-factor=1",
]


class BrowserDriver:
    """A Playwright browser, context and page owned by one scenario run."""

    # Concurrent scenario runs start their browsers one at a time
    _launch_lock = asyncio.Lock()

    def __init__(self, browser_config: Dict[str, Any]):
        self.config = browser_config
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self.context: Optional[BrowserContext] = None
        self.page: Optional[Page] = None
        self.closed = False

    @classmethod
    async def launch(cls, browser_config: Dict[str, Any]) -> "BrowserDriver":
        driver = cls(browser_config)
        async with cls._launch_lock:
            await driver._start()
        return driver

    async def _start(self):
        browser_type = self.config.get("browser_type", "chromium")
        if browser_type not in SUPPORTED_BROWSERS:
            raise ValueError(f"Unsupported browser_type '{browser_type}', expected one of {SUPPORTED_BROWSERS}")

        viewport = self.config["viewport"]
        try:
            self.playwright = await async_playwright().start()
            launch_args = None
            if browser_type == "chromium":
                launch_args = CHROMIUM_ARGS + [f"--window-size={viewport['width']},{viewport['height']}"]
            self.browser = await getattr(self.playwright, browser_type).launch(
                headless=self.config["headless"], args=launch_args
            )
            self.context = await self.browser.new_context(
                viewport={"width": viewport["width"], "height": viewport["height"]},
                locale=self.config["language"],
                ignore_https_errors=bool(self.config.get("ignore_https_errors", False)),
            )
            self.page = await self.context.new_page()
            logging.debug(f"{browser_type} launched (headless={self.config['headless']}, viewport={viewport})")
        except Exception:
            logging.error(f"Failed to launch {browser_type}", exc_info=True)
            await self.close()
            raise

    async def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            if self.browser is not None:
                await self.browser.close()
        finally:
            if self.playwright is not None:
                await self.playwright.stop()
            self.page = self.context = self.browser = self.playwright = None
        logging.debug("Browser closed")
