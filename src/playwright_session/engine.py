"""Owns the Playwright driver and the single browser process."""

import asyncio
import logging
from typing import Any, Dict, Optional, Union

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from playwright_session.config import Config, config as default_config

logger = logging.getLogger(__name__)

SUPPORTED_BROWSERS = ("chromium", "firefox", "webkit")


class EngineHandle:
    """Lazily launched browser, shared by every context the session creates.

    ``ensure()`` launches at most once per handle; later calls return the same
    browser. Launch failures propagate unchanged and are not retried.
    """

    def __init__(self, cfg: Optional[Config] = None, playwright_factory=async_playwright):
        self.config = cfg or default_config
        self._playwright_factory = playwright_factory
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None
        self._launch_lock = asyncio.Lock()
        self._closed = False

    @property
    def launched(self) -> bool:
        return self.browser is not None

    def _launch_options(self) -> Dict[str, Any]:
        launch_options: Dict[str, Any] = {"headless": self.config.headless}
        if self.config.channel:
            launch_options["channel"] = self.config.channel
        if self.config.browser_type == "chromium" and self.config.launch_args:
            launch_options["args"] = list(self.config.launch_args)
        return launch_options

    async def ensure(self) -> Browser:
        """Return the running browser, launching it on first use."""
        if self.browser is not None:
            return self.browser

        async with self._launch_lock:
            if self.browser is not None:
                return self.browser
            if self._closed:
                raise RuntimeError("Engine handle has been shut down")

            logger.info("Launching %s browser...", self.config.browser_type)
            playwright = await self._playwright_factory().start()
            try:
                if self.config.browser_type not in SUPPORTED_BROWSERS:
                    raise ValueError(f"Unsupported browser type: {self.config.browser_type}")
                launcher = getattr(playwright, self.config.browser_type)
                browser = await launcher.launch(**self._launch_options())
            except Exception:
                try:
                    await playwright.stop()
                except Exception as exc:
                    logger.debug("Error stopping playwright after failed launch: %s", exc)
                raise

            self.playwright = playwright
            self.browser = browser
            logger.info("Browser started successfully")
            return browser

    async def new_context(
        self, storage_state: Optional[Union[str, Dict[str, Any]]] = None
    ) -> BrowserContext:
        browser = await self.ensure()
        context_options: Dict[str, Any] = {}
        if storage_state is not None:
            context_options["storage_state"] = storage_state
        return await browser.new_context(**context_options)

    def is_connected(self) -> bool:
        return self.browser is not None and self.browser.is_connected()

    async def shutdown(self) -> None:
        """Close the browser and stop Playwright. Terminal for this handle."""
        self._closed = True
        browser, playwright = self.browser, self.playwright
        self.browser = None
        self.playwright = None

        if browser is not None:
            try:
                await browser.close()
            except Exception as exc:
                logger.error("Error closing browser: %s", exc)

        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as exc:
                logger.error("Error stopping playwright: %s", exc)
