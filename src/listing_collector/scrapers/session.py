"""Lifetime of the shared Chromium process and its browsing context."""

import asyncio
import logging

from playwright.async_api import Browser, BrowserContext, Playwright, async_playwright

from ..config import BrowserConfig, config
from .base import BrowserLaunchFailed
from .identity import IdentityProfile

logger = logging.getLogger(__name__)


class BrowserSession:
    """Owns one browser process and one reusable context.

    Both are created lazily on the first ``context()`` call. Callers that
    arrive while startup is in progress wait for it and get the same
    context. Only one crawl should use a session at a time; give
    concurrent crawls their own session.
    """

    def __init__(self, browser_config: BrowserConfig | None = None):
        self.config = browser_config or config.browser
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._profile: IdentityProfile | None = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def context(self, profile: IdentityProfile | None = None) -> BrowserContext:
        """Get the live context, launching the browser if needed.

        The context is created with ``profile``'s user agent and headers.
        Asking for a different profile than the live context was built
        with replaces the context.
        """
        if self._context is not None and (profile is None or profile == self._profile):
            return self._context

        async with self._lock:
            if self._context is not None and profile is not None and profile != self._profile:
                await self.reset_context()
            if self._context is None:
                browser = self._browser or await self._launch()
                options = {
                    "viewport": {"width": self.config.viewport_width, "height": self.config.viewport_height},
                    "locale": "ru-RU",
                    "timezone_id": "Europe/Moscow",
                }
                if profile is not None:
                    options["user_agent"] = profile.user_agent
                    options["extra_http_headers"] = profile.headers()
                self._context = await browser.new_context(**options)
                self._profile = profile
            return self._context

    async def set_headless(self, headless: bool) -> None:
        """Switch launch mode. A running browser in the other mode is closed
        and relaunched lazily on the next ``context()`` call."""
        if self.config.headless == headless:
            return
        if self.is_running:
            await self.shutdown()
        self.config = self.config.model_copy(update={"headless": headless})

    async def reset_context(self) -> None:
        """Close and forget the current context. Safe if it is already gone."""
        context, self._context = self._context, None
        self._profile = None
        if context is None:
            return
        try:
            await context.close()
            logger.info("Browser context reset")
        except Exception as e:
            logger.warning(f"Failed to close browser context: {e}")

    async def shutdown(self) -> None:
        """Close context, browser and Playwright. Never raises."""
        await self.reset_context()

        browser, self._browser = self._browser, None
        playwright, self._playwright = self._playwright, None

        if browser is not None:
            try:
                await browser.close()
                logger.info("Browser closed")
            except Exception as e:
                logger.error(f"Failed to close browser: {e}")
        if playwright is not None:
            try:
                await playwright.stop()
            except Exception as e:
                logger.error(f"Failed to stop Playwright: {e}")

    async def _launch(self) -> Browser:
        started_here = self._playwright is None
        try:
            if self._playwright is None:
                self._playwright = await async_playwright().start()
            browser = await self._playwright.chromium.launch(
                headless=self.config.headless,
                slow_mo=self.config.slow_mo,
                args=list(self.config.launch_args),
            )
        except Exception as e:
            logger.error(f"Failed to launch browser: {e}")
            if started_here and self._playwright is not None:
                playwright, self._playwright = self._playwright, None
                await playwright.stop()
            raise BrowserLaunchFailed(str(e)) from e

        browser.on("disconnected", self._on_disconnected)
        self._browser = browser
        logger.info(f"Browser launched (headless={self.config.headless})")
        return browser

    def _on_disconnected(self, browser: Browser) -> None:
        if browser is not self._browser:
            return
        logger.warning("Browser disconnected unexpectedly")
        self._browser = None
        self._context = None
        self._profile = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
