"""Load one listing page through the shared browser session."""

import asyncio
import logging
import sys
from urllib.parse import urlparse

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page
from playwright.async_api import TimeoutError as PlaywrightTimeout
from rich.console import Console

from ..config import ScrapingDefaults, config
from .base import FetchFailed, RateLimited
from .identity import IdentityProvider
from .session import BrowserSession

logger = logging.getLogger(__name__)


def find_captcha_marker(html: str, markers: list[str]) -> str | None:
    """Return the first captcha marker found in the page, case-insensitively."""
    lower = html.lower()
    for marker in markers:
        if marker and marker.lower() in lower:
            return marker
    return None


def parse_retry_after(value: str | None) -> int | None:
    """Parse a Retry-After header given in seconds into milliseconds."""
    if not value:
        return None
    try:
        seconds = int(value.strip())
    except ValueError:
        # HTTP-date form is not worth honouring here
        return None
    if seconds < 0:
        return None
    return seconds * 1000


class PageFetcher:
    """Fetch rendered HTML for a URL, classifying block signals.

    Every call opens its own page in the session's context and closes it
    again, whatever the outcome.

    Raises (from ``fetch``):
        RateLimited: rate-limit status code, captcha page or navigation timeout.
        FetchFailed: any other HTTP error, a navigation failure or a closed context.
        BrowserLaunchFailed: the browser could not be started.
    """

    def __init__(
        self,
        session: BrowserSession,
        identities: IdentityProvider,
        scraping: ScrapingDefaults | None = None,
        manual: bool = False,
        console: Console | None = None,
    ):
        self.session = session
        self.identities = identities
        self.scraping = scraping or config.scraping
        self.console = console or Console(stderr=True)
        self._manual_pending = manual

    def arm_manual(self, enabled: bool = True) -> None:
        """Allow (or forbid) one operator pause on the next block signal."""
        self._manual_pending = enabled

    async def fetch(self, url: str) -> str:
        identity = self.identities.active
        context = await self.session.context(identity)

        host = urlparse(url).hostname
        try:
            if host:
                await context.add_cookies(self.identities.seed_cookies(host, identity))
            page = await context.new_page()
        except PlaywrightError as e:
            # Context or browser closed under us, e.g. after a crash
            raise FetchFailed(url, reason=str(e)) from e

        try:
            return await self._load(page, url)
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                # Context may already be gone after a browser crash
                logger.debug(f"Page close failed for {url}: {e}")

    async def _load(self, page: Page, url: str) -> str:
        try:
            response = await page.goto(
                url,
                wait_until=self.scraping.wait_until,
                timeout=self.scraping.navigation_timeout_ms,
            )
        except PlaywrightTimeout as e:
            logger.warning(f"Navigation timeout for {url}")
            raise RateLimited(url, is_timeout=True) from e
        except PlaywrightError as e:
            raise FetchFailed(url, reason=str(e)) from e

        if response is None:
            raise FetchFailed(url, reason="no response")

        status = response.status
        blocked_status = status in self.scraping.rate_limit_status_codes
        if status >= 400 and not blocked_status:
            raise FetchFailed(url, status=status)

        if self.scraping.wait_after_load_ms > 0:
            await page.wait_for_timeout(self.scraping.wait_after_load_ms)

        html = await page.content()
        marker = find_captcha_marker(html, self.scraping.captcha_markers)

        if (blocked_status or marker) and self._manual_pending:
            self._manual_pending = False
            if await self._wait_for_operator(url):
                html = await page.content()
                marker = find_captcha_marker(html, self.scraping.captcha_markers)
                blocked_status = False

        if marker:
            logger.warning(f"Captcha marker '{marker}' found on {url}")
            raise RateLimited(url, status=status if blocked_status else None, is_captcha=True)
        if blocked_status:
            logger.warning(f"Rate-limit status {status} for {url}")
            raise RateLimited(
                url,
                status=status,
                retry_after_ms=parse_retry_after(response.headers.get("retry-after")),
            )
        return html

    async def _wait_for_operator(self, url: str) -> bool:
        """Let a human solve the challenge in the open browser window.

        Returns:
            True if the operator confirmed, False if no terminal was available.
        """
        if not sys.stdin.isatty():
            logger.warning("Manual mode enabled but stdin is not a terminal, skipping operator pause")
            return False

        self.console.print()
        self.console.print("[bold red]Manual mode:[/bold red] solve the challenge in the browser window.")
        self.console.print(f"  Page: {url}")
        self.console.print("  Press Enter here once the check is passed.")
        await asyncio.to_thread(sys.stdin.readline)

        if self.scraping.manual_wait_after_ms > 0:
            await asyncio.sleep(self.scraping.manual_wait_after_ms / 1000)
        return True
