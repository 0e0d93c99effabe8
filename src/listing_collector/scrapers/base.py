"""Shared scraper types: the error taxonomy and crawl result records."""

import traceback
from dataclasses import dataclass, field
from datetime import datetime, UTC
from urllib.parse import urlparse

from ..models.listing import NormalizedListing


class CollectorError(Exception):
    """Base class for listing-collector errors."""


class RateLimited(CollectorError):
    """The site throttled or challenged us. Retryable with a new identity.

    Raised for rate-limit status codes, captcha pages and navigation
    timeouts. ``attempts`` is filled in by the retry policy once it gives up.
    """

    def __init__(
        self,
        url: str,
        status: int | None = None,
        is_captcha: bool = False,
        is_timeout: bool = False,
        retry_after_ms: int | None = None,
        attempts: int = 0,
    ):
        self.url = url
        self.status = status
        self.is_captcha = is_captcha
        self.is_timeout = is_timeout
        self.retry_after_ms = retry_after_ms
        self.attempts = attempts
        super().__init__(url)

    @property
    def host(self) -> str:
        return urlparse(self.url).hostname or self.url

    @property
    def signal(self) -> str:
        """Short label for what triggered the block."""
        if self.is_captcha:
            return "captcha"
        if self.is_timeout:
            return "timeout"
        return f"HTTP {self.status}" if self.status is not None else "blocked"

    def __str__(self) -> str:
        message = f"Rate limited by {self.host} ({self.signal}) at {self.url}"
        if self.attempts:
            message += f" after {self.attempts} attempt(s)"
        return message


class FetchFailed(CollectorError):
    """The page could not be loaded in a way retrying will not fix."""

    def __init__(self, url: str, status: int | None = None, reason: str | None = None):
        self.url = url
        self.status = status
        self.reason = reason
        super().__init__(url)

    def __str__(self) -> str:
        if self.status is not None:
            return f"HTTP {self.status} for {self.url}"
        return f"Failed to load {self.url}: {self.reason or 'no response'}"


class BrowserLaunchFailed(CollectorError):
    """Chromium could not be started. Fatal for the current run."""


@dataclass
class ScrapeError:
    """Record of a scraping error."""

    url: str
    error_type: str
    error_message: str
    traceback: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_exception(cls, url: str, exc: Exception) -> "ScrapeError":
        """Create a ScrapeError from an exception."""
        return cls(
            url=url,
            error_type=type(exc).__name__,
            error_message=str(exc),
            traceback="".join(traceback.format_exception(exc)),
        )


@dataclass
class CrawlResult:
    """Listings accumulated by one crawl plus why it stopped."""

    listings: list[NormalizedListing] = field(default_factory=list)
    errors: list[ScrapeError] = field(default_factory=list)
    pages_fetched: int = 0
    skipped: int = 0  # cards dropped by the parser or normalizer
    stop_reason: str | None = None

    @property
    def success_count(self) -> int:
        return len(self.listings)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    def __repr__(self) -> str:
        return (
            f"CrawlResult({self.success_count} listings from {self.pages_fetched} pages, "
            f"{self.error_count} errors, stopped: {self.stop_reason})"
        )
