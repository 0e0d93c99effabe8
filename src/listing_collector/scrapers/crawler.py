"""Page-by-page crawl of one listing category."""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Protocol
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from ..config import ScrapingDefaults, config
from ..models.listing import ListingSource, NormalizedListing
from .base import CrawlResult, FetchFailed, RateLimited, ScrapeError
from .normalize import normalize_listing
from .parsers import ListingParser, build_parsers
from .retry import RetryPolicy, apply_jitter

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class Fetcher(Protocol):
    async def fetch(self, url: str) -> str: ...


@dataclass
class CrawlOptions:
    max_pages: int = 5
    published_after: datetime | None = None
    request_delay_ms: int = 1200


@dataclass
class CrawlCursor:
    """In-memory state of one crawl run."""

    page: int = 0
    listings: list[NormalizedListing] = field(default_factory=list)
    seen_external_ids: set[str] = field(default_factory=set)
    should_stop: bool = False


def build_paged_url(base_url: str, page_param: str, page: int) -> str:
    """URL for a results page. Page 1 is the base URL untouched."""
    if page <= 1:
        return base_url
    try:
        parts = urlsplit(base_url)
        if not parts.scheme or not parts.netloc:
            raise ValueError(f"not an absolute URL: {base_url}")
        query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != page_param]
        query.append((page_param, str(page)))
        return urlunsplit(parts._replace(query=urlencode(query)))
    except ValueError:
        separator = "&" if "?" in base_url else "?"
        return f"{base_url}{separator}{page_param}={page}"


def filter_by_cutoff(
    listings: list[NormalizedListing],
    published_after: datetime | None,
) -> tuple[list[NormalizedListing], bool]:
    """Accept listings until the first one older than the cutoff.

    Pages are assumed newest-first, so everything after the first older
    listing is older too. Pinned or promoted cards break that assumption;
    this is an early exit, not a filter guarantee.

    Returns:
        Tuple of (accepted listings, whether the crawl should stop).
    """
    if published_after is None:
        return listings, False

    accepted = []
    for listing in listings:
        if listing.published_at < published_after:
            return accepted, True
        accepted.append(listing)
    return accepted, False


class PaginationCrawler:
    """Drives fetch -> parse -> cutoff -> dedup over consecutive pages.

    Pages are requested strictly in order, one at a time. A page that is
    still blocked after all retries, or fails outright, ends the crawl but
    keeps everything collected before it.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        retry_policy: RetryPolicy,
        parsers: dict[ListingSource, ListingParser] | None = None,
        scraping: ScrapingDefaults | None = None,
        sleep: Sleep = asyncio.sleep,
        rng: random.Random | None = None,
    ):
        self.fetcher = fetcher
        self.retry_policy = retry_policy
        self.parsers = parsers if parsers is not None else build_parsers()
        self.scraping = scraping or config.scraping
        self._sleep = sleep
        self._rng = rng or random.Random()

    async def crawl(
        self,
        source: ListingSource,
        base_url: str,
        page_param: str,
        options: CrawlOptions | None = None,
    ) -> CrawlResult:
        options = options or CrawlOptions()
        parser = self.parsers[source]
        max_pages = max(options.max_pages, 1)
        delay_ms = max(options.request_delay_ms, 0)
        published_after = options.published_after
        if published_after is not None and published_after.tzinfo is None:
            published_after = published_after.replace(tzinfo=UTC)

        cursor = CrawlCursor()
        result = CrawlResult()

        for page in range(1, max_pages + 1):
            cursor.page = page
            page_url = build_paged_url(base_url, page_param, page)
            logger.info(f"Fetching {source.value} page {page}/{max_pages}: {page_url}")

            try:
                html = await self.retry_policy.run(lambda: self.fetcher.fetch(page_url))
            except (RateLimited, FetchFailed) as e:
                logger.error(f"Stopping {source.value} crawl at page {page}: {e}")
                result.errors.append(ScrapeError.from_exception(page_url, e))
                result.stop_reason = "blocked" if isinstance(e, RateLimited) else "fetch_failed"
                break

            result.pages_fetched += 1
            parsed = parser.parse(html, page_url)
            result.skipped += parsed.skipped

            now = datetime.now(UTC)
            normalized = []
            for raw in parsed.listings:
                listing = normalize_listing(
                    raw, source, page_url, now=now, utc_offset_hours=self.scraping.site_utc_offset_hours
                )
                if listing is None:
                    result.skipped += 1
                    continue
                normalized.append(listing)

            accepted, cursor.should_stop = filter_by_cutoff(normalized, published_after)

            new_count = 0
            for listing in accepted:
                if listing.external_id in cursor.seen_external_ids:
                    continue
                cursor.seen_external_ids.add(listing.external_id)
                cursor.listings.append(listing)
                new_count += 1

            logger.info(
                f"Page {page}: {len(parsed.listings)} cards, {new_count} new, "
                f"{len(cursor.listings)} total"
            )

            if cursor.should_stop:
                result.stop_reason = "cutoff"
                break
            if not parsed.has_next_page:
                result.stop_reason = "last_page"
                break
            if page >= max_pages:
                result.stop_reason = "max_pages"
                break

            # Politeness delay
            if delay_ms > 0:
                await self._sleep(apply_jitter(delay_ms, self.scraping.jitter_ratio, self._rng) / 1000)

        result.listings = cursor.listings
        return result
