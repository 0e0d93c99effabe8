"""Entry point for collection runs: crawl a source and sync it to storage."""

import logging
from dataclasses import dataclass
from datetime import datetime
from urllib.parse import urlparse

from .config import Config, config
from .db.operations import ListingStore, SQLiteListingStore
from .models.listing import ListingSource, NormalizedListing, SyncResult
from .scrapers.crawler import CrawlOptions, PaginationCrawler
from .scrapers.fetcher import PageFetcher
from .scrapers.identity import IdentityProvider, cookie_domain
from .scrapers.parsers import build_parsers
from .scrapers.retry import RetryPolicy, RetrySettings
from .scrapers.session import BrowserSession

logger = logging.getLogger(__name__)


@dataclass
class CollectOptions:
    """Per-run overrides. Anything left as None falls back to config."""

    base_url: str | None = None
    max_pages: int | None = None
    published_after: datetime | None = None
    request_delay_ms: int | None = None
    manual: bool = False


def source_host_cookies(app_config: Config) -> dict[str, dict[str, str]]:
    """Configured source cookies keyed by the cookie domain of each source URL."""
    cookies: dict[str, dict[str, str]] = {}
    for source_config in app_config.sources.values():
        if not source_config.cookies:
            continue
        for url in source_config.urls:
            host = urlparse(url).hostname
            if host:
                cookies.setdefault(cookie_domain(host).lstrip("."), {}).update(source_config.cookies)
    return cookies


class ListingCollector:
    """Crawls sources through one shared browser session and syncs results.

    Use as an async context manager (or call ``shutdown()``) so the browser
    is closed when done. Not safe for concurrent ``collect`` calls; create
    one collector per concurrent run.
    """

    def __init__(
        self,
        store: ListingStore | None = None,
        app_config: Config | None = None,
        session: BrowserSession | None = None,
        identities: IdentityProvider | None = None,
        fetcher: PageFetcher | None = None,
        crawler: PaginationCrawler | None = None,
    ):
        self.config = app_config or config
        self.store = store or SQLiteListingStore()
        self.session = session or BrowserSession(self.config.browser)
        self.identities = identities or IdentityProvider(host_cookies=source_host_cookies(self.config))
        self.fetcher = fetcher or PageFetcher(self.session, self.identities, self.config.scraping)
        self.crawler = crawler or PaginationCrawler(
            fetcher=self.fetcher,
            retry_policy=RetryPolicy(
                self.identities,
                self.session,
                RetrySettings.from_config(self.config.scraping),
            ),
            parsers=build_parsers(self.config),
            scraping=self.config.scraping,
        )

    async def collect(self, source: ListingSource, options: CollectOptions | None = None) -> SyncResult:
        """Crawl every base URL of a source and sync the combined batch once.

        A blocked or failed page only ends the crawl of its own base URL;
        what was collected so far is still synced. Browser launch failures
        propagate.

        Args:
            source: Source to collect.
            options: Run overrides. ``base_url`` restricts the run to one URL.

        Returns:
            SyncResult with the crawled count and the created/updated records.
        """
        options = options or CollectOptions()
        source_config = self.config.source(source)
        scraping = self.config.scraping

        max_pages = options.max_pages if options.max_pages is not None else scraping.max_pages
        delay_ms = options.request_delay_ms if options.request_delay_ms is not None else scraping.request_delay_ms
        crawl_options = CrawlOptions(
            max_pages=max(max_pages, 1),
            published_after=options.published_after,
            request_delay_ms=max(delay_ms, 0),
        )

        if options.manual:
            # The operator needs a visible window
            await self.session.set_headless(False)
        self.fetcher.arm_manual(options.manual)

        base_urls = [options.base_url] if options.base_url else list(source_config.urls)
        batch: list[NormalizedListing] = []
        try:
            for base_url in base_urls:
                result = await self.crawler.crawl(source, base_url, source_config.page_param, crawl_options)
                logger.info(f"{source.value} {base_url}: {result!r}")
                batch.extend(result.listings)

            diff = self.store.sync_listings(source, batch)
        finally:
            if options.manual:
                # Later runs go back to the configured mode
                await self.session.set_headless(self.config.browser.headless)

        return SyncResult(
            source=source,
            scraped_count=len(batch),
            created=diff.created,
            updated=diff.updated,
        )

    async def collect_all(
        self,
        published_after: datetime | None = None,
        sources: list[ListingSource] | None = None,
    ) -> dict[ListingSource, SyncResult]:
        """Collect every configured source in turn."""
        results = {}
        for source in sources or list(self.config.sources):
            results[source] = await self.collect(source, CollectOptions(published_after=published_after))
        return results

    async def shutdown(self) -> None:
        await self.session.shutdown()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()
