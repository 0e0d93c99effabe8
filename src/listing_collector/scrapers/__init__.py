"""Scrapers module."""

from .base import (
    BrowserLaunchFailed,
    CollectorError,
    CrawlResult,
    FetchFailed,
    RateLimited,
    ScrapeError,
)
from .crawler import CrawlOptions, PaginationCrawler, build_paged_url, filter_by_cutoff
from .fetcher import PageFetcher
from .identity import IdentityProfile, IdentityProvider
from .parsers import ListingParser, build_parsers
from .retry import RetryPolicy, RetrySettings, apply_jitter
from .session import BrowserSession

__all__ = [
    "BrowserLaunchFailed",
    "CollectorError",
    "CrawlResult",
    "FetchFailed",
    "RateLimited",
    "ScrapeError",
    "CrawlOptions",
    "PaginationCrawler",
    "build_paged_url",
    "filter_by_cutoff",
    "PageFetcher",
    "IdentityProfile",
    "IdentityProvider",
    "ListingParser",
    "build_parsers",
    "RetryPolicy",
    "RetrySettings",
    "apply_jitter",
    "BrowserSession",
]
