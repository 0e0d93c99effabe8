"""Listing data models."""

from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(UTC)


class ListingSource(str, Enum):
    """Classified-ad sites the collector knows how to crawl."""

    AVITO = "avito"
    YOULA = "youla"


@dataclass
class RawListing:
    """Data extracted from a single listing card, before normalization."""

    external_id: str | None
    title: str | None
    url: str | None
    price_text: str | None = None
    address: str | None = None
    description: str | None = None
    preview_image: str | None = None
    published_at: str | None = None  # raw, site-specific format


@dataclass
class PageParseResult:
    """Listings found on one page plus the pagination flag."""

    listings: list[RawListing] = field(default_factory=list)
    has_next_page: bool = False
    skipped: int = 0  # cards without a usable id/title


class NormalizedListing(BaseModel):
    """A listing mapped to its source with parsed price and publish date."""

    source: ListingSource = Field(..., description="Site the listing was crawled from")
    external_id: str = Field(..., description="ID assigned by the source site")
    title: str = Field(..., description="Listing title")
    url: str = Field(..., description="Absolute listing URL")
    price: int | None = Field(None, description="Parsed numeric price (None if unparsable)")
    price_text: str | None = Field(None, description="Price as displayed on the card")
    address: str | None = Field(None, description="Address line from the card")
    description: str | None = Field(None, description="Card snippet text")
    preview_image: str | None = Field(None, description="Preview image URL")
    published_at: datetime = Field(..., description="Publish time (timezone-aware, UTC)")
    metadata: dict[str, Any] | None = Field(None, description="Extra source-specific data")


class PersistedListing(NormalizedListing):
    """Full listing model with database fields."""

    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="Unique listing ID")
    first_seen_at: datetime = Field(default_factory=_utc_now)
    last_seen_at: datetime = Field(default_factory=_utc_now, description="Last time listing was seen during a crawl")
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)


@dataclass
class SyncDiff:
    """Records created or changed by one sync call.

    Unchanged records appear in neither list even though their
    ``last_seen_at`` was refreshed.
    """

    created: list[PersistedListing] = field(default_factory=list)
    updated: list[PersistedListing] = field(default_factory=list)


@dataclass
class SyncResult:
    """Outcome of collecting one source."""

    source: ListingSource
    scraped_count: int
    created: list[PersistedListing] = field(default_factory=list)
    updated: list[PersistedListing] = field(default_factory=list)

    def __repr__(self) -> str:
        return (
            f"SyncResult({self.source.value}: {self.scraped_count} scraped, "
            f"{len(self.created)} created, {len(self.updated)} updated)"
        )
