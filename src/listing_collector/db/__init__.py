"""Database module."""

from .schema import init_db
from .operations import (
    ListingStore,
    SQLiteListingStore,
    close_db,
    get_all_listings,
    get_db,
    get_listing,
    get_listing_by_external_id,
    sync_listings,
)

__all__ = [
    "init_db",
    "get_db",
    "close_db",
    "sync_listings",
    "get_listing",
    "get_listing_by_external_id",
    "get_all_listings",
    "ListingStore",
    "SQLiteListingStore",
]
