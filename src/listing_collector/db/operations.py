"""Database operations."""

import json
import logging
import sqlite3
import uuid
from datetime import datetime, UTC
from pathlib import Path
from typing import Any, Protocol

from ..models.listing import ListingSource, NormalizedListing, PersistedListing, SyncDiff
from .schema import init_db

logger = logging.getLogger(__name__)

_connection: sqlite3.Connection | None = None

# Fields compared on re-crawl. url is not tracked.
TRACKED_FIELDS = (
    "title",
    "price",
    "price_text",
    "address",
    "description",
    "preview_image",
    "published_at",
    "metadata",
)


class ListingStore(Protocol):
    """Persistence collaborator used by the collector."""

    def sync_listings(
        self, source: ListingSource, listings: list[NormalizedListing]
    ) -> SyncDiff: ...


def get_db(db_path: Path | None = None) -> sqlite3.Connection:
    """Get database connection, initializing if needed.

    Args:
        db_path: Optional path to database. Uses config default if not provided.

    Returns:
        Database connection.
    """
    global _connection
    if _connection is None:
        _connection = init_db(db_path)
    return _connection


def close_db() -> None:
    """Close the database connection."""
    global _connection
    if _connection is not None:
        _connection.close()
        _connection = None


def _to_db(name: str, value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.astimezone(UTC).isoformat()
    if name == "metadata":
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    return value


def _row_to_listing(row: sqlite3.Row) -> PersistedListing:
    data = dict(row)
    if data.get("metadata"):
        data["metadata"] = json.loads(data["metadata"])
    return PersistedListing.model_validate(data)


def changed_fields(record: PersistedListing, listing: NormalizedListing) -> dict[str, Any]:
    """Tracked fields whose crawled value differs from the stored one.

    Datetimes compare as instants and metadata compares structurally, so
    a re-serialized but identical value does not count as a change.
    """
    changes = {}
    for name in TRACKED_FIELDS:
        new_value = getattr(listing, name)
        if getattr(record, name) != new_value:
            changes[name] = new_value
    return changes


def sync_listings(
    source: ListingSource,
    listings: list[NormalizedListing],
    now: datetime | None = None,
) -> SyncDiff:
    """Upsert a crawled batch for one source and report what really changed.

    Runs as a single transaction: either every insert/update lands or none
    does. Listings already stored with identical tracked fields only get
    their ``last_seen_at`` refreshed and are not reported, so syncing the
    same batch twice yields an empty diff the second time.

    Args:
        source: Source the batch was crawled from.
        listings: Normalized listings; duplicates by external id are
            collapsed, last occurrence wins.
        now: Timestamp to record (defaults to current UTC time).

    Returns:
        SyncDiff with created and updated records.
    """
    diff = SyncDiff()
    if not listings:
        return diff

    unique: dict[str, NormalizedListing] = {}
    for listing in listings:
        unique[listing.external_id] = listing

    now = now or datetime.now(UTC)
    stamp = _to_db("now", now)
    conn = get_db()

    with conn:
        placeholders = ", ".join("?" for _ in unique)
        rows = conn.execute(
            f"SELECT * FROM listings WHERE source = ? AND external_id IN ({placeholders})",
            (source.value, *unique.keys()),
        ).fetchall()
        existing = {row["external_id"]: _row_to_listing(row) for row in rows}

        for external_id, listing in unique.items():
            record = existing.get(external_id)

            if record is None:
                created = PersistedListing(
                    **listing.model_dump(exclude={"source"}),
                    source=source,
                    id=str(uuid.uuid4()),
                    first_seen_at=now,
                    last_seen_at=now,
                    created_at=now,
                    updated_at=now,
                )
                columns = list(PersistedListing.model_fields)
                conn.execute(
                    f"INSERT INTO listings ({', '.join(columns)}) VALUES ({', '.join('?' for _ in columns)})",
                    [
                        source.value if name == "source" else _to_db(name, getattr(created, name))
                        for name in columns
                    ],
                )
                diff.created.append(created)
                continue

            changes = changed_fields(record, listing)
            if not changes:
                conn.execute("UPDATE listings SET last_seen_at = ? WHERE id = ?", (stamp, record.id))
                continue

            assignments = ", ".join(f"{name} = ?" for name in changes)
            conn.execute(
                f"UPDATE listings SET {assignments}, last_seen_at = ?, updated_at = ? WHERE id = ?",
                (*(_to_db(name, value) for name, value in changes.items()), stamp, stamp, record.id),
            )
            diff.updated.append(record.model_copy(update={**changes, "last_seen_at": now, "updated_at": now}))

    logger.info(
        f"Synced {len(unique)} {source.value} listings: "
        f"{len(diff.created)} created, {len(diff.updated)} updated"
    )
    return diff


def get_listing(listing_id: str) -> PersistedListing | None:
    """Get a listing by ID.

    Args:
        listing_id: The listing ID.

    Returns:
        The listing, or None if not found.
    """
    conn = get_db()
    row = conn.execute("SELECT * FROM listings WHERE id = ?", (listing_id,)).fetchone()
    if row is None:
        return None
    return _row_to_listing(row)


def get_listing_by_external_id(source: ListingSource, external_id: str) -> PersistedListing | None:
    """Get a listing by source and external ID."""
    conn = get_db()
    row = conn.execute(
        "SELECT * FROM listings WHERE source = ? AND external_id = ?",
        (source.value, external_id),
    ).fetchone()
    if row is None:
        return None
    return _row_to_listing(row)


def get_all_listings(source: ListingSource | None = None) -> list[PersistedListing]:
    """Get all listings, newest publication first, optionally filtered by source.

    Args:
        source: Optional source filter.

    Returns:
        List of listings.
    """
    conn = get_db()
    if source:
        rows = conn.execute(
            "SELECT * FROM listings WHERE source = ? ORDER BY published_at DESC",
            (source.value,),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM listings ORDER BY published_at DESC"
        ).fetchall()
    return [_row_to_listing(row) for row in rows]


class SQLiteListingStore:
    """``ListingStore`` backed by the module-level SQLite connection."""

    def sync_listings(self, source: ListingSource, listings: list[NormalizedListing]) -> SyncDiff:
        return sync_listings(source, listings)
