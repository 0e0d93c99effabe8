"""Turn raw card data into NormalizedListing records."""

import logging
import re
from datetime import datetime, timedelta, timezone, UTC
from urllib.parse import urljoin

from ..models.listing import ListingSource, NormalizedListing, RawListing

logger = logging.getLogger(__name__)

# Genitive month names as printed on card dates ("12 мая 14:05")
_MONTHS = {
    "января": 1, "февраля": 2, "марта": 3, "апреля": 4,
    "мая": 5, "июня": 6, "июля": 7, "августа": 8,
    "сентября": 9, "октября": 10, "ноября": 11, "декабря": 12,
}

_RELATIVE_UNITS = {
    "секунд": "seconds",
    "минут": "minutes",
    "час": "hours",
    "дн": "days",
    "день": "days",
    "недел": "weeks",
}

_TIME_RE = re.compile(r"(\d{1,2}):(\d{2})")
_AGO_RE = re.compile(r"(\d+)\s+([а-яё]+)\s+назад")
_DAY_MONTH_RE = re.compile(r"(\d{1,2})\s+([а-яё]+)(?:\s+(\d{4}))?")


def parse_price(text: str | None) -> int | None:
    """Parse price text like '25 000 ₽ в месяц' into 25000."""
    if not text:
        return None
    digits = re.sub(r"[^0-9]", "", text)
    return int(digits) if digits else None


def resolve_url(href: str | None, base: str) -> str:
    """Resolve a card link against the page URL. No link means the page itself."""
    if not href:
        return base
    try:
        return urljoin(base, href)
    except ValueError:
        return href


def _parse_relative(text: str, now: datetime) -> datetime | None:
    lower = text.lower().replace("\xa0", " ").strip()
    time_match = _TIME_RE.search(lower)
    hour, minute = (int(time_match.group(1)), int(time_match.group(2))) if time_match else (0, 0)
    if hour > 23 or minute > 59:
        return None

    if lower.startswith("сегодня"):
        return now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if lower.startswith("вчера"):
        day = now - timedelta(days=1)
        return day.replace(hour=hour, minute=minute, second=0, microsecond=0)

    ago = _AGO_RE.search(lower)
    if ago:
        amount, unit = int(ago.group(1)), ago.group(2)
        for prefix, name in _RELATIVE_UNITS.items():
            if unit.startswith(prefix):
                return now - timedelta(**{name: amount})
        return None

    day_month = _DAY_MONTH_RE.search(lower)
    if day_month and day_month.group(2) in _MONTHS:
        day = int(day_month.group(1))
        month = _MONTHS[day_month.group(2)]
        year = int(day_month.group(3)) if day_month.group(3) else now.year
        try:
            parsed = now.replace(year=year, month=month, day=day, hour=hour, minute=minute, second=0, microsecond=0)
        except ValueError:
            return None
        # "28 декабря" seen in January belongs to last year
        if not day_month.group(3) and parsed > now + timedelta(days=1):
            parsed = parsed.replace(year=year - 1)
        return parsed
    return None


def parse_published_at(
    value: str | None,
    now: datetime | None = None,
    utc_offset_hours: int = 3,
) -> datetime | None:
    """Parse a card's publish date into an aware UTC datetime.

    Accepts Unix seconds/milliseconds, ISO-8601 (with or without the "T")
    and the Russian relative forms the sites print ("сегодня 14:05",
    "3 часа назад", "12 мая"). Naive values are taken as site local time.

    Returns:
        The UTC timestamp, or None if the value can't be understood.
    """
    if not value:
        return None
    text = value.strip()
    if not text:
        return None

    site_tz = timezone(timedelta(hours=utc_offset_hours))

    if re.fullmatch(r"\d{10}", text):
        return datetime.fromtimestamp(int(text), tz=UTC)
    if re.fullmatch(r"\d{13}", text):
        return datetime.fromtimestamp(int(text) / 1000, tz=UTC)

    for candidate in (text, text.replace(" ", "T", 1)):
        try:
            parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
        except ValueError:
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=site_tz)
        return parsed.astimezone(UTC)

    local_now = (now or datetime.now(UTC)).astimezone(site_tz)
    parsed = _parse_relative(text, local_now)
    return parsed.astimezone(UTC) if parsed else None


def normalize_listing(
    raw: RawListing,
    source: ListingSource,
    page_url: str,
    now: datetime | None = None,
    utc_offset_hours: int = 3,
) -> NormalizedListing | None:
    """Map a raw card to a NormalizedListing.

    Returns:
        None when the card has no id/title or its publish date can't be
        resolved (the cutoff rule needs a date).
    """
    if not raw.external_id or not raw.title:
        return None

    published_at = parse_published_at(raw.published_at, now=now, utc_offset_hours=utc_offset_hours)
    if published_at is None:
        logger.debug(f"Dropping {source.value}:{raw.external_id}, unparsable date {raw.published_at!r}")
        return None

    return NormalizedListing(
        source=source,
        external_id=raw.external_id,
        title=raw.title,
        url=resolve_url(raw.url, page_url),
        price=parse_price(raw.price_text),
        price_text=raw.price_text,
        address=raw.address,
        description=raw.description,
        preview_image=raw.preview_image,
        published_at=published_at,
    )
