"""Extract listing cards from a results page.

Each source is described by data, not a subclass: a ``SelectorConfig``
with ordered candidates per field plus a function that finds the card's
external id. Sites rename CSS classes often, so every field is tried
against several selectors and the first match wins.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass

from bs4 import BeautifulSoup, Tag

from ..config import Config, SelectorConfig, config
from ..models.listing import ListingSource, PageParseResult, RawListing
from .normalize import resolve_url

logger = logging.getLogger(__name__)

IdResolver = Callable[[Tag], str | None]


def select_first(root: Tag, selectors: list[str] | tuple[str, ...]) -> Tag | None:
    """Return the first element matched by the first selector that matches anything."""
    for selector in selectors:
        found = root.select_one(selector)
        if found is not None:
            return found
    return None


def extract_text(element: Tag | None) -> str | None:
    """Element text with whitespace collapsed, or None if empty."""
    if element is None:
        return None
    text = re.sub(r"\s+", " ", element.get_text(" ")).strip()
    return text or None


def first_attr(element: Tag | None, *names: str) -> str | None:
    """First non-empty attribute value among ``names``."""
    if element is None:
        return None
    for name in names:
        value = element.get(name)
        if isinstance(value, list):
            value = " ".join(value)
        if value and value.strip():
            return value.strip()
    return None


def avito_external_id(card: Tag) -> str | None:
    nested = card.select_one('div[data-marker="item"]')
    return (
        first_attr(card, "data-item-id", "data-id", "id")
        or first_attr(nested, "data-item-id", "data-id")
    )


def youla_external_id(card: Tag) -> str | None:
    return first_attr(card, "data-id", "data-product-id") or first_attr(card.select_one("[data-id]"), "data-id")


@dataclass(frozen=True)
class ListingParser:
    """Parses one source's results pages."""

    source: ListingSource
    selectors: SelectorConfig
    resolve_id: IdResolver
    link_selectors: tuple[str, ...] = ()
    date_attr_fallback: str | None = None  # card (or child) attribute tried before the date text

    def parse(self, html: str, page_url: str) -> PageParseResult:
        soup = BeautifulSoup(html, "html.parser")
        result = PageParseResult()
        seen: set[str] = set()

        cards = soup.select(", ".join(self.selectors.card)) if self.selectors.card else []
        # Card selectors can match both a wrapper and its inner root; keep the outermost
        matched = {id(card) for card in cards}
        cards = [card for card in cards if not any(id(parent) in matched for parent in card.parents)]
        for card in cards:
            external_id = self.resolve_id(card)
            if not external_id or external_id in seen:
                if not external_id:
                    result.skipped += 1
                continue

            title_el = select_first(card, self.selectors.title)
            title = extract_text(title_el)
            if not title:
                result.skipped += 1
                continue
            seen.add(external_id)

            href = first_attr(title_el, "href") or first_attr(select_first(card, self.link_selectors), "href")

            date_el = select_first(card, self.selectors.date)
            published_at = first_attr(date_el, "datetime")
            if published_at is None and self.date_attr_fallback:
                attr = self.date_attr_fallback
                published_at = first_attr(card, attr) or first_attr(card.select_one(f"[{attr}]"), attr)
            if published_at is None:
                published_at = extract_text(date_el)

            image_el = select_first(card, self.selectors.image)

            result.listings.append(RawListing(
                external_id=external_id,
                title=title,
                url=resolve_url(href, page_url),
                price_text=extract_text(select_first(card, self.selectors.price)),
                address=extract_text(select_first(card, self.selectors.address)),
                description=extract_text(select_first(card, self.selectors.description)),
                preview_image=first_attr(image_el, "src", "data-src", "srcset"),
                published_at=published_at,
            ))

        if self.selectors.next_page:
            result.has_next_page = soup.select_one(self.selectors.next_page) is not None

        logger.debug(
            f"{self.source.value}: {len(cards)} cards, {len(result.listings)} parsed, "
            f"{result.skipped} skipped on {page_url}"
        )
        return result


_ID_RESOLVERS: dict[ListingSource, IdResolver] = {
    ListingSource.AVITO: avito_external_id,
    ListingSource.YOULA: youla_external_id,
}

_LINK_SELECTORS: dict[ListingSource, tuple[str, ...]] = {
    ListingSource.AVITO: ('a[data-marker="item-title"]',),
    ListingSource.YOULA: ('a[data-test="product-card-link"]',),
}

_DATE_ATTR_FALLBACK: dict[ListingSource, str] = {
    ListingSource.YOULA: "data-published-at",
}


def build_parsers(app_config: Config | None = None) -> dict[ListingSource, ListingParser]:
    """Build the source -> parser lookup table from configured selectors."""
    app_config = app_config or config
    return {
        source: ListingParser(
            source=source,
            selectors=source_config.selectors,
            resolve_id=_ID_RESOLVERS[source],
            link_selectors=_LINK_SELECTORS.get(source, ()),
            date_attr_fallback=_DATE_ATTR_FALLBACK.get(source),
        )
        for source, source_config in app_config.sources.items()
    }
