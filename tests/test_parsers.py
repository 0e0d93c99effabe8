"""Tests for listing card parsing."""

from bs4 import BeautifulSoup

from listing_collector.config import SelectorConfig
from listing_collector.models.listing import ListingSource
from listing_collector.scrapers.parsers import (
    ListingParser,
    avito_external_id,
    build_parsers,
    extract_text,
    select_first,
)


AVITO_PAGE = "https://www.avito.ru/birobidzhan/kvartiry/sdam?p=2"
YOULA_PAGE = "https://youla.ru/birobidzhan/nedvijimost/arenda-kvartiri"

AVITO_HTML = """
<html><body>
<div data-marker="catalog-serp">
  <div data-marker="item" data-item-id="1001">
    <a data-marker="item-title" href="/birobidzhan/kvartiry/1-k_1001">
      <h3>1-к. квартира,   32 м²</h3>
    </a>
    <span data-marker="item-price">18 000 ₽ в месяц</span>
    <div data-marker="item-address">ул. Пионерская, 5</div>
    <div data-marker="item-description">Без животных</div>
    <div data-marker="item-date"><time datetime="2025-05-12T10:00:00+03:00">сегодня 10:00</time></div>
    <img data-marker="image" data-src="https://img.avito.st/1001.jpg">
  </div>
  <div data-marker="item-root" data-id="1002">
    <a class="title-root-x" href="https://www.avito.ru/birobidzhan/kvartiry/2-k_1002">2-к. квартира</a>
    <p class="price-text-y">25 000 ₽</p>
    <div data-marker="item-date">2 часа назад</div>
  </div>
  <div data-marker="item" data-item-id="1003">
    <span>no title here</span>
  </div>
  <div data-marker="item">
    <a data-marker="item-title" href="/x">No id</a>
  </div>
  <div data-marker="item" data-item-id="1001">
    <a data-marker="item-title" href="/dup">Duplicate card</a>
  </div>
</div>
<a data-marker="pagination-button/next" href="?p=3">Дальше</a>
</body></html>
"""

YOULA_HTML = """
<html><body>
<ul>
  <li data-test="product-item">
    <article data-id="y-1" data-published-at="1715515200">
      <a data-test="product-card-link" href="/birobidzhan/nedvijimost/arenda-kvartiri/kvartira-y-1">
        <span data-test="product-title">Квартира у парка</span>
      </a>
      <div data-test="product-price">20 000 ₽</div>
      <img data-test="product-image" src="https://youla.cdn/y-1.jpg">
      <div data-test="product-date">вчера</div>
    </article>
  </li>
</ul>
</body></html>
"""


class TestHelpers:
    """Tests for selector helpers."""

    def test_select_first_uses_first_matching_selector(self):
        """Test candidates are tried in order."""
        soup = BeautifulSoup('<div><b class="a">A</b><i class="b">B</i></div>', "html.parser")
        assert select_first(soup, [".missing", ".b", ".a"]).text == "B"
        assert select_first(soup, [".missing"]) is None

    def test_extract_text_collapses_whitespace(self):
        soup = BeautifulSoup("<p>  Двух\n  комнатная   </p>", "html.parser")
        assert extract_text(soup.p) == "Двух комнатная"
        assert extract_text(None) is None

    def test_avito_nested_id(self):
        """Test the id can come from a nested item element."""
        soup = BeautifulSoup('<div class="card"><div data-marker="item" data-item-id="77"></div></div>', "html.parser")
        assert avito_external_id(soup.div) == "77"


class TestAvitoParser:
    """Tests for parsing avito result pages."""

    def setup_method(self):
        self.parser = build_parsers()[ListingSource.AVITO]

    def test_parses_cards(self):
        """Test fields are extracted with selector fallbacks."""
        result = self.parser.parse(AVITO_HTML, AVITO_PAGE)

        assert [l.external_id for l in result.listings] == ["1001", "1002"]
        first, second = result.listings
        assert first.title == "1-к. квартира, 32 м²"
        assert first.url == "https://www.avito.ru/birobidzhan/kvartiry/1-k_1001"
        assert first.price_text == "18 000 ₽ в месяц"
        assert first.address == "ул. Пионерская, 5"
        assert first.description == "Без животных"
        assert first.published_at == "2025-05-12T10:00:00+03:00"
        assert first.preview_image == "https://img.avito.st/1001.jpg"

        assert second.title == "2-к. квартира"
        assert second.url == "https://www.avito.ru/birobidzhan/kvartiry/2-k_1002"
        assert second.price_text == "25 000 ₽"
        assert second.published_at == "2 часа назад"
        assert second.address is None

    def test_skips_cards_without_id_or_title(self):
        """Test incomplete cards are counted as skipped, duplicates are not."""
        result = self.parser.parse(AVITO_HTML, AVITO_PAGE)
        assert result.skipped == 2

    def test_nested_card_match_is_one_card(self):
        """Test an inner element also matching a card selector is not a second card."""
        html = """
        <div data-marker="item" data-item-id="1001">
          <div class="iva-item-root-G3n7v">
            <a data-marker="item-title" href="/birobidzhan/kvartiry/1-k_1001">1-к. квартира</a>
            <time datetime="2025-05-12T10:00:00+03:00"></time>
          </div>
        </div>
        """
        result = self.parser.parse(html, AVITO_PAGE)

        assert [l.external_id for l in result.listings] == ["1001"]
        assert result.listings[0].published_at == "2025-05-12T10:00:00+03:00"
        assert result.skipped == 0

    def test_has_next_page(self):
        assert self.parser.parse(AVITO_HTML, AVITO_PAGE).has_next_page is True
        assert self.parser.parse("<html><body></body></html>", AVITO_PAGE).has_next_page is False

    def test_empty_page(self):
        result = self.parser.parse("", AVITO_PAGE)
        assert result.listings == []
        assert result.skipped == 0


class TestYoulaParser:
    """Tests for parsing youla result pages."""

    def test_parses_card(self):
        """Test the data-published-at attribute is preferred over the date text."""
        parser = build_parsers()[ListingSource.YOULA]
        result = parser.parse(YOULA_HTML, YOULA_PAGE)

        assert len(result.listings) == 1
        listing = result.listings[0]
        assert listing.external_id == "y-1"
        assert listing.title == "Квартира у парка"
        assert listing.url == "https://youla.ru/birobidzhan/nedvijimost/arenda-kvartiri/kvartira-y-1"
        assert listing.price_text == "20 000 ₽"
        assert listing.published_at == "1715515200"
        assert listing.preview_image == "https://youla.cdn/y-1.jpg"
        assert result.has_next_page is False


class TestCustomSelectors:
    """Tests for a parser built from ad-hoc selectors."""

    def test_missing_link_falls_back_to_page_url(self):
        """Test a card without any link resolves to the page URL."""
        parser = ListingParser(
            source=ListingSource.AVITO,
            selectors=SelectorConfig(card=["div.card"], title=["h2"], date=["time"]),
            resolve_id=lambda card: card.get("id"),
        )
        html = '<div class="card" id="c1"><h2>Title</h2><time>сегодня 10:00</time></div>'
        result = parser.parse(html, AVITO_PAGE)

        assert result.listings[0].url == AVITO_PAGE
        assert result.listings[0].published_at == "сегодня 10:00"
