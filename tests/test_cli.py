"""Tests for the command-line entry point."""

import argparse
from datetime import datetime, UTC

import pytest

from listing_collector import cli
from listing_collector.db.operations import sync_listings
from listing_collector.models.listing import ListingSource, NormalizedListing
import listing_collector.db.operations as db_ops


class TestArguments:
    """Tests for argument parsing."""

    def test_published_after_naive_is_utc(self):
        assert cli.parse_published_after("2025-05-01T10:00") == datetime(2025, 5, 1, 10, 0, tzinfo=UTC)

    def test_published_after_invalid(self):
        with pytest.raises(argparse.ArgumentTypeError):
            cli.parse_published_after("yesterday")

    def test_defaults(self):
        args = cli.build_parser().parse_args([])
        assert args.source == "all"
        assert args.max_pages is None
        assert args.manual is False

    def test_base_url_needs_single_source(self):
        with pytest.raises(SystemExit):
            cli.main(["--base-url", "https://youla.ru/x"])

    def test_rejects_zero_pages(self):
        with pytest.raises(SystemExit):
            cli.main(["--source", "avito", "--max-pages", "0"])


class TestSummaryOnly:
    """Tests for --summary-only runs."""

    def test_reads_database_without_crawling(self, tmp_path, monkeypatch):
        """Test the summary uses the given database and closes it."""
        monkeypatch.setattr(cli, "run_collect", None)
        db_path = tmp_path / "cli.db"

        db_ops._connection = None
        db_ops.get_db(db_path)
        sync_listings(ListingSource.AVITO, [NormalizedListing(
            source=ListingSource.AVITO,
            external_id="1",
            title="Квартира",
            url="https://www.avito.ru/1",
            published_at=datetime(2025, 5, 1, tzinfo=UTC),
        )])
        db_ops.close_db()

        assert cli.main(["--summary-only", "--db-path", str(db_path)]) == 0
        assert db_ops._connection is None
