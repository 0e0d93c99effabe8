"""Command-line entry point: collect listings and save them to the database."""

import argparse
import asyncio
import logging
from datetime import datetime, UTC
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from rich.console import Console
from rich.table import Table

from .collector import CollectOptions, ListingCollector
from .config import Config
from .db.operations import close_db, get_all_listings, get_db
from .models.listing import ListingSource, SyncResult
from .scrapers.base import BrowserLaunchFailed

logger = logging.getLogger(__name__)

console = Console()


def configure_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler()],
    )
    if debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logging.getLogger("listing_collector").setLevel(logging.DEBUG)


def parse_published_after(value: str) -> datetime:
    """argparse type for ISO-8601 cutoffs. Naive values are taken as UTC."""
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO-8601 date/time: {value!r}") from None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="listing-collector",
        description="Collect classified listings and sync them to the local database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --source avito --max-pages 2            # Quick check of one source
  %(prog)s --published-after 2025-01-01T00:00      # Stop at older listings
  %(prog)s --source youla --manual                 # Solve captchas by hand
  %(prog)s --summary-only                          # Just show database stats
""",
    )
    parser.add_argument(
        "--source",
        choices=[s.value for s in ListingSource] + ["all"],
        default="all",
        help="Source to collect (default: all)",
    )
    parser.add_argument(
        "--base-url",
        default=None,
        help="Crawl only this URL instead of the configured ones (single source only)",
    )
    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help="Maximum pages per base URL (default: from config)",
    )
    parser.add_argument(
        "--request-delay",
        type=int,
        default=None,
        help="Delay between pages in milliseconds (default: from config)",
    )
    parser.add_argument(
        "--published-after",
        type=parse_published_after,
        default=None,
        help="Stop crawling at listings published before this ISO-8601 time (naive = UTC)",
    )
    parser.add_argument(
        "--manual",
        action="store_true",
        help="Open a visible browser and pause for the operator on the first block",
    )
    parser.add_argument(
        "--no-headless",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--db-path",
        type=Path,
        default=None,
        help="SQLite database path (default: from config)",
    )
    parser.add_argument(
        "--summary-only",
        action="store_true",
        help="Just show database summary, don't crawl",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    return parser


async def run_collect(
    app_config: Config,
    sources: list[ListingSource],
    options: CollectOptions,
) -> list[SyncResult]:
    """Collect each source in turn, always shutting the browser down."""
    results = []
    async with ListingCollector(app_config=app_config) as collector:
        for source in sources:
            console.print(f"\n[bold blue]Collecting {source.value}[/bold blue]")
            result = await collector.collect(source, options)
            console.print(
                f"[green]Done:[/green] {result.scraped_count} scraped, "
                f"{len(result.created)} new, {len(result.updated)} updated"
            )
            results.append(result)
    return results


def display_results(results: list[SyncResult]) -> None:
    changed = [
        (result.source, "NEW", listing) for result in results for listing in result.created
    ] + [
        (result.source, "UPD", listing) for result in results for listing in result.updated
    ]
    if changed:
        table = Table(title="Created / updated listings")
        table.add_column("Source", style="cyan")
        table.add_column("", justify="center")
        table.add_column("Title")
        table.add_column("Price", justify="right")
        table.add_column("Published", style="dim")
        for source, status, listing in changed:
            table.add_row(
                source.value,
                "[green]NEW[/green]" if status == "NEW" else "[yellow]UPD[/yellow]",
                listing.title,
                listing.price_text or "-",
                listing.published_at.strftime("%Y-%m-%d %H:%M"),
            )
        console.print(table)

    console.print("\n" + "=" * 50)
    console.print("[bold]Final Statistics:[/bold]")
    for result in results:
        console.print(
            f"  {result.source.value:<8} scraped: {result.scraped_count:<5} "
            f"new: {len(result.created):<5} updated: {len(result.updated)}"
        )


def show_summary() -> None:
    """Show a summary of what's currently in the database."""
    listings = get_all_listings()
    if not listings:
        console.print("\n[dim]No listings in database yet.[/dim]")
        return

    console.print(f"\n[bold]Database Summary: {len(listings)} listings[/bold]")

    counts: dict[str, int] = {}
    for listing in listings:
        counts[listing.source.value] = counts.get(listing.source.value, 0) + 1

    table = Table(title="Listings by Source")
    table.add_column("Source", style="cyan")
    table.add_column("Count", justify="right")
    for source, count in sorted(counts.items(), key=lambda x: -x[1]):
        table.add_row(source, str(count))
    console.print(table)

    console.print(f"\nNewest: {listings[0].title} ({listings[0].published_at:%Y-%m-%d %H:%M})")


def main(argv: list[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.debug)

    if args.base_url and args.source == "all":
        parser.error("--base-url needs a single --source")
    if args.max_pages is not None and args.max_pages < 1:
        parser.error("--max-pages must be at least 1")
    if args.request_delay is not None and args.request_delay < 0:
        parser.error("--request-delay must not be negative")

    # Rebuilt after load_dotenv so .env values apply
    app_config = Config.from_env()
    if args.db_path:
        app_config.db_path = args.db_path
    if args.no_headless:
        app_config.browser.headless = False

    sources = list(ListingSource) if args.source == "all" else [ListingSource(args.source)]
    options = CollectOptions(
        base_url=args.base_url,
        max_pages=args.max_pages,
        published_after=args.published_after,
        request_delay_ms=args.request_delay,
        manual=args.manual,
    )

    try:
        get_db(app_config.db_path)
        if not args.summary_only:
            results = asyncio.run(run_collect(app_config, sources, options))
            display_results(results)
        show_summary()
    except BrowserLaunchFailed as e:
        console.print(f"[bold red]Browser failed to start:[/bold red] {e}")
        return 1
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")
        return 130
    finally:
        close_db()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
