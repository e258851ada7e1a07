"""Command line entry point for the scheduled runs."""

import argparse
import asyncio
import sys
from typing import Any, Dict, List, Optional

from ketogo.core.db import Base, init_db
from ketogo.core.errors import StoreWriteError
from ketogo.core.logging import setup_logging, get_logger
from ketogo.ingestor.pipeline import run_daily
from ketogo.objects.pipeline import run_weekly_objects

logger = get_logger(__name__)


def print_daily(stats: Dict[str, Any]) -> None:
    print("\n=== Daily Run Results ===")
    print(f"Status: {stats['status']}")
    print(f"Runtime: {stats['runtime_seconds']}s")
    print(f"Feeds OK: {stats['feeds_ok']}")
    print(f"Feeds Error: {stats['feeds_error']}")
    print(f"Items Fetched: {stats['items_fetched']}")
    for name, bucket in stats['buckets'].items():
        print(
            f"{name.title()}: {bucket['added']} added, {bucket['duplicates']} duplicates, "
            f"{bucket['quota_skipped']} over quota, rejected {bucket['rejected']}"
        )
    print_errors(stats['errors'])


def print_weekly(stats: Dict[str, Any]) -> None:
    print("\n=== Weekly Objects Results ===")
    print(f"Status: {stats['status']}")
    print(f"Week: {stats['week']}")
    print(f"Queries: {', '.join(stats['queries']) or '-'}")
    print(f"Items Fetched: {stats['items_fetched']}")
    print(f"Duplicates: {stats['duplicates']}")
    print(f"Filtered: {stats['filtered']}")
    print(f"Added: {stats['added']}")
    print_errors(stats['errors'])


def print_errors(errors: List[str]) -> None:
    if not errors:
        return
    print(f"\nErrors ({len(errors)}):")
    for error in errors[:10]:
        print(f"  - {error}")
    if len(errors) > 10:
        print(f"  ... and {len(errors) - 10} more")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ketogo", description="KETOGO curation runs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("daily", "Fetch feeds and publish approved observations and objects"),
        ("objects-weekly", "Select this week's Amazon objects"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument('--dry-run', action='store_true', help='Run without writing collections')
        sub.add_argument('--verbose', action='store_true', help='Enable verbose logging')

    init = subparsers.add_parser("init-db", help="Create the collection tables (STORE_BACKEND=sql)")
    init.add_argument('--db-url', default=None, help='Database URL (defaults to DB_URL)')
    init.add_argument('--drop', action='store_true', help='Drop existing tables first')
    init.add_argument('--verbose', action='store_true', help='Enable verbose logging')

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point. Returns 0 on success, quiet days and skipped runs."""
    args = build_parser().parse_args(argv)

    setup_logging(args.command, verbose=args.verbose)

    try:
        if args.command == "daily":
            print_daily(asyncio.run(run_daily(dry_run=args.dry_run)))
        elif args.command == "objects-weekly":
            print_weekly(asyncio.run(run_weekly_objects(dry_run=args.dry_run)))
        else:
            asyncio.run(init_db(args.db_url, drop=args.drop))
            print("\n=== Database Initialized ===")
            print(f"Tables: {', '.join(sorted(Base.metadata.tables))}")
    except StoreWriteError as e:
        logger.error(f"Run aborted: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Run failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
