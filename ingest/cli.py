"""Command-line interface for the feed importer."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from dotenv import load_dotenv

from ingest.adapters import ADAPTERS
from ingest.config import DB_PATH, LOG_LEVEL, SUPPLIER_SPECS
from ingest.db import get_last_imports, get_table_counts, open_storage
from ingest.logging_config import get_logger, setup_logging
from ingest.runner import make_batch_id, run_all, run_supplier
from ingest.upsert import ensure_suppliers

__all__ = ["main", "parse_args", "show_stats", "build_parser"]

logger = get_logger("cli")


class UsageError(Exception):
    """Raised by the parser instead of exiting on bad arguments."""
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise UsageError(message)


def build_parser() -> argparse.ArgumentParser:
    parser = _Parser(
        prog="ingest",
        description="Import supplier catalog feeds into the central catalog database",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  # Create tables and register suppliers (once)
  python -m ingest.cli setup

  # Import one supplier
  python -m ingest.cli run mhi
  python -m ingest.cli mhi

  # Import every supplier in turn
  python -m ingest.cli run-all

  # Show table counts and the last import of each supplier
  python -m ingest.cli stats

Suppliers: {', '.join(ADAPTERS)}
        """,
    )
    parser.add_argument(
        "--db",
        default=None,
        help=f"SQLite database path (default: $DB_PATH or {DB_PATH})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every record",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Don't write the JSONL log file",
    )

    sub = parser.add_subparsers(dest="command")
    run = sub.add_parser("run", help="Import one supplier")
    run.add_argument("supplier", help=f"Supplier code ({', '.join(ADAPTERS)})")
    sub.add_parser("run-all", help="Import every supplier sequentially")
    sub.add_parser("setup", help="Apply migrations and register suppliers")
    sub.add_parser("stats", help="Show database statistics")
    sub.add_parser("list-suppliers", help="List registered supplier codes")
    return parser


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse arguments; a bare supplier code is shorthand for ``run <code>``."""
    argv = list(sys.argv[1:] if argv is None else argv)
    i = 0
    while i < len(argv):
        arg = argv[i]
        if arg == "--db":
            i += 2
            continue
        if arg.startswith("-"):
            i += 1
            continue
        if arg in ADAPTERS:
            argv.insert(i, "run")
        break
    return build_parser().parse_args(argv)


def show_stats(db_path: str) -> None:
    """Display database statistics."""
    with open_storage(db_path) as storage:
        counts = get_table_counts(storage)
        last_imports = get_last_imports(storage)

    print(f"\n{'='*50}")
    print(f"Database: {db_path}")
    print(f"{'='*50}")

    print("\nRows per table:")
    for table, count in counts.items():
        print(f"  {table}: {count}")

    print("\nLast import per supplier:")
    if last_imports:
        for row in last_imports:
            if row["batch_id"]:
                print(f"  {row['code']}: {row['status']} - {row['message']}"
                      f" (batch {row['batch_id']}, at {row['created_at']})")
            else:
                print(f"  {row['code']}: never imported")
    else:
        print("  No suppliers registered yet (run `setup`)")
    print()


def _print_usage(parser: argparse.ArgumentParser, message: Optional[str] = None) -> None:
    if message:
        print(f"ingest: {message}\n")
    parser.print_help()


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI. Returns the process exit code."""
    load_dotenv()
    parser = build_parser()
    try:
        args = parse_args(argv)
    except UsageError as e:
        _print_usage(parser, str(e))
        return 0

    if not args.command:
        _print_usage(parser)
        return 0

    level = logging.DEBUG if args.verbose else getattr(logging, os.getenv("LOG_LEVEL", LOG_LEVEL).upper(), logging.INFO)
    setup_logging(level=level, log_to_file=not args.no_log_file)
    db_path = args.db or os.getenv("DB_PATH") or DB_PATH

    if args.command == "list-suppliers":
        for code, spec in SUPPLIER_SPECS.items():
            print(f"  {code}: {spec['name']} (${spec['feed_env']})")
        return 0

    if args.command == "stats":
        show_stats(db_path)
        return 0

    if args.command == "setup":
        with open_storage(db_path) as storage:
            inserted = ensure_suppliers(storage)
        logger.info(f"Database ready: {db_path}"
                    + (f" (registered {', '.join(inserted)})" if inserted else ""))
        return 0

    if args.command == "run":
        if args.supplier not in ADAPTERS:
            _print_usage(parser, f"unknown supplier {args.supplier!r}")
            return 0
        with open_storage(db_path) as storage:
            try:
                run_supplier(storage, args.supplier, make_batch_id())
            except Exception as e:
                logger.error(f"Import failed for {args.supplier}: {e}")
                return 1
        return 0

    if args.command == "run-all":
        with open_storage(db_path) as storage:
            results = run_all(storage)
        return 0 if all(r.ok for r in results) else 1

    _print_usage(parser)
    return 0


if __name__ == "__main__":
    sys.exit(main())
