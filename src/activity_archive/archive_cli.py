#!/usr/bin/env python3
"""
CLI for inspecting and filling the local activity archive.

Usage:
    activity-archive months --account 12345
    activity-archive show   --account 12345 [--month 2024-01] [--json]
    activity-archive import --account 12345 --file activities.json
    activity-archive sync   --account 12345 --year 2024 [--out activities.json]

The archive key is read from $ACTIVITY_ARCHIVE_KEY (or --key-env), and the
remote access token for `sync` from $ACTIVITY_ARCHIVE_ACCESS_TOKEN. Both may
live in a .env file (see --env-file).
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import ArchiveConfig
from .core.exceptions import ActivityArchiveError
from .core.logging import configure_logging
from .core.merge import sort_newest_first
from .runner import BackgroundArchiver, SyncOrchestrator

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_MISSING_SECRET = 2

DEFAULT_KEY_ENV = "ACTIVITY_ARCHIVE_KEY"
ACCESS_TOKEN_ENV = "ACTIVITY_ARCHIVE_ACCESS_TOKEN"

logger = logging.getLogger(__name__)


def _read_secret(env_var: str, label: str) -> Optional[str]:
    value = os.environ.get(env_var)
    if not value:
        logger.error(f"Missing {label}: set ${env_var}")
        return None
    return value


def _print_records(records: list, as_json: bool) -> None:
    if as_json:
        print(json.dumps(records, indent=2, ensure_ascii=False))
        return
    for record in records:
        name = record.get("name", "")
        print(f"{record.get('start_date', '?')}  {record.get('id')}  {name}")
    print(f"{len(records)} activities")


def cmd_months(args, config: ArchiveConfig) -> int:
    """List the archived months for an account."""
    with config.build_store() as store:
        months = store.list_months(args.account)

    for month in months:
        print(month)
    if not months:
        logger.info(f"No archived months for account {args.account}")
    return EXIT_OK


def cmd_show(args, config: ArchiveConfig) -> int:
    """Print cached activities for an account."""
    key = _read_secret(args.key_env, "archive key")
    if key is None:
        return EXIT_MISSING_SECRET

    try:
        with config.build_store() as store:
            records = store.get_cached(args.account, key, month=args.month)
    except ValueError as e:
        logger.error(str(e))
        return EXIT_FAILURE

    _print_records(sort_newest_first(records), args.json)
    return EXIT_OK


def cmd_import(args, config: ArchiveConfig) -> int:
    """Archive activities from a JSON file."""
    key = _read_secret(args.key_env, "archive key")
    if key is None:
        return EXIT_MISSING_SECRET

    source = Path(args.file)
    if not source.exists():
        logger.error(f"File not found: {source}")
        return EXIT_FAILURE

    try:
        with open(source, "r", encoding="utf-8") as f:
            records = json.load(f)
    except ValueError as e:
        logger.error(f"{source} is not valid JSON: {e}")
        return EXIT_FAILURE

    if not isinstance(records, list):
        logger.error(f"{source} must contain a JSON list of activities")
        return EXIT_FAILURE

    with config.build_store() as store:
        store.archive(args.account, records, key)
        months = store.list_months(args.account)

    logger.info(f"Imported {len(records)} activities; account now has {len(months)} month(s)")
    return EXIT_OK


def cmd_sync(args, config: ArchiveConfig) -> int:
    """Fetch a year (or all time with --year 0) through the archive."""
    key = _read_secret(args.key_env, "archive key")
    token = _read_secret(ACCESS_TOKEN_ENV, "access token")
    if key is None or token is None:
        return EXIT_MISSING_SECRET

    store = config.build_store()
    connector = config.build_connector()
    archiver = BackgroundArchiver(
        store, max_workers=config.get("background.max_workers", 2)
    )
    orchestrator = SyncOrchestrator(
        store, connector, archiver=archiver, config=config.build_sync_config()
    )

    try:
        records = orchestrator.get_year_activities(args.account, token, key, args.year)
    except ActivityArchiveError as e:
        logger.error(f"Sync failed: {e}")
        return EXIT_FAILURE
    finally:
        archiver.drain()
        archiver.close()
        connector.close()
        store.close()

    metrics = archiver.metrics
    logger.info(
        f"Background archive: {metrics.succeeded} ok, {metrics.failed} failed"
    )

    if args.out:
        out_path = Path(args.out)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        with open(out_path, "w", encoding="utf-8") as f:
            json.dump(records, f, indent=2, ensure_ascii=False)
        logger.info(f"Wrote {len(records)} activities to {out_path}")
    else:
        _print_records(records, args.json)
    return EXIT_OK


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Encrypted local activity archive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to YAML config file")
    parser.add_argument(
        "--env-file",
        default=".env",
        help="Dotenv file loaded before reading secrets (default: .env)",
    )
    parser.add_argument(
        "--key-env",
        default=DEFAULT_KEY_ENV,
        help=f"Environment variable holding the archive key (default: {DEFAULT_KEY_ENV})",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose/debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    months_parser = subparsers.add_parser("months", help="List archived months")
    months_parser.add_argument("--account", type=int, required=True, help="Account id")

    show_parser = subparsers.add_parser("show", help="Print cached activities")
    show_parser.add_argument("--account", type=int, required=True, help="Account id")
    show_parser.add_argument("--month", help="Single month (YYYY-MM)")
    show_parser.add_argument("--json", action="store_true", help="Output as JSON")

    import_parser = subparsers.add_parser("import", help="Archive activities from a JSON file")
    import_parser.add_argument("--account", type=int, required=True, help="Account id")
    import_parser.add_argument("--file", required=True, help="JSON list of activities")

    sync_parser = subparsers.add_parser("sync", help="Fetch a year through the archive")
    sync_parser.add_argument("--account", type=int, required=True, help="Account id")
    sync_parser.add_argument("--year", type=int, required=True, help="Calendar year, 0 for all time")
    sync_parser.add_argument("--out", help="Write result to this JSON file")
    sync_parser.add_argument("--json", action="store_true", help="Print result as JSON")

    return parser.parse_args(argv)


COMMANDS = {
    "months": cmd_months,
    "show": cmd_show,
    "import": cmd_import,
    "sync": cmd_sync,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    # Existing environment variables take precedence over the file
    load_dotenv(args.env_file)

    try:
        config = ArchiveConfig(Path(args.config) if args.config else None)
        level = logging.DEBUG if args.verbose else config.log_level()
    except (FileNotFoundError, ActivityArchiveError) as e:
        configure_logging(level=logging.INFO, stream=sys.stderr)
        logger.error(f"Invalid configuration: {e}")
        return EXIT_FAILURE

    configure_logging(
        level=level,
        structured=bool(config.get("logging.structured", False)),
        stream=sys.stderr,
    )

    handler = COMMANDS.get(args.command)
    if handler is None:
        print("No command specified. Use --help for usage.", file=sys.stderr)
        return EXIT_FAILURE
    return handler(args, config)


if __name__ == "__main__":
    sys.exit(main())
