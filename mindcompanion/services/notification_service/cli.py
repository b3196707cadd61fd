#!/usr/bin/env python3
"""Command-line interface for scheduled notification jobs.

Usage:
    mindcompanion-dispatch dispatch --limit 50
    mindcompanion-dispatch dispatch --dry-run
    mindcompanion-dispatch reminders --look-ahead-minutes 120

Each command prints its result as JSON on stdout.
"""
import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from mindcompanion.shared.database import RepositoryError
from mindcompanion.shared.utils import configure_pii_salt
from .factory import build_components, connection_manager_from_env

logger = logging.getLogger(__name__)


def setup_parser() -> argparse.ArgumentParser:
    """Set up argument parser."""
    parser = argparse.ArgumentParser(
        prog="mindcompanion-dispatch",
        description="MindCompanion notification jobs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    dispatch_parser = subparsers.add_parser("dispatch", help="Send one batch of pending notifications")
    dispatch_parser.add_argument(
        "--limit", type=int,
        help="Records to process (clamped to 1-100, default 25)"
    )
    dispatch_parser.add_argument(
        "--dry-run", action="store_true",
        help="Report pending records without sending"
    )

    reminders_parser = subparsers.add_parser("reminders", help="Enqueue appointment reminders")
    reminders_parser.add_argument(
        "--look-ahead-minutes", type=int,
        help="Window length in minutes (clamped to 5-10080, default 1440)"
    )
    reminders_parser.add_argument(
        "--dry-run", action="store_true",
        help="Report channel counts without writing"
    )

    return parser


def cmd_dispatch(args: argparse.Namespace, components) -> int:
    report = components.build_dispatcher().dispatch_pending(
        batch_size=args.limit,
        dry_run=args.dry_run,
    )
    print(json.dumps(report.to_dict(), indent=2))
    return 0


def cmd_reminders(args: argparse.Namespace, components) -> int:
    summary = components.build_scheduler().run(
        look_ahead_minutes=args.look_ahead_minutes,
        dry_run=args.dry_run,
    )
    print(json.dumps(summary, indent=2))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = setup_parser()
    args = parser.parse_args(argv)

    if args.command not in ("dispatch", "reminders"):
        parser.print_help()
        return 0

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO"),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )
    configure_pii_salt(
        os.getenv("PII_HASH_SALT", "default_dev_salt_change_in_production_32chars")
    )
    components = build_components(connection_manager=connection_manager_from_env())

    try:
        if args.command == "dispatch":
            return cmd_dispatch(args, components)
        return cmd_reminders(args, components)
    except RepositoryError as e:
        logger.error("NOTIFICATION_JOB_FAILED", extra={"command": args.command, "error": str(e)})
        print(json.dumps({"error": str(e)}), file=sys.stderr)
        return 1
    finally:
        if components.connection_manager is not None:
            components.connection_manager.close()


if __name__ == "__main__":
    sys.exit(main())
