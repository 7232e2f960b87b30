"""Entry point for ``python -m goal_sync`` and the ``goal-sync`` script.

Runs push and pull for one user from the command line (or a scheduler).
Uses stdlib :mod:`argparse` for argument parsing.

Subcommands:
    push       -- Push goal-hierarchy entities to Google Calendar.
    pull       -- Pull calendar-side edits back onto linked entities.
    mark-stale -- Flag a user's linked records ``needs_check``.
    status     -- Show how many records are linked or waiting for a pull.
    init-db    -- Create any missing database tables.
    connect    -- Run the browser consent flow and store the credential.

Exit codes:
    0 -- The run completed (individual items may still have failed).
    1 -- Configuration error, or the calendar could not be authorized.
    2 -- Argument parsing error (handled by argparse).
"""

from __future__ import annotations

import argparse
import sys
from datetime import date

from goal_sync.calendar.auth import run_consent_flow
from goal_sync.calendar.sync import PushRequest, SyncService
from goal_sync.config import ConfigError, Settings, load_settings
from goal_sync.db.credentials import CredentialStore
from goal_sync.db.database import Database, as_utc
from goal_sync.exceptions import AuthError, PersistenceError
from goal_sync.log import setup_logging
from goal_sync.models.entities import ALL_LEVELS
from goal_sync.output import (
    format_json,
    format_pull_response,
    format_push_response,
    format_status_response,
    print_report,
)


def build_parser() -> argparse.ArgumentParser:
    """Build and return the CLI argument parser with subcommands.

    Returns:
        Configured :class:`argparse.ArgumentParser`.
    """
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug-level logging.",
    )

    output = argparse.ArgumentParser(add_help=False)
    output.add_argument(
        "--json",
        action="store_true",
        default=False,
        help="Print the raw JSON response instead of a report.",
    )

    user = argparse.ArgumentParser(add_help=False)
    user.add_argument("--user-id", required=True, help="Id of the user to sync.")

    parser = argparse.ArgumentParser(
        prog="goal-sync",
        description="Two-way Google Calendar sync for a goal-planning hierarchy.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- "push" ---------------------------------------------------------
    push_parser = subparsers.add_parser(
        "push",
        parents=[common, output, user],
        help="Push goal-hierarchy entities to Google Calendar.",
    )
    push_parser.add_argument(
        "--levels",
        nargs="+",
        choices=ALL_LEVELS,
        default=list(ALL_LEVELS),
        help="Hierarchy levels to push (default: all).",
    )
    push_parser.add_argument(
        "--vision-id",
        default=None,
        help="Only push quarterly targets of this vision.",
    )
    push_parser.add_argument(
        "--start-date",
        type=date.fromisoformat,
        default=None,
        help="Daily actions on this day, or from this day with --end-date (YYYY-MM-DD).",
    )
    push_parser.add_argument(
        "--end-date",
        type=date.fromisoformat,
        default=None,
        help="Last day of the daily-action window (YYYY-MM-DD).",
    )

    # --- "pull" ---------------------------------------------------------
    subparsers.add_parser(
        "pull",
        parents=[common, output, user],
        help="Pull calendar-side edits back onto linked entities.",
    )

    # --- "mark-stale" ---------------------------------------------------
    subparsers.add_parser(
        "mark-stale",
        parents=[common, user],
        help="Flag a user's linked records for re-examination by the next pull.",
    )

    # --- "status" -------------------------------------------------------
    subparsers.add_parser(
        "status",
        parents=[common, output, user],
        help="Show calendar link counts and the last full push for a user.",
    )

    # --- "init-db" ------------------------------------------------------
    subparsers.add_parser(
        "init-db",
        parents=[common],
        help="Create any missing database tables.",
    )

    # --- "connect" ------------------------------------------------------
    connect_parser = subparsers.add_parser(
        "connect",
        parents=[common, user],
        help="Authorize Google Calendar in a browser and store the credential.",
    )
    connect_parser.add_argument(
        "--client-secrets",
        default="credentials.json",
        help="OAuth client secrets file (default: credentials.json).",
    )

    return parser


def _handle_push(args: argparse.Namespace, settings: Settings, database: Database) -> int:
    """Execute the ``push`` subcommand."""
    if args.end_date and not args.start_date:
        print("Error: --end-date requires --start-date", file=sys.stderr)
        return 1
    request = PushRequest(
        vision_id=args.vision_id,
        levels=args.levels,
        start_date=args.start_date,
        end_date=args.end_date,
    )
    payload = SyncService.from_settings(settings, database).push_for_user(args.user_id, request)
    print_report(format_json(payload) if args.json else format_push_response(payload))
    return 0 if payload.get("success") else 1


def _handle_pull(args: argparse.Namespace, settings: Settings, database: Database) -> int:
    """Execute the ``pull`` subcommand."""
    payload = SyncService.from_settings(settings, database).pull_for_user(args.user_id)
    print_report(format_json(payload) if args.json else format_pull_response(payload))
    return 0 if payload.get("success") else 1


def _handle_mark_stale(args: argparse.Namespace, settings: Settings, database: Database) -> int:
    """Execute the ``mark-stale`` subcommand."""
    count = SyncService.from_settings(settings, database).mark_stale(args.user_id)
    print(f"Marked {count} record(s) as needs_check for user {args.user_id}")
    return 0


def _handle_status(args: argparse.Namespace, settings: Settings, database: Database) -> int:
    """Execute the ``status`` subcommand."""
    payload = SyncService.from_settings(settings, database).status_for_user(args.user_id)
    print_report(format_json(payload) if args.json else format_status_response(payload))
    return 0 if payload.get("success") else 1


def _handle_init_db(database: Database) -> int:
    """Execute the ``init-db`` subcommand."""
    database.create_all()
    print("Database tables are ready.")
    return 0


def _handle_connect(args: argparse.Namespace, database: Database) -> int:
    """Execute the ``connect`` subcommand."""
    creds = run_consent_flow(args.client_secrets)
    CredentialStore(database).connect(
        args.user_id,
        refresh_token=creds.refresh_token,
        access_token=creds.token,
        expiry=as_utc(creds.expiry),
    )
    print(f"Google Calendar connected for user {args.user_id}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Run the goal-sync CLI.

    Args:
        argv: Command-line arguments.  Defaults to ``sys.argv[1:]``
            when ``None`` (the normal case).

    Returns:
        Exit code: ``0`` on success, ``1`` on error.
    """
    parser = build_parser()
    args = parser.parse_args(argv if argv is not None else sys.argv[1:])

    try:
        settings = load_settings()
    except ConfigError as exc:
        setup_logging("DEBUG" if args.verbose else "INFO")
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    try:
        setup_logging("DEBUG" if args.verbose else settings.log_level)
    except ValueError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    database = Database(settings.database_url)
    try:
        if args.command == "push":
            return _handle_push(args, settings, database)
        if args.command == "pull":
            return _handle_pull(args, settings, database)
        if args.command == "mark-stale":
            return _handle_mark_stale(args, settings, database)
        if args.command == "status":
            return _handle_status(args, settings, database)
        if args.command == "init-db":
            return _handle_init_db(database)
        return _handle_connect(args, database)
    except (AuthError, PersistenceError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    finally:
        database.close()


if __name__ == "__main__":
    raise SystemExit(main())
