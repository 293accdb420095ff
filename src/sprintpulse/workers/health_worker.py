"""
Sprint Health Worker

Runs sprint health computations from a JSON activity export and persists the
results through the database adapter.

Usage:
    sprintpulse-health day --project p1 --input export.json --date 2026-07-10
    sprintpulse-health report --project p1 --input export.json --user u1 --role PO
    sprintpulse-health suggestion --project p1 --user u1 --date 2026-07-10 \\
        --suggestion-id 3f2a9c1b7d4e --type REALLOCATION --state DISMISSED \\
        --dismissed-until 2026-07-12T00:00:00Z
    sprintpulse-health history --project p1
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, List, Optional

from sprintpulse.engine.activity import JsonActivitySource
from sprintpulse.engine.errors import SprintHealthError
from sprintpulse.engine.types import SuggestionState, SuggestionType
from sprintpulse.platform.logging import configure_logging
from sprintpulse.schedulers.sprint_health import SprintHealthScheduler
from sprintpulse.storage.postgres_adapter import PostgresAdapter, PostgresConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sprintpulse-health", description="Sprint health computations")
    parser.add_argument("--create-tables", action="store_true", help="Create tables before running")
    commands = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (("day", "Compute one day"), ("report", "Compute the trend report")):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("--project", required=True)
        command.add_argument("--input", required=True, help="Path to the JSON activity export")
        command.add_argument("--date", help="ISO day (defaults to today, UTC)")
        command.add_argument("--user", help="Caller user id")
        command.add_argument("--role", help="Caller project role (ADMIN, PO, DEV, QA, VIEWER)")
        command.add_argument("--no-persist", action="store_true", help="Skip database writes")

    suggestion = commands.add_parser("suggestion", help="Record a suggestion lifecycle change")
    suggestion.add_argument("--project", required=True)
    suggestion.add_argument("--user", required=True)
    suggestion.add_argument("--date", required=True)
    suggestion.add_argument("--suggestion-id", required=True)
    suggestion.add_argument("--type", required=True, choices=[t.value for t in SuggestionType])
    suggestion.add_argument("--state", required=True, choices=[s.value for s in SuggestionState])
    suggestion.add_argument("--sprint")
    suggestion.add_argument("--dismissed-until")
    suggestion.add_argument("--snoozed-until")

    history = commands.add_parser("history", help="List persisted daily health rows")
    history.add_argument("--project", required=True)
    history.add_argument("--limit", type=int, default=30)

    return parser


def _connect(create_tables: bool) -> PostgresAdapter:
    postgres = PostgresAdapter(PostgresConfig())
    postgres.connect()
    if create_tables:
        postgres.create_tables()
    return postgres


async def run_health_job(args: argparse.Namespace) -> Any:
    persist = not getattr(args, "no_persist", False)
    postgres: Optional[PostgresAdapter] = None
    if args.command in ("suggestion", "history") or persist:
        postgres = _connect(args.create_tables)

    source = JsonActivitySource(args.input) if args.command in ("day", "report") else None
    scheduler = SprintHealthScheduler(source, postgres)

    try:
        if args.command == "day":
            day = args.date or scheduler.now().date().isoformat()
            daily = await scheduler.compute_daily_health(
                args.project, day, user_id=args.user, project_role=args.role, persist=persist
            )
            return daily.to_dict()

        if args.command == "report":
            report = await scheduler.build_report(
                args.project,
                args.date or scheduler.now().date().isoformat(),
                user_id=args.user,
                project_role=args.role,
                persist=persist,
            )
            return report.to_dict()

        if args.command == "suggestion":
            response = scheduler.record_suggestion_state({
                "project_id": args.project,
                "user_id": args.user,
                "date": args.date,
                "suggestion_id": args.suggestion_id,
                "suggestion_type": args.type,
                "state": args.state,
                "sprint_id": args.sprint,
                "dismissed_until": args.dismissed_until,
                "snoozed_until": args.snoozed_until,
            })
            return response.model_dump(mode="json")

        return scheduler.history(args.project, limit=args.limit)
    finally:
        if postgres is not None:
            postgres.close()


def main(argv: Optional[List[str]] = None) -> int:
    configure_logging()
    args = build_parser().parse_args(argv)

    logger.info(f"Starting sprint health job: {args.command}")
    try:
        result = asyncio.run(run_health_job(args))
    except SprintHealthError as e:
        logger.error(f"Sprint health job failed: {e}")
        return 1

    json.dump(result, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
