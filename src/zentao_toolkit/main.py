"""CLI entrypoint for the ZenTao toolkit."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import unicodedata
from collections.abc import Mapping, Sequence
from pathlib import Path

from pydantic import ValidationError

from zentao_toolkit import __version__
from zentao_toolkit.api.client import ZentaoClient
from zentao_toolkit.api.collectors import (
    fetch_all_executions,
    fetch_all_stories,
    fetch_projects,
    fetch_users,
)
from zentao_toolkit.api.pagination import PaginationError
from zentao_toolkit.config import ToolkitSettings
from zentao_toolkit.effort.aggregation import (
    EffortAggregator,
    EffortReport,
    MonthWindow,
    format_hours,
    to_days,
)
from zentao_toolkit.effort.service import run_monthly_effort
from zentao_toolkit.logging import configure_logging
from zentao_toolkit.state.manager import ColumnMapping, Filters, JsonFileStore, StateManager
from zentao_toolkit.tasks.bulk_create import BulkTaskCreator, IllegalTransitionError
from zentao_toolkit.tasks.rows import RowParseError, read_rows_file

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A user-facing problem with the command's inputs."""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zentao-toolkit",
        description="Monthly effort reports and bulk task creation for ZenTao",
    )
    parser.add_argument("--version", action="version", version=f"zentao-toolkit {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("projects", help="List projects")

    executions = subparsers.add_parser("executions", help="List executions of projects")
    executions.add_argument(
        "--project",
        type=int,
        action="append",
        required=True,
        help="Project id (repeatable)",
    )

    report = subparsers.add_parser(
        "effort-report",
        help="Sum consumed hours per user for tasks finished in a month",
    )
    _add_selection_arguments(report)
    report.add_argument(
        "--save-filters",
        action="store_true",
        help="Remember the selection for later runs",
    )

    create = subparsers.add_parser(
        "create-tasks",
        help="Create tasks for the stories listed in a CSV export",
    )
    create.add_argument("file", type=Path, help="CSV file with one row per story")
    _add_selection_arguments(create)
    create.add_argument(
        "--no-user-filter",
        action="store_true",
        help="Create tasks for every resolved person, not just the selected users",
    )
    create.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the tasks that would be created and exit",
    )

    mapping = subparsers.add_parser("mapping", help="Show or change the CSV column mapping")
    mapping_commands = mapping.add_subparsers(dest="mapping_command", required=True)
    mapping_commands.add_parser("show", help="Print the current mapping")
    mapping_set = mapping_commands.add_parser("set", help="Update the mapping")
    mapping_set.add_argument("--id-column", default=None, help="Header of the story id column")
    mapping_set.add_argument(
        "--deadline-column", default=None, help="Header of the deadline column"
    )
    mapping_set.add_argument(
        "--prefix-column",
        action="append",
        default=None,
        help="Header of a person column, used as the task name prefix (repeatable)",
    )

    subparsers.add_parser(
        "clear-cache",
        help="Forget which tasks were already created",
    )

    return parser


def _add_selection_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--month", default=None, help="Month in the form YYYY-MM")
    parser.add_argument(
        "--project", type=int, action="append", default=None, help="Project id (repeatable)"
    )
    parser.add_argument(
        "--execution",
        type=int,
        action="append",
        default=None,
        help="Execution id (repeatable); defaults to every execution of the projects",
    )
    parser.add_argument(
        "--user", action="append", default=None, help="User account (repeatable)"
    )


def _resolve_filters(args: argparse.Namespace, saved: Filters) -> Filters:
    """Command-line selections win; anything not given falls back to saved filters."""

    project_ids = args.project if args.project is not None else saved.project_ids
    # Saved executions belong to the saved projects; drop them when projects change.
    if args.execution is not None:
        execution_ids = args.execution
    elif args.project is not None:
        execution_ids = []
    else:
        execution_ids = saved.execution_ids
    month = args.month or saved.month
    try:
        MonthWindow.parse(month)
    except ValueError as e:
        raise CommandError(str(e)) from None

    return Filters(
        month=month,
        project_ids=project_ids,
        execution_ids=execution_ids,
        user_accounts=args.user if args.user is not None else saved.user_accounts,
    )


async def _resolve_execution_ids(
    client: ZentaoClient, filters: Filters, *, concurrency: int
) -> list[int]:
    if filters.execution_ids:
        return list(filters.execution_ids)
    if not filters.project_ids:
        raise CommandError("Select at least one project (--project) or execution (--execution)")
    executions = await fetch_all_executions(client, filters.project_ids, concurrency=concurrency)
    return [e.id for e in executions]


def _display_width(text: str) -> int:
    """Terminal columns taken by `text`; wide (CJK) characters take two."""

    return sum(2 if unicodedata.east_asian_width(ch) in ("W", "F") else 1 for ch in text)


def _pad(text: str, width: int) -> str:
    return text + " " * max(0, width - _display_width(text))


def render_report(report: EffortReport) -> str:
    names = ["User", "Total"] + [r.realname for r in report.rows]
    name_width = max(_display_width(name) for name in names)
    lines = [
        f"Effort for {report.month}",
        f"{_pad('User', name_width)}  {'Hours':>10}  {'Days':>8}",
    ]
    for row in report.rows:
        lines.append(
            f"{_pad(row.realname, name_width)}  {format_hours(row.hours):>10}  "
            f"{to_days(row.hours):>8}"
        )
    lines.append(
        f"{_pad('Total', name_width)}  {format_hours(report.total_hours):>10}  "
        f"{to_days(report.total_hours):>8}"
    )
    return "\n".join(lines)


def _log_progress(snapshot: Mapping[str, float]) -> None:
    logger.info(
        "Partial effort totals",
        extra={"accounts": len(snapshot), "hours": round(sum(snapshot.values()), 2)},
    )


async def _effort_report(
    args: argparse.Namespace, settings: ToolkitSettings, state: StateManager
) -> int:
    filters = _resolve_filters(args, state.filters())
    aggregator = EffortAggregator(filters.month)
    if args.save_filters:
        state.save_filters(filters)

    async with _client(settings) as client:
        execution_ids = await _resolve_execution_ids(
            client, filters, concurrency=settings.concurrency
        )
        users = await fetch_users(client)
        await run_monthly_effort(
            client,
            execution_ids,
            aggregator,
            on_progress=_log_progress,
            concurrency=settings.concurrency,
        )

    report = aggregator.report(accounts=filters.user_accounts or None, users=users)
    print(render_report(report))
    return 0


async def _create_tasks(
    args: argparse.Namespace, settings: ToolkitSettings, state: StateManager
) -> int:
    filters = _resolve_filters(args, state.filters())
    rows = read_rows_file(args.file, state.column_mapping())
    print(f"Loaded {len(rows)} rows from {args.file}")

    async with _client(settings) as client:
        execution_ids = await _resolve_execution_ids(
            client, filters, concurrency=settings.concurrency
        )
        users = await fetch_users(client)
        stories = await fetch_all_stories(client, execution_ids, concurrency=settings.concurrency)

        creator = BulkTaskCreator(writer=client, state=state)
        creator.load_rows(rows, month=filters.month)
        summary = creator.enrich(users=users, stories=stories)
        print(
            f"Matched {summary.matched} rows, {summary.not_found} not found, "
            f"{summary.unresolved_people} people without an account"
        )

        allowed = None
        if not args.no_user_filter and filters.user_accounts:
            allowed = filters.user_accounts

        if args.dry_run:
            for request in creator.plan(allowed_accounts=allowed):
                print(
                    f"{request.key}\texecution={request.execution_id}\t{request.payload['name']}"
                )
            return 0

        outcome = await creator.execute(allowed_accounts=allowed)

    print(
        f"Task creation completed: {outcome.succeeded} success, {outcome.failed} errors, "
        f"{outcome.skipped_existing} already created"
    )
    return 1 if outcome.failed else 0


def _mapping(args: argparse.Namespace, state: StateManager) -> int:
    current = state.column_mapping()
    if args.mapping_command == "set":
        updates: dict[str, object] = {}
        if args.id_column is not None:
            updates["id_column"] = args.id_column
        if args.deadline_column is not None:
            updates["deadline_column"] = args.deadline_column
        if args.prefix_column is not None:
            updates["prefix_columns"] = args.prefix_column
        # Re-validate so blank prefix columns are dropped.
        current = ColumnMapping.model_validate({**current.model_dump(), **updates})
        state.save_column_mapping(current)
    print(json.dumps(current.model_dump(mode="json"), indent=2, ensure_ascii=False))
    return 0


def _client(settings: ToolkitSettings) -> ZentaoClient:
    return ZentaoClient(
        token=settings.token,
        base_url=settings.base_url,
        timeout=settings.http_timeout,
    )


async def _dispatch(args: argparse.Namespace, settings: ToolkitSettings) -> int:
    state = StateManager(JsonFileStore(settings.state_file))

    if args.command == "projects":
        async with _client(settings) as client:
            projects = await fetch_projects(client)
        for project in projects:
            print(f"{project.id}\t{project.name}")
        return 0

    if args.command == "executions":
        async with _client(settings) as client:
            executions = await fetch_all_executions(
                client, args.project, concurrency=settings.concurrency
            )
        for execution in sorted(executions, key=lambda e: (e.project, e.id)):
            print(f"{execution.id}\t{execution.project}\t{execution.name}")
        return 0

    if args.command == "effort-report":
        return await _effort_report(args, settings, state)

    if args.command == "create-tasks":
        return await _create_tasks(args, settings, state)

    if args.command == "mapping":
        return _mapping(args, state)

    if args.command == "clear-cache":
        dropped = state.clear_completed()
        print(f"Created tasks cache cleared ({dropped} keys)")
        return 0

    logger.error("Unknown command", extra={"command": args.command})
    return 2


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = ToolkitSettings()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    configure_logging(settings.log_level)

    try:
        return asyncio.run(_dispatch(args, settings))

    except (CommandError, RowParseError, PaginationError, IllegalTransitionError) as e:
        logger.warning(str(e), extra={"command": args.command})
        print(str(e), file=sys.stderr)
        return 3

    except Exception:
        logger.exception("Command failed", extra={"command": args.command})
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
