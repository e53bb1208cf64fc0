#!/usr/bin/env python3
"""Programmatic monthly effort example.

This demonstrates using the toolkit components directly:

* load settings from `.env`
* list the executions of the given projects
* stream their tasks through an `EffortAggregator`
* print per-user hours for the month

Project selection is passed as arguments (not read from `.env`).
"""

from __future__ import annotations

import argparse
import asyncio
from collections.abc import Sequence

from zentao_toolkit.api.client import ZentaoClient
from zentao_toolkit.api.collectors import fetch_all_executions, fetch_users
from zentao_toolkit.config import ToolkitSettings
from zentao_toolkit.effort.aggregation import EffortAggregator, current_month, format_hours
from zentao_toolkit.effort.service import run_monthly_effort
from zentao_toolkit.logging import configure_logging


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Print monthly effort (programmatic example).")
    parser.add_argument("--project", type=int, action="append", required=True, help="Project id")
    parser.add_argument("--month", default=current_month(), help="Month in the form YYYY-MM")
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, settings: ToolkitSettings) -> None:
    aggregator = EffortAggregator(args.month)

    async with ZentaoClient(token=settings.token, base_url=settings.base_url) as client:
        executions = await fetch_all_executions(
            client, args.project, concurrency=settings.concurrency
        )
        users = await fetch_users(client)
        await run_monthly_effort(
            client,
            [e.id for e in executions],
            aggregator,
            concurrency=settings.concurrency,
        )

    report = aggregator.report(users=users)
    for row in report.rows:
        print(f"{row.realname}: {format_hours(row.hours)} h")
    print(f"Total: {format_hours(report.total_hours)} h")


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = ToolkitSettings()
    configure_logging(settings.log_level)

    asyncio.run(_run(args, settings))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
