"""Drive a monthly effort computation against the remote API."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping

from zentao_toolkit.api.client import ZentaoClient
from zentao_toolkit.api.collectors import fetch_all_tasks
from zentao_toolkit.api.models import WorkItem
from zentao_toolkit.config import DEFAULT_CONCURRENCY
from zentao_toolkit.effort.aggregation import EffortAggregator

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[Mapping[str, float]], None]


async def run_monthly_effort(
    client: ZentaoClient,
    execution_ids: Iterable[int],
    aggregator: EffortAggregator,
    *,
    on_progress: ProgressCallback | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> Mapping[str, float]:
    """Stream every execution's tasks through `aggregator`.

    The aggregator is reset first. `on_progress` receives the running totals
    after each execution's tasks have been folded in.
    """

    ids = list(execution_ids)
    aggregator.reset()
    logger.info(
        "Computing monthly effort",
        extra={"month": aggregator.window.label, "executions": len(ids)},
    )

    def _on_batch(batch: list[WorkItem]) -> None:
        snapshot = aggregator.fold(batch)
        if on_progress is not None:
            on_progress(snapshot)

    await fetch_all_tasks(client, ids, on_batch=_on_batch, concurrency=concurrency)

    logger.info(
        "Monthly effort computed",
        extra={
            "month": aggregator.window.label,
            "tasks_seen": aggregator.items_seen,
            "tasks_counted": aggregator.items_counted,
            "accounts": len(aggregator.totals),
        },
    )
    return aggregator.totals
