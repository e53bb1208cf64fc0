"""Batch collectors for ZenTao resources.

Single-collection fetches go straight through the pagination fetcher. Fetches
that fan out over several parents (executions of projects, tasks of
executions, stories of executions) run one full pagination per parent under
a `BoundedScheduler` built for that call. The combined result fails as soon
as any parent fails. Within one parent, page order is kept; across parents
items land in completion order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from typing import TypeVar

from zentao_toolkit.api.client import ZentaoClient
from zentao_toolkit.api.models import Execution, Project, Story, User, WorkItem
from zentao_toolkit.api.pagination import CollectionQuery, fetch_all
from zentao_toolkit.concurrency import BoundedScheduler
from zentao_toolkit.config import DEFAULT_CONCURRENCY

logger = logging.getLogger(__name__)

T = TypeVar("T")

BatchCallback = Callable[[list[T]], None]


async def fetch_users(client: ZentaoClient) -> list[User]:
    result = await fetch_all(client.get_json, CollectionQuery(path="/users", resource_key="users"))
    return [User.from_payload(item) for item in result.items]


async def fetch_projects(client: ZentaoClient) -> list[Project]:
    query = CollectionQuery(path="/projects", resource_key="projects")
    result = await fetch_all(client.get_json, query)
    return [Project.from_payload(item) for item in result.items]


async def fetch_executions(client: ZentaoClient, project_id: int) -> list[Execution]:
    query = CollectionQuery(path=f"/projects/{project_id}/executions", resource_key="executions")
    result = await fetch_all(client.get_json, query)
    return [Execution.from_payload(item, project_id=project_id) for item in result.items]


async def fetch_tasks(client: ZentaoClient, execution_id: int) -> list[WorkItem]:
    query = CollectionQuery(path=f"/executions/{execution_id}/tasks", resource_key="tasks")
    result = await fetch_all(client.get_json, query)
    return [WorkItem.from_payload(item) for item in result.items]


async def fetch_stories(client: ZentaoClient, execution_id: int) -> list[Story]:
    query = CollectionQuery(path=f"/executions/{execution_id}/stories", resource_key="stories")
    result = await fetch_all(client.get_json, query)
    return [Story.from_payload(item, execution_id=execution_id) for item in result.items]


async def fetch_for_parents(
    parent_ids: Iterable[int],
    fetch_one: Callable[[int], Awaitable[list[T]]],
    *,
    on_batch: BatchCallback[T] | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[T]:
    """Run `fetch_one` for every parent with bounded concurrency.

    `on_batch` receives each parent's items as soon as that parent finishes,
    in completion order, before the combined result is available. It runs
    synchronously inside the completing task, so callers folding into shared
    state need no locking. After the first failure no further batch is
    delivered.
    """

    ids = list(parent_ids)
    scheduler = BoundedScheduler(concurrency)
    batches: list[list[T]] = [[] for _ in ids]
    failed = False

    async def _fetch(parent_id: int) -> list[T]:
        if failed:
            return []
        return await fetch_one(parent_id)

    async def _collect(index: int, parent_id: int) -> None:
        nonlocal failed
        try:
            batch = await scheduler.run(lambda: _fetch(parent_id))
            if failed:
                return
            batches[index] = batch
            if on_batch is not None:
                on_batch(batch)
        except Exception:
            failed = True
            raise

    tasks = [asyncio.create_task(_collect(i, parent_id)) for i, parent_id in enumerate(ids)]
    try:
        await asyncio.gather(*tasks)
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    results = [item for batch in batches for item in batch]
    logger.debug(
        "Fetched batch across parents",
        extra={"parents": len(ids), "items": len(results), "peak_in_flight": scheduler.peak},
    )
    return results


async def fetch_all_executions(
    client: ZentaoClient,
    project_ids: Iterable[int],
    *,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[Execution]:
    return await fetch_for_parents(
        project_ids,
        lambda project_id: fetch_executions(client, project_id),
        concurrency=concurrency,
    )


async def fetch_all_tasks(
    client: ZentaoClient,
    execution_ids: Iterable[int],
    *,
    on_batch: BatchCallback[WorkItem] | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[WorkItem]:
    return await fetch_for_parents(
        execution_ids,
        lambda execution_id: fetch_tasks(client, execution_id),
        on_batch=on_batch,
        concurrency=concurrency,
    )


async def fetch_all_stories(
    client: ZentaoClient,
    execution_ids: Iterable[int],
    *,
    on_batch: BatchCallback[Story] | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> list[Story]:
    return await fetch_for_parents(
        execution_ids,
        lambda execution_id: fetch_stories(client, execution_id),
        on_batch=on_batch,
        concurrency=concurrency,
    )
