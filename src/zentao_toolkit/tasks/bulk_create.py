"""Idempotent bulk task creation from spreadsheet rows.

A creation run moves through explicit phases:

    idle -> rows_loaded -> enriched -> executing -> done

Rows are loaded from the spreadsheet, enriched with remote ids (accounts by
real name, story title and execution by story id), turned into creation
requests, and executed one at a time. Every request carries a composite key
`<row id>-<execution id>-<account>`; keys of requests that succeeded are
remembered in the persisted completed set, and requests whose key is already
there are never sent again.

The completed set is written once, after the whole pass. If the process dies
mid-pass, tasks created in that pass are not remembered and would be created
again on the next run.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from zentao_toolkit.api.models import Story, User
from zentao_toolkit.state.manager import StateManager
from zentao_toolkit.tasks.rows import Assignee, SourceRow, format_due_date

logger = logging.getLogger(__name__)

TASK_TYPE = "devel"
NOT_FOUND_SUFFIX = "(not found)"


class CreationPhase(str, Enum):
    IDLE = "idle"
    ROWS_LOADED = "rows_loaded"
    ENRICHED = "enriched"
    EXECUTING = "executing"
    DONE = "done"


ALLOWED_TRANSITIONS: dict[CreationPhase, set[CreationPhase]] = {
    CreationPhase.IDLE: {CreationPhase.ROWS_LOADED},
    CreationPhase.ROWS_LOADED: {CreationPhase.ROWS_LOADED, CreationPhase.ENRICHED},
    CreationPhase.ENRICHED: {
        CreationPhase.ROWS_LOADED,
        CreationPhase.ENRICHED,
        CreationPhase.EXECUTING,
    },
    CreationPhase.EXECUTING: {CreationPhase.DONE},
    CreationPhase.DONE: {
        CreationPhase.ROWS_LOADED,
        CreationPhase.ENRICHED,
        CreationPhase.EXECUTING,
    },
}


class IllegalTransitionError(ValueError):
    pass


class TaskWriter(Protocol):
    async def create_task(
        self, execution_id: int, payload: Mapping[str, Any]
    ) -> dict[str, Any]: ...


def composite_key(row_id: int, execution_id: int | str, account: str) -> str:
    """Deterministic identity of one (row, execution, account) creation."""

    return f"{row_id}-{execution_id}-{account}"


def not_found_title(row_id: int) -> str:
    return f"Story #{row_id} {NOT_FOUND_SUFFIX}"


@dataclass(frozen=True, slots=True)
class PlannedRow:
    """A spreadsheet row after loading and (optionally) enrichment."""

    id: int
    deadline: str
    est_started: str
    assignees: tuple[Assignee, ...]
    title: str = ""
    execution_id: int | None = None

    @property
    def resolved(self) -> bool:
        return bool(self.execution_id) and bool(self.title)


@dataclass(frozen=True, slots=True)
class CreationRequest:
    key: str
    execution_id: int
    payload: dict[str, Any]


@dataclass(frozen=True, slots=True)
class EnrichmentSummary:
    matched: int
    not_found: int
    unresolved_people: int


@dataclass(frozen=True, slots=True)
class CreationOutcome:
    succeeded: int
    failed: int
    skipped_existing: int
    created_keys: list[str] = field(default_factory=list)


class BulkTaskCreator:
    """Plan and execute task creation for one set of spreadsheet rows."""

    def __init__(self, *, writer: TaskWriter, state: StateManager) -> None:
        self._writer = writer
        self._state = state
        self._phase = CreationPhase.IDLE
        self._rows: list[PlannedRow] = []

    @property
    def phase(self) -> CreationPhase:
        return self._phase

    @property
    def rows(self) -> list[PlannedRow]:
        return list(self._rows)

    def _transition(self, to: CreationPhase) -> None:
        allowed = ALLOWED_TRANSITIONS.get(self._phase, set())
        if to not in allowed:
            raise IllegalTransitionError(
                f"Illegal transition: {self._phase.value} -> {to.value}"
            )
        self._phase = to

    def load_rows(self, rows: Iterable[SourceRow], *, month: str) -> list[PlannedRow]:
        """Load parsed rows; tasks start on the first of `month`.

        Bare-day deadlines are expanded into `month`.
        """

        self._transition(CreationPhase.ROWS_LOADED)
        self._rows = [
            PlannedRow(
                id=row.id,
                deadline=format_due_date(row.deadline, month),
                est_started=f"{month}-01",
                assignees=row.assignees,
            )
            for row in rows
        ]
        logger.info("Rows loaded", extra={"rows": len(self._rows), "month": month})
        return self.rows

    def enrich(self, *, users: Iterable[User], stories: Iterable[Story]) -> EnrichmentSummary:
        """Resolve people to accounts and story ids to title and execution.

        Names are matched exactly against `User.realname`. A story listed under
        several executions resolves to the last one in `stories`; collectors
        return stories in the order their executions were requested, so the
        choice is the same on every run.
        """

        self._transition(CreationPhase.ENRICHED)

        account_by_name = {u.realname: u.account for u in users if u.realname}
        story_by_id = {s.id: s for s in stories if s.id}

        enriched: list[PlannedRow] = []
        unresolved_people = 0
        for row in self._rows:
            assignees = tuple(
                Assignee(
                    prefix=a.prefix,
                    realname=a.realname,
                    account=account_by_name.get(a.realname, ""),
                )
                for a in row.assignees
            )
            unresolved_people += sum(1 for a in assignees if not a.account)

            story = story_by_id.get(row.id)
            if story is not None:
                title, execution_id = story.title, story.execution
            else:
                title, execution_id = not_found_title(row.id), None

            enriched.append(
                PlannedRow(
                    id=row.id,
                    deadline=row.deadline,
                    est_started=row.est_started,
                    assignees=assignees,
                    title=title,
                    execution_id=execution_id,
                )
            )

        self._rows = enriched
        matched = sum(1 for row in enriched if row.resolved)
        summary = EnrichmentSummary(
            matched=matched,
            not_found=len(enriched) - matched,
            unresolved_people=unresolved_people,
        )
        logger.info(
            "Rows enriched",
            extra={
                "matched": summary.matched,
                "not_found": summary.not_found,
                "unresolved_people": summary.unresolved_people,
            },
        )
        return summary

    def _build_requests(
        self, allowed_accounts: Iterable[str] | None
    ) -> tuple[list[CreationRequest], int]:
        if self._phase not in (CreationPhase.ENRICHED, CreationPhase.DONE):
            raise IllegalTransitionError(
                f"Cannot plan requests in phase {self._phase.value}; enrich rows first"
            )

        allowed = set(allowed_accounts) if allowed_accounts else None
        completed = self._state.completed_keys()

        requests: list[CreationRequest] = []
        planned: set[str] = set()
        skipped_existing = 0
        for row in self._rows:
            if not row.resolved or row.execution_id is None:
                continue
            for assignee in row.assignees:
                if not assignee.account:
                    continue
                if allowed is not None and assignee.account not in allowed:
                    continue

                key = composite_key(row.id, row.execution_id, assignee.account)
                if key in completed:
                    skipped_existing += 1
                    continue
                if key in planned:
                    continue
                planned.add(key)

                requests.append(
                    CreationRequest(
                        key=key,
                        execution_id=row.execution_id,
                        payload={
                            "story": row.id,
                            "name": f"【{assignee.prefix}】{row.title}",
                            "assignedTo": assignee.account,
                            "type": TASK_TYPE,
                            "estStarted": row.est_started,
                            "deadline": row.deadline,
                        },
                    )
                )
        return requests, skipped_existing

    def plan(self, *, allowed_accounts: Iterable[str] | None = None) -> list[CreationRequest]:
        """Return the requests `execute` would send, without sending them."""

        requests, _skipped = self._build_requests(allowed_accounts)
        return requests

    async def execute(self, *, allowed_accounts: Iterable[str] | None = None) -> CreationOutcome:
        """Send every pending request, one at a time.

        A failing request is logged and counted; the rest still run. Keys of
        successful requests are persisted together once the pass is over.
        """

        requests, skipped_existing = self._build_requests(allowed_accounts)
        self._transition(CreationPhase.EXECUTING)

        created: list[str] = []
        failed = 0
        try:
            for request in requests:
                try:
                    await self._writer.create_task(request.execution_id, request.payload)
                except Exception:
                    failed += 1
                    logger.exception(
                        "Failed to create task",
                        extra={"key": request.key, "task_name": request.payload["name"]},
                    )
                    continue
                created.append(request.key)
                logger.debug("Task created", extra={"key": request.key})

            if created:
                self._state.add_completed(created)
        finally:
            self._transition(CreationPhase.DONE)

        outcome = CreationOutcome(
            succeeded=len(created),
            failed=failed,
            skipped_existing=skipped_existing,
            created_keys=created,
        )
        logger.info(
            "Task creation completed",
            extra={
                "succeeded": outcome.succeeded,
                "failed": outcome.failed,
                "skipped_existing": outcome.skipped_existing,
            },
        )
        return outcome
