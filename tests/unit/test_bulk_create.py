"""Unit tests for idempotent bulk task creation (mocked writer)."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from zentao_toolkit.api.models import Story, User
from zentao_toolkit.state.manager import StateManager
from zentao_toolkit.tasks.bulk_create import (
    BulkTaskCreator,
    CreationPhase,
    IllegalTransitionError,
    composite_key,
    not_found_title,
)
from zentao_toolkit.tasks.rows import Assignee, SourceRow

USERS = [
    User(id=1, account="zhangsan", realname="张三"),
    User(id=2, account="lisi", realname="李四"),
]
STORIES = [
    Story(id=12, title="Login page", execution=301),
    Story(id=13, title="Logout", execution=302),
]
ROWS = [
    SourceRow(
        id=12,
        deadline="5",
        assignees=(
            Assignee(prefix="前端", realname="张三"),
            Assignee(prefix="后台", realname="李四"),
        ),
    ),
    SourceRow(id=13, deadline="2024-03-20", assignees=(Assignee(prefix="后台", realname="李四"),)),
    SourceRow(id=99, deadline="1", assignees=(Assignee(prefix="前端", realname="张三"),)),
]


def _ready_creator(writer: AsyncMock, state: StateManager) -> BulkTaskCreator:
    creator = BulkTaskCreator(writer=writer, state=state)
    creator.load_rows(ROWS, month="2024-03")
    creator.enrich(users=USERS, stories=STORIES)
    return creator


def _writer() -> AsyncMock:
    writer = AsyncMock()
    writer.create_task.return_value = {"id": 1}
    return writer


def test_composite_key_is_deterministic() -> None:
    assert composite_key(7, "1001", "bob") == "7-1001-bob"
    assert composite_key(7, 1001, "bob") == composite_key(7, "1001", "bob")


def test_load_rows_expands_deadlines_into_month(state: StateManager) -> None:
    creator = BulkTaskCreator(writer=_writer(), state=state)

    rows = creator.load_rows(ROWS, month="2024-03")

    assert creator.phase is CreationPhase.ROWS_LOADED
    assert [r.deadline for r in rows] == ["2024-03-05", "2024-03-20", "2024-03-01"]
    assert {r.est_started for r in rows} == {"2024-03-01"}


def test_enrich_resolves_accounts_and_stories(state: StateManager) -> None:
    creator = BulkTaskCreator(writer=_writer(), state=state)
    creator.load_rows(
        ROWS + [SourceRow(id=13, deadline="", assignees=(Assignee("脚本", "无名"),))],
        month="2024-03",
    )

    summary = creator.enrich(users=USERS, stories=STORIES)

    assert creator.phase is CreationPhase.ENRICHED
    assert summary.matched == 3
    assert summary.not_found == 1
    assert summary.unresolved_people == 1
    rows = creator.rows
    assert rows[0].title == "Login page"
    assert rows[0].execution_id == 301
    assert [a.account for a in rows[0].assignees] == ["zhangsan", "lisi"]
    assert rows[2].title == not_found_title(99)
    assert rows[2].execution_id is None


def test_plan_builds_one_request_per_resolved_person(state: StateManager) -> None:
    creator = _ready_creator(_writer(), state)

    requests = creator.plan()

    assert [r.key for r in requests] == ["12-301-zhangsan", "12-301-lisi", "13-302-lisi"]
    first = requests[0]
    assert first.execution_id == 301
    assert first.payload == {
        "story": 12,
        "name": "【前端】Login page",
        "assignedTo": "zhangsan",
        "type": "devel",
        "estStarted": "2024-03-01",
        "deadline": "2024-03-05",
    }


def test_plan_applies_account_allow_list(state: StateManager) -> None:
    creator = _ready_creator(_writer(), state)

    requests = creator.plan(allowed_accounts=["lisi"])

    assert [r.key for r in requests] == ["12-301-lisi", "13-302-lisi"]


def test_plan_before_enrich_is_illegal(state: StateManager) -> None:
    creator = BulkTaskCreator(writer=_writer(), state=state)
    creator.load_rows(ROWS, month="2024-03")

    with pytest.raises(IllegalTransitionError):
        creator.plan()


def test_enrich_before_load_is_illegal(state: StateManager) -> None:
    creator = BulkTaskCreator(writer=_writer(), state=state)

    with pytest.raises(IllegalTransitionError, match="idle -> enriched"):
        creator.enrich(users=USERS, stories=STORIES)


@pytest.mark.asyncio
async def test_execute_creates_tasks_and_persists_keys_once(state: StateManager) -> None:
    writer = _writer()
    creator = _ready_creator(writer, state)

    outcome = await creator.execute()

    assert outcome.succeeded == 3
    assert outcome.failed == 0
    assert outcome.skipped_existing == 0
    assert writer.create_task.await_count == 3
    writer.create_task.assert_any_await(
        302,
        {
            "story": 13,
            "name": "【后台】Logout",
            "assignedTo": "lisi",
            "type": "devel",
            "estStarted": "2024-03-01",
            "deadline": "2024-03-20",
        },
    )
    assert state.completed_keys() == {"12-301-zhangsan", "12-301-lisi", "13-302-lisi"}
    assert creator.phase is CreationPhase.DONE


@pytest.mark.asyncio
async def test_second_execute_sends_nothing(state: StateManager) -> None:
    writer = _writer()
    creator = _ready_creator(writer, state)
    await creator.execute()
    writer.create_task.reset_mock()

    outcome = await creator.execute()

    assert outcome.succeeded == 0
    assert outcome.skipped_existing == 3
    writer.create_task.assert_not_awaited()


@pytest.mark.asyncio
async def test_fresh_creator_honours_persisted_keys(state: StateManager) -> None:
    await _ready_creator(_writer(), state).execute()

    writer = _writer()
    outcome = await _ready_creator(writer, state).execute()

    assert outcome.succeeded == 0
    writer.create_task.assert_not_awaited()


@pytest.mark.asyncio
async def test_failed_requests_are_not_persisted(state: StateManager) -> None:
    writer = AsyncMock()

    async def create_task(execution_id: int, payload: dict) -> dict:
        if payload["assignedTo"] == "zhangsan":
            raise RuntimeError("server error")
        return {"id": 1}

    writer.create_task.side_effect = create_task
    creator = _ready_creator(writer, state)

    outcome = await creator.execute()

    assert outcome.succeeded == 2
    assert outcome.failed == 1
    assert "12-301-zhangsan" not in state.completed_keys()
    assert creator.phase is CreationPhase.DONE

    writer.create_task.side_effect = None
    writer.create_task.return_value = {"id": 2}
    retry = await creator.execute()

    assert retry.succeeded == 1
    assert retry.created_keys == ["12-301-zhangsan"]


@pytest.mark.asyncio
async def test_duplicate_rows_create_one_task(state: StateManager) -> None:
    writer = _writer()
    creator = BulkTaskCreator(writer=writer, state=state)
    creator.load_rows([ROWS[1], ROWS[1]], month="2024-03")
    creator.enrich(users=USERS, stories=STORIES)

    outcome = await creator.execute()

    assert outcome.succeeded == 1
    assert writer.create_task.await_count == 1


@pytest.mark.asyncio
async def test_reload_after_done_is_allowed(state: StateManager) -> None:
    creator = _ready_creator(_writer(), state)
    await creator.execute()

    creator.load_rows(ROWS[:1], month="2024-04")

    assert creator.phase is CreationPhase.ROWS_LOADED
    assert creator.rows[0].deadline == "2024-04-05"
