"""Unit tests for the command-line entrypoint."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

import httpx
import pytest

from zentao_toolkit import main as cli
from zentao_toolkit.api.client import ZentaoClient
from zentao_toolkit.effort.aggregation import EffortReport, EffortRow
from zentao_toolkit.state.manager import Filters, JsonFileStore, StateManager

USERS = [
    {"id": 1, "account": "alice", "realname": "Alice"},
    {"id": 2, "account": "bob", "realname": "Bob"},
]
TASKS = [
    {
        "id": 1,
        "status": "done",
        "consumed": 6,
        "realStarted": "2024-03-04 09:00:00",
        "finishedBy": "alice",
    },
    {
        "id": 2,
        "status": "closed",
        "consumed": 2,
        "realStarted": "2024-03-05 09:00:00",
        "closedBy": "bob",
    },
]
STORIES = [{"id": 12, "title": "Login page", "status": "active"}]


class FakeZentao:
    """Serves the list endpoints the commands read and records created tasks."""

    def __init__(self) -> None:
        self.created: list[tuple[str, dict]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api.php/v1")
        if request.method == "POST":
            self.created.append((path, json.loads(request.content)))
            return httpx.Response(201, json={"id": 500 + len(self.created)})
        if path == "/users":
            return self._page("users", USERS)
        if path == "/projects":
            return self._page("projects", [{"id": 1, "name": "Shop"}])
        if path == "/projects/1/executions":
            return self._page("executions", [{"id": 301, "name": "Sprint 1", "project": 1}])
        if path == "/executions/301/tasks":
            return self._page("tasks", TASKS)
        if path == "/executions/301/stories":
            return self._page("stories", STORIES)
        return httpx.Response(404, json={"error": "not found"})

    @staticmethod
    def _page(key: str, items: list[dict]) -> httpx.Response:
        return httpx.Response(200, json={"page": 1, "total": len(items), "limit": 20, key: items})


@pytest.fixture
def env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    state_dir = tmp_path / "state"
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("ZENTAO_TOKEN", "test-token")
    monkeypatch.setenv("ZENTAO_BASE_URL", "http://zentao.test/api.php/v1")
    monkeypatch.setenv("ZENTAO_STATE_PATH", str(state_dir))
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)
    return state_dir


@pytest.fixture
def fake_zentao(monkeypatch: pytest.MonkeyPatch) -> FakeZentao:
    fake = FakeZentao()

    def _client(settings) -> ZentaoClient:
        return ZentaoClient(
            token=settings.token,
            base_url=settings.base_url,
            transport=httpx.MockTransport(fake),
        )

    monkeypatch.setattr(cli, "_client", _client)
    return fake


def _state(state_dir: Path) -> StateManager:
    return StateManager(JsonFileStore(state_dir / "store.json"))


def test_parser_collects_repeated_selections() -> None:
    args = cli.build_parser().parse_args(
        ["effort-report", "--month", "2024-03", "--project", "1", "--project", "2", "--user", "a"]
    )

    assert args.command == "effort-report"
    assert args.project == [1, 2]
    assert args.execution is None
    assert args.user == ["a"]


def test_resolve_filters_prefers_command_line() -> None:
    saved = Filters(month="2024-01", project_ids=[9], execution_ids=[90], user_accounts=["old"])
    args = argparse.Namespace(month="2024-03", project=[1], execution=None, user=None)

    filters = cli._resolve_filters(args, saved)

    assert filters.month == "2024-03"
    assert filters.project_ids == [1]
    assert filters.execution_ids == []
    assert filters.user_accounts == ["old"]


def test_resolve_filters_rejects_bad_month() -> None:
    args = argparse.Namespace(month="2024-3x", project=None, execution=None, user=None)

    with pytest.raises(cli.CommandError, match="YYYY-MM"):
        cli._resolve_filters(args, Filters())


def test_render_report_has_total_row() -> None:
    report = EffortReport(
        month="2024-03",
        rows=[EffortRow("alice", "Alice", 12.0), EffortRow("bob", "Bob", 4.0)],
        total_hours=16.0,
    )

    lines = cli.render_report(report).splitlines()

    assert lines[0] == "Effort for 2024-03"
    assert lines[2].split() == ["Alice", "12.00", "1.50"]
    assert lines[-1].split() == ["Total", "16.00", "2.00"]


def test_render_report_aligns_wide_names() -> None:
    report = EffortReport(
        month="2024-03",
        rows=[EffortRow("zs", "张三丰", 8.0), EffortRow("bob", "Bob", 4.0)],
        total_hours=12.0,
    )

    lines = cli.render_report(report).splitlines()[1:]

    assert cli._display_width("张三丰") == 6
    assert {cli._display_width(line) for line in lines} == {cli._display_width(lines[0])}
    assert lines[1].startswith("张三丰  ")
    assert lines[2].startswith("Bob     ")


def test_missing_token_exits_with_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("ZENTAO_TOKEN", raising=False)

    assert cli.main(["projects"]) == 2


def test_invalid_month_exits_with_domain_error(env: Path) -> None:
    assert cli.main(["effort-report", "--month", "13-2024", "--execution", "1"]) == 3


def test_effort_report_without_selection_is_rejected(env: Path, fake_zentao: FakeZentao) -> None:
    assert cli.main(["effort-report", "--month", "2024-03"]) == 3


def test_projects_lists_ids_and_names(
    env: Path, fake_zentao: FakeZentao, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli.main(["projects"]) == 0

    assert capsys.readouterr().out.strip() == "1\tShop"


def test_effort_report_prints_totals_and_saves_filters(
    env: Path, fake_zentao: FakeZentao, capsys: pytest.CaptureFixture[str]
) -> None:
    code = cli.main(["effort-report", "--month", "2024-03", "--project", "1", "--save-filters"])

    out = capsys.readouterr().out
    assert code == 0
    assert "Effort for 2024-03" in out
    assert out.index("Alice") < out.index("Bob")
    assert "8.00" in out
    assert _state(env).filters().project_ids == [1]


def test_create_tasks_is_idempotent(
    env: Path, fake_zentao: FakeZentao, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    rows = tmp_path / "stories.csv"
    rows.write_text("编号,提测时间,前端,后台\n12,5,Alice,Bob\n", encoding="utf-8")
    argv = ["create-tasks", str(rows), "--month", "2024-03", "--execution", "301"]

    assert cli.main(argv) == 0
    assert cli.main(argv) == 0

    out = capsys.readouterr().out
    assert "Task creation completed: 2 success, 0 errors, 0 already created" in out
    assert "Task creation completed: 0 success, 0 errors, 2 already created" in out
    assert [path for path, _ in fake_zentao.created] == ["/executions/301/tasks"] * 2
    assert fake_zentao.created[0][1]["name"] == "【前端】Login page"
    assert fake_zentao.created[0][1]["deadline"] == "2024-03-05"
    assert _state(env).completed_keys() == {"12-301-alice", "12-301-bob"}


def test_create_tasks_dry_run_sends_nothing(
    env: Path, fake_zentao: FakeZentao, tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    rows = tmp_path / "stories.csv"
    rows.write_text("编号,提测时间,前端\n12,5,Alice\n", encoding="utf-8")

    code = cli.main(
        ["create-tasks", str(rows), "--month", "2024-03", "--execution", "301", "--dry-run"]
    )

    assert code == 0
    assert "12-301-alice" in capsys.readouterr().out
    assert fake_zentao.created == []


def test_mapping_set_and_show(env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["mapping", "set", "--id-column", "ID", "--prefix-column", "Dev"]) == 0
    capsys.readouterr()

    assert cli.main(["mapping", "show"]) == 0

    shown = json.loads(capsys.readouterr().out)
    assert shown == {"id_column": "ID", "deadline_column": "提测时间", "prefix_columns": ["Dev"]}


def test_clear_cache(env: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _state(env).add_completed(["1-2-a", "3-4-b"])

    assert cli.main(["clear-cache"]) == 0

    assert "(2 keys)" in capsys.readouterr().out
    assert _state(env).completed_keys() == set()


def test_executions_lists_project_executions(
    env: Path, fake_zentao: FakeZentao, capsys: pytest.CaptureFixture[str]
) -> None:
    assert cli.main(["executions", "--project", "1"]) == 0

    assert capsys.readouterr().out.strip() == "301\t1\tSprint 1"
