"""Resource records parsed from ZenTao list payloads.

Only the fields this toolkit reads are kept. ZenTao is loose about types
(ids sometimes arrive as strings, people as objects or bare account names),
so parsing is forgiving and never raises on a missing optional field.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


def _int(value: object, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def _float(value: object) -> float:
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, int | float):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


def _str(value: object) -> str:
    return value if isinstance(value, str) else ""


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


def account_of(value: object) -> str | None:
    """Return the account name of a person reference, if any.

    ZenTao returns people either as `{"account": "...", "realname": ...}` or as a
    bare account string.
    """

    if isinstance(value, dict):
        value = value.get("account")
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True, slots=True)
class User:
    id: int
    account: str
    realname: str
    dept: int = 0

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> User:
        return cls(
            id=_int(data.get("id")),
            account=_str(data.get("account")),
            realname=_str(data.get("realname")),
            dept=_int(data.get("dept")),
        )


@dataclass(frozen=True, slots=True)
class Project:
    id: int
    name: str

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> Project:
        return cls(id=_int(data.get("id")), name=_str(data.get("name")))


@dataclass(frozen=True, slots=True)
class Execution:
    id: int
    name: str
    project: int

    @classmethod
    def from_payload(cls, data: dict[str, Any], *, project_id: int | None = None) -> Execution:
        project = _int(data.get("project"))
        if not project and project_id is not None:
            project = project_id
        return cls(id=_int(data.get("id")), name=_str(data.get("name")), project=project)


@dataclass(frozen=True, slots=True)
class Story:
    """A story as listed under one execution.

    `execution` is the execution the story was fetched from, which is where new
    tasks for it get created.
    """

    id: int
    title: str
    execution: int
    status: str = ""

    @classmethod
    def from_payload(cls, data: dict[str, Any], *, execution_id: int) -> Story:
        return cls(
            id=_int(data.get("id")),
            title=_str(data.get("title")),
            execution=execution_id,
            status=_str(data.get("status")),
        )


@dataclass(frozen=True, slots=True)
class WorkItem:
    """A task with the fields needed for effort accounting."""

    id: int
    name: str
    status: str
    consumed: float
    real_started: str | None
    finished_by: str | None
    closed_by: str | None
    assigned_to: str | None
    finished_date: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> WorkItem:
        return cls(
            id=_int(data.get("id")),
            name=_str(data.get("name")),
            status=_str(data.get("status")),
            consumed=_float(data.get("consumed")),
            real_started=_optional_str(data.get("realStarted")),
            finished_by=account_of(data.get("finishedBy")),
            closed_by=account_of(data.get("closedBy")),
            assigned_to=account_of(data.get("assignedTo")),
            finished_date=_optional_str(data.get("finishedDate")),
        )
