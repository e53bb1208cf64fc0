"""Persisted toolkit state.

Three things survive between runs, all kept in one key-value store:
- the set of task keys already created (so bulk creation can be re-run)
- the spreadsheet column mapping
- the last-used report/creation filters

`StateManager` owns the load/save contract; the storage itself is any
`KeyValueStore`. `JsonFileStore` keeps everything in one JSON document.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol, TypeVar

from pydantic import BaseModel, Field, ValidationError, field_validator

from zentao_toolkit.effort.aggregation import current_month

logger = logging.getLogger(__name__)

COMPLETED_TASKS_KEY = "completed_tasks"
COLUMN_MAPPING_KEY = "column_mapping"
FILTERS_KEY = "filters"

M = TypeVar("M", bound=BaseModel)


class KeyValueStore(Protocol):
    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...


class JsonFileStore:
    """JSON-file backed key-value store.

    Every write rewrites the whole document through a temporary file and
    `os.replace`, so readers never see a half-written file.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}

        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning(
                "State file is unreadable; treating as empty",
                extra={"path": str(self._path), "error": str(e)},
            )
            return {}

        if not isinstance(raw, dict):
            logger.warning(
                "State file has unexpected shape; treating as empty",
                extra={"path": str(self._path)},
            )
            return {}
        return raw

    def _save(self, data: Mapping[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        text = json.dumps(dict(data), indent=2, ensure_ascii=False) + "\n"
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.", suffix=".tmp", dir=self._path.parent
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Any | None:
        return self._load().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)


class ColumnMapping(BaseModel):
    """Header names used to read the task spreadsheet."""

    id_column: str = Field(default="编号")
    deadline_column: str = Field(default="提测时间")
    prefix_columns: list[str] = Field(default_factory=lambda: ["前端", "后台", "脚本"])

    @field_validator("prefix_columns")
    @classmethod
    def _drop_blank_prefixes(cls, value: list[str]) -> list[str]:
        return [p.strip() for p in value if p.strip()]


class Filters(BaseModel):
    """Last-used selections for reports and task creation."""

    month: str = Field(default_factory=current_month)
    project_ids: list[int] = Field(default_factory=list)
    execution_ids: list[int] = Field(default_factory=list)
    user_accounts: list[str] = Field(default_factory=list)


class StateManager:
    """Typed access to the persisted toolkit state."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def completed_keys(self) -> set[str]:
        raw = self._store.get(COMPLETED_TASKS_KEY)
        if not isinstance(raw, list):
            return set()
        return {key for key in raw if isinstance(key, str)}

    def add_completed(self, keys: Iterable[str]) -> set[str]:
        """Union `keys` into the completed set with a single write.

        Returns the keys that were not already present.
        """

        current = self.completed_keys()
        added = {key for key in keys if key} - current
        if not added:
            return set()
        self._store.set(COMPLETED_TASKS_KEY, sorted(current | added))
        logger.info("Completed task keys persisted", extra={"added": len(added)})
        return added

    def clear_completed(self) -> int:
        """Forget every completed key; returns how many were dropped."""

        count = len(self.completed_keys())
        self._store.set(COMPLETED_TASKS_KEY, [])
        logger.warning("Completed task cache cleared", extra={"dropped": count})
        return count

    def column_mapping(self) -> ColumnMapping:
        return self._load_model(COLUMN_MAPPING_KEY, ColumnMapping)

    def save_column_mapping(self, mapping: ColumnMapping) -> None:
        self._store.set(COLUMN_MAPPING_KEY, mapping.model_dump(mode="json"))

    def filters(self) -> Filters:
        return self._load_model(FILTERS_KEY, Filters)

    def save_filters(self, filters: Filters) -> None:
        self._store.set(FILTERS_KEY, filters.model_dump(mode="json"))

    def _load_model(self, key: str, model: type[M]) -> M:
        raw = self._store.get(key)
        if raw is None:
            return model()
        try:
            return model.model_validate(raw)
        except ValidationError:
            logger.warning("Stored value is invalid; using defaults", extra={"key": key})
            return model()
