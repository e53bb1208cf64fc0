"""Persisted toolkit state behind a key-value store."""

from zentao_toolkit.state.manager import (
    ColumnMapping,
    Filters,
    JsonFileStore,
    KeyValueStore,
    StateManager,
)

__all__ = ["ColumnMapping", "Filters", "JsonFileStore", "KeyValueStore", "StateManager"]
