"""Test configuration and fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from zentao_toolkit.api.client import ZentaoClient
from zentao_toolkit.state.manager import JsonFileStore, StateManager

Handler = Callable[[httpx.Request], httpx.Response]

TEST_BASE_URL = "http://zentao.test/api.php/v1"


@pytest.fixture
def temp_state_dir(tmp_path: Path) -> Path:
    """Provide a temporary state directory."""
    state_dir = tmp_path / "zentao_state"
    state_dir.mkdir()
    return state_dir


@pytest.fixture
def store(temp_state_dir: Path) -> JsonFileStore:
    return JsonFileStore(temp_state_dir / "store.json")


@pytest.fixture
def state(store: JsonFileStore) -> StateManager:
    """Provide a state manager backed by a temporary JSON file."""
    return StateManager(store)


@pytest.fixture
def make_client() -> Callable[[Handler], ZentaoClient]:
    """Build a client whose requests are answered by `handler`."""

    def _make(handler: Handler) -> ZentaoClient:
        return ZentaoClient(
            token="test-token",
            base_url=TEST_BASE_URL,
            transport=httpx.MockTransport(handler),
        )

    return _make
