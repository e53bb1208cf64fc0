"""ZenTao REST API client.

This wraps `httpx.AsyncClient` so the rest of the toolkit only ever sees two
operations: read a JSON document, and create a task. Tests swap the transport
for `httpx.MockTransport`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import httpx

logger = logging.getLogger(__name__)

QueryParams = Mapping[str, str | int | None]


def _clean_params(params: QueryParams | None) -> dict[str, str]:
    """Drop unset and empty values; the API treats `key=` as a real filter."""

    if not params:
        return {}
    return {key: str(value) for key, value in params.items() if value is not None and value != ""}


class ZentaoClient:
    """Small async wrapper around the ZenTao v1 REST API."""

    def __init__(
        self,
        *,
        token: str,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not token:
            raise ValueError("ZenTao token is required")
        if not base_url:
            raise ValueError("ZenTao base URL is required")

        self._base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Token": token,
                "Accept": "application/json",
                "User-Agent": "zentao-toolkit",
            },
            timeout=timeout,
            transport=transport,
        )

    @property
    def base_url(self) -> str:
        return self._base_url

    async def __aenter__(self) -> ZentaoClient:
        return self

    async def __aexit__(self, *_args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def get_json(self, path: str, params: QueryParams | None = None) -> dict[str, Any]:
        """GET `path` and return the decoded JSON object.

        Raises:
            httpx.HTTPStatusError: on a non-success status.
            ValueError: if the body is not a JSON object.
        """

        query = _clean_params(params)
        logger.debug("GET", extra={"path": path, "params": query})
        resp = await self._http.get(path, params=query)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected response from {path}: expected a JSON object")
        return data

    async def create_task(self, execution_id: int, payload: Mapping[str, Any]) -> dict[str, Any]:
        """Create a task under an execution."""

        if execution_id <= 0:
            raise ValueError("execution_id must be a positive integer")
        path = f"/executions/{execution_id}/tasks"
        logger.debug("POST", extra={"path": path, "task_name": payload.get("name")})
        resp = await self._http.post(path, json=dict(payload))
        resp.raise_for_status()
        data = resp.json()
        return data if isinstance(data, dict) else {"result": data}
