"""Full-collection pagination over ZenTao list endpoints.

Every list endpoint answers with `{page, total, limit, <key>: [...]}`. The
first request is sent without paging parameters so the server picks its own
page size; the page count is derived from that first answer and the
remaining pages are requested one after another, in order.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

FetchJson = Callable[[str, Mapping[str, str | int | None]], Awaitable[dict[str, Any]]]


class PaginationError(ValueError):
    """Raised when a page payload does not follow the paging contract."""


@dataclass(frozen=True, slots=True)
class CollectionQuery:
    """Where a collection lives and which payload field holds its items."""

    path: str
    resource_key: str
    params: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class PagedResult:
    items: list[dict[str, Any]]
    total: int


def _require_int(payload: dict[str, Any], name: str, *, path: str) -> int:
    value = payload.get(name)
    if isinstance(value, bool):
        raise PaginationError(f"{path}: page field {name!r} is not numeric")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise PaginationError(f"{path}: page field {name!r} is missing or not numeric")


def _page_items(payload: dict[str, Any], query: CollectionQuery) -> list[dict[str, Any]]:
    raw = payload.get(query.resource_key)
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise PaginationError(f"{query.path}: page field {query.resource_key!r} is not a list")
    return [item for item in raw if isinstance(item, dict)]


async def fetch_all(fetch: FetchJson, query: CollectionQuery) -> PagedResult:
    """Fetch every page of `query` and return the concatenated items.

    Exactly `max(1, ceil(total / limit))` requests are made, using `total` and
    `limit` from the first page. Later pages that come back short are taken
    as-is. Any failing request aborts the whole fetch.
    """

    first = await fetch(query.path, dict(query.params))
    total = _require_int(first, "total", path=query.path)
    limit = _require_int(first, "limit", path=query.path)

    items = _page_items(first, query)
    if total <= 0:
        return PagedResult(items=items, total=total)
    if limit <= 0:
        raise PaginationError(f"{query.path}: page size must be positive, got {limit}")

    page_count = math.ceil(total / limit)
    if page_count <= 1:
        return PagedResult(items=items, total=total)

    logger.debug(
        "Fetching remaining pages",
        extra={"path": query.path, "total": total, "limit": limit, "pages": page_count},
    )
    for page in range(2, page_count + 1):
        params: dict[str, str | int | None] = {**query.params, "page": page, "limit": limit}
        payload = await fetch(query.path, params)
        items.extend(_page_items(payload, query))

    return PagedResult(items=items, total=total)
