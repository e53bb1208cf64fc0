"""ZenTao REST API access: client, pagination and batch collectors."""

from zentao_toolkit.api.client import ZentaoClient
from zentao_toolkit.api.pagination import CollectionQuery, PagedResult, PaginationError, fetch_all

__all__ = [
    "CollectionQuery",
    "PagedResult",
    "PaginationError",
    "ZentaoClient",
    "fetch_all",
]
