"""Bounded concurrency for independent network calls.

Each batch fetch builds its own scheduler, so two call sites never share a
limit. Admission is first-come first-served: `asyncio.Semaphore` wakes
waiters in the order they started waiting, and tasks created by `submit`
start waiting in submission order.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

from zentao_toolkit.config import DEFAULT_CONCURRENCY

T = TypeVar("T")


class BoundedScheduler:
    """Run coroutine factories with at most `limit` of them in flight."""

    def __init__(self, limit: int = DEFAULT_CONCURRENCY) -> None:
        if limit < 1:
            raise ValueError("concurrency limit must be >= 1")
        self._limit = limit
        self._semaphore = asyncio.Semaphore(limit)
        self._active = 0
        self._peak = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def active(self) -> int:
        """Number of factories currently running."""

        return self._active

    @property
    def peak(self) -> int:
        """Highest number of factories observed running at once."""

        return self._peak

    async def run(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Wait for a free slot, then await the factory's coroutine.

        A failure propagates to this call only; the slot is released either way.
        """

        async with self._semaphore:
            self._active += 1
            self._peak = max(self._peak, self._active)
            try:
                return await factory()
            finally:
                self._active -= 1

    def submit(self, factory: Callable[[], Awaitable[T]]) -> asyncio.Task[T]:
        """Queue a factory and return its eventual outcome.

        Nothing runs synchronously here; the returned task starts on the next
        turn of the event loop.
        """

        return asyncio.create_task(self.run(factory))
