"""Per-resource TTL cache in front of async fetch functions."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Hashable
from typing import Generic, TypeVar

from .models import CacheEntry

T = TypeVar("T")


class ClientCache(Generic[T]):
    """TTL cache for one resource type, keyed by e.g. mailbox address.

    Within the TTL, ``get`` returns the very same object, so consumers may use
    identity to skip redundant work. After expiry or :meth:`invalidate` the
    next ``get`` fetches a new object even if it compares equal.

    A fetch returning ``None`` is stored as ``empty()`` so callers never see
    ``None``. Concurrent gets for one key share a fetch. Fetch errors reach
    the caller and are not cached.

    Example:
        >>> cache = ClientCache(load_issues, ttl=5.0, empty=list)
        >>> a = await cache.get()
        >>> b = await cache.get()
        >>> assert a is b
    """

    def __init__(
        self,
        fetch: Callable[[Hashable], Awaitable[T | None]],
        *,
        ttl: float,
        empty: Callable[[], T],
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.fetch = fetch
        self.ttl = ttl
        self.empty = empty
        self.enabled = enabled
        self._clock = clock
        self._entries: dict[Hashable, CacheEntry[T]] = {}
        self._inflight: dict[Hashable, asyncio.Task] = {}
        self._epoch = 0
        self._generations: dict[Hashable, int] = {}

    async def get(self, key: Hashable = None) -> T:
        if self.enabled:
            entry = self._entries.get(key)
            if entry and entry.is_valid(self._clock()):
                return entry.value

        task = self._inflight.get(key)
        if task is None:
            task = asyncio.ensure_future(self._load(key, self._generation_of(key)))
            self._inflight[key] = task
        return await asyncio.shield(task)

    def peek(self, key: Hashable = None) -> T | None:
        """The cached value for ``key`` if fresh, without fetching."""
        entry = self._entries.get(key)
        if entry and entry.is_valid(self._clock()):
            return entry.value
        return None

    def invalidate(self, key: Hashable = None, *, all_keys: bool = False) -> None:
        """Forget ``key`` (or everything). A fetch already running won't be stored."""
        if all_keys:
            self._epoch += 1
            self._entries.clear()
            self._inflight.clear()
        else:
            self._generations[key] = self._generations.get(key, 0) + 1
            self._entries.pop(key, None)
            self._inflight.pop(key, None)

    def _generation_of(self, key: Hashable) -> tuple[int, int]:
        return self._epoch, self._generations.get(key, 0)

    async def _load(self, key: Hashable, generation: tuple[int, int]) -> T:
        try:
            value = await self.fetch(key)
            if value is None:
                value = self.empty()
            if self.enabled and generation == self._generation_of(key):
                self._entries[key] = CacheEntry(value=value, timestamp=self._clock(), ttl=self.ttl)
            return value
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]
