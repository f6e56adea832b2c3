"""Tests for client_cache.py: per-resource TTL caching."""

import asyncio

import pytest

from mission_control.client_cache import ClientCache


class CountingFetch:
    """Fetch function returning a new list per call, optionally gated."""

    def __init__(self, value=None):
        self.value = value
        self.calls = []
        self.gate = None

    async def __call__(self, key):
        self.calls.append(key)
        if self.gate is not None:
            await self.gate.wait()
        if isinstance(self.value, Exception):
            raise self.value
        return None if self.value is None else list(self.value)


# ---------------------------------------------------------------------------
# Identity and expiry
# ---------------------------------------------------------------------------


class TestIdentity:
    @pytest.mark.asyncio
    async def test_same_object_within_ttl(self, clock):
        fetch = CountingFetch([1, 2])
        cache = ClientCache(fetch, ttl=5.0, empty=list, clock=clock)
        first = await cache.get()
        clock.advance(4.0)
        assert await cache.get() is first
        assert len(fetch.calls) == 1

    @pytest.mark.asyncio
    async def test_new_object_after_expiry(self, clock):
        fetch = CountingFetch([1, 2])
        cache = ClientCache(fetch, ttl=5.0, empty=list, clock=clock)
        first = await cache.get()
        clock.advance(5.0)
        second = await cache.get()
        assert second == first
        assert second is not first

    @pytest.mark.asyncio
    async def test_new_object_after_invalidate(self, clock):
        cache = ClientCache(CountingFetch([1]), ttl=5.0, empty=list, clock=clock)
        first = await cache.get()
        cache.invalidate()
        assert await cache.get() is not first

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, clock):
        fetch = CountingFetch(["mail"])
        cache = ClientCache(fetch, ttl=10.0, empty=list, clock=clock)
        a = await cache.get("mayor/")
        b = await cache.get("overseer")
        assert a is not b
        cache.invalidate("mayor/")
        assert await cache.get("overseer") is b
        assert fetch.calls == ["mayor/", "overseer"]

    @pytest.mark.asyncio
    async def test_invalidate_all_keys(self, clock):
        fetch = CountingFetch([1])
        cache = ClientCache(fetch, ttl=10.0, empty=list, clock=clock)
        await cache.get("a")
        await cache.get("b")
        cache.invalidate(all_keys=True)
        assert cache.peek("a") is None
        assert cache.peek("b") is None


# ---------------------------------------------------------------------------
# Empty values, disabled cache, errors
# ---------------------------------------------------------------------------


class TestValues:
    @pytest.mark.asyncio
    async def test_none_becomes_fresh_empty(self, clock):
        cache = ClientCache(CountingFetch(None), ttl=5.0, empty=list, enabled=False, clock=clock)
        first = await cache.get()
        second = await cache.get()
        assert first == [] and second == []
        assert first is not second

    @pytest.mark.asyncio
    async def test_disabled_cache_always_fetches(self, clock):
        fetch = CountingFetch([1])
        cache = ClientCache(fetch, ttl=5.0, empty=list, enabled=False, clock=clock)
        await cache.get()
        await cache.get()
        assert len(fetch.calls) == 2
        assert cache.peek() is None

    @pytest.mark.asyncio
    async def test_errors_propagate_and_are_not_cached(self, clock):
        fetch = CountingFetch(RuntimeError("down"))
        cache = ClientCache(fetch, ttl=5.0, empty=list, clock=clock)
        with pytest.raises(RuntimeError):
            await cache.get()
        fetch.value = [1]
        assert await cache.get() == [1]
        assert len(fetch.calls) == 2


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_gets_share_one_fetch(self, clock):
        fetch = CountingFetch([1])
        fetch.gate = asyncio.Event()
        cache = ClientCache(fetch, ttl=5.0, empty=list, clock=clock)
        tasks = [asyncio.ensure_future(cache.get()) for _ in range(5)]
        await asyncio.sleep(0)
        fetch.gate.set()
        results = await asyncio.gather(*tasks)
        assert len(fetch.calls) == 1
        assert all(r is results[0] for r in results)

    @pytest.mark.asyncio
    async def test_invalidate_during_fetch_discards_result(self, clock):
        fetch = CountingFetch([1])
        fetch.gate = asyncio.Event()
        cache = ClientCache(fetch, ttl=5.0, empty=list, clock=clock)
        pending = asyncio.ensure_future(cache.get())
        await asyncio.sleep(0)
        cache.invalidate()
        fetch.gate.set()
        assert await pending == [1]
        assert cache.peek() is None
