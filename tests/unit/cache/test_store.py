"""Tests for the in-memory cache store."""

import pytest


class _Clock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def _result(algorithm="rules"):
    from jobmatch.matching.models import MatchResult, Provenance

    return MatchResult(matches=(), provenance=Provenance(algorithm=algorithm))


class TestInMemoryCacheStore:
    @pytest.mark.asyncio
    async def test_put_then_get(self):
        from jobmatch.cache.store import InMemoryCacheStore

        store = InMemoryCacheStore(ttl_seconds=60)
        result = _result()

        await store.put(store.new_entry("fp-1", result))
        entry = await store.get("fp-1")

        assert entry is not None
        assert entry.result is result
        assert await store.get("fp-2") is None

    @pytest.mark.asyncio
    async def test_entries_expire_after_ttl(self):
        from jobmatch.cache.store import InMemoryCacheStore

        clock = _Clock()
        store = InMemoryCacheStore(ttl_seconds=60, clock=clock)
        await store.put(store.new_entry("fp", _result()))

        clock.now += 59
        assert await store.get("fp") is not None

        clock.now += 1
        assert await store.get("fp") is None
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_evicts_least_recently_used(self):
        from jobmatch.cache.store import InMemoryCacheStore

        store = InMemoryCacheStore(ttl_seconds=60, max_entries=2)
        await store.put(store.new_entry("a", _result()))
        await store.put(store.new_entry("b", _result()))

        # Touch "a" so "b" becomes the eviction candidate
        await store.get("a")
        await store.put(store.new_entry("c", _result()))

        assert await store.get("a") is not None
        assert await store.get("b") is None
        assert await store.get("c") is not None
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_put_replaces_existing_entry(self):
        from jobmatch.cache.store import InMemoryCacheStore

        store = InMemoryCacheStore()
        await store.put(store.new_entry("fp", _result("rules")))
        await store.put(store.new_entry("fp", _result("ai")))

        entry = await store.get("fp")

        assert entry.result.provenance.algorithm == "ai"
        assert len(store) == 1

    def test_satisfies_cache_store_protocol(self):
        from jobmatch.cache.store import CacheStore, InMemoryCacheStore

        assert isinstance(InMemoryCacheStore(), CacheStore)

    @pytest.mark.parametrize("kwargs", [{"ttl_seconds": 0}, {"max_entries": 0}])
    def test_rejects_non_positive_limits(self, kwargs):
        from jobmatch.cache.store import InMemoryCacheStore

        with pytest.raises(ValueError):
            InMemoryCacheStore(**kwargs)

    @pytest.mark.asyncio
    async def test_clear(self):
        from jobmatch.cache.store import InMemoryCacheStore

        store = InMemoryCacheStore()
        await store.put(store.new_entry("fp", _result()))

        store.clear()

        assert await store.get("fp") is None
