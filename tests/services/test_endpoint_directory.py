# tests/services/test_endpoint_directory.py
"""Tests for alias resolution and its TTL cache."""

from dataclasses import replace

import pytest

from bridge_hub.services.endpoint_directory import AliasCache, EndpointDirectory
from tests.conftest import InMemoryStore, make_endpoint


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class TestAliasCache:
    def test_entry_expires_after_ttl(self) -> None:
        clock = FakeClock()
        cache = AliasCache(ttl_seconds=60, clock=clock)
        endpoint = make_endpoint()
        cache.put("my-sheet", endpoint)

        assert cache.get("my-sheet") == endpoint
        clock.now += 59.9
        assert cache.get("my-sheet") == endpoint
        clock.now += 0.2
        assert cache.get("my-sheet") is None
        assert len(cache) == 0

    def test_zero_ttl_never_caches(self) -> None:
        cache = AliasCache(ttl_seconds=0)
        cache.put("my-sheet", make_endpoint())
        assert len(cache) == 0
        assert cache.get("my-sheet") is None

    def test_evicts_oldest_when_full(self) -> None:
        cache = AliasCache(ttl_seconds=60, max_entries=2)
        cache.put("a", make_endpoint(alias="a"))
        cache.put("b", make_endpoint(alias="b"))
        cache.put("c", make_endpoint(alias="c"))

        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("b") is not None
        assert cache.get("c") is not None

    def test_invalidate_and_clear(self) -> None:
        cache = AliasCache(ttl_seconds=60)
        cache.put("a", make_endpoint(alias="a"))
        cache.put("b", make_endpoint(alias="b"))
        cache.invalidate("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_counts_hits_and_misses(self) -> None:
        cache = AliasCache(ttl_seconds=60)
        cache.get("a")
        cache.put("a", make_endpoint(alias="a"))
        cache.get("a")
        assert (cache.hits, cache.misses) == (1, 1)


class TestEndpointDirectory:
    @pytest.mark.asyncio
    async def test_resolves_active_alias_and_caches_it(self, store: InMemoryStore) -> None:
        endpoint = store.add_endpoint(make_endpoint())
        directory = EndpointDirectory(store, AliasCache(ttl_seconds=60))

        assert await directory.resolve("my-sheet") == endpoint
        assert await directory.resolve("my-sheet") == endpoint
        assert store.alias_lookups == 1

    @pytest.mark.asyncio
    async def test_missing_and_inactive_are_both_none(self, store: InMemoryStore) -> None:
        store.add_endpoint(make_endpoint(alias="paused", is_active=False))
        directory = EndpointDirectory(store, AliasCache(ttl_seconds=60))

        assert await directory.resolve("paused") is None
        assert await directory.resolve("unknown") is None

    @pytest.mark.asyncio
    async def test_misses_are_not_cached(self, store: InMemoryStore) -> None:
        directory = EndpointDirectory(store, AliasCache(ttl_seconds=60))

        assert await directory.resolve("my-sheet") is None
        endpoint = store.add_endpoint(make_endpoint())
        assert await directory.resolve("my-sheet") == endpoint
        assert store.alias_lookups == 2

    @pytest.mark.asyncio
    async def test_cached_entry_can_be_stale_until_ttl(self, store: InMemoryStore) -> None:
        endpoint = store.add_endpoint(make_endpoint())
        clock = FakeClock()
        directory = EndpointDirectory(store, AliasCache(ttl_seconds=60, clock=clock))
        await directory.resolve("my-sheet")

        store.endpoints[endpoint.id] = replace(endpoint, is_active=False)
        assert await directory.resolve("my-sheet") == endpoint

        clock.now += 61
        assert await directory.resolve("my-sheet") is None

    @pytest.mark.asyncio
    async def test_touch_last_used_absorbs_store_failures(self, store: InMemoryStore) -> None:
        endpoint = store.add_endpoint(make_endpoint())
        directory = EndpointDirectory(store)

        await directory.touch_last_used(endpoint.id)
        assert store.endpoint_touches == [endpoint.id]
        assert store.endpoints[endpoint.id].last_used_at is not None

        store.fail_touches = True
        await directory.touch_last_used(endpoint.id)
        assert store.endpoint_touches == [endpoint.id]
