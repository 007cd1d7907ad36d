"""
Tests for the inventory cache layer.
"""
import pytest
from unittest.mock import AsyncMock, MagicMock

from shopadmin.core.cache import InventoryCache, MemoryCacheBackend, RedisCacheBackend
from shopadmin.core.exceptions import CacheUnavailableError


class TickClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestMemoryCacheBackend:
    """LRU + TTL behaviour."""

    @pytest.mark.asyncio
    async def test_set_get(self):
        backend = MemoryCacheBackend(max_size=10)
        await backend.set("k", "v", 30)

        assert await backend.get("k") == "v"
        assert backend.get_stats()["hits"] == 1

    @pytest.mark.asyncio
    async def test_entry_expires_after_ttl(self):
        clock = TickClock()
        backend = MemoryCacheBackend(max_size=10, clock=clock)
        await backend.set("k", "v", 30)

        clock.now += 29
        assert await backend.get("k") == "v"

        clock.now += 1
        assert await backend.get("k") is None
        assert backend.get_stats()["size"] == 0

    @pytest.mark.asyncio
    async def test_lru_eviction(self):
        backend = MemoryCacheBackend(max_size=2)
        await backend.set("a", "1", 30)
        await backend.set("b", "2", 30)
        await backend.get("a")  # a is now most recent
        await backend.set("c", "3", 30)

        assert await backend.get("b") is None
        assert await backend.get("a") == "1"
        assert backend.get_stats()["evictions"] == 1

    @pytest.mark.asyncio
    async def test_delete_and_flush_prefix(self):
        backend = MemoryCacheBackend(max_size=10)
        await backend.set("inventory:product:p1:v1", "1", 30)
        await backend.set("inventory:product:p2:v1", "2", 30)
        await backend.set("other", "3", 30)

        assert await backend.delete("inventory:product:p1:v1", "missing") == 1
        assert await backend.flush("inventory:") == 1
        assert await backend.get("other") == "3"


class TestInventoryCache:
    """JSON facade and error translation."""

    @pytest.mark.asyncio
    async def test_json_round_trip(self, memory_cache):
        await memory_cache.set_json("inventory:product:p1:v1", {"available_stock": 7})
        assert await memory_cache.get_json("inventory:product:p1:v1") == {"available_stock": 7}

    @pytest.mark.asyncio
    async def test_delete_many_deduplicates(self, memory_cache):
        await memory_cache.set_json("a", {"x": 1})
        removed = await memory_cache.delete_many(["a", "a", "b"])
        assert removed == 1

    @pytest.mark.asyncio
    async def test_undecodable_entry_is_discarded(self):
        backend = MemoryCacheBackend()
        await backend.set("k", "{not json", 30)
        cache = InventoryCache(backend)

        assert await cache.get_json("k") is None
        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_backend_errors_become_cache_unavailable(self):
        backend = AsyncMock()
        backend.get.side_effect = ConnectionError("redis down")
        backend.set.side_effect = ConnectionError("redis down")
        backend.delete.side_effect = TimeoutError("slow")
        cache = InventoryCache(backend)

        with pytest.raises(CacheUnavailableError) as exc_info:
            await cache.get_json("k")
        assert exc_info.value.details["operation"] == "get"

        with pytest.raises(CacheUnavailableError):
            await cache.set_json("k", {"a": 1})

        with pytest.raises(CacheUnavailableError):
            await cache.delete_many(["k"])

    @pytest.mark.asyncio
    async def test_stats_include_ttl(self, memory_cache):
        stats = memory_cache.get_stats()
        assert stats["backend"] == "memory"
        assert stats["ttl_seconds"] == 30


class TestRedisCacheBackend:

    @pytest.mark.asyncio
    async def test_uses_setex_with_ttl(self):
        client = MagicMock()
        client.setex = AsyncMock()
        client.get = AsyncMock(return_value='{"a": 1}')
        backend = RedisCacheBackend(client)
        cache = InventoryCache(backend, default_ttl=30)

        await cache.set_json("inventory:product:p1:v1", {"a": 1})
        client.setex.assert_awaited_once_with("inventory:product:p1:v1", 30, '{"a": 1}')
        assert await cache.get_json("inventory:product:p1:v1") == {"a": 1}

    @pytest.mark.asyncio
    async def test_delete_passes_all_keys(self):
        client = MagicMock()
        client.delete = AsyncMock(return_value=2)
        backend = RedisCacheBackend(client)

        assert await backend.delete("k1", "k2") == 2
        client.delete.assert_awaited_once_with("k1", "k2")
        assert await backend.delete() == 0
