"""
Inventory cache layer

Key-value store in front of the stock aggregation query. Entries are not
authoritative: they can always be rebuilt from products + reservations, so
callers treat CacheUnavailableError as a signal to compute directly.

Backends:
- RedisCacheBackend: shared across instances (REDIS_URL configured)
- MemoryCacheBackend: in-process LRU with TTL (single instance / dev / tests)

Usage:
    cache = await build_inventory_cache()

    payload = await cache.get_json("inventory:product:p1:var-small")
    if payload is None:
        payload = compute()
        await cache.set_json("inventory:product:p1:var-small", payload)

    # Write-invalidate
    await cache.delete_many(["inventory:product:p1:var-small",
                             "inventory:product:p1:label:Small - Blue"])
"""
import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import redis.asyncio as redis

from shopadmin.core.config import settings
from shopadmin.core.exceptions import CacheUnavailableError
from shopadmin.core.redis_client import get_redis

logger = logging.getLogger(__name__)


class MemoryCacheBackend:
    """
    LRU cache with per-entry TTL.

    Safe for single-threaded async usage (standard in asyncio).

    Attributes:
        max_size: Maximum cache entries before LRU eviction
    """

    name = "memory"

    def __init__(self, max_size: int = 5000, clock: Callable[[], float] = time.monotonic):
        self.max_size = max_size
        self._clock = clock
        self._cache: OrderedDict[str, Tuple[float, str]] = OrderedDict()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    async def get(self, key: str) -> Optional[str]:
        entry = self._cache.get(key)
        if entry is None:
            self._misses += 1
            return None

        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._cache[key]
            self._misses += 1
            logger.debug(f"[INVENTORY_CACHE] Expired: {key}")
            return None

        self._cache.move_to_end(key)
        self._hits += 1
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if key in self._cache:
            del self._cache[key]

        while len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)
            self._evictions += 1
            logger.debug("[INVENTORY_CACHE] Evicted oldest entry (capacity)")

        self._cache[key] = (self._clock() + ttl_seconds, value)

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            if self._cache.pop(key, None) is not None:
                removed += 1
        return removed

    async def flush(self, prefix: Optional[str] = None) -> int:
        if prefix is None:
            count = len(self._cache)
            self._cache.clear()
            return count
        doomed = [k for k in self._cache if k.startswith(prefix)]
        for key in doomed:
            del self._cache[key]
        return len(doomed)

    def get_stats(self) -> Dict[str, Any]:
        total = self._hits + self._misses
        return {
            "backend": self.name,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": round(self._hits / total, 4) if total > 0 else 0.0,
            "size": len(self._cache),
            "max_size": self.max_size,
            "evictions": self._evictions,
        }


class RedisCacheBackend:
    """Redis-backed store; values are JSON strings with SETEX TTLs."""

    name = "redis"

    def __init__(self, client: redis.Redis):
        self.client = client

    async def get(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.client.setex(key, ttl_seconds, value)

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        return await self.client.delete(*keys)

    async def flush(self, prefix: Optional[str] = None) -> int:
        pattern = f"{prefix}*" if prefix else "*"
        removed = 0
        async for key in self.client.scan_iter(match=pattern, count=500):
            removed += await self.client.delete(key)
        return removed

    def get_stats(self) -> Dict[str, Any]:
        return {"backend": self.name}


class InventoryCache:
    """
    JSON cache facade used by InventoryService.

    Every backend failure is re-raised as CacheUnavailableError so callers
    have one exception to catch when failing open.
    """

    def __init__(self, backend, default_ttl: int = 30):
        self.backend = backend
        self.default_ttl = default_ttl

    @property
    def backend_name(self) -> str:
        return getattr(self.backend, "name", type(self.backend).__name__)

    async def get_json(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.backend.get(key)
        except Exception as e:
            raise CacheUnavailableError(f"Cache read failed: {e}", operation="get", key=key) from e

        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"[INVENTORY_CACHE] Discarding undecodable entry: {key}")
            await self.delete_many([key])
            return None

    async def set_json(self, key: str, value: Dict[str, Any], ttl_seconds: Optional[int] = None) -> None:
        ttl = ttl_seconds or self.default_ttl
        try:
            await self.backend.set(key, json.dumps(value), ttl)
        except Exception as e:
            raise CacheUnavailableError(f"Cache write failed: {e}", operation="set", key=key) from e

    async def delete_many(self, keys: Iterable[str]) -> int:
        keys = list(dict.fromkeys(keys))
        if not keys:
            return 0
        try:
            removed = await self.backend.delete(*keys)
        except Exception as e:
            raise CacheUnavailableError(
                f"Cache delete failed: {e}", operation="delete", key=",".join(keys)
            ) from e
        logger.debug(f"[INVENTORY_CACHE] Invalidated {removed}/{len(keys)} keys: {keys}")
        return removed

    async def flush(self, prefix: Optional[str] = None) -> int:
        try:
            count = await self.backend.flush(prefix)
        except Exception as e:
            raise CacheUnavailableError(f"Cache flush failed: {e}", operation="flush", key=prefix) from e
        logger.info(f"[INVENTORY_CACHE] Flushed {count} entries (prefix={prefix!r})")
        return count

    def get_stats(self) -> Dict[str, Any]:
        stats = dict(self.backend.get_stats())
        stats["ttl_seconds"] = self.default_ttl
        return stats


async def build_inventory_cache() -> InventoryCache:
    """Redis when REDIS_URL is configured and reachable, memory otherwise."""
    client = await get_redis()
    if client is not None:
        backend = RedisCacheBackend(client)
    else:
        backend = MemoryCacheBackend(max_size=settings.INVENTORY_CACHE_MEMORY_MAX_ENTRIES)

    logger.info(f"[INVENTORY_CACHE] Using {backend.name} backend (ttl={settings.INVENTORY_CACHE_TTL_SECONDS}s)")
    return InventoryCache(backend, default_ttl=settings.INVENTORY_CACHE_TTL_SECONDS)
