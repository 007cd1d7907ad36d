"""
Shared Redis connection for the inventory cache and rate limiter

get_redis() returns None when REDIS_URL is unset or the server did not
answer a ping; callers then use their in-process fallback. After a failed
connect we wait RECONNECT_BACKOFF_SECONDS before trying again so a dead
Redis does not add a connect timeout to every request.
"""
import logging
import time
from typing import Optional

import redis.asyncio as redis

from shopadmin.core.config import settings

logger = logging.getLogger(__name__)

RECONNECT_BACKOFF_SECONDS = 30

_client: Optional[redis.Redis] = None
_last_failure: Optional[float] = None


def _connect() -> redis.Redis:
    return redis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS,
    )


async def get_redis() -> Optional[redis.Redis]:
    global _client, _last_failure

    if not settings.REDIS_URL:
        return None
    if _client is not None:
        return _client
    if _last_failure is not None and time.monotonic() - _last_failure < RECONNECT_BACKOFF_SECONDS:
        return None

    candidate = _connect()
    try:
        await candidate.ping()
    except Exception as e:
        _last_failure = time.monotonic()
        logger.warning(f"[REDIS] Connect failed ({type(e).__name__}: {e}), using in-process fallback")
        await candidate.aclose()
        return None

    _client = candidate
    _last_failure = None
    logger.info("[REDIS] Connected")
    return _client


async def close_redis() -> None:
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None


async def redis_health() -> dict:
    """Connection state for the /health endpoint."""
    if not settings.REDIS_URL:
        return {"configured": False, "connected": False}

    client = await get_redis()
    if client is None:
        return {"configured": True, "connected": False}

    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"[REDIS] Health ping failed: {e}")
        return {"configured": True, "connected": False, "error": type(e).__name__}
    return {"configured": True, "connected": True}
