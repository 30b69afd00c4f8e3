"""
Redis connection handling for the trip event publisher and change feed.

One lazily-built connection pool per process; the change-feed subscriber
takes its own ``PubSub`` off a client from this pool.
"""

from __future__ import annotations

from typing import Optional

import redis.asyncio as aioredis

from ridecore.config import settings

_pool: Optional[aioredis.ConnectionPool] = None


def _get_pool() -> aioredis.ConnectionPool:
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            settings.redis_url, decode_responses=True
        )
    return _pool


async def get_redis() -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    return aioredis.Redis(connection_pool=_get_pool())


async def close_redis() -> None:
    global _pool
    if _pool is not None:
        await _pool.disconnect()
        _pool = None
