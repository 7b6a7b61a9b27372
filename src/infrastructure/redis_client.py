"""Redis async connection pool."""

from __future__ import annotations

import redis.asyncio as aioredis

from src.config import settings

_pool: aioredis.ConnectionPool | None = None


def get_redis(url: str | None = None) -> aioredis.Redis:
    """Return a Redis client backed by the shared connection pool."""
    global _pool
    if _pool is None:
        _pool = aioredis.ConnectionPool.from_url(
            url or settings.redis_url, decode_responses=True
        )
    return aioredis.Redis(connection_pool=_pool)
