"""Redis connection handle.

Learn: Redis is optional. It backs the shared rate-limit counters when
MEDCONNECT_RATE_LIMIT_BACKEND=redis, so several API instances enforce one
window per client. Without it every process keeps its own counters.
"""

from typing import Optional

import redis.asyncio as aioredis

from medconnect.config import settings

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: Optional[str] = None) -> aioredis.Redis:
    """Initialize the Redis connection pool.

    The handle is published only after a successful ping, so a failed
    start leaves redis_available() False.
    """
    global _redis
    client = aioredis.from_url(
        url or settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    try:
        await client.ping()
    except Exception:
        await client.aclose()
        raise
    _redis = client
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


def redis_available() -> bool:
    return _redis is not None
