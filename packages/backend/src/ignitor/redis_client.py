"""Redis connection pool — used by the rate limiter.

Learn: Redis is optional. If it can't be reached at startup the app still
serves requests; RateLimitMiddleware calls get_redis(), gets a
RuntimeError, and lets the request through.

Realtime fan-out does NOT go through Redis: SSE subscribers live in the
process that accepted them (see ignitor.realtime).
"""

from typing import Optional

import redis.asyncio as aioredis

# Process-wide pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis(url: str) -> aioredis.Redis:
    """Initialize the Redis connection pool and verify it answers."""
    global _redis
    client = aioredis.from_url(url, encoding="utf-8", decode_responses=True)
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
    if _redis is not None:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis
