"""
config/redis_client.py
Async Redis client used for rate limiting and short-lived counters.
Redis is optional: every caller fails open when it is not available.
"""

import logging
from typing import Optional
import redis.asyncio as aioredis

from config.settings import settings

logger = logging.getLogger(__name__)


# ── Global client (initialized on startup) ───────────────────
redis_client: Optional[aioredis.Redis] = None


async def init_redis() -> None:
    """Initialize the Redis connection pool."""
    global redis_client
    if not settings.REDIS_ENABLED:
        logger.info("Redis disabled by configuration; rate limiting is off")
        return
    redis_client = aioredis.from_url(
        settings.REDIS_URL,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
    )
    # Test connection
    await redis_client.ping()


async def close_redis() -> None:
    """Close Redis connection pool."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None


def get_optional_redis() -> Optional[aioredis.Redis]:
    """The live client, or None when Redis is disabled or not started."""
    return redis_client


# ── Rate Limiting ─────────────────────────────────────────────
class RedisCache:
    """Helper class for common Redis patterns."""

    def __init__(self, client: aioredis.Redis):
        self.client = client

    async def hit(self, key: str, window_seconds: int) -> tuple[int, int]:
        """
        Fixed window counter.
        Returns (count in current window, seconds until the window resets).
        """
        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, window_seconds)
        ttl = await self.client.ttl(key)
        return count, max(ttl, 0)

    async def check_rate_limit(self, key: str, limit: int, window_seconds: int = 60) -> bool:
        """Returns True if request is allowed, False if rate limited."""
        count, _ = await self.hit(key, window_seconds)
        return count <= limit
