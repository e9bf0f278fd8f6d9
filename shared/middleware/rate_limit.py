"""
shared/middleware/rate_limit.py
Route-scoped fixed-window limiters for the sensitive auth endpoints.
The global per-IP limiter lives in main.py; both fail open without Redis.
"""

import logging

from fastapi import Request
from redis.exceptions import RedisError

from config.redis_client import RedisCache, get_optional_redis
from config.settings import settings
from shared.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


class RateLimit:
    """
    Dependency: allow `limit` hits per `window_seconds` per client IP.

        @router.post("/login", dependencies=[Depends(auth_limiter)])
    """

    def __init__(self, scope: str, limit: int, window_seconds: int, message: str = None):
        self.scope = scope
        self.limit = limit
        self.window_seconds = window_seconds
        self.message = message

    async def __call__(self, request: Request) -> None:
        client = get_optional_redis()
        if client is None:
            return

        ip = _client_ip(request)
        key = f"rate:{self.scope}:{ip}"
        try:
            count, ttl = await RedisCache(client).hit(key, self.window_seconds)
        except RedisError as e:
            logger.error(f"Rate limit check failed for {self.scope}: {e}")
            return

        if count > self.limit:
            logger.warning(f"[SECURITY] Rate limit '{self.scope}' exceeded for IP {ip}")
            raise RateLimitedError(ttl or self.window_seconds, self.message)


auth_limiter = RateLimit(
    "auth",
    settings.RATE_LIMIT_AUTH_ATTEMPTS,
    settings.RATE_LIMIT_AUTH_WINDOW_SECONDS,
    "Too many authentication attempts. Please try again after 15 minutes.",
)

otp_limiter = RateLimit(
    "otp",
    settings.RATE_LIMIT_OTP_ATTEMPTS,
    settings.RATE_LIMIT_OTP_WINDOW_SECONDS,
    "Too many OTP verification attempts. Please try again after an hour.",
)

password_reset_limiter = RateLimit(
    "password-reset",
    settings.RATE_LIMIT_OTP_ATTEMPTS,
    settings.RATE_LIMIT_OTP_WINDOW_SECONDS,
    "Too many password reset requests. Please try again after an hour.",
)
