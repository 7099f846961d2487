"""
Rate Limiting Module

Per-student rate limiting for write endpoints using Redis as the backend.
Falls back to in-memory storage if Redis is unavailable.

Limited actions:
- Applying to courses (one student spamming applications)
- Accepting offers (hammering the acceptance cascade)
"""

import logging
import time
from collections.abc import Awaitable, Callable

from fastapi import Depends, HTTPException, status
from redis.asyncio import Redis

from admission_api.core.auth import Principal, get_current_student
from admission_api.core.redis import get_redis

logger = logging.getLogger(__name__)

# In-memory rate limit storage (fallback when Redis unavailable)
# Format: {key: [timestamp, ...]}
_memory_store: dict[str, list[float]] = {}


class RateLimitExceeded(HTTPException):
    """Exception raised when rate limit is exceeded."""

    def __init__(self, limit: int, window_seconds: int):
        super().__init__(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "RATE_LIMIT_EXCEEDED",
                "message": f"Rate limit exceeded. Maximum {limit} requests "
                f"per {window_seconds} seconds.",
                "retry_after_seconds": window_seconds,
            },
            headers={"Retry-After": str(window_seconds)},
        )


async def _check_rate_limit_redis(
    client: Redis,
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check rate limit using Redis.

    Uses a sliding window algorithm with Redis sorted sets.

    Args:
        client: Redis client
        key: Rate limit key (e.g., "rate_limit:apply:<student_id>")
        limit: Maximum requests allowed
        window_seconds: Time window in seconds

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    now = time.time()
    window_start = now - window_seconds

    pipe = client.pipeline()
    pipe.zremrangebyscore(key, 0, window_start)
    pipe.zcard(key)
    pipe.zadd(key, {str(now): now})
    pipe.expire(key, window_seconds)

    results = await pipe.execute()
    current_count = results[1]

    return current_count < limit


def _check_rate_limit_memory(key: str, limit: int, window_seconds: int) -> bool:
    """
    Check rate limit using in-memory storage.

    Fallback when Redis is unavailable. Note: This doesn't work
    across multiple server instances.
    """
    now = time.time()
    window_start = now - window_seconds

    timestamps = [ts for ts in _memory_store.get(key, []) if ts > window_start]

    if len(timestamps) >= limit:
        _memory_store[key] = timestamps
        return False

    timestamps.append(now)
    _memory_store[key] = timestamps
    return True


async def check_rate_limit(
    redis: Redis | None,
    key: str,
    limit: int,
    window_seconds: int,
) -> bool:
    """
    Check if a request is within rate limits.

    Tries Redis first, falls back to in-memory storage.

    Returns:
        True if request is allowed, False if rate limit exceeded
    """
    if redis is not None:
        try:
            return await _check_rate_limit_redis(redis, key, limit, window_seconds)
        except Exception as e:
            logger.warning(f"Redis rate limit check failed, using memory: {e}")

    return _check_rate_limit_memory(key, limit, window_seconds)


def student_rate_limit(
    action: str,
    limit: int = 10,
    window_seconds: int = 60,
) -> Callable[..., Awaitable[Principal]]:
    """
    Build a dependency that authenticates a student and rate limits one action.

    Usage:
        @router.post("/applications")
        async def apply(
            student: Principal = Depends(student_rate_limit("apply", limit=10)),
        ):
            ...

    Raises:
        RateLimitExceeded: When rate limit is exceeded (HTTP 429)
    """

    async def dependency(
        student: Principal = Depends(get_current_student),
        redis: Redis | None = Depends(get_redis),
    ) -> Principal:
        key = f"rate_limit:{action}:{student.id}"
        allowed = await check_rate_limit(redis, key, limit, window_seconds)

        if not allowed:
            logger.warning(f"Rate limit exceeded for {key}: {limit}/{window_seconds}s")
            raise RateLimitExceeded(limit, window_seconds)

        return student

    return dependency


__all__ = [
    "check_rate_limit",
    "student_rate_limit",
    "RateLimitExceeded",
]
