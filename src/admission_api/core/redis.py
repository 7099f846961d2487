"""
Redis Configuration

Async Redis client, used for rate limiting. Redis is optional: when it is
down the API keeps serving and rate limiting falls back to process memory.
"""

import logging

from redis.asyncio import Redis, from_url

from admission_api.core.config import settings

logger = logging.getLogger(__name__)

# Redis client instance
redis_client: Redis | None = None


async def init_redis() -> Redis:
    """
    Connect to Redis. Call this on application startup.

    Raises:
        redis.exceptions.ConnectionError: If Redis cannot be reached
    """
    global redis_client
    client = from_url(settings.redis_url, encoding="utf-8", decode_responses=True)
    await client.ping()
    redis_client = client
    return redis_client


async def get_redis() -> Redis | None:
    """FastAPI dependency returning the Redis client, or None if unavailable."""
    return redis_client


def is_redis_available() -> bool:
    """Check if Redis client is initialized."""
    return redis_client is not None


async def close_redis() -> None:
    """Close Redis connection."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis connection closed")
