"""
Redis client construction.

The client is created by the application lifespan and handed to the
notification sink; nothing in the core reaches for a global client.
"""

import logging

import redis.asyncio as redis
from backend.app.core.config import settings

logger = logging.getLogger(__name__)


def create_redis_client(url: str = None) -> redis.Redis:
    """Build an async Redis client from settings."""
    return redis.from_url(
        url or settings.redis_url,
        decode_responses=settings.redis_decode_responses,
    )


async def ping_redis(client: redis.Redis) -> bool:
    """
    Test Redis connection.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        return await client.ping()
    except Exception as exc:
        logger.warning("Redis ping failed: %s", exc)
        return False
