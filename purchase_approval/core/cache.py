"""Redis client for the ephemeral pending-approval store."""

import logging

from redis.asyncio import Redis

from .config import get_settings

logger = logging.getLogger(__name__)


def create_redis() -> Redis:
    """Create a Redis client from settings (connections are opened lazily)."""
    settings = get_settings()
    return Redis.from_url(settings.redis_url, decode_responses=True)


async def close_redis(client: Redis) -> None:
    try:
        await client.aclose()
    except Exception as e:
        logger.warning(f"Error closing Redis connection: {e}")
