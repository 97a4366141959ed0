# backend/core/redis_config.py

"""
Shared async Redis client for the table cache and the floor event relay.
"""

from typing import Optional, Dict, Any
import redis.asyncio as redis
from redis.exceptions import RedisError
import logging

from core.config import settings

logger = logging.getLogger(__name__)

SOCKET_TIMEOUT_SECONDS = 5


def redis_url() -> str:
    if settings.redis_url:
        return settings.redis_url
    auth = f":{settings.REDIS_PASSWORD}@" if settings.REDIS_PASSWORD else ""
    return f"redis://{auth}{settings.REDIS_HOST}:{settings.REDIS_PORT}/{settings.REDIS_DB}"


_redis_client: Optional[redis.Redis] = None


async def get_redis_client() -> Optional[redis.Redis]:
    """
    Get or create the Redis client singleton.

    Returns None if Redis is not reachable.
    """
    global _redis_client

    if _redis_client is not None:
        return _redis_client

    client = redis.Redis.from_url(
        redis_url(),
        decode_responses=True,
        socket_timeout=SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=SOCKET_TIMEOUT_SECONDS,
    )
    try:
        await client.ping()
    except (RedisError, OSError) as e:
        logger.warning(f"Redis connection failed: {e}. Falling back to local cache.")
        await client.close()
        return None

    logger.info("Redis connection established")
    _redis_client = client
    return _redis_client


async def close_redis_connection():
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.close()
        except RedisError as e:
            logger.error(f"Error closing Redis client: {e}")
        finally:
            _redis_client = None


async def redis_health_check() -> Dict[str, Any]:
    """Check Redis connection health"""
    if _redis_client is None:
        return {"status": "unavailable", "message": "Redis connection not available"}

    try:
        await _redis_client.ping()
        return {"status": "healthy", "message": "Redis connection healthy"}
    except RedisError as e:
        return {
            "status": "unhealthy",
            "message": f"Redis health check failed: {str(e)}",
        }
