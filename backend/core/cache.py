# backend/core/cache.py

"""
Cache backends for table lists and floor views.

``CacheService`` is the in-process TTL cache used in development and tests;
``RedisCacheService`` shares entries across workers. Both expose the same
async get/set/delete surface so services never depend on a concrete backend.
"""

from typing import Optional, Any
from datetime import datetime, timedelta, timezone
import json
import logging

import redis.asyncio as redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)


class CacheService:
    """Simple in-memory cache implementation"""

    def __init__(self):
        self._cache = {}
        self._expiry = {}

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        if key in self._cache:
            if key in self._expiry and datetime.now(timezone.utc) > self._expiry[key]:
                del self._cache[key]
                del self._expiry[key]
                return None
            return self._cache[key]
        return None

    async def set(self, key: str, value: Any, ttl: int = 300) -> None:
        """Set value in cache with TTL in seconds"""
        self._cache[key] = value
        self._expiry[key] = datetime.now(timezone.utc) + timedelta(seconds=ttl)
        logger.debug(f"Cached key: {key} with TTL: {ttl}s")

    async def delete(self, key: str) -> None:
        """Delete key from cache"""
        self._cache.pop(key, None)
        self._expiry.pop(key, None)

    def clear(self) -> None:
        """Clear entire cache"""
        self._cache.clear()
        self._expiry.clear()


class RedisCacheService:
    """Redis-backed cache with JSON serialization"""

    def __init__(self, client: redis.Redis, prefix: str = "floorstate"):
        self.client = client
        self.prefix = prefix

    def _make_key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self.client.get(self._make_key(key))
        except RedisError as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            return None
        if value is None:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Failed to deserialize cached value for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int = 300) -> None:
        try:
            await self.client.setex(self._make_key(key), ttl, json.dumps(value, default=str))
        except RedisError as e:
            logger.error(f"Redis SET error for key {key}: {e}")

    async def delete(self, key: str) -> None:
        # Errors propagate; the table notifier decides how to treat them
        await self.client.delete(self._make_key(key))


# Global cache instance
cache_service = CacheService()


_active_cache = cache_service


def get_cache():
    return _active_cache


def use_cache(cache) -> None:
    """Swap the process-wide cache backend (called once at startup)"""
    global _active_cache
    _active_cache = cache
