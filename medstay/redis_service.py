"""
Redis service for MedStay.
Distributed property locks, booking event publication and calendar caching.
Every operation degrades to a logged no-op when Redis is disabled or down.
"""

import redis.asyncio as aioredis
import json
import logging
import uuid
from typing import Any, Optional, Dict, List

from .config import settings

logger = logging.getLogger(__name__)


class RedisService:
    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self.redis_client: Optional[aioredis.Redis] = None

    @property
    def connected(self) -> bool:
        return self.redis_client is not None

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis_client = aioredis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True
            )
            # Test connection
            await self.redis_client.ping()
            logger.info("✅ Connected to Redis")
        except Exception as e:
            logger.error(f"❌ Failed to connect to Redis: {e}")
            self.redis_client = None
            raise

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis_client:
            await self.redis_client.aclose()
            self.redis_client = None
            logger.info("📴 Disconnected from Redis")

    async def ping(self) -> bool:
        if not self.redis_client:
            return False
        return await self.redis_client.ping()

    async def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        if not self.redis_client:
            return None
        try:
            return await self.redis_client.get(key)
        except Exception as e:
            logger.error(f"Error getting key {key}: {e}")
            return None

    async def set(self, key: str, value: str, expire: Optional[int] = None) -> bool:
        """Set value in Redis with optional expiration"""
        if not self.redis_client:
            return False
        try:
            if expire:
                return bool(await self.redis_client.setex(key, expire, value))
            return bool(await self.redis_client.set(key, value))
        except Exception as e:
            logger.error(f"Error setting key {key}: {e}")
            return False

    async def delete(self, *keys: str) -> int:
        """Delete keys from Redis, returning how many existed"""
        if not self.redis_client or not keys:
            return 0
        try:
            return await self.redis_client.delete(*keys)
        except Exception as e:
            logger.error(f"Error deleting keys {keys}: {e}")
            return 0

    # JSON helpers
    async def set_json(self, key: str, value: Any, expire: Optional[int] = None) -> bool:
        try:
            json_str = json.dumps(value, default=str)
        except (TypeError, ValueError) as e:
            logger.error(f"Error encoding JSON for key {key}: {e}")
            return False
        return await self.set(key, json_str, expire)

    async def get_json(self, key: str) -> Optional[Any]:
        value = await self.get(key)
        if not value:
            return None
        try:
            return json.loads(value)
        except ValueError as e:
            logger.error(f"Error decoding JSON key {key}: {e}")
            return None

    # Lock operations for booking writes
    async def acquire_lock(self, resource: str, ttl: int = 30) -> Optional[str]:
        """
        Try once to take the lock for ``resource``.
        Returns the owner token when acquired, None otherwise.
        """
        lock_key = f"lock:{resource}"
        token = uuid.uuid4().hex

        # SET NX EX is atomic: only one caller can create the key
        result = await self.redis_client.set(lock_key, token, nx=True, ex=ttl)
        if result:
            logger.debug(f"🔒 Acquired lock for {resource}")
            return token
        return None

    async def release_lock(self, resource: str, token: str) -> bool:
        """Release the lock if it is still owned by ``token``"""
        lock_key = f"lock:{resource}"

        try:
            current = await self.redis_client.get(lock_key)
            if current != token:
                logger.warning(f"Lock for {resource} expired or changed owner before release")
                return False
            await self.redis_client.delete(lock_key)
            logger.debug(f"🔓 Released lock for {resource}")
            return True
        except Exception as e:
            logger.error(f"Error releasing lock for {resource}: {e}")
            return False

    # Event publication
    async def publish_json(self, channel: str, message: Dict[str, Any]) -> int:
        """Publish a JSON message; returns the number of receivers"""
        if not self.redis_client:
            return 0
        return await self.redis_client.publish(channel, json.dumps(message, default=str))

    # Cache operations
    async def cache_calendar(self, property_id: str, date_range: str, days: List[Dict]) -> bool:
        """Cache a calendar range view for a property"""
        cache_key = f"calendar:{property_id}:{date_range}"
        return await self.set_json(cache_key, days, expire=settings.calendar_cache_seconds)

    async def get_cached_calendar(self, property_id: str, date_range: str) -> Optional[List[Dict]]:
        return await self.get_json(f"calendar:{property_id}:{date_range}")

    async def invalidate_calendar_cache(self, property_id: str) -> int:
        """Invalidate all cached calendar ranges for a property"""
        if not self.redis_client:
            return 0
        try:
            keys = [key async for key in self.redis_client.scan_iter(match=f"calendar:{property_id}:*")]
            deleted = await self.delete(*keys)
            if deleted:
                logger.info(f"🗑️ Invalidated {deleted} calendar cache entries for property {property_id}")
            return deleted
        except Exception as e:
            logger.error(f"Error invalidating calendar cache for {property_id}: {e}")
            return 0


# Global Redis service instance
redis_service = RedisService()
