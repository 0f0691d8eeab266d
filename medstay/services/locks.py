"""
Per-property locks serializing the check-then-write path of booking changes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional

from ..config import settings
from ..errors import LockUnavailable
from ..redis_service import RedisService, redis_service

logger = logging.getLogger(__name__)


class PropertyLockManager:
    """
    Hands out one lock per property.

    In-process callers queue on an ``asyncio.Lock``. With the ``redis``
    backend the holder additionally owns ``lock:property:<id>`` in Redis, so
    workers in other processes serialize on the same property as well.
    Locks for different properties never block each other.
    """

    def __init__(
        self,
        backend: Optional[str] = None,
        redis: Optional[RedisService] = None,
        timeout: Optional[float] = None,
        ttl: Optional[int] = None,
        retry_interval: float = 0.05
    ):
        self.backend = backend or settings.lock_backend
        self.redis = redis or redis_service
        self.timeout = timeout if timeout is not None else settings.lock_timeout_seconds
        self.ttl = ttl or settings.lock_ttl_seconds
        self.retry_interval = retry_interval
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    def _local_lock(self, property_id: str) -> asyncio.Lock:
        lock = self._locks.get(property_id)
        if lock is None:
            lock = self._locks[property_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, property_id: str):
        lock = self._local_lock(property_id)
        self._waiters[property_id] = self._waiters.get(property_id, 0) + 1
        try:
            await self._acquire_local(lock, property_id)
            try:
                token = await self._acquire_distributed(property_id)
                try:
                    yield
                finally:
                    if token:
                        await self.redis.release_lock(f"property:{property_id}", token)
            finally:
                lock.release()
        finally:
            self._waiters[property_id] -= 1
            if not self._waiters[property_id]:
                # Nobody queued: drop the lock so the registry stays bounded
                del self._waiters[property_id]
                self._locks.pop(property_id, None)

    async def _acquire_local(self, lock: asyncio.Lock, property_id: str) -> None:
        acquiring = asyncio.ensure_future(lock.acquire())
        try:
            await asyncio.wait_for(asyncio.shield(acquiring), timeout=self.timeout)
        except (asyncio.TimeoutError, asyncio.CancelledError) as e:
            # The acquire may have completed just as the wait gave up
            if not acquiring.cancel() and not acquiring.cancelled():
                lock.release()
            if isinstance(e, asyncio.CancelledError):
                raise
            raise LockUnavailable(
                f"Timed out waiting for booking lock on property {property_id}",
                {"property_id": property_id}
            )

    async def _acquire_distributed(self, property_id: str) -> Optional[str]:
        if self.backend != "redis":
            return None
        if not self.redis.connected:
            raise LockUnavailable(
                "Redis lock backend configured but Redis is not connected",
                {"property_id": property_id}
            )

        resource = f"property:{property_id}"
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout
        while True:
            try:
                token = await self.redis.acquire_lock(resource, ttl=self.ttl)
            except Exception as e:
                logger.error(f"Error acquiring Redis lock for {resource}: {e}")
                raise LockUnavailable(f"Could not reach Redis to lock property {property_id}") from e
            if token:
                return token
            if loop.time() >= deadline:
                raise LockUnavailable(
                    f"Property {property_id} is locked by another worker",
                    {"property_id": property_id}
                )
            await asyncio.sleep(self.retry_interval)


# Global lock manager shared by every request in this process
property_locks = PropertyLockManager()
