"""
Per-user sync locks

A second sync for the same user while one is running must short-circuit,
not queue. The in-memory backend covers one process; the Redis backend
(redis-py Lock, token-checked release) covers every instance sharing the
Redis server.
"""

import asyncio
import logging
from typing import Optional

from redis.exceptions import LockError

from .config import SYNC_LOCK_BACKEND, SYNC_LOCK_TTL_SECONDS

logger = logging.getLogger(__name__)


class SyncLockRegistry:
    """In-process locks keyed by user id, dropped again on release"""

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}

    async def try_acquire(self, user_id: int) -> bool:
        """Take the user's lock without waiting; False if a sync is already running"""
        lock = self._locks.get(user_id)
        if lock is None:
            lock = self._locks[user_id] = asyncio.Lock()
        if lock.locked():
            return False
        await lock.acquire()
        return True

    async def release(self, user_id: int) -> None:
        # Nobody waits on these locks, so the entry can go as soon as it is released
        lock = self._locks.pop(user_id, None)
        if lock is not None and lock.locked():
            lock.release()

    def is_locked(self, user_id: int) -> bool:
        lock = self._locks.get(user_id)
        return bool(lock and lock.locked())


class RedisSyncLockRegistry(SyncLockRegistry):
    """Locks stored in Redis with a TTL so a crashed worker cannot hold them forever"""

    KEY_PREFIX = "calendar_sync_lock"

    def __init__(self, redis_client, ttl_seconds: int = SYNC_LOCK_TTL_SECONDS):
        super().__init__()
        self.redis = redis_client
        self.ttl_seconds = ttl_seconds
        self._held: dict = {}

    def _key(self, user_id: int) -> str:
        return f"{self.KEY_PREFIX}:{user_id}"

    async def try_acquire(self, user_id: int) -> bool:
        lock = self.redis.lock(self._key(user_id), timeout=self.ttl_seconds, blocking=False)
        if not lock.acquire(blocking=False):
            return False
        self._held[user_id] = lock
        return True

    async def release(self, user_id: int) -> None:
        lock = self._held.pop(user_id, None)
        if lock is None:
            return
        try:
            lock.release()
        except LockError:
            # Expired and possibly taken by another instance; theirs now
            logger.warning(f"⚠️ Sync lock for user {user_id} expired before release")

    def is_locked(self, user_id: int) -> bool:
        return bool(self.redis.exists(self._key(user_id)))


_registry: Optional[SyncLockRegistry] = None


def get_sync_locks() -> SyncLockRegistry:
    """Process-wide registry chosen by SYNC_LOCK_BACKEND"""
    global _registry
    if _registry is None:
        if SYNC_LOCK_BACKEND == "redis":
            from .rate_limiter import get_redis_client

            _registry = RedisSyncLockRegistry(get_redis_client())
            logger.info("🔒 Calendar sync locks backed by Redis")
        else:
            _registry = SyncLockRegistry()
            logger.info("🔒 Calendar sync locks held in memory (single instance)")
    return _registry
