"""
Redis-backed scoped locks for multi-worker deployments.
Implements the ResourceLocks interface using redis.asyncio locks.

Circuit Breaker Pattern:
  If Redis cannot be reached, holds fall back to the in-process registry and
  the breaker gauge is raised. Bookings keep working and stay correct within
  each worker; on PostgreSQL the row locks taken inside the critical sections
  still serialize writers on the same instrument or meeting.

Every Redis lock carries a TTL (LOCK_TTL_SECONDS) so a crashed worker can
never wedge a resource. Critical sections are a handful of queries, far
below the TTL; an expired lock is logged on release.
"""

import time
from contextlib import asynccontextmanager

from redis.exceptions import LockError, RedisError

from bandroom.core.exceptions import ResourceBusyError
from bandroom.core.logging import get_logger
from bandroom.core.metrics import (
    lock_timeouts,
    lock_wait_seconds,
    redis_circuit_breaker_open,
    redis_connection_errors,
)
from bandroom.infrastructure.redis_client import get_redis
from bandroom.services.interfaces.local_locks import LocalResourceLocks
from bandroom.services.interfaces.locks import ResourceLocks

logger = get_logger(__name__)

KEY_PREFIX = "bandroom:lock:"


class RedisResourceLocks(ResourceLocks):

    def __init__(self, timeout: float, ttl: int, fallback: LocalResourceLocks):
        self.timeout = timeout
        self.ttl = ttl
        self.fallback = fallback

    @asynccontextmanager
    async def hold(self, *keys: str):
        held = await self._acquire_all(sorted(set(keys)))

        if held is None:
            async with self.fallback.hold(*keys):
                yield
            return

        try:
            yield
        finally:
            await self._release_all(held)

    async def _acquire_all(self, keys: list[str]):
        """Acquire every key in Redis; None means Redis is unusable."""
        client = await get_redis()
        if client is None:
            redis_circuit_breaker_open.set(1)
            return None

        held = []
        started = time.perf_counter()
        try:
            for key in keys:
                lock = client.lock(KEY_PREFIX + key, timeout=self.ttl, blocking_timeout=self.timeout)
                if not await lock.acquire():
                    lock_timeouts.labels(backend="redis").inc()
                    logger.warning("lock_timeout", key=key, timeout=self.timeout, backend="redis")
                    await self._release_all(held)
                    raise ResourceBusyError(
                        "Another booking for this resource is in progress, try again",
                        resource=key,
                    )
                held.append(lock)
        except RedisError as e:
            redis_connection_errors.inc()
            redis_circuit_breaker_open.set(1)
            logger.error("redis_lock_unavailable", keys=keys, error=str(e))
            await self._release_all(held)
            return None

        redis_circuit_breaker_open.set(0)
        lock_wait_seconds.labels(backend="redis").observe(time.perf_counter() - started)
        return held

    async def _release_all(self, held: list) -> None:
        for lock in reversed(held):
            try:
                await lock.release()
            except LockError as e:
                # TTL ran out mid-section; another worker may have taken over
                logger.error("redis_lock_expired", lock=lock.name, error=str(e))
            except RedisError as e:
                redis_connection_errors.inc()
                logger.error("redis_lock_release_failed", lock=lock.name, error=str(e))
