"""
In-process lock registry - one asyncio.Lock per contended key.
"""

import asyncio
import time
from collections import Counter
from contextlib import asynccontextmanager

from bandroom.core.exceptions import ResourceBusyError
from bandroom.core.logging import get_logger
from bandroom.core.metrics import lock_timeouts, lock_wait_seconds
from bandroom.services.interfaces.locks import ResourceLocks

logger = get_logger(__name__)


class LocalResourceLocks(ResourceLocks):
    """
    Serializes callers per key inside a single process.

    Use when:
    - One API worker (development, tests, small deployments)
    - As the fallback when the Redis backend cannot reach Redis

    Locks are dropped from the registry once nobody holds or waits on them,
    so the registry only ever contains contended keys.
    """

    def __init__(self, timeout: float):
        self.timeout = timeout
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: Counter = Counter()

    @asynccontextmanager
    async def hold(self, *keys: str):
        acquired = []
        try:
            for key in sorted(set(keys)):
                await self._acquire(key)
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._release(key)

    async def _acquire(self, key: str) -> None:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] += 1
        started = time.perf_counter()
        try:
            async with asyncio.timeout(self.timeout):
                await lock.acquire()
        except TimeoutError:
            self._drop(key)
            lock_timeouts.labels(backend="local").inc()
            logger.warning("lock_timeout", key=key, timeout=self.timeout)
            raise ResourceBusyError(
                "Another booking for this resource is in progress, try again",
                resource=key,
            )
        lock_wait_seconds.labels(backend="local").observe(time.perf_counter() - started)

    def _release(self, key: str) -> None:
        self._locks[key].release()
        self._drop(key)

    def _drop(self, key: str) -> None:
        self._refs[key] -= 1
        if self._refs[key] <= 0:
            del self._refs[key]
            del self._locks[key]

    def held_keys(self) -> list[str]:
        return [key for key, lock in self._locks.items() if lock.locked()]
