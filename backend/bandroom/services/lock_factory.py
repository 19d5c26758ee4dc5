"""
Resource lock backend factory.
Configures which lock implementation the scheduling services use.
"""

from typing import Optional

from bandroom.core.config import get_settings
from bandroom.services.interfaces.local_locks import LocalResourceLocks
from bandroom.services.interfaces.locks import ResourceLocks
from bandroom.services.redis_locks import RedisResourceLocks


def build_resource_locks() -> ResourceLocks:
    """
    Build the configured lock backend.

    - local: single worker (development, tests)
    - redis: several workers behind a load balancer

    Selected with the LOCK_BACKEND env var.
    """
    settings = get_settings()
    local = LocalResourceLocks(timeout=settings.LOCK_TIMEOUT_SECONDS)

    if settings.LOCK_BACKEND == "redis":
        return RedisResourceLocks(
            timeout=settings.LOCK_TIMEOUT_SECONDS,
            ttl=settings.LOCK_TTL_SECONDS,
            fallback=local,
        )
    return local


_locks: Optional[ResourceLocks] = None


def get_resource_locks() -> ResourceLocks:
    """Get the process-wide lock backend singleton."""
    global _locks
    if _locks is None:
        _locks = build_resource_locks()
    return _locks


def set_resource_locks(locks: Optional[ResourceLocks]) -> None:
    """Swap the backend (tests); None resets to the configured default."""
    global _locks
    _locks = locks
