"""
Redis caching for instrument catalog listings.

CACHING STRATEGY
================

What we cache:
  - Catalog listing responses (JSON-serialized), one entry per filter combination
  - Key pattern: "instruments:list:type={type}&status={status}"

Why:
  - The catalog is the most frequent read and changes only on admin edits
  - Reservations never touch it: catalog status is not free/busy state

Invalidation strategy:
  - Any catalog create/update/delete drops every "instruments:list:*" key
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

Why NOT cache availability or meetings:
  - Overlap and capacity checks must see committed state, never a cached copy
"""

import json
from typing import Optional

from redis.exceptions import RedisError

from bandroom.core.config import get_settings
from bandroom.core.logging import get_logger
from bandroom.core.metrics import record_cache_operation
from bandroom.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

LIST_PREFIX = "instruments:list:"


def _make_instrument_list_key(instrument_type: Optional[str], status: Optional[str]) -> str:
    return f"{LIST_PREFIX}type={instrument_type or '*'}&status={status or '*'}"


async def get_cached_instruments(instrument_type: Optional[str], status: Optional[str]) -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    key = _make_instrument_list_key(instrument_type, status)
    try:
        data = await client.get(key)
    except RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data is None:
        logger.debug("cache_miss", key=key)
        return None
    logger.debug("cache_hit", key=key)
    return json.loads(data)


async def set_cached_instruments(instrument_type: Optional[str], status: Optional[str], data: list) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_instrument_list_key(instrument_type, status)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_instrument_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for the health endpoint."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
    except RedisError as e:
        return {"status": "error", "error": str(e)}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
