"""
Redis caching service for studio listings.

CACHING STRATEGY
================

What we cache:
  - Studio listing responses (paginated, JSON-serialized)
  - Cache key pattern: "studios:list:page={page}&size={size}"

Why:
  - Browsing studios is the most frequent read and changes rarely

Invalidation strategy:
  - On studio creation or when a room is added: delete all listing keys
  - TTL-based expiry as safety net (REDIS_CACHE_TTL)

  All listing keys start with "studios:list:" so we can SCAN and delete them.

Why NOT cache bookings or availability:
  - Conflict detection must see committed bookings immediately
    (stale data = double-booking)
"""

import json
from typing import Optional

from studio_booking.core.config import get_settings
from studio_booking.core.logging import get_logger
from studio_booking.core.metrics import record_cache_operation
from studio_booking.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

LIST_PREFIX = "studios:list:"


def _make_studio_list_key(page: int, page_size: int) -> str:
    return f"{LIST_PREFIX}page={page}&size={page_size}"


async def get_cached_studios(page: int, page_size: int) -> Optional[dict]:
    """Retrieve cached studio list response."""
    client = await get_redis()
    if not client:
        return None

    key = _make_studio_list_key(page, page_size)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=bool(data))
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_studios(page: int, page_size: int, data: dict) -> None:
    """Cache studio list response with TTL."""
    client = await get_redis()
    if not client:
        return

    key = _make_studio_list_key(page, page_size)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_studio_cache() -> None:
    """
    Invalidate all cached studio listings.
    Uses SCAN to find and delete all keys matching the prefix.
    """
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", keys_deleted=deleted)
    except Exception as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Get Redis cache statistics for monitoring."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
        hits = info.get("keyspace_hits", 0)
        misses = info.get("keyspace_misses", 0)
        return {
            "status": "connected",
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
        }
    except Exception as e:
        return {"status": "error", "error": str(e)}
