"""
Redis caching service for the place catalog.

What we cache:
  - Public place listing responses (paginated, JSON-serialized)
  - Key pattern: "places:list:page={page}&limit={limit}&category={category}"

Invalidation:
  - Creating a place deletes every "places:list:" key (SCAN on the prefix)
  - TTL (REDIS_CACHE_TTL) as a safety net

Bookings and payments are never cached: their status must be read from the
database on every request.

All failures degrade to a cache miss.
"""

import json
from typing import Optional

import redis.asyncio as redis

from tour_api.core.config import get_settings
from tour_api.core.logging import get_logger
from tour_api.core.metrics import record_cache_operation
from tour_api.infrastructure.redis_client import get_redis

logger = get_logger(__name__)
settings = get_settings()

PLACE_LIST_PREFIX = "places:list:"


def _make_place_list_key(page: int, limit: int, category: Optional[str]) -> str:
    return f"{PLACE_LIST_PREFIX}page={page}&limit={limit}&category={category or 'all'}"


async def get_cached_places(page: int, limit: int, category: Optional[str]) -> Optional[dict]:
    client = await get_redis()
    if not client:
        return None

    key = _make_place_list_key(page, limit, category)
    try:
        data = await client.get(key)
    except redis.RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data:
        logger.debug("cache_hit", key=key)
        return json.loads(data)
    logger.debug("cache_miss", key=key)
    return None


async def set_cached_places(page: int, limit: int, category: Optional[str], data: dict) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_place_list_key(page, limit, category)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(data, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except redis.RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_place_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{PLACE_LIST_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.info("cache_invalidated", prefix=PLACE_LIST_PREFIX, keys_deleted=deleted)
    except redis.RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Redis cache statistics for /health."""
    client = await get_redis()
    if not client:
        return {"status": "disabled"}

    try:
        info = await client.info("stats")
    except redis.RedisError as e:
        return {"status": "error", "error": str(e)}

    hits = info.get("keyspace_hits", 0)
    misses = info.get("keyspace_misses", 0)
    return {
        "status": "connected",
        "hits": hits,
        "misses": misses,
        "hit_rate": round(hits / max(hits + misses, 1) * 100, 2),
    }
