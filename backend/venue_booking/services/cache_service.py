"""
Redis caching for dashboard statistics.

What we cache:
  - The monthly approval buckets, per resource filter and anchor month
  - Key pattern: "stats:monthly:resource={id|all}&month={YYYY-MM}"

Invalidation:
  - Every engine operation that changes a reservation bumps the
    "stats:generation" counter and deletes all "stats:monthly:*" keys
    (SCAN + DELETE)
  - A read captures the generation before querying; if it moved by the
    time the result is written, the write is dropped (or undone) so a
    stale read never outlives the invalidation
  - TTL-based expiry as a safety net

Redis is optional. When it is disabled or unreachable every call here is a
no-op and the dashboard is computed from the database.
"""

import json
from datetime import date
from typing import Optional

import redis.asyncio as redis

from venue_booking.core.config import get_settings
from venue_booking.core.logging import get_logger
from venue_booking.core.metrics import record_cache_operation
from venue_booking.infrastructure.redis_client import get_redis
from venue_booking.schemas.reservation import MonthBucket

logger = get_logger(__name__)

STATS_PREFIX = "stats:monthly:"
GENERATION_KEY = "stats:generation"


def _make_stats_key(resource_id: Optional[int], today: date) -> str:
    resource = resource_id if resource_id is not None else "all"
    return f"{STATS_PREFIX}resource={resource}&month={today:%Y-%m}"


async def get_cached_stats(resource_id: Optional[int], today: date) -> Optional[list[MonthBucket]]:
    client = await get_redis()
    if not client:
        return None

    key = _make_stats_key(resource_id, today)
    try:
        data = await client.get(key)
    except redis.RedisError as e:
        logger.error("cache_get_error", key=key, error=str(e))
        return None

    record_cache_operation("get", hit=data is not None)
    if data is None:
        logger.debug("cache_miss", key=key)
        return None
    logger.debug("cache_hit", key=key)
    return [MonthBucket.model_validate(item) for item in json.loads(data)]


async def get_stats_generation() -> Optional[int]:
    client = await get_redis()
    if not client:
        return None

    try:
        value = await client.get(GENERATION_KEY)
    except redis.RedisError as e:
        logger.error("cache_get_error", key=GENERATION_KEY, error=str(e))
        return None
    return int(value or 0)


async def set_cached_stats(
    resource_id: Optional[int],
    today: date,
    buckets: list[MonthBucket],
    generation: Optional[int] = None,
) -> None:
    client = await get_redis()
    if not client:
        return

    settings = get_settings()
    key = _make_stats_key(resource_id, today)
    try:
        if generation is not None and int(await client.get(GENERATION_KEY) or 0) != generation:
            logger.debug("cache_set_skipped", key=key, reason="invalidated_during_read")
            return

        await client.setex(
            key,
            settings.REDIS_CACHE_TTL,
            json.dumps([bucket.model_dump() for bucket in buckets]),
        )

        # An invalidation that landed between the check and the write
        if generation is not None and int(await client.get(GENERATION_KEY) or 0) != generation:
            await client.delete(key)
            logger.debug("cache_set_skipped", key=key, reason="invalidated_during_write")
            return
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except redis.RedisError as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_stats_cache() -> None:
    client = await get_redis()
    if not client:
        return

    try:
        await client.incr(GENERATION_KEY)
        deleted = 0
        async for key in client.scan_iter(match=f"{STATS_PREFIX}*", count=100):
            await client.delete(key)
            deleted += 1
        logger.debug("cache_invalidated", keys_deleted=deleted)
    except redis.RedisError as e:
        logger.error("cache_invalidation_error", error=str(e))


async def get_cache_stats() -> dict:
    """Redis hit/miss statistics for monitoring."""
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
