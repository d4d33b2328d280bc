"""
Redis caching service for commuter trip searches.

CACHING STRATEGY
================

What we cache:
  - Trip search responses for a town pair (JSON-serialized)
  - Cache key pattern: "trips:search:from={start_from}&to={end_from}"

Why:
  - Searching trips between two towns is the most frequent commuter read
  - Trips change only when a bus owner schedules or reschedules one

Invalidation strategy:
  - On trip schedule/update: delete all "trips:search:*" keys
  - TTL as safety net (REDIS_CACHE_TTL)

What we never cache:
  - Seat maps and bookings. Seat allocation must read live rows, a stale
    seat map would only move the conflict to the booking call.

Redis is optional: every function degrades to a no-op when it is disabled
or unreachable, and the database stays the source of truth.
"""

import json
from typing import Optional

import redis.asyncio as redis
from app.core.config import get_settings
from app.core.logging import get_logger
from app.core.metrics import record_cache_operation

logger = get_logger(__name__)
settings = get_settings()

_redis_client: Optional[redis.Redis] = None

TRIP_SEARCH_PREFIX = "trips:search:"


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis connection. Returns None if Redis is disabled."""
    global _redis_client

    if not settings.REDIS_ENABLED:
        return None

    if _redis_client is None:
        try:
            _redis_client = redis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
            )
            await _redis_client.ping()
            logger.info("redis_connected", url=settings.REDIS_URL)
        except Exception as e:
            logger.error("redis_connection_failed", error=str(e))
            _redis_client = None
            return None

    return _redis_client


async def close_redis() -> None:
    """Close Redis connection on shutdown."""
    global _redis_client
    if _redis_client:
        await _redis_client.aclose()
        _redis_client = None


def _make_trip_search_key(start_from: str, end_from: str) -> str:
    # Exact strings: town lookups in SQL are case-sensitive
    return f"{TRIP_SEARCH_PREFIX}from={start_from}&to={end_from}"


async def get_cached_trip_search(start_from: str, end_from: str) -> Optional[list]:
    client = await get_redis()
    if not client:
        return None

    key = _make_trip_search_key(start_from, end_from)
    try:
        data = await client.get(key)
        record_cache_operation("get", hit=data is not None)
        if data:
            logger.debug("cache_hit", key=key)
            return json.loads(data)
        logger.debug("cache_miss", key=key)
    except Exception as e:
        logger.error("cache_get_error", key=key, error=str(e))

    return None


async def set_cached_trip_search(start_from: str, end_from: str, trips: list) -> None:
    client = await get_redis()
    if not client:
        return

    key = _make_trip_search_key(start_from, end_from)
    try:
        await client.setex(key, settings.REDIS_CACHE_TTL, json.dumps(trips, default=str))
        logger.debug("cache_set", key=key, ttl=settings.REDIS_CACHE_TTL)
    except Exception as e:
        logger.error("cache_set_error", key=key, error=str(e))


async def invalidate_trip_search_cache() -> None:
    """Drop every cached trip search. Called after a trip is scheduled or moved."""
    client = await get_redis()
    if not client:
        return

    try:
        deleted = 0
        async for key in client.scan_iter(match=f"{TRIP_SEARCH_PREFIX}*", count=100):
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
