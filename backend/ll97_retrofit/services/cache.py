"""
Redis caching layer for upstream NYC Open Data lookups.

TTLs:
  - PLUTO data by BBL: 24 hours
  - LL84 disclosures by BBL: 7 days (published annually)
  - Unit mix model responses by BBL: 30 days
  - Reported co-op / condo NOI by BBL: 30 days (published annually)
"""

from __future__ import annotations

import json
import logging
from typing import Optional

import redis.asyncio as redis

from ll97_retrofit.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None

# TTLs in seconds
TTL_PLUTO = 86400         # 24 hours
TTL_LL84 = 604800         # 7 days
TTL_UNIT_MIX = 2592000    # 30 days
TTL_NOI = 2592000         # 30 days


async def get_redis() -> Optional[redis.Redis]:
    """Get or create Redis client. Returns None if Redis is not configured or unreachable."""
    global _redis_client
    if _redis_client is not None:
        return _redis_client

    redis_url = settings.redis_url
    if not redis_url:
        return None

    try:
        _redis_client = redis.from_url(
            redis_url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=3,
            socket_timeout=3,
        )
        await _redis_client.ping()
        return _redis_client
    except (redis.RedisError, OSError) as exc:
        logger.warning("Redis unavailable at %s: %s", redis_url, exc)
        _redis_client = None
        return None


def _make_key(prefix: str, identifier: str) -> str:
    return f"ll97_retrofit:{prefix}:{identifier}"


async def cache_get(prefix: str, identifier: str) -> Optional[dict]:
    """Get a cached value. Returns None on miss or Redis unavailable."""
    r = await get_redis()
    if not r:
        return None
    try:
        val = await r.get(_make_key(prefix, identifier))
        if val:
            return json.loads(val)
    except (redis.RedisError, ValueError) as exc:
        logger.warning("Cache read failed for %s:%s: %s", prefix, identifier, exc)
    return None


async def cache_set(prefix: str, identifier: str, data: dict, ttl: int = TTL_PLUTO) -> bool:
    """Set a cached value. Returns True on success."""
    r = await get_redis()
    if not r:
        return False
    try:
        await r.setex(_make_key(prefix, identifier), ttl, json.dumps(data, default=str))
        return True
    except redis.RedisError as exc:
        logger.warning("Cache write failed for %s:%s: %s", prefix, identifier, exc)
        return False


# ──────────────────────────────────────────────────────────────────
# CONVENIENCE FUNCTIONS
# ──────────────────────────────────────────────────────────────────

async def get_cached_pluto(bbl: str) -> Optional[dict]:
    return await cache_get("pluto", bbl)


async def set_cached_pluto(bbl: str, data: dict):
    await cache_set("pluto", bbl, data, TTL_PLUTO)


async def get_cached_ll84(bbl: str) -> Optional[dict]:
    return await cache_get("ll84", bbl)


async def set_cached_ll84(bbl: str, data: dict):
    await cache_set("ll84", bbl, data, TTL_LL84)


async def get_cached_unit_mix(bbl: str) -> Optional[dict]:
    return await cache_get("unit_mix", bbl)


async def set_cached_unit_mix(bbl: str, data: dict):
    await cache_set("unit_mix", bbl, data, TTL_UNIT_MIX)


async def get_cached_noi(source: str, bbl: str) -> Optional[dict]:
    return await cache_get("noi", f"{source}:{bbl}")


async def set_cached_noi(source: str, bbl: str, data: dict):
    await cache_set("noi", f"{source}:{bbl}", data, TTL_NOI)
