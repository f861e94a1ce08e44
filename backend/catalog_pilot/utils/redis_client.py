"""
Shared Redis connection with graceful degradation.

Callers fall back to in-process state when get_redis() returns None.
"""

import logging
import time

import redis.asyncio as aioredis

from catalog_pilot.config import settings

logger = logging.getLogger(__name__)

# Seconds to wait before reconnecting after a failed ping
RECONNECT_INTERVAL = 30.0

_redis_client = None
_unavailable_since = None


async def get_redis():
    """Get or create the Redis client, or None if Redis is unavailable."""
    global _redis_client, _unavailable_since
    if _redis_client is not None:
        return _redis_client
    if _unavailable_since and time.monotonic() - _unavailable_since < RECONNECT_INTERVAL:
        return None

    try:
        client = aioredis.from_url(
            settings.redis_url,
            encoding="utf-8",
            decode_responses=True,
        )
        await client.ping()
        _redis_client = client
        _unavailable_since = None
    except Exception as e:
        logger.warning(f"Redis unavailable, using in-process state: {e}")
        _redis_client = None
        _unavailable_since = time.monotonic()
    return _redis_client


async def close_redis() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
