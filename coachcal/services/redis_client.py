# coachcal/services/redis_client.py
"""Shared asyncio Redis client; None when REDIS_URL is not configured."""
from __future__ import annotations

import logging
from typing import Optional

import redis.asyncio as redis

from coachcal.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


def get_redis_client() -> Optional[redis.Redis]:
    """Get the Redis client, created lazily from settings."""
    global _redis_client
    if not settings.REDIS_URL:
        return None
    if _redis_client is None:
        _redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        logger.info("Redis client initialised for %s", settings.REDIS_URL.split("@")[-1])
    return _redis_client


async def close_redis_client() -> None:
    global _redis_client
    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
