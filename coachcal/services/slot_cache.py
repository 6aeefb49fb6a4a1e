# coachcal/services/slot_cache.py
"""
Short-lived cache of slot listings.

Entries live in Redis with a TTL and are keyed by a per-coach generation
number; any mutation touching the coach's calendar bumps the generation so
stale listings are never served. Listing is advisory anyway: booking always
re-validates against the database.
"""
from __future__ import annotations

import json
import logging
from datetime import date
from typing import List, Optional

from coachcal.core.config import settings
from coachcal.services.redis_client import get_redis_client

logger = logging.getLogger(__name__)

KEY_PREFIX = "coachcal:slots"


class SlotCache:
    def __init__(self, client, ttl_seconds: Optional[int] = None):
        self.client = client
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.SLOT_CACHE_TTL_SECONDS

    @property
    def enabled(self) -> bool:
        return self.client is not None and self.ttl_seconds > 0

    def _generation_key(self, coach_id: str) -> str:
        return f"{KEY_PREFIX}:gen:{coach_id}"

    async def _key(self, coach_id: str, owner_type: str, owner_id: str, day: date) -> str:
        generation = await self.client.get(self._generation_key(coach_id)) or "0"
        return f"{KEY_PREFIX}:{coach_id}:{generation}:{owner_type}:{owner_id}:{day.isoformat()}"

    async def get(self, coach_id: str, owner_type: str, owner_id: str, day: date) -> Optional[List[dict]]:
        if not self.enabled:
            return None
        try:
            raw = await self.client.get(await self._key(coach_id, owner_type, owner_id, day))
        except Exception as e:
            logger.warning("Slot cache read failed: %s", e)
            return None
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, coach_id: str, owner_type: str, owner_id: str, day: date, slots: List[dict]) -> None:
        if not self.enabled:
            return
        try:
            key = await self._key(coach_id, owner_type, owner_id, day)
            await self.client.setex(key, self.ttl_seconds, json.dumps(slots))
        except Exception as e:
            logger.warning("Slot cache write failed: %s", e)

    async def invalidate(self, coach_id: str) -> None:
        if not self.enabled:
            return
        try:
            await self.client.incr(self._generation_key(coach_id))
        except Exception as e:
            logger.warning("Slot cache invalidation failed: %s", e)


def get_slot_cache() -> SlotCache:
    return SlotCache(get_redis_client())
