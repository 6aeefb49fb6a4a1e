# coachcal/api/deps.py
from __future__ import annotations

from typing import Optional

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.core.config import settings
from coachcal.core.errors import NotFoundError
from coachcal.core.logging import set_user_context
from coachcal.crud.staff import get_staff
from coachcal.db.models.staff import Staff
from coachcal.db.session import get_session
from coachcal.services.booking import BookingOrchestrator
from coachcal.services.events import get_event_publisher
from coachcal.services.meetings import ZoomMeetingService
from coachcal.services.slot_cache import SlotCache, get_slot_cache


async def get_coach_id(x_coach_id: Optional[str] = Header(None, alias="X-Coach-Id")) -> str:
    """Acting coach, as resolved by the upstream auth gateway."""
    if not x_coach_id:
        raise HTTPException(status_code=401, detail="Missing X-Coach-Id header")
    set_user_context(coach_id=x_coach_id)
    return x_coach_id


def get_cache() -> SlotCache:
    return get_slot_cache()


async def get_orchestrator(db: AsyncSession = Depends(get_session)) -> BookingOrchestrator:
    meetings = ZoomMeetingService(db) if settings.MEETING_ENABLED else None
    return BookingOrchestrator(
        db,
        meetings=meetings,
        publisher=get_event_publisher(),
        slot_cache=get_slot_cache(),
    )


async def get_coach_staff(
    staff_id: int,
    coach_id: str = Depends(get_coach_id),
    db: AsyncSession = Depends(get_session),
) -> Staff:
    staff = await get_staff(db, staff_id, coach_id=coach_id)
    if staff is None:
        raise NotFoundError("Staff member not found.")
    return staff
