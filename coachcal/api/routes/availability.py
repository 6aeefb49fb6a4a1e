# coachcal/api/routes/availability.py
from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.api.deps import get_cache, get_coach_id
from coachcal.core.errors import NotFoundError
from coachcal.core.timeutil import parse_date
from coachcal.crud.staff import get_staff
from coachcal.db.session import get_session
from coachcal.schemas.availability import AvailabilityIn, AvailabilityOut, BlackoutIn, BlackoutOut, SlotsOut
from coachcal.services import availability as availability_service
from coachcal.services.calendar import get_calendar, list_available_slots
from coachcal.services.owners import CoachOwner, StaffOwner
from coachcal.services.slot_cache import SlotCache

router = APIRouter(tags=["availability"])


@router.get("/coaches/{coach_id}/availability", response_model=AvailabilityOut)
async def read_coach_availability(coach_id: str, db: AsyncSession = Depends(get_session)):
    availability = await availability_service.get_coach_availability(db, coach_id)
    return AvailabilityOut.from_model(availability)


@router.post("/availability", response_model=AvailabilityOut)
async def set_coach_availability(
    payload: AvailabilityIn,
    coach_id: str = Depends(get_coach_id),
    db: AsyncSession = Depends(get_session),
    cache: SlotCache = Depends(get_cache),
):
    """Create or replace the calling coach's availability."""
    availability = await availability_service.set_availability(
        db,
        CoachOwner.of(coach_id),
        working_hours=payload.working_hours,
        time_zone=payload.time_zone,
        default_duration=payload.default_duration,
        buffer_time=payload.buffer_time,
        blackouts=payload.blackouts,
        assignment=payload.assignment.model_dump(exclude_none=True) if payload.assignment else None,
        reminders=payload.reminders.model_dump(exclude_unset=True) if payload.reminders else None,
    )
    await cache.invalidate(coach_id)
    return AvailabilityOut.from_model(availability)


@router.post("/availability/blackouts", response_model=BlackoutOut, status_code=201)
async def add_blackout(
    payload: BlackoutIn,
    coach_id: str = Depends(get_coach_id),
    db: AsyncSession = Depends(get_session),
    cache: SlotCache = Depends(get_cache),
):
    if payload.staff_id is not None:
        staff = await get_staff(db, payload.staff_id, coach_id=coach_id)
        if staff is None:
            raise NotFoundError("Staff member not found.")
        owner = StaffOwner.of(staff.id, coach_id)
    else:
        owner = CoachOwner.of(coach_id)
    blackout = await availability_service.add_blackout(
        db, owner, start_time=payload.start_time, end_time=payload.end_time, reason=payload.reason
    )
    await cache.invalidate(coach_id)
    return BlackoutOut.model_validate(blackout)


@router.delete("/availability/blackouts/{blackout_id}", status_code=204)
async def remove_blackout(
    blackout_id: int,
    coach_id: str = Depends(get_coach_id),
    db: AsyncSession = Depends(get_session),
    cache: SlotCache = Depends(get_cache),
):
    await availability_service.remove_blackout(db, coach_id, blackout_id)
    await cache.invalidate(coach_id)
    return Response(status_code=204)


@router.get("/coaches/{coach_id}/available-slots", response_model=SlotsOut)
async def coach_available_slots(
    coach_id: str,
    date: str = Query(..., description="YYYY-MM-DD in the coach's time zone"),
    db: AsyncSession = Depends(get_session),
    cache: SlotCache = Depends(get_cache),
):
    day = parse_date(date)
    slots = await list_available_slots(db, CoachOwner.of(coach_id), day, cache=cache)
    return {"date": day.isoformat(), "slots": slots}


@router.get("/coaches/{coach_id}/calendar")
async def coach_calendar(
    coach_id: str,
    start_date: str = Query(...),
    end_date: str = Query(...),
    db: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    days: List[Dict[str, Any]] = await get_calendar(db, coach_id, parse_date(start_date), parse_date(end_date))
    return {"coach_id": coach_id, "days": days}
