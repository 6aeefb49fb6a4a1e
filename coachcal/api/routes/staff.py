# coachcal/api/routes/staff.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.api.deps import get_cache, get_coach_id, get_coach_staff
from coachcal.core.timeutil import parse_date
from coachcal.db.models.staff import Staff
from coachcal.db.session import get_session
from coachcal.schemas.availability import AvailabilityOut, SlotsOut, StaffAvailabilityIn
from coachcal.schemas.staff import DistributionIn, StaffOut
from coachcal.services import assignment as assignment_service
from coachcal.services import availability as availability_service
from coachcal.services.calendar import list_available_slots
from coachcal.services.owners import StaffOwner
from coachcal.services.slot_cache import SlotCache

router = APIRouter(tags=["staff"])


@router.get("/staff/{staff_id}/availability", response_model=AvailabilityOut)
async def read_staff_availability(
    staff: Staff = Depends(get_coach_staff),
    db: AsyncSession = Depends(get_session),
):
    """Staff calendar; copied from the coach's on first read."""
    availability = await availability_service.get_staff_availability(db, staff)
    return AvailabilityOut.from_model(availability)


@router.put("/staff/{staff_id}/availability", response_model=AvailabilityOut)
async def set_staff_availability(
    payload: StaffAvailabilityIn,
    staff: Staff = Depends(get_coach_staff),
    db: AsyncSession = Depends(get_session),
    cache: SlotCache = Depends(get_cache),
):
    availability = await availability_service.set_availability(
        db,
        StaffOwner.of(staff.id, staff.coach_id),
        working_hours=payload.working_hours,
        time_zone=payload.time_zone,
        default_duration=payload.default_duration,
        buffer_time=payload.buffer_time,
        blackouts=payload.blackouts,
    )
    await cache.invalidate(staff.coach_id)
    return AvailabilityOut.from_model(availability)


@router.get("/staff/{staff_id}/available-slots", response_model=SlotsOut)
async def staff_available_slots(
    date: str = Query(...),
    staff: Staff = Depends(get_coach_staff),
    db: AsyncSession = Depends(get_session),
    cache: SlotCache = Depends(get_cache),
):
    day = parse_date(date)
    slots = await list_available_slots(db, StaffOwner.of(staff.id, staff.coach_id), day, staff=staff, cache=cache)
    return {"date": day.isoformat(), "slots": slots}


@router.put("/staff/{staff_id}/distribution", response_model=StaffOut)
async def set_distribution(
    staff_id: int,
    payload: DistributionIn,
    coach_id: str = Depends(get_coach_id),
    db: AsyncSession = Depends(get_session),
):
    staff = await assignment_service.set_distribution_ratio(db, coach_id, staff_id, payload.distribution_ratio)
    return StaffOut.model_validate(staff)


@router.get("/assignment/stats")
async def assignment_stats(
    days: int = Query(30, ge=1, le=365),
    coach_id: str = Depends(get_coach_id),
    db: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    return await assignment_service.assignment_stats(db, coach_id, days=days)
