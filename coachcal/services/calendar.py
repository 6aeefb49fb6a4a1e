# coachcal/services/calendar.py
"""
Slot listing and calendar views for coaches and staff.

Loads the owner's availability and busy intervals, runs the pure slot
generator and, for pooled coach calendars, annotates each slot with its
remaining staff capacity.
"""
from __future__ import annotations

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.core.config import settings
from coachcal.core.errors import ValidationError
from coachcal.core.logging import get_logger
from coachcal.core.timeutil import get_zone, iter_days, local_day_bounds, local_date_of
from coachcal.crud.appointment import count_blocking_by_start, list_appointments
from coachcal.crud.staff import list_staff
from coachcal.db.models.availability import Availability
from coachcal.db.models.staff import Staff
from coachcal.services.availability import get_availability_for, get_coach_availability
from coachcal.services.capacity import annotate_slots, multi_seat, pooling_active
from coachcal.services.conflicts import load_busy_intervals
from coachcal.services.owners import CalendarOwner, CoachOwner
from coachcal.services.slot_cache import SlotCache
from coachcal.services.slots import AvailabilitySnapshot, Slot, generate_slots

logger = get_logger("calendar")


async def eligible_staff(db: AsyncSession, coach_id: str) -> Sequence[Staff]:
    """Active staff under the coach holding a calendar read/book permission."""
    return await list_staff(db, coach_id=coach_id, active_only=True, calendar_only=True)


async def compute_available_slots(
    db: AsyncSession,
    owner: CalendarOwner,
    availability: Availability,
    day: date,
    *,
    exclude_appointment_id: Optional[int] = None,
) -> List[Slot]:
    """
    Free slots for ``day`` (a date in the owner's time zone), uncached.

    For a coach whose policy pools staff, existing bookings do not remove
    slots; they count against the slot's capacity at their exact start.
    """
    snapshot = AvailabilitySnapshot.from_model(availability)
    tz = get_zone(snapshot.time_zone)
    window_start, window_end = local_day_bounds(day, tz)
    is_coach = owner.staff_id is None

    if is_coach and multi_seat(availability):
        base = generate_slots(snapshot, [], None, day)
    else:
        busy = await load_busy_intervals(
            db, owner, window_start, window_end, exclude_appointment_id=exclude_appointment_id
        )
        base = generate_slots(snapshot, busy, None, day)

    if not (is_coach and pooling_active(availability)):
        return base

    staff = await eligible_staff(db, owner.coach_id)
    bookings = await count_blocking_by_start(
        db,
        coach_id=owner.coach_id,
        start_utc=window_start,
        end_utc=window_end,
        exclude_id=exclude_appointment_id,
    )
    return annotate_slots(base, len(staff), bookings, allow_multiple=multi_seat(availability))


async def list_available_slots(
    db: AsyncSession,
    owner: CalendarOwner,
    day: date,
    *,
    staff: Optional[Staff] = None,
    cache: Optional[SlotCache] = None,
) -> List[Dict[str, Any]]:
    """Slot listing for the HTTP layer; served from the TTL cache when enabled."""
    if cache is not None:
        cached = await cache.get(owner.coach_id, owner.owner_type, owner.owner_id, day)
        if cached is not None:
            logger.debug("slots_cache_hit", owner_id=owner.owner_id, date=day.isoformat())
            return cached

    availability = await get_availability_for(db, owner, staff)
    slots = [s.to_dict() for s in await compute_available_slots(db, owner, availability, day)]

    if cache is not None:
        await cache.set(owner.coach_id, owner.owner_type, owner.owner_id, day, slots)
    logger.info("slots_listed", owner_type=owner.owner_type, owner_id=owner.owner_id,
                date=day.isoformat(), count=len(slots))
    return slots


def _appointment_view(appt) -> Dict[str, Any]:
    return {
        "id": appt.id,
        "lead_id": appt.lead_id,
        "assigned_staff_id": appt.assigned_staff_id,
        "start_time": appt.starts_at.isoformat(),
        "end_time": appt.ends_at.isoformat(),
        "duration": appt.duration_min,
        "status": appt.status,
        "notes": appt.notes,
    }


async def get_calendar(
    db: AsyncSession,
    coach_id: str,
    start_date: date,
    end_date: date,
) -> List[Dict[str, Any]]:
    """Per-day appointments and free slots for the coach over an inclusive date range."""
    if end_date < start_date:
        raise ValidationError("end_date must not be before start_date.")
    span = (end_date - start_date).days + 1
    if span > settings.MAX_CALENDAR_RANGE_DAYS:
        raise ValidationError(f"Date range too large; at most {settings.MAX_CALENDAR_RANGE_DAYS} days.")

    owner = CoachOwner.of(coach_id)
    availability = await get_coach_availability(db, coach_id)
    tz = get_zone(availability.time_zone)
    range_start, _ = local_day_bounds(start_date, tz)
    _, range_end = local_day_bounds(end_date, tz)

    appointments = await list_appointments(db, coach_id=coach_id, start_utc=range_start, end_utc=range_end)
    by_day: Dict[date, list] = {}
    for appt in appointments:
        by_day.setdefault(local_date_of(appt.starts_at, tz), []).append(_appointment_view(appt))

    days = []
    for day in iter_days(start_date, end_date):
        slots = await compute_available_slots(db, owner, availability, day)
        days.append({
            "date": day.isoformat(),
            "appointments": by_day.get(day, []),
            "available_slots": [s.to_dict() for s in slots],
        })
    return days
