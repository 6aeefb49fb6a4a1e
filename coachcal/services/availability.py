# coachcal/services/availability.py
"""
Availability store: weekly working hours, blackouts, slot defaults and the
coach's assignment / reminder policy.

Coach availability is created lazily by the first ``set_availability``
call; until then reads return unsaved defaults. Staff availability is copied
from the coach's on first read.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.core.config import settings
from coachcal.core.errors import NotFoundError, ValidationError
from coachcal.core.logging import get_logger
from coachcal.core.timeutil import get_zone, hhmm_to_minutes, parse_to_utc
from coachcal.crud import availability as availability_crud
from coachcal.db.models.availability import (
    OWNER_COACH,
    OWNER_STAFF,
    Availability,
    BlackoutInterval,
    WorkingHours,
)
from coachcal.db.models.staff import Staff
from coachcal.db.types import utcnow
from coachcal.services.owners import CalendarOwner, CoachOwner, StaffOwner

logger = get_logger("availability")

ASSIGNMENT_MODES = ("manual", "automatic")
REMINDER_CHANNELS = ("whatsapp", "email", "sms")


# ---------- validation ----------

def _field(entry: Any, name: str):
    if isinstance(entry, Mapping):
        return entry.get(name)
    return getattr(entry, name, None)


def validate_working_hours(entries: Iterable[Any]) -> list[tuple[int, str, str]]:
    """
    Normalise working-hours entries (mappings or objects with ``day_of_week``,
    ``start_time``, ``end_time``) into sorted ``(day, start, end)`` tuples.
    """
    seen: set[int] = set()
    out: list[tuple[int, str, str]] = []
    for entry in entries:
        day = _field(entry, "day_of_week")
        start = _field(entry, "start_time")
        end = _field(entry, "end_time")
        if not isinstance(day, int) or isinstance(day, bool) or not 0 <= day <= 6:
            raise ValidationError(f"Invalid day_of_week '{day}'. Use 0 (Sunday) to 6 (Saturday).")
        if day in seen:
            raise ValidationError(f"Duplicate working hours for day_of_week {day}.")
        if hhmm_to_minutes(start) >= hhmm_to_minutes(end):
            raise ValidationError(f"Working hours for day {day} must start before they end ({start} >= {end}).")
        seen.add(day)
        out.append((day, start, end))
    return sorted(out)


def validate_slot_settings(time_zone: str, default_duration: int, buffer_time: int) -> None:
    get_zone(time_zone)
    if default_duration is None or default_duration <= 0:
        raise ValidationError("default_duration must be a positive number of minutes.")
    if buffer_time is None or buffer_time < 0:
        raise ValidationError("buffer_time cannot be negative.")


def validate_reminder_offsets(offsets: Optional[Sequence[Any]]) -> Optional[list[dict]]:
    if offsets is None:
        return None
    cleaned = []
    for offset in offsets:
        minutes = _field(offset, "minutes_before")
        channel = _field(offset, "channel") or "whatsapp"
        if not isinstance(minutes, int) or minutes <= 0:
            raise ValidationError("Reminder minutes_before must be a positive integer.")
        if channel not in REMINDER_CHANNELS:
            raise ValidationError(f"Unsupported reminder channel '{channel}'.")
        cleaned.append({
            "name": _field(offset, "name") or f"{minutes} Minutes Before",
            "minutes_before": minutes,
            "channel": channel,
        })
    return cleaned


def validate_blackout(start: datetime, end: datetime) -> None:
    if start >= end:
        raise ValidationError("Blackout start must be before its end.")


# ---------- reads ----------

def default_availability(owner: CalendarOwner, time_zone: Optional[str] = None) -> Availability:
    """Unsaved availability with no working hours."""
    return Availability(
        owner_type=owner.owner_type,
        owner_id=owner.owner_id,
        coach_id=owner.coach_id,
        time_zone=time_zone or settings.DEFAULT_TIMEZONE,
        default_duration=settings.DEFAULT_APPOINTMENT_DURATION,
        buffer_time=0,
        assignment_enabled=False,
        assignment_mode="manual",
        consider_staff_availability=False,
        allow_multiple_staff_same_slot=False,
        reminders_enabled=True,
        reminder_offsets=None,
        copied_from_coach=False,
        working_hours=[],
        blackouts=[],
    )


async def get_coach_availability(
    db: AsyncSession, coach_id: str, *, for_update: bool = False
) -> Availability:
    availability = await availability_crud.get_availability(
        db, owner_type=OWNER_COACH, owner_id=coach_id, for_update=for_update
    )
    if availability is None:
        return default_availability(CoachOwner.of(coach_id))
    return availability


def _copy_from_coach(coach_availability: Availability, owner: StaffOwner) -> Availability:
    copy = Availability(
        owner_type=OWNER_STAFF,
        owner_id=owner.owner_id,
        coach_id=owner.coach_id,
        time_zone=coach_availability.time_zone,
        default_duration=coach_availability.default_duration,
        buffer_time=coach_availability.buffer_time,
        copied_from_coach=True,
        last_synced_with_coach=utcnow(),
    )
    for wh in coach_availability.working_hours:
        copy.working_hours.append(
            WorkingHours(day_of_week=wh.day_of_week, start_time=wh.start_time, end_time=wh.end_time)
        )
    return copy


async def get_staff_availability(db: AsyncSession, staff: Staff) -> Availability:
    """Staff availability, derived from the coach's the first time it is read."""
    owner = StaffOwner.of(staff.id, staff.coach_id)
    availability = await availability_crud.get_availability(db, owner_type=OWNER_STAFF, owner_id=owner.owner_id)
    if availability is not None:
        return availability

    coach_availability = await availability_crud.get_availability(
        db, owner_type=OWNER_COACH, owner_id=staff.coach_id
    )
    if coach_availability is None:
        return default_availability(owner)

    availability = await availability_crud.save_availability(db, _copy_from_coach(coach_availability, owner))
    logger.info("staff_availability_derived", staff_id=staff.id, coach_id=staff.coach_id)
    return availability


async def get_availability_for(db: AsyncSession, owner: CalendarOwner, staff: Optional[Staff] = None) -> Availability:
    if owner.staff_id is None:
        return await get_coach_availability(db, owner.coach_id)
    if staff is None:
        raise ValueError("staff record required for a staff owner")
    return await get_staff_availability(db, staff)


# ---------- writes ----------

async def _load_or_create(db: AsyncSession, owner: CalendarOwner) -> Availability:
    availability = await availability_crud.get_availability(
        db, owner_type=owner.owner_type, owner_id=owner.owner_id
    )
    if availability is None:
        availability = default_availability(owner)
        db.add(availability)
    return availability


def _apply_blackouts(availability: Availability, blackouts: Iterable[Any]) -> None:
    tz = get_zone(availability.time_zone)
    availability.blackouts.clear()
    for entry in blackouts:
        start = parse_to_utc(_field(entry, "start_time"), tz)
        end = parse_to_utc(_field(entry, "end_time"), tz)
        validate_blackout(start, end)
        availability.blackouts.append(
            BlackoutInterval(starts_at=start, ends_at=end, reason=_field(entry, "reason"))
        )


async def set_availability(
    db: AsyncSession,
    owner: CalendarOwner,
    *,
    working_hours: Iterable[Any],
    time_zone: Optional[str] = None,
    default_duration: Optional[int] = None,
    buffer_time: Optional[int] = None,
    blackouts: Optional[Iterable[Any]] = None,
    assignment: Optional[Mapping[str, Any]] = None,
    reminders: Optional[Mapping[str, Any]] = None,
) -> Availability:
    """
    Replace an owner's weekly schedule (and optionally blackouts and policies).

    Everything is validated before anything is written; omitted scalar fields
    keep their stored value. Assignment and reminder policies are coach-only.
    """
    hours = validate_working_hours(working_hours)
    availability = await _load_or_create(db, owner)

    tz_name = time_zone or availability.time_zone
    duration = default_duration if default_duration is not None else availability.default_duration
    buffer = buffer_time if buffer_time is not None else availability.buffer_time
    validate_slot_settings(tz_name, duration, buffer)

    if owner.staff_id is not None and (assignment or reminders):
        raise ValidationError("Assignment and reminder policies can only be set on the coach calendar.")

    if assignment:
        mode = assignment.get("mode", availability.assignment_mode)
        if mode not in ASSIGNMENT_MODES:
            raise ValidationError(f"Invalid assignment mode '{mode}'. Use 'manual' or 'automatic'.")
    offsets = validate_reminder_offsets(reminders.get("offsets")) if reminders else None

    availability.time_zone = tz_name
    availability.default_duration = duration
    availability.buffer_time = buffer
    await availability_crud.replace_working_hours(db, availability, hours)
    if blackouts is not None:
        _apply_blackouts(availability, blackouts)
    if assignment:
        availability.assignment_enabled = bool(assignment.get("enabled", availability.assignment_enabled))
        availability.assignment_mode = assignment.get("mode", availability.assignment_mode)
        availability.consider_staff_availability = bool(
            assignment.get("consider_staff_availability", availability.consider_staff_availability)
        )
        availability.allow_multiple_staff_same_slot = bool(
            assignment.get("allow_multiple_staff_same_slot", availability.allow_multiple_staff_same_slot)
        )
    if reminders:
        availability.reminders_enabled = bool(reminders.get("enabled", availability.reminders_enabled))
        if "offsets" in reminders:
            availability.reminder_offsets = offsets or None
    if owner.staff_id is not None:
        # hand-edited from here on
        availability.copied_from_coach = False

    availability = await availability_crud.save_availability(db, availability)
    logger.info(
        "availability_saved",
        owner_type=owner.owner_type,
        owner_id=owner.owner_id,
        days=[d for d, _, _ in hours],
        time_zone=tz_name,
    )
    return availability


async def add_blackout(
    db: AsyncSession,
    owner: CalendarOwner,
    *,
    start_time: Any,
    end_time: Any,
    reason: Optional[str] = None,
) -> BlackoutInterval:
    availability = await availability_crud.get_availability(
        db, owner_type=owner.owner_type, owner_id=owner.owner_id
    )
    if availability is None:
        availability = await availability_crud.save_availability(db, default_availability(owner))
    tz = get_zone(availability.time_zone)
    start = parse_to_utc(start_time, tz)
    end = parse_to_utc(end_time, tz)
    validate_blackout(start, end)
    blackout = await availability_crud.add_blackout(
        db, availability, starts_at_utc=start, ends_at_utc=end, reason=reason
    )
    await db.refresh(availability, attribute_names=["blackouts"])
    logger.info("blackout_added", owner_id=owner.owner_id, blackout_id=blackout.id)
    return blackout


async def remove_blackout(db: AsyncSession, coach_id: str, blackout_id: int) -> None:
    """Remove a blackout from the coach's calendar or one of the coach's staff calendars."""
    blackout = await availability_crud.get_blackout(db, blackout_id)
    if blackout is None:
        raise NotFoundError("Blackout not found.")
    availability = await db.get(Availability, blackout.availability_id)
    if availability is None or availability.coach_id != str(coach_id):
        raise NotFoundError("Blackout not found.")
    await availability_crud.delete_blackout(db, blackout)
    await db.refresh(availability, attribute_names=["blackouts"])
    logger.info("blackout_removed", coach_id=coach_id, blackout_id=blackout_id)
