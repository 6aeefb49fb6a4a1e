# coachcal/services/conflicts.py
"""
Double-booking detection.

All intervals are half-open ``[start, end)``: an appointment ending at 10:00
does not collide with one starting at 10:00.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.crud.appointment import list_overlapping_appointments
from coachcal.crud.staff import list_overlapping_calendar_events
from coachcal.services.owners import CalendarOwner


@dataclass(frozen=True)
class Interval:
    start: datetime
    end: datetime
    label: str = ""

    @classmethod
    def from_duration(cls, start: datetime, minutes: int, label: str = "") -> "Interval":
        return cls(start, start + timedelta(minutes=minutes), label)

    def overlaps(self, other: "Interval") -> bool:
        return overlaps(self.start, self.end, other.start, other.end)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_overlapping(intervals: Iterable[Interval], start: datetime, end: datetime) -> list[Interval]:
    probe = Interval(start, end)
    return [iv for iv in intervals if iv.overlaps(probe)]


def any_overlap(intervals: Iterable[Interval], start: datetime, end: datetime) -> bool:
    probe = Interval(start, end)
    return any(iv.overlaps(probe) for iv in intervals)


async def load_busy_intervals(
    db: AsyncSession,
    owner: CalendarOwner,
    window_start: datetime,
    window_end: datetime,
    *,
    exclude_appointment_id: Optional[int] = None,
) -> list[Interval]:
    """Blocking appointments (and, for staff, own calendar events) touching the window."""
    appts = await list_overlapping_appointments(
        db,
        owner_filter=owner.appointment_filter(),
        start_utc=window_start,
        end_utc=window_end,
        exclude_id=exclude_appointment_id,
    )
    busy = [Interval(a.starts_at, a.ends_at, f"appointment:{a.id}") for a in appts]

    if owner.staff_id is not None:
        events = await list_overlapping_calendar_events(
            db, staff_id=owner.staff_id, start_utc=window_start, end_utc=window_end
        )
        busy.extend(Interval(e.starts_at, e.ends_at, f"calendar_event:{e.id}") for e in events)

    return busy


async def find_conflicts(
    db: AsyncSession,
    owner: CalendarOwner,
    start: datetime,
    end: datetime,
    *,
    blackouts: Sequence[Interval] = (),
    exclude_appointment_id: Optional[int] = None,
) -> list[Interval]:
    conflicts = find_overlapping(blackouts, start, end)
    conflicts.extend(
        await load_busy_intervals(db, owner, start, end, exclude_appointment_id=exclude_appointment_id)
    )
    return conflicts


async def has_conflict(
    db: AsyncSession,
    owner: CalendarOwner,
    start: datetime,
    end: datetime,
    *,
    blackouts: Sequence[Interval] = (),
    exclude_appointment_id: Optional[int] = None,
) -> bool:
    conflicts = await find_conflicts(
        db, owner, start, end, blackouts=blackouts, exclude_appointment_id=exclude_appointment_id
    )
    return bool(conflicts)
