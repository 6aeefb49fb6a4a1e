# coachcal/services/slots.py
"""
Slot generation: recurring weekly working hours -> bookable slots for one day.

Pure computation, no I/O. Callers load the availability snapshot and the busy
intervals; the same inputs always yield the same slots.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Mapping, Optional, Sequence

from coachcal.core.timeutil import day_of_week, get_zone, hhmm_to_minutes, local_minutes_to_utc
from coachcal.db.models.availability import Availability
from coachcal.services.conflicts import Interval, any_overlap


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """Immutable view of one owner's availability used for slot generation."""
    time_zone: str
    default_duration: int
    buffer_time: int = 0
    # day_of_week (0=Sun) -> (start_minutes, end_minutes)
    working_hours: Mapping[int, tuple[int, int]] = field(default_factory=dict)
    blackouts: tuple[Interval, ...] = ()

    @classmethod
    def from_model(cls, availability: Availability) -> "AvailabilitySnapshot":
        return cls(
            time_zone=availability.time_zone,
            default_duration=availability.default_duration,
            buffer_time=availability.buffer_time or 0,
            working_hours={
                wh.day_of_week: (hhmm_to_minutes(wh.start_time), hhmm_to_minutes(wh.end_time))
                for wh in availability.working_hours
            },
            blackouts=tuple(
                Interval(b.starts_at, b.ends_at, b.reason or "blackout")
                for b in availability.blackouts
            ),
        )


@dataclass
class Slot:
    start_time: datetime
    duration: int
    time_zone: str
    capacity: Optional[int] = None
    booked: Optional[int] = None
    available: Optional[int] = None

    @property
    def end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration)

    def to_dict(self) -> dict:
        data = {
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "duration": self.duration,
            "time_zone": self.time_zone,
        }
        if self.capacity is not None:
            data.update(capacity=self.capacity, booked=self.booked, available=self.available)
        return data


def candidate_offsets(start_min: int, end_min: int, duration: int, buffer: int) -> list[int]:
    """Minute offsets of every slot start that still fits before ``end_min``."""
    if duration <= 0:
        raise ValueError("slot duration must be positive")
    step = duration + max(buffer, 0)
    offsets = []
    current = start_min
    while current + duration <= end_min:
        offsets.append(current)
        current += step
    return offsets


def generate_slots(
    availability: AvailabilitySnapshot,
    existing: Iterable[Interval],
    blackouts: Optional[Sequence[Interval]],
    day: date,
) -> list[Slot]:
    """
    Free slots for ``day`` (a calendar date in the owner's time zone).

    ``existing`` are the owner's blocking appointments/events; ``blackouts``
    defaults to the snapshot's own blackout list. Candidates colliding with
    either are skipped, later candidates are still considered.
    """
    window = availability.working_hours.get(day_of_week(day))
    if not window:
        return []

    tz = get_zone(availability.time_zone)
    start_min, end_min = window
    busy = list(existing)
    blocked = list(availability.blackouts if blackouts is None else blackouts)

    slots: list[Slot] = []
    for offset in candidate_offsets(start_min, end_min, availability.default_duration, availability.buffer_time):
        slot_start = local_minutes_to_utc(day, offset, tz)
        slot_end = slot_start + timedelta(minutes=availability.default_duration)

        if any_overlap(blocked, slot_start, slot_end) or any_overlap(busy, slot_start, slot_end):
            continue

        slots.append(Slot(slot_start, availability.default_duration, availability.time_zone))

    return slots


def find_slot(slots: Iterable[Slot], start: datetime) -> Optional[Slot]:
    for slot in slots:
        if slot.start_time == start:
            return slot
    return None
