# coachcal/services/capacity.py
"""Staff pooling: a coach slot can be sold once per eligible staff member."""
from __future__ import annotations

from datetime import datetime
from typing import Mapping, Sequence

from coachcal.db.models.availability import Availability
from coachcal.services.conflicts import Interval
from coachcal.services.slots import Slot


def pooling_active(policy: Availability | None) -> bool:
    """Capacity annotation applies only when the coach asked to consider staff."""
    return bool(policy and policy.assignment_enabled and policy.consider_staff_availability)


def multi_seat(policy: Availability | None) -> bool:
    """More than one booking per slot start is allowed."""
    return pooling_active(policy) and bool(policy.allow_multiple_staff_same_slot)


def slot_capacity(eligible_staff_count: int, allow_multiple: bool) -> int:
    if not allow_multiple:
        return 1
    return max(eligible_staff_count, 0)


def annotate_slots(
    base_slots: Sequence[Slot],
    eligible_staff_count: int,
    bookings_at_slot: Mapping[datetime, int],
    *,
    allow_multiple: bool = True,
) -> list[Slot]:
    """Attach capacity/booked/available and drop slots with nothing left."""
    capacity = slot_capacity(eligible_staff_count, allow_multiple)
    annotated = []
    for slot in base_slots:
        booked = bookings_at_slot.get(slot.start_time, 0)
        available = capacity - booked
        if available <= 0:
            continue
        annotated.append(Slot(
            slot.start_time, slot.duration, slot.time_zone,
            capacity=capacity, booked=booked, available=available,
        ))
    return annotated


def first_free_seat(taken: Sequence[int], capacity: int) -> int | None:
    """Lowest seat index not held by an active booking, or None when full."""
    used = set(taken)
    for seat in range(capacity):
        if seat not in used:
            return seat
    return None


def peak_overlap(intervals: Sequence[Interval], start: datetime, end: datetime) -> int:
    """Most intervals running at once anywhere inside [start, end)."""
    inside = [iv for iv in intervals if iv.start < end and start < iv.end]
    # concurrency only rises at an interval start, so those are the points to sample
    points = {start} | {iv.start for iv in inside if iv.start > start}
    return max((sum(1 for iv in inside if iv.start <= p < iv.end) for p in points), default=0)
