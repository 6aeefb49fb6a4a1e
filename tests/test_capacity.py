"""
Tests for staff pooling: slot capacity, seat allocation and pooled listings.
"""

import pytest

from coachcal.crud.appointment import build_appointment, create_appointment_unique
from coachcal.db.models.availability import Availability
from coachcal.services.calendar import compute_available_slots
from coachcal.services.capacity import (
    annotate_slots,
    first_free_seat,
    multi_seat,
    peak_overlap,
    pooling_active,
    slot_capacity,
)
from coachcal.services.conflicts import Interval
from coachcal.services.owners import CoachOwner
from coachcal.services.slots import Slot

from conftest import COACH_ID, MONDAY, POOLED_ASSIGNMENT, seed_coach, seed_staff, utc


def policy(enabled=True, consider=True, multiple=True):
    return Availability(
        assignment_enabled=enabled,
        consider_staff_availability=consider,
        allow_multiple_staff_same_slot=multiple,
    )


@pytest.mark.unit
class TestPoolingFlags:
    """When pooling and multi-seat slots apply"""

    def test_pooling_needs_assignment_and_staff_consideration(self):
        assert pooling_active(policy())
        assert not pooling_active(policy(enabled=False))
        assert not pooling_active(policy(consider=False))
        assert not pooling_active(None)

    def test_multi_seat_needs_multiple_staff_flag(self):
        assert multi_seat(policy())
        assert not multi_seat(policy(multiple=False))
        assert not multi_seat(policy(consider=False))

    def test_capacity_per_slot(self):
        assert slot_capacity(3, allow_multiple=True) == 3
        assert slot_capacity(3, allow_multiple=False) == 1
        assert slot_capacity(0, allow_multiple=True) == 0


@pytest.mark.unit
class TestAnnotateSlots:
    """Capacity annotation of generated slots"""

    def test_booked_counts_reduce_availability(self):
        nine, ten = utc(2030, 1, 7, 9), utc(2030, 1, 7, 10)
        base = [Slot(nine, 30, "UTC"), Slot(ten, 30, "UTC")]

        annotated = annotate_slots(base, 3, {ten: 2})

        assert [(s.capacity, s.booked, s.available) for s in annotated] == [(3, 0, 3), (3, 2, 1)]

    def test_full_slots_are_dropped(self):
        nine = utc(2030, 1, 7, 9)
        assert annotate_slots([Slot(nine, 30, "UTC")], 2, {nine: 2}) == []

    def test_no_staff_means_no_slots(self):
        assert annotate_slots([Slot(utc(2030, 1, 7, 9), 30, "UTC")], 0, {}) == []

    def test_first_free_seat(self):
        assert first_free_seat([], 2) == 0
        assert first_free_seat([0], 2) == 1
        assert first_free_seat([1], 2) == 0
        assert first_free_seat([0, 1], 2) is None
        assert first_free_seat([], 0) is None

    def test_peak_overlap_counts_simultaneous_bookings(self):
        def iv(start_hour, start_min, minutes):
            return Interval.from_duration(utc(2030, 1, 7, start_hour, start_min), minutes)

        start, end = utc(2030, 1, 7, 10), utc(2030, 1, 7, 11)
        assert peak_overlap([], start, end) == 0
        # back-to-back bookings never run at the same time
        assert peak_overlap([iv(10, 0, 30), iv(10, 30, 30)], start, end) == 1
        assert peak_overlap([iv(9, 30, 60), iv(10, 15, 30), iv(10, 30, 30)], start, end) == 2
        assert peak_overlap([iv(10, 0, 60), iv(10, 15, 30), iv(10, 30, 15)], start, end) == 3
        # outside the window
        assert peak_overlap([iv(11, 0, 30), iv(9, 0, 60)], start, end) == 0


@pytest.mark.integration
class TestPooledListing:
    """Pooled coach slots computed against the database"""

    @pytest.mark.asyncio
    async def test_capacity_counts_only_eligible_staff(self, db):
        availability = await seed_coach(db, assignment=POOLED_ASSIGNMENT)
        await seed_staff(db, "Ana")
        await seed_staff(db, "Ben", permissions=("calendar:book",))
        await seed_staff(db, "Cy", permissions=("leads:read",))
        await seed_staff(db, "Dee", is_active=False)

        slots = await compute_available_slots(db, CoachOwner.of(COACH_ID), availability, MONDAY)

        assert len(slots) == 16
        assert {s.capacity for s in slots} == {2}

    @pytest.mark.asyncio
    async def test_bookings_consume_capacity_until_slot_disappears(self, db):
        availability = await seed_coach(db, assignment=POOLED_ASSIGNMENT)
        await seed_staff(db, "Ana")
        await seed_staff(db, "Ben")
        ten = utc(2030, 1, 7, 10)
        owner = CoachOwner.of(COACH_ID)

        for seat in range(2):
            await create_appointment_unique(db, build_appointment(
                coach_id=COACH_ID, lead_id=f"lead-{seat}", starts_at_utc=ten,
                duration_min=30, time_zone="UTC", seat=seat,
            ))
            slots = await compute_available_slots(db, owner, availability, MONDAY)
            at_ten = [s for s in slots if s.start_time == ten]
            if seat == 0:
                assert at_ten[0].booked == 1
                assert at_ten[0].available == 1
            else:
                assert at_ten == []

    @pytest.mark.asyncio
    async def test_pool_without_eligible_staff_offers_nothing(self, db):
        availability = await seed_coach(db, assignment=POOLED_ASSIGNMENT)
        slots = await compute_available_slots(db, CoachOwner.of(COACH_ID), availability, MONDAY)
        assert slots == []

    @pytest.mark.asyncio
    async def test_single_seat_pool_hides_booked_slots(self, db):
        availability = await seed_coach(db, assignment={**POOLED_ASSIGNMENT, "allow_multiple_staff_same_slot": False})
        await seed_staff(db, "Ana")
        await seed_staff(db, "Ben")
        ten = utc(2030, 1, 7, 10)
        await create_appointment_unique(db, build_appointment(
            coach_id=COACH_ID, lead_id="lead-1", starts_at_utc=ten, duration_min=30, time_zone="UTC",
        ))

        slots = await compute_available_slots(db, CoachOwner.of(COACH_ID), availability, MONDAY)

        assert ten not in [s.start_time for s in slots]
        assert {s.capacity for s in slots} == {1}
