"""
Tests for weekly working hours -> slot generation.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from coachcal.db.models.availability import Availability, BlackoutInterval, WorkingHours
from coachcal.services.conflicts import Interval
from coachcal.services.slots import (
    AvailabilitySnapshot,
    Slot,
    candidate_offsets,
    find_slot,
    generate_slots,
)

UTC = timezone.utc
MONDAY = date(2030, 1, 7)
SUNDAY = date(2030, 1, 6)
NINE_TO_FIVE = {1: (9 * 60, 17 * 60)}


def at(hour, minute=0, day=MONDAY):
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def snapshot(**overrides):
    values = dict(time_zone="UTC", default_duration=30, buffer_time=0, working_hours=NINE_TO_FIVE)
    values.update(overrides)
    return AvailabilitySnapshot(**values)


@pytest.mark.unit
class TestCandidateOffsets:
    """Walking a working window in duration + buffer steps"""

    def test_fills_window_exactly(self):
        offsets = candidate_offsets(540, 1020, 30, 0)
        assert len(offsets) == 16
        assert offsets[0] == 540
        assert offsets[-1] == 990

    def test_buffer_spaces_slots_apart(self):
        # 09:00-11:00 with 30 min slots and 15 min buffer: 09:00, 09:45, 10:30
        assert candidate_offsets(540, 660, 30, 15) == [540, 585, 630]

    def test_last_slot_must_fit_before_end(self):
        assert candidate_offsets(540, 600, 45, 0) == [540]

    def test_window_shorter_than_duration_yields_nothing(self):
        assert candidate_offsets(540, 560, 30, 0) == []

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValueError):
            candidate_offsets(540, 1020, 0, 0)


@pytest.mark.unit
class TestGenerateSlots:
    """Slots for one local day"""

    def test_full_day_without_bookings(self):
        slots = generate_slots(snapshot(), [], None, MONDAY)

        assert len(slots) == 16
        assert slots[0].start_time == at(9)
        assert slots[-1].end_time == at(17)
        assert all(s.duration == 30 and s.time_zone == "UTC" for s in slots)

    def test_day_without_working_hours_is_empty(self):
        assert generate_slots(snapshot(), [], None, SUNDAY) == []

    def test_existing_booking_removes_only_its_slot(self):
        busy = [Interval(at(10), at(10, 30))]
        starts = [s.start_time for s in generate_slots(snapshot(), busy, None, MONDAY)]

        assert at(10) not in starts
        assert at(9, 30) in starts
        assert at(10, 30) in starts
        assert len(starts) == 15

    def test_partial_overlap_blocks_both_neighbours(self):
        busy = [Interval(at(10, 15), at(10, 45))]
        starts = [s.start_time for s in generate_slots(snapshot(), busy, None, MONDAY)]

        assert at(10) not in starts
        assert at(10, 30) not in starts
        assert at(11) in starts

    def test_touching_intervals_do_not_conflict(self):
        busy = [Interval(at(9, 30), at(10))]
        starts = [s.start_time for s in generate_slots(snapshot(), busy, None, MONDAY)]

        assert at(9) in starts
        assert at(10) in starts
        assert at(9, 30) not in starts

    def test_snapshot_blackouts_apply_by_default(self):
        snap = snapshot(blackouts=(Interval(at(12), at(14), "lunch"),))
        starts = [s.start_time for s in generate_slots(snap, [], None, MONDAY)]

        assert len(starts) == 12
        assert at(12) not in starts and at(13, 30) not in starts
        assert at(14) in starts

    def test_explicit_blackouts_override_snapshot(self):
        snap = snapshot(blackouts=(Interval(at(12), at(14)),))
        slots = generate_slots(snap, [], [], MONDAY)
        assert len(slots) == 16

    def test_buffer_reduces_slot_count(self):
        slots = generate_slots(snapshot(buffer_time=10), [], None, MONDAY)
        # floor((480 + 10) / (30 + 10))
        assert len(slots) == 12
        assert slots[1].start_time == at(9, 40)

    def test_local_time_zone_is_converted_to_utc(self):
        slots = generate_slots(snapshot(time_zone="America/Edmonton"), [], None, MONDAY)
        # January: MST, UTC-7
        assert slots[0].start_time == at(16)
        assert slots[0].time_zone == "America/Edmonton"

    def test_daylight_saving_shift_follows_wall_clock(self):
        # 2030-03-11 is the Monday after US clocks spring forward
        day = date(2030, 3, 11)
        slots = generate_slots(snapshot(time_zone="America/New_York"), [], None, day)
        assert slots[0].start_time == at(13, day=day)

    def test_same_inputs_same_output(self):
        busy = [Interval(at(11), at(12))]
        first = generate_slots(snapshot(), busy, None, MONDAY)
        second = generate_slots(snapshot(), busy, None, MONDAY)
        assert first == second


@pytest.mark.unit
class TestSnapshotAndSlotHelpers:
    """Snapshot building and slot lookup"""

    def test_snapshot_from_model(self):
        availability = Availability(
            time_zone="UTC",
            default_duration=45,
            buffer_time=None,
            working_hours=[WorkingHours(day_of_week=2, start_time="08:30", end_time="12:00")],
            blackouts=[BlackoutInterval(starts_at=at(8), ends_at=at(9), reason=None)],
        )
        snap = AvailabilitySnapshot.from_model(availability)

        assert snap.default_duration == 45
        assert snap.buffer_time == 0
        assert snap.working_hours == {2: (510, 720)}
        assert snap.blackouts[0].label == "blackout"

    def test_find_slot_matches_exact_start(self):
        slots = generate_slots(snapshot(), [], None, MONDAY)
        assert find_slot(slots, at(10)).start_time == at(10)
        assert find_slot(slots, at(10, 10)) is None

    def test_to_dict_includes_capacity_only_when_annotated(self):
        plain = Slot(at(9), 30, "UTC").to_dict()
        pooled = Slot(at(9), 30, "UTC", capacity=3, booked=1, available=2).to_dict()

        assert "capacity" not in plain
        assert plain["end_time"] == (at(9) + timedelta(minutes=30)).isoformat()
        assert pooled["available"] == 2
