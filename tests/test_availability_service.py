"""
Tests for availability storage, staff calendar derivation, blackouts and the
calendar view.
"""

from datetime import date

import pytest

from coachcal.core.errors import NotFoundError, ValidationError
from coachcal.crud.appointment import build_appointment, create_appointment_unique
from coachcal.services import availability as availability_service
from coachcal.services.availability import (
    get_coach_availability,
    get_staff_availability,
    set_availability,
    validate_reminder_offsets,
    validate_working_hours,
)
from coachcal.services.calendar import compute_available_slots, get_calendar, list_available_slots
from coachcal.services.owners import CoachOwner, StaffOwner

from conftest import COACH_ID, MONDAY, seed_coach, seed_staff, utc


def hours(day, start, end):
    return {"day_of_week": day, "start_time": start, "end_time": end}


@pytest.mark.unit
class TestWorkingHoursValidation:
    """Weekly schedule input rules"""

    def test_sorted_output(self):
        result = validate_working_hours([hours(5, "10:00", "12:00"), hours(1, "09:00", "17:00")])
        assert result == [(1, "09:00", "17:00"), (5, "10:00", "12:00")]

    @pytest.mark.parametrize("entry", [
        hours(7, "09:00", "17:00"),
        hours(-1, "09:00", "17:00"),
        hours(True, "09:00", "17:00"),
        hours(1, "17:00", "09:00"),
        hours(1, "09:00", "09:00"),
        hours(1, "9am", "17:00"),
        hours(1, "09:00", "24:00"),
    ])
    def test_invalid_entries(self, entry):
        with pytest.raises(ValidationError):
            validate_working_hours([entry])

    def test_duplicate_day_rejected(self):
        with pytest.raises(ValidationError):
            validate_working_hours([hours(1, "09:00", "12:00"), hours(1, "13:00", "17:00")])

    def test_empty_schedule_is_allowed(self):
        assert validate_working_hours([]) == []

    def test_reminder_offsets(self):
        cleaned = validate_reminder_offsets([{"minutes_before": 60}])
        assert cleaned == [{"name": "60 Minutes Before", "minutes_before": 60, "channel": "whatsapp"}]
        with pytest.raises(ValidationError):
            validate_reminder_offsets([{"minutes_before": 60, "channel": "pigeon"}])
        with pytest.raises(ValidationError):
            validate_reminder_offsets([{"minutes_before": 0}])


@pytest.mark.integration
class TestCoachAvailability:
    """Coach availability reads and writes"""

    @pytest.mark.asyncio
    async def test_defaults_before_first_save(self, db):
        availability = await get_coach_availability(db, COACH_ID)

        assert availability.id is None
        assert availability.working_hours == []
        assert availability.time_zone == "UTC"
        assert availability.default_duration == 30

    @pytest.mark.asyncio
    async def test_save_and_replace_schedule(self, db):
        await seed_coach(db)
        updated = await set_availability(
            db, CoachOwner.of(COACH_ID), working_hours=[hours(1, "12:00", "14:00")], default_duration=60
        )

        assert [(wh.day_of_week, wh.start_time, wh.end_time) for wh in updated.working_hours] == [(1, "12:00", "14:00")]
        assert updated.default_duration == 60
        slots = await compute_available_slots(db, CoachOwner.of(COACH_ID), updated, MONDAY)
        assert [s.start_time for s in slots] == [utc(2030, 1, 7, 12), utc(2030, 1, 7, 13)]

    @pytest.mark.asyncio
    async def test_omitted_fields_keep_stored_values(self, db):
        await seed_coach(db, time_zone="Europe/Berlin", buffer_time=15)
        updated = await set_availability(db, CoachOwner.of(COACH_ID), working_hours=[hours(2, "09:00", "10:00")])

        assert updated.time_zone == "Europe/Berlin"
        assert updated.buffer_time == 15

    @pytest.mark.asyncio
    async def test_invalid_settings_write_nothing(self, db):
        with pytest.raises(ValidationError):
            await set_availability(db, CoachOwner.of(COACH_ID), working_hours=[], time_zone="Mars/Olympus")
        await db.rollback()
        with pytest.raises(ValidationError):
            await set_availability(db, CoachOwner.of(COACH_ID), working_hours=[], default_duration=0)
        await db.rollback()

        assert (await get_coach_availability(db, COACH_ID)).id is None

    @pytest.mark.asyncio
    async def test_policies(self, db):
        saved = await seed_coach(
            db,
            assignment={"enabled": True, "mode": "automatic"},
            reminders={"enabled": False},
        )
        assert saved.assignment_enabled and saved.assignment_mode == "automatic"
        assert saved.reminders_enabled is False

        with pytest.raises(ValidationError):
            await set_availability(
                db, CoachOwner.of(COACH_ID), working_hours=[], assignment={"mode": "round-robin"}
            )


@pytest.mark.integration
class TestStaffAvailability:
    """Staff calendars start as a copy of the coach's"""

    @pytest.mark.asyncio
    async def test_copied_from_coach_on_first_read(self, db):
        await seed_coach(db, time_zone="America/Edmonton", default_duration=45)
        ana = await seed_staff(db, "Ana")

        availability = await get_staff_availability(db, ana)

        assert availability.id is not None
        assert availability.copied_from_coach is True
        assert availability.time_zone == "America/Edmonton"
        assert availability.default_duration == 45
        assert [wh.day_of_week for wh in availability.working_hours] == [1, 2, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_editing_staff_calendar_leaves_coach_alone(self, db):
        await seed_coach(db)
        ana = await seed_staff(db, "Ana")
        await get_staff_availability(db, ana)

        staff_availability = await set_availability(
            db, StaffOwner.of(ana.id, COACH_ID), working_hours=[hours(1, "13:00", "14:00")]
        )
        coach_availability = await get_coach_availability(db, COACH_ID)

        assert staff_availability.copied_from_coach is False
        assert len(staff_availability.working_hours) == 1
        assert len(coach_availability.working_hours) == 5

    @pytest.mark.asyncio
    async def test_staff_cannot_set_policies(self, db):
        ana = await seed_staff(db, "Ana")
        with pytest.raises(ValidationError):
            await set_availability(
                db, StaffOwner.of(ana.id, COACH_ID), working_hours=[], assignment={"enabled": True}
            )

    @pytest.mark.asyncio
    async def test_staff_slots_exclude_own_appointments(self, db):
        await seed_coach(db)
        ana = await seed_staff(db, "Ana")
        appt = build_appointment(
            coach_id=COACH_ID, lead_id="l", starts_at_utc=utc(2030, 1, 7, 9), duration_min=30, time_zone="UTC"
        )
        appt.assigned_staff_id = ana.id
        await create_appointment_unique(db, appt)

        slots = await list_available_slots(db, StaffOwner.of(ana.id, COACH_ID), MONDAY, staff=ana)

        assert len(slots) == 15
        assert slots[0]["start_time"] == utc(2030, 1, 7, 9, 30).isoformat()


@pytest.mark.integration
class TestBlackouts:
    """Ad-hoc blocked intervals"""

    @pytest.mark.asyncio
    async def test_add_and_remove(self, db):
        availability = await seed_coach(db)
        owner = CoachOwner.of(COACH_ID)

        blackout = await availability_service.add_blackout(
            db, owner, start_time="2030-01-07T09:00:00", end_time="2030-01-07T12:00:00", reason="workshop"
        )
        slots = await compute_available_slots(db, owner, availability, MONDAY)
        assert len(slots) == 10

        await availability_service.remove_blackout(db, COACH_ID, blackout.id)
        slots = await compute_available_slots(db, owner, availability, MONDAY)
        assert len(slots) == 16

    @pytest.mark.asyncio
    async def test_inverted_blackout_rejected(self, db):
        await seed_coach(db)
        with pytest.raises(ValidationError):
            await availability_service.add_blackout(
                db, CoachOwner.of(COACH_ID), start_time="2030-01-07T12:00:00", end_time="2030-01-07T09:00:00"
            )

    @pytest.mark.asyncio
    async def test_other_coach_cannot_remove(self, db):
        await seed_coach(db)
        blackout = await availability_service.add_blackout(
            db, CoachOwner.of(COACH_ID), start_time="2030-01-07T09:00:00", end_time="2030-01-07T10:00:00"
        )
        with pytest.raises(NotFoundError):
            await availability_service.remove_blackout(db, "coach-2", blackout.id)
        with pytest.raises(NotFoundError):
            await availability_service.remove_blackout(db, COACH_ID, 424242)


@pytest.mark.integration
class TestCalendarView:
    """Per-day appointments and free slots"""

    @pytest.mark.asyncio
    async def test_range_validation(self, db):
        with pytest.raises(ValidationError):
            await get_calendar(db, COACH_ID, date(2030, 1, 8), date(2030, 1, 7))
        with pytest.raises(ValidationError):
            await get_calendar(db, COACH_ID, date(2030, 1, 1), date(2030, 6, 1))

    @pytest.mark.asyncio
    async def test_days_list_appointments_and_slots(self, db):
        await seed_coach(db)
        await create_appointment_unique(db, build_appointment(
            coach_id=COACH_ID, lead_id="l", starts_at_utc=utc(2030, 1, 7, 9), duration_min=30, time_zone="UTC"
        ))

        days = await get_calendar(db, COACH_ID, date(2030, 1, 6), date(2030, 1, 7))

        assert [d["date"] for d in days] == ["2030-01-06", "2030-01-07"]
        assert days[0]["appointments"] == [] and days[0]["available_slots"] == []
        assert len(days[1]["appointments"]) == 1
        assert days[1]["appointments"][0]["lead_id"] == "l"
        assert len(days[1]["available_slots"]) == 15
