"""
Tests for reminder scheduling and the due-reminder dispatcher.
"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from coachcal.core.errors import NotFoundError
from coachcal.crud import reminder as reminder_crud
from coachcal.crud.appointment import build_appointment, create_appointment_unique, save_appointment
from coachcal.db.models.appointment import STATUS_CANCELLED
from coachcal.db.models.reminder import REMINDER_CANCELLED, REMINDER_PENDING, REMINDER_SENT
from coachcal.db.types import utcnow
from coachcal.services.events import APPOINTMENT_REMINDER_TIME
from coachcal.services.reminders import ReminderService, dispatch_due_reminders

from conftest import COACH_ID, seed_coach, utc

FAR_FUTURE = utc(2031, 1, 1)


async def appointment_at(db, starts_at, lead="lead-1"):
    return await create_appointment_unique(db, build_appointment(
        coach_id=COACH_ID, lead_id=lead, starts_at_utc=starts_at, duration_min=30, time_zone="UTC",
    ))


@pytest.mark.integration
class TestScheduling:
    """Materialising reminder rows"""

    @pytest.mark.asyncio
    async def test_default_offsets(self, db):
        appt = await appointment_at(db, utc(2030, 1, 7, 10))

        result = await ReminderService(db).schedule_reminders(appt.id, COACH_ID)

        assert result == {"scheduled_count": 3, "total_configured": 3}
        rows = await reminder_crud.list_for_appointment(db, appt.id)
        assert [r.fire_at for r in rows] == [
            utc(2030, 1, 4, 10),
            utc(2030, 1, 6, 10),
            utc(2030, 1, 7, 9, 50),
        ]
        assert {r.channel for r in rows} == {"whatsapp"}

    @pytest.mark.asyncio
    async def test_coach_offsets(self, db):
        await seed_coach(db, reminders={"offsets": [{"minutes_before": 120, "channel": "email", "name": "Two hours"}]})
        appt = await appointment_at(db, utc(2030, 1, 7, 10))

        result = await ReminderService(db).schedule_reminders(appt.id, COACH_ID)

        assert result == {"scheduled_count": 1, "total_configured": 1}
        (row,) = await reminder_crud.list_for_appointment(db, appt.id)
        assert row.name == "Two hours"
        assert row.channel == "email"
        assert row.fire_at == utc(2030, 1, 7, 8)

    @pytest.mark.asyncio
    async def test_disabled(self, db):
        await seed_coach(db, reminders={"enabled": False})
        appt = await appointment_at(db, utc(2030, 1, 7, 10))

        result = await ReminderService(db).schedule_reminders(appt.id, COACH_ID)

        assert result == {"scheduled_count": 0, "total_configured": 0}
        assert await reminder_crud.list_for_appointment(db, appt.id) == []

    @pytest.mark.asyncio
    async def test_past_offsets_are_skipped(self, db):
        soon = (utcnow() + timedelta(hours=2)).replace(microsecond=0)
        appt = await appointment_at(db, soon)

        result = await ReminderService(db).schedule_reminders(appt.id, COACH_ID)

        assert result == {"scheduled_count": 1, "total_configured": 3}

    @pytest.mark.asyncio
    async def test_rescheduling_replaces_pending(self, db):
        appt = await appointment_at(db, utc(2030, 1, 7, 10))
        service = ReminderService(db)
        await service.schedule_reminders(appt.id, COACH_ID)

        await service.reschedule_reminders(appt.id, COACH_ID)

        pending = await reminder_crud.list_for_appointment(db, appt.id, status=REMINDER_PENDING)
        cancelled = await reminder_crud.list_for_appointment(db, appt.id, status=REMINDER_CANCELLED)
        assert len(pending) == 3
        assert len(cancelled) == 3

    @pytest.mark.asyncio
    async def test_cancel(self, db):
        appt = await appointment_at(db, utc(2030, 1, 7, 10))
        service = ReminderService(db)
        await service.schedule_reminders(appt.id, COACH_ID)

        assert await service.cancel_reminders(appt.id) == 3
        assert await service.cancel_reminders(appt.id) == 0

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, db):
        with pytest.raises(NotFoundError):
            await ReminderService(db).schedule_reminders(999, COACH_ID)


@pytest.mark.integration
class TestDispatch:
    """Turning due reminders into events"""

    @pytest.mark.asyncio
    async def test_due_reminders_are_published_once(self, db, publisher):
        appt = await appointment_at(db, utc(2030, 1, 7, 10))
        await ReminderService(db).schedule_reminders(appt.id, COACH_ID)

        sent = await dispatch_due_reminders(db, publisher, now=utc(2030, 1, 6, 12))

        # only the 3-day and 1-day reminders are due by then
        assert sent == 2
        event, payload = publisher.publish.await_args_list[0].args
        assert event == APPOINTMENT_REMINDER_TIME
        assert payload["appointmentId"] == appt.id
        assert payload["minutesBefore"] == 3 * 24 * 60
        assert await dispatch_due_reminders(db, publisher, now=utc(2030, 1, 6, 12)) == 0

        statuses = [r.status for r in await reminder_crud.list_for_appointment(db, appt.id)]
        assert statuses == [REMINDER_SENT, REMINDER_SENT, REMINDER_PENDING]

    @pytest.mark.asyncio
    async def test_cancelled_appointment_reminders_are_dropped(self, db, publisher):
        appt = await appointment_at(db, utc(2030, 1, 7, 10))
        await ReminderService(db).schedule_reminders(appt.id, COACH_ID)
        appt.status = STATUS_CANCELLED
        await save_appointment(db, appt)

        sent = await dispatch_due_reminders(db, publisher, now=FAR_FUTURE)

        assert sent == 0
        publisher.publish.assert_not_awaited()
        statuses = {r.status for r in await reminder_crud.list_for_appointment(db, appt.id)}
        assert statuses == {REMINDER_CANCELLED}

    @pytest.mark.asyncio
    async def test_failed_publish_stays_pending(self, db):
        appt = await appointment_at(db, utc(2030, 1, 7, 10))
        await ReminderService(db).schedule_reminders(appt.id, COACH_ID)
        publisher = AsyncMock()
        publisher.publish = AsyncMock(side_effect=ConnectionError("down"))

        sent = await dispatch_due_reminders(db, publisher, now=FAR_FUTURE)

        assert sent == 0
        statuses = {r.status for r in await reminder_crud.list_for_appointment(db, appt.id)}
        assert statuses == {REMINDER_PENDING}
