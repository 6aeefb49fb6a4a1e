# coachcal/services/reminders.py
"""
Appointment reminders.

Scheduling materialises one pending row per configured offset; a worker
(`coachcal.worker`) later turns due rows into ``appointment_reminder_time``
events. Delivery itself (WhatsApp, email) belongs to whoever consumes them.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.core.errors import NotFoundError
from coachcal.core.logging import get_logger
from coachcal.crud import reminder as reminder_crud
from coachcal.crud.appointment import get_appointment
from coachcal.db.models.reminder import (
    ScheduledReminder,
    REMINDER_CANCELLED,
    REMINDER_SENT,
)
from coachcal.db.types import utcnow
from coachcal.services.availability import get_coach_availability
from coachcal.services.events import APPOINTMENT_REMINDER_TIME, EventPublisher, appointment_payload

logger = get_logger("reminders")

DEFAULT_REMINDER_OFFSETS: List[Dict[str, Any]] = [
    {"name": "3 Days Before", "minutes_before": 3 * 24 * 60, "channel": "whatsapp"},
    {"name": "1 Day Before", "minutes_before": 24 * 60, "channel": "whatsapp"},
    {"name": "10 Minutes Before", "minutes_before": 10, "channel": "whatsapp"},
]


class ReminderService:
    """Schedules and cancels reminder rows for appointments."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def schedule_reminders(self, appointment_id: int, coach_id: str) -> Dict[str, int]:
        """
        Replace any pending reminders of the appointment with fresh ones.

        Returns ``{"scheduled_count", "total_configured"}``; offsets whose fire
        time has already passed are counted as configured but not scheduled.
        """
        appt = await get_appointment(self.db, appointment_id, coach_id=coach_id)
        if appt is None:
            raise NotFoundError("Appointment not found.")

        policy = await get_coach_availability(self.db, coach_id)
        await reminder_crud.cancel_pending(self.db, appointment_id)
        if not policy.reminders_enabled:
            await self.db.commit()
            return {"scheduled_count": 0, "total_configured": 0}

        offsets = policy.reminder_offsets or DEFAULT_REMINDER_OFFSETS
        now = utcnow()
        scheduled = 0
        for offset in offsets:
            fire_at = appt.starts_at - timedelta(minutes=offset["minutes_before"])
            if fire_at <= now:
                continue
            self.db.add(ScheduledReminder(
                appointment_id=appt.id,
                coach_id=coach_id,
                name=offset["name"],
                minutes_before=offset["minutes_before"],
                channel=offset.get("channel", "whatsapp"),
                fire_at=fire_at,
            ))
            scheduled += 1
        await self.db.commit()

        logger.info("reminders_scheduled", appointment_id=appt.id, scheduled=scheduled, configured=len(offsets))
        return {"scheduled_count": scheduled, "total_configured": len(offsets)}

    async def reschedule_reminders(self, appointment_id: int, coach_id: str) -> Dict[str, int]:
        return await self.schedule_reminders(appointment_id, coach_id)

    async def cancel_reminders(self, appointment_id: int) -> int:
        cancelled = await reminder_crud.cancel_pending(self.db, appointment_id)
        await self.db.commit()
        logger.info("reminders_cancelled", appointment_id=appointment_id, cancelled=cancelled)
        return cancelled


async def dispatch_due_reminders(
    db: AsyncSession,
    publisher: EventPublisher,
    *,
    now: Optional[datetime] = None,
    limit: int = 100,
) -> int:
    """
    Publish ``appointment_reminder_time`` for every due pending reminder.

    Reminders of appointments that no longer block the calendar are cancelled
    instead. A failed publish leaves the row pending for the next poll.
    """
    now = now or utcnow()
    sent = 0
    for reminder in await reminder_crud.list_due(db, now=now, limit=limit):
        appt = await get_appointment(db, reminder.appointment_id)
        if appt is None or not appt.is_blocking:
            reminder.status = REMINDER_CANCELLED
            await db.commit()
            continue

        payload = appointment_payload(
            appt,
            reminderName=reminder.name,
            minutesBefore=reminder.minutes_before,
            channel=reminder.channel,
        )
        try:
            await publisher.publish(APPOINTMENT_REMINDER_TIME, payload)
        except Exception as e:
            logger.warning("reminder_publish_failed", reminder_id=reminder.id, error=str(e))
            continue

        reminder.status = REMINDER_SENT
        reminder.sent_at = now
        await db.commit()
        sent += 1

    if sent:
        logger.info("reminders_dispatched", count=sent)
    return sent
