# coachcal/services/events.py
"""
Fire-and-forget domain events for downstream automation (WhatsApp flows,
reminder delivery, CRM triggers).

Events go to a Redis pub/sub channel when Redis is configured; otherwise they
are only logged. Publishing is always wrapped as a best-effort call by callers.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Optional, Protocol

from coachcal.core.config import settings
from coachcal.core.logging import get_logger
from coachcal.db.models.appointment import Appointment
from coachcal.services.redis_client import get_redis_client

logger = get_logger("events")

APPOINTMENT_BOOKED = "appointment_booked"
APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
APPOINTMENT_CANCELLED = "appointment_cancelled"
APPOINTMENT_ASSIGNED = "appointment_assigned"
APPOINTMENT_REMINDER_TIME = "appointment_reminder_time"
LEAD_ASSIGNED = "lead_assigned"


def appointment_payload(appt: Appointment, **extra: Any) -> Dict[str, Any]:
    payload = {
        "appointmentId": appt.id,
        "leadId": appt.lead_id,
        "coachId": appt.coach_id,
        "assignedStaffId": appt.assigned_staff_id,
        "startTime": appt.starts_at.isoformat(),
        "duration": appt.duration_min,
    }
    payload.update(extra)
    return payload


class EventPublisher(Protocol):
    async def publish(self, event: str, payload: Dict[str, Any]) -> None: ...


class LoggingEventPublisher:
    """Used when no broker is configured; keeps the event in the logs."""

    async def publish(self, event: str, payload: Dict[str, Any]) -> None:
        logger.info("event_published", event_name=event, payload=payload, transport="log")


class RedisEventPublisher:
    def __init__(self, client, channel: Optional[str] = None):
        self.client = client
        self.channel = channel or settings.EVENTS_CHANNEL

    async def publish(self, event: str, payload: Dict[str, Any]) -> None:
        message = json.dumps({"event": event, "payload": payload}, default=str)
        receivers = await self.client.publish(self.channel, message)
        logger.info("event_published", event_name=event, channel=self.channel, receivers=receivers)


def get_event_publisher() -> EventPublisher:
    client = get_redis_client()
    if client is None:
        return LoggingEventPublisher()
    return RedisEventPublisher(client)
