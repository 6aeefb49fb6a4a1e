# coachcal/crud/reminder.py

from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.db.models.reminder import (
    MeetingCredential,
    ScheduledReminder,
    REMINDER_CANCELLED,
    REMINDER_PENDING,
)


async def cancel_pending(db: AsyncSession, appointment_id: int) -> int:
    """Mark every pending reminder of an appointment cancelled (not committed)."""
    res = await db.execute(
        sa.update(ScheduledReminder)
        .where(
            ScheduledReminder.appointment_id == appointment_id,
            ScheduledReminder.status == REMINDER_PENDING,
        )
        .values(status=REMINDER_CANCELLED)
        .execution_options(synchronize_session=False)
    )
    return res.rowcount or 0


async def list_for_appointment(
    db: AsyncSession, appointment_id: int, *, status: Optional[str] = None
) -> Sequence[ScheduledReminder]:
    q = sa.select(ScheduledReminder).where(ScheduledReminder.appointment_id == appointment_id)
    if status is not None:
        q = q.where(ScheduledReminder.status == status)
    res = await db.execute(q.order_by(ScheduledReminder.fire_at.asc()))
    return res.scalars().all()


async def list_due(db: AsyncSession, *, now: datetime, limit: int = 100) -> Sequence[ScheduledReminder]:
    q = (
        sa.select(ScheduledReminder)
        .where(ScheduledReminder.status == REMINDER_PENDING, ScheduledReminder.fire_at <= now)
        .order_by(ScheduledReminder.fire_at.asc(), ScheduledReminder.id.asc())
        .limit(limit)
    )
    res = await db.execute(q)
    return res.scalars().all()


async def get_meeting_credential(db: AsyncSession, owner_id: str) -> Optional[MeetingCredential]:
    res = await db.execute(sa.select(MeetingCredential).where(MeetingCredential.owner_id == str(owner_id)))
    return res.scalar_one_or_none()
