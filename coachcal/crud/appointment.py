# coachcal/crud/appointment.py

from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError

from coachcal.core.errors import ConflictError
from coachcal.db.models.appointment import (
    Appointment,
    BLOCKING_STATUSES,
    STATUS_BOOKED,
    STATUS_CANCELLED,
)

SLOT_TAKEN_MESSAGE = "The requested time slot is no longer available."


def build_appointment(
    *,
    coach_id: str,
    lead_id: str,
    starts_at_utc: datetime,
    duration_min: int,
    time_zone: str,
    seat: int = 0,
    notes: Optional[str] = None,
    status: str = STATUS_BOOKED,
) -> Appointment:
    return Appointment(
        coach_id=coach_id,
        lead_id=lead_id,
        starts_at=starts_at_utc,
        ends_at=starts_at_utc + timedelta(minutes=duration_min),
        duration_min=duration_min,
        time_zone=time_zone,
        seat=seat,
        status=status,
        notes=notes,
    )


async def create_appointment_unique(db: AsyncSession, appt: Appointment) -> Appointment:
    """
    Insert and commit. The partial unique index on (coach_id, starts_at, seat)
    rejects a second live booking of the same seat; the loser gets ConflictError.
    """
    db.add(appt)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(SLOT_TAKEN_MESSAGE, code="slot_taken")
    return appt


async def save_appointment(db: AsyncSession, appt: Appointment) -> Appointment:
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(SLOT_TAKEN_MESSAGE, code="slot_taken")
    return appt


async def get_appointment(
    db: AsyncSession,
    appointment_id: int,
    *,
    coach_id: Optional[str] = None,
    for_update: bool = False,
) -> Optional[Appointment]:
    q = sa.select(Appointment).where(Appointment.id == appointment_id)
    if coach_id is not None:
        q = q.where(Appointment.coach_id == coach_id)
    if for_update:
        q = q.with_for_update()
    res = await db.execute(q)
    return res.scalar_one_or_none()


async def list_appointments(
    db: AsyncSession,
    *,
    coach_id: Optional[str] = None,
    assigned_staff_id: Optional[int] = None,
    start_utc: Optional[datetime] = None,
    end_utc: Optional[datetime] = None,
    statuses: Optional[Sequence[str]] = None,
    limit: int = 500,
) -> Sequence[Appointment]:
    q = sa.select(Appointment)
    if coach_id is not None:
        q = q.where(Appointment.coach_id == coach_id)
    if assigned_staff_id is not None:
        q = q.where(Appointment.assigned_staff_id == assigned_staff_id)
    if start_utc is not None:
        q = q.where(Appointment.starts_at >= start_utc)
    if end_utc is not None:
        q = q.where(Appointment.starts_at < end_utc)
    if statuses:
        q = q.where(Appointment.status.in_(statuses))
    q = q.order_by(Appointment.starts_at.asc(), Appointment.id.asc()).limit(limit)
    res = await db.execute(q)
    return res.scalars().all()


async def list_overlapping_appointments(
    db: AsyncSession,
    *,
    owner_filter,
    start_utc: datetime,
    end_utc: datetime,
    exclude_id: Optional[int] = None,
) -> Sequence[Appointment]:
    """Blocking appointments whose [starts_at, ends_at) intersects [start, end)."""
    q = sa.select(Appointment).where(
        owner_filter,
        Appointment.status.in_(BLOCKING_STATUSES),
        Appointment.starts_at < end_utc,
        Appointment.ends_at > start_utc,
    )
    if exclude_id is not None:
        q = q.where(Appointment.id != exclude_id)
    q = q.order_by(Appointment.starts_at.asc())
    res = await db.execute(q)
    return res.scalars().all()


async def count_blocking_by_start(
    db: AsyncSession,
    *,
    coach_id: str,
    start_utc: datetime,
    end_utc: datetime,
    exclude_id: Optional[int] = None,
) -> dict[datetime, int]:
    """Live bookings per exact start time within a window (pooled slots)."""
    q = (
        sa.select(Appointment.starts_at, sa.func.count(Appointment.id))
        .where(
            Appointment.coach_id == coach_id,
            Appointment.status.in_(BLOCKING_STATUSES),
            Appointment.starts_at >= start_utc,
            Appointment.starts_at < end_utc,
        )
    )
    if exclude_id is not None:
        q = q.where(Appointment.id != exclude_id)
    q = q.group_by(Appointment.starts_at)
    res = await db.execute(q)
    return {starts_at: count for starts_at, count in res.all()}


async def taken_seats(
    db: AsyncSession,
    *,
    coach_id: str,
    starts_at_utc: datetime,
    exclude_id: Optional[int] = None,
) -> list[int]:
    q = sa.select(Appointment.seat).where(
        Appointment.coach_id == coach_id,
        Appointment.starts_at == starts_at_utc,
        Appointment.status.in_(BLOCKING_STATUSES),
    )
    if exclude_id is not None:
        q = q.where(Appointment.id != exclude_id)
    res = await db.execute(q)
    return list(res.scalars().all())


async def count_assigned_by_staff(
    db: AsyncSession,
    *,
    coach_id: str,
    staff_ids: Sequence[int],
    since: Optional[datetime] = None,
    statuses: Optional[Sequence[str]] = None,
) -> dict[int, int]:
    """Assigned, non-cancelled appointments per staff member under a coach."""
    if not staff_ids:
        return {}
    q = sa.select(Appointment.assigned_staff_id, sa.func.count(Appointment.id)).where(
        Appointment.coach_id == coach_id,
        Appointment.assigned_staff_id.in_(staff_ids),
    )
    if statuses:
        q = q.where(Appointment.status.in_(statuses))
    else:
        q = q.where(Appointment.status != STATUS_CANCELLED)
    if since is not None:
        q = q.where(Appointment.created_at >= since)
    q = q.group_by(Appointment.assigned_staff_id)
    res = await db.execute(q)
    counts = {staff_id: 0 for staff_id in staff_ids}
    counts.update({staff_id: count for staff_id, count in res.all()})
    return counts


async def count_appointments(
    db: AsyncSession,
    *,
    coach_id: str,
    since: Optional[datetime] = None,
    assigned_only: bool = False,
) -> int:
    q = sa.select(sa.func.count(Appointment.id)).where(Appointment.coach_id == coach_id)
    if since is not None:
        q = q.where(Appointment.created_at >= since)
    if assigned_only:
        q = q.where(Appointment.assigned_staff_id.is_not(None))
    res = await db.execute(q)
    return int(res.scalar_one())


async def claim_for_staff(
    db: AsyncSession,
    appointment_id: int,
    staff_id: int,
    assigned_at: datetime,
) -> bool:
    """Assign only if still unassigned; False when another writer got there first."""
    res = await db.execute(
        sa.update(Appointment)
        .where(Appointment.id == appointment_id, Appointment.assigned_staff_id.is_(None))
        .values(assigned_staff_id=staff_id, assigned_at=assigned_at, updated_at=assigned_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return res.rowcount == 1
