# coachcal/crud/staff.py

from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.db.models.staff import Staff, StaffCalendarEvent, CALENDAR_PERMISSIONS


async def get_staff(
    db: AsyncSession,
    staff_id: int,
    *,
    coach_id: Optional[str] = None,
    active_only: bool = False,
    for_update: bool = False,
) -> Optional[Staff]:
    q = sa.select(Staff).where(Staff.id == staff_id)
    if coach_id is not None:
        q = q.where(Staff.coach_id == coach_id)
    if active_only:
        q = q.where(Staff.is_active.is_(True))
    if for_update:
        q = q.with_for_update()
    res = await db.execute(q)
    return res.scalar_one_or_none()


async def list_staff(
    db: AsyncSession,
    *,
    coach_id: str,
    active_only: bool = True,
    calendar_only: bool = False,
) -> Sequence[Staff]:
    """Staff under a coach in stable (id) order."""
    q = sa.select(Staff).where(Staff.coach_id == coach_id)
    if active_only:
        q = q.where(Staff.is_active.is_(True))
    q = q.order_by(Staff.id.asc())
    res = await db.execute(q)
    staff = res.scalars().all()
    if calendar_only:
        # permissions is a JSON list; filtered here to stay portable across dialects
        staff = [s for s in staff if s.has_calendar_access]
    return staff


async def create_staff(
    db: AsyncSession,
    *,
    coach_id: str,
    name: str,
    email: Optional[str] = None,
    permissions: Sequence[str] = CALENDAR_PERMISSIONS,
    distribution_ratio: float = 1.0,
    is_active: bool = True,
) -> Staff:
    staff = Staff(
        coach_id=coach_id,
        name=name,
        email=email,
        permissions=list(permissions),
        distribution_ratio=distribution_ratio,
        is_active=is_active,
    )
    db.add(staff)
    await db.commit()
    await db.refresh(staff)
    return staff


async def set_distribution_ratio(db: AsyncSession, staff: Staff, ratio: float) -> Staff:
    staff.distribution_ratio = ratio
    await db.commit()
    return staff


async def create_calendar_event(
    db: AsyncSession,
    *,
    staff: Staff,
    title: str,
    starts_at_utc: datetime,
    ends_at_utc: datetime,
    event_type: str = "custom",
    notes: Optional[str] = None,
) -> StaffCalendarEvent:
    event = StaffCalendarEvent(
        staff_id=staff.id,
        coach_id=staff.coach_id,
        event_type=event_type,
        title=title,
        starts_at=starts_at_utc,
        ends_at=ends_at_utc,
        status="scheduled",
        notes=notes,
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)
    return event


async def list_overlapping_calendar_events(
    db: AsyncSession,
    *,
    staff_id: int,
    start_utc: datetime,
    end_utc: datetime,
) -> Sequence[StaffCalendarEvent]:
    q = sa.select(StaffCalendarEvent).where(
        StaffCalendarEvent.staff_id == staff_id,
        StaffCalendarEvent.status != "cancelled",
        StaffCalendarEvent.starts_at < end_utc,
        StaffCalendarEvent.ends_at > start_utc,
    ).order_by(StaffCalendarEvent.starts_at.asc())
    res = await db.execute(q)
    return res.scalars().all()
