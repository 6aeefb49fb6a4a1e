# coachcal/crud/availability.py

from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.db.models.availability import Availability, BlackoutInterval, WorkingHours


async def get_availability(
    db: AsyncSession,
    *,
    owner_type: str,
    owner_id: str,
    for_update: bool = False,
) -> Optional[Availability]:
    q = sa.select(Availability).where(
        Availability.owner_type == owner_type,
        Availability.owner_id == str(owner_id),
    )
    if for_update:
        q = q.with_for_update()
    res = await db.execute(q)
    return res.scalar_one_or_none()


async def replace_working_hours(
    db: AsyncSession, availability: Availability, entries: Sequence[tuple[int, str, str]]
) -> None:
    """Swap the weekly schedule; old rows are flushed out first so a day can be re-used."""
    availability.working_hours.clear()
    await db.flush()
    for day, start, end in sorted(entries):
        availability.working_hours.append(WorkingHours(day_of_week=day, start_time=start, end_time=end))


async def save_availability(db: AsyncSession, availability: Availability) -> Availability:
    db.add(availability)
    await db.commit()
    # relationships are selectin-loaded; refresh so callers see the stored rows
    await db.refresh(availability, attribute_names=["working_hours", "blackouts"])
    return availability


async def add_blackout(
    db: AsyncSession,
    availability: Availability,
    *,
    starts_at_utc: datetime,
    ends_at_utc: datetime,
    reason: Optional[str] = None,
) -> BlackoutInterval:
    blackout = BlackoutInterval(
        availability_id=availability.id,
        starts_at=starts_at_utc,
        ends_at=ends_at_utc,
        reason=reason,
    )
    db.add(blackout)
    await db.commit()
    await db.refresh(blackout)
    return blackout


async def get_blackout(db: AsyncSession, blackout_id: int) -> Optional[BlackoutInterval]:
    res = await db.execute(sa.select(BlackoutInterval).where(BlackoutInterval.id == blackout_id))
    return res.scalar_one_or_none()


async def delete_blackout(db: AsyncSession, blackout: BlackoutInterval) -> None:
    await db.delete(blackout)
    await db.commit()
