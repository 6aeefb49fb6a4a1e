# coachcal/crud/lead.py

from __future__ import annotations
from datetime import datetime
from typing import Optional, Sequence

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.db.models.lead import Lead


async def get_lead(db: AsyncSession, lead_id: str, *, coach_id: Optional[str] = None) -> Optional[Lead]:
    q = sa.select(Lead).where(Lead.id == lead_id)
    if coach_id is not None:
        q = q.where(Lead.coach_id == coach_id)
    res = await db.execute(q)
    return res.scalar_one_or_none()


async def create_lead(db: AsyncSession, *, lead_id: str, coach_id: str, name: Optional[str] = None) -> Lead:
    lead = Lead(id=lead_id, coach_id=coach_id, name=name)
    db.add(lead)
    await db.commit()
    return lead


async def count_leads_by_staff(
    db: AsyncSession,
    *,
    coach_id: str,
    staff_ids: Sequence[int],
) -> dict[int, int]:
    if not staff_ids:
        return {}
    q = (
        sa.select(Lead.assigned_to, sa.func.count(Lead.id))
        .where(Lead.coach_id == coach_id, Lead.assigned_to.in_(staff_ids))
        .group_by(Lead.assigned_to)
    )
    res = await db.execute(q)
    counts = {staff_id: 0 for staff_id in staff_ids}
    counts.update({staff_id: count for staff_id, count in res.all()})
    return counts


async def claim_lead_for_staff(db: AsyncSession, lead_id: str, staff_id: int, assigned_at: datetime) -> bool:
    res = await db.execute(
        sa.update(Lead)
        .where(Lead.id == lead_id, Lead.assigned_to.is_(None))
        .values(assigned_to=staff_id, assigned_at=assigned_at)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return res.rowcount == 1
