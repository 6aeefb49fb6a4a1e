# coachcal/api/routes/leads.py
from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.api.deps import get_coach_id
from coachcal.core.config import settings
from coachcal.db.session import get_session
from coachcal.services import assignment as assignment_service
from coachcal.services.assignment import AssignmentOutcome
from coachcal.services.events import LEAD_ASSIGNED, get_event_publisher
from coachcal.utils.best_effort import run_best_effort

router = APIRouter(prefix="/leads", tags=["leads"])


@router.post("/{lead_id}/auto-assign")
async def auto_assign_lead(
    lead_id: str,
    coach_id: str = Depends(get_coach_id),
    db: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    outcome: AssignmentOutcome = await assignment_service.auto_assign_lead(db, coach_id, lead_id)
    warnings = []
    if outcome.assigned:
        published = await run_best_effort(
            "lead_assigned_event",
            get_event_publisher().publish(LEAD_ASSIGNED, {
                "leadId": lead_id,
                "coachId": coach_id,
                "assignedStaffId": outcome.staff_id,
            }),
            settings.INTEGRATION_TIMEOUT_SECONDS,
        )
        if published.warning:
            warnings.append(published.warning)
    return {**outcome.model_dump(), "lead_id": lead_id, "warnings": warnings}


@router.get("/assignable-staff")
async def assignable_staff(
    coach_id: str = Depends(get_coach_id),
    db: AsyncSession = Depends(get_session),
) -> Dict[str, Any]:
    staff = await assignment_service.assignable_staff_for_leads(db, coach_id)
    return {"coach_id": coach_id, "staff": staff}
