# coachcal/services/assignment.py
"""
Staff assignment for appointments and leads.

Both use a deficit-weighted round-robin over distribution ratios: each staff
member's expected share of the next ``total + 1`` assignments is
``(total + 1) * ratio / total_ratio`` and the one furthest below that target
wins. Counts are recomputed from the database on every decision.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from coachcal.core.logging import get_logger
from coachcal.crud import appointment as appointment_crud
from coachcal.crud import availability as availability_crud
from coachcal.crud import lead as lead_crud
from coachcal.crud import staff as staff_crud
from coachcal.db.models.appointment import Appointment, STATUS_COMPLETED, TERMINAL_STATUSES
from coachcal.db.models.availability import OWNER_STAFF, Availability
from coachcal.db.models.staff import Staff
from coachcal.db.types import utcnow
from coachcal.services.calendar import eligible_staff
from coachcal.services.conflicts import Interval, find_conflicts, has_conflict
from coachcal.services.owners import StaffOwner

logger = get_logger("assignment")

# Reason codes for a non-assignment
REASON_ALREADY_ASSIGNED = "already_assigned"
REASON_DISABLED = "assignment_disabled"
REASON_NOT_AUTOMATIC = "automatic_assignment_disabled"
REASON_NO_STAFF = "no_staff_available"
REASON_NO_STAFF_FOR_SLOT = "no_staff_available_for_slot"


@dataclass(frozen=True)
class Candidate:
    staff_id: int
    ratio: float
    count: int
    name: str = ""


@dataclass(frozen=True)
class Selection:
    candidate: Candidate
    expected: float
    deficit: float
    total_ratio: float
    considered: int


def select_by_deficit(candidates: Sequence[Candidate]) -> Optional[Selection]:
    """
    Pick the candidate furthest below its proportional share.

    Candidates with a ratio of 0 or less are ignored. Ties go to the earliest
    candidate, so callers pass them in a stable order (staff id ascending).
    """
    pool = [c for c in candidates if c.ratio > 0]
    if not pool:
        return None

    total_ratio = sum(c.ratio for c in pool)
    total_assigned = sum(c.count for c in pool)

    best: Optional[Selection] = None
    for c in pool:
        expected = (total_assigned + 1) * c.ratio / total_ratio
        deficit = expected - c.count
        if best is None or deficit > best.deficit:
            best = Selection(c, expected, deficit, total_ratio, len(pool))
    return best


class AssignmentOutcome(BaseModel):
    assigned: bool
    staff_id: Optional[int] = None
    staff_name: Optional[str] = None
    reason: Optional[str] = None
    distribution_ratio: Optional[float] = None
    total_ratio: Optional[float] = None
    staff_considered: int = 0


def auto_assignment_enabled(policy: Optional[Availability]) -> bool:
    return bool(policy and policy.assignment_enabled and policy.assignment_mode == "automatic")


def _ratio(staff: Staff) -> float:
    return 1.0 if staff.distribution_ratio is None else float(staff.distribution_ratio)


# ---------- appointments ----------

async def _staff_blackouts(db: AsyncSession, staff_id: int) -> list[Interval]:
    stored = await availability_crud.get_availability(db, owner_type=OWNER_STAFF, owner_id=str(staff_id))
    if stored is None:
        return []
    return [Interval(b.starts_at, b.ends_at, b.reason or "blackout") for b in stored.blackouts]


async def find_staff_conflicts(
    db: AsyncSession,
    staff_id: int,
    coach_id: str,
    start: datetime,
    end: datetime,
    *,
    exclude_appointment_id: Optional[int] = None,
    lock: bool = False,
) -> list[Interval]:
    """
    Assigned appointments, calendar events and the staff member's own blackouts.

    With ``lock`` the staff row is held ``FOR UPDATE`` until the caller commits,
    so a check followed by a write cannot interleave with another assignment
    of the same staff member.
    """
    if lock:
        await staff_crud.get_staff(db, staff_id, for_update=True)
    return await find_conflicts(
        db,
        StaffOwner.of(staff_id, coach_id),
        start,
        end,
        blackouts=await _staff_blackouts(db, staff_id),
        exclude_appointment_id=exclude_appointment_id,
    )


async def staff_free_for(db: AsyncSession, staff: Staff, appt: Appointment) -> bool:
    busy = await has_conflict(
        db,
        StaffOwner.of(staff.id, appt.coach_id),
        appt.starts_at,
        appt.ends_at,
        blackouts=await _staff_blackouts(db, staff.id),
        exclude_appointment_id=appt.id,
    )
    return not busy


async def auto_assign_appointment(
    db: AsyncSession,
    appt: Appointment,
    policy: Optional[Availability],
) -> AssignmentOutcome:
    """
    Assign an unassigned appointment to the conflict-free staff member with the
    largest deficit. Never raises for lack of staff; the outcome says why.
    """
    if appt.assigned_staff_id is not None:
        return AssignmentOutcome(assigned=False, staff_id=appt.assigned_staff_id, reason=REASON_ALREADY_ASSIGNED)
    if not (policy and policy.assignment_enabled):
        return AssignmentOutcome(assigned=False, reason=REASON_DISABLED)
    if policy.assignment_mode != "automatic":
        return AssignmentOutcome(assigned=False, reason=REASON_NOT_AUTOMATIC)

    staff = [s for s in await eligible_staff(db, appt.coach_id) if _ratio(s) > 0]
    if not staff:
        logger.info("assignment_skipped", appointment_id=appt.id, reason=REASON_NO_STAFF)
        return AssignmentOutcome(assigned=False, reason=REASON_NO_STAFF)

    free = [s for s in staff if await staff_free_for(db, s, appt)]
    if not free:
        logger.info("assignment_skipped", appointment_id=appt.id, reason=REASON_NO_STAFF_FOR_SLOT,
                    staff_checked=len(staff))
        return AssignmentOutcome(assigned=False, reason=REASON_NO_STAFF_FOR_SLOT)

    counts = await appointment_crud.count_assigned_by_staff(
        db, coach_id=appt.coach_id, staff_ids=[s.id for s in free]
    )
    candidates = [Candidate(s.id, _ratio(s), counts.get(s.id, 0), s.name) for s in free]
    appt_id, coach_id, starts_at, ends_at = appt.id, appt.coach_id, appt.starts_at, appt.ends_at

    selection = None
    while candidates:
        selection = select_by_deficit(candidates)
        staff_id = selection.candidate.staff_id
        conflicts = await find_staff_conflicts(
            db, staff_id, coach_id, starts_at, ends_at, exclude_appointment_id=appt_id, lock=True
        )
        if not conflicts:
            break
        # taken by a concurrent booking since the first pass; release the lock and try the next
        logger.info("assignment_candidate_lost", appointment_id=appt_id, staff_id=staff_id)
        await db.rollback()
        await db.refresh(appt)
        candidates = [c for c in candidates if c.staff_id != staff_id]
        selection = None

    if selection is None:
        logger.info("assignment_skipped", appointment_id=appt_id, reason=REASON_NO_STAFF_FOR_SLOT,
                    staff_checked=len(staff))
        return AssignmentOutcome(assigned=False, reason=REASON_NO_STAFF_FOR_SLOT)

    # commits, releasing the staff row lock
    claimed = await appointment_crud.claim_for_staff(db, appt_id, selection.candidate.staff_id, utcnow())
    await db.refresh(appt)
    if not claimed:
        return AssignmentOutcome(assigned=False, staff_id=appt.assigned_staff_id, reason=REASON_ALREADY_ASSIGNED)

    logger.info(
        "appointment_assigned",
        appointment_id=appt_id,
        staff_id=selection.candidate.staff_id,
        deficit=round(selection.deficit, 4),
        total_ratio=selection.total_ratio,
        staff_considered=selection.considered,
    )
    return AssignmentOutcome(
        assigned=True,
        staff_id=selection.candidate.staff_id,
        staff_name=selection.candidate.name,
        distribution_ratio=selection.candidate.ratio,
        total_ratio=selection.total_ratio,
        staff_considered=selection.considered,
    )


async def manual_assign_appointment(db: AsyncSession, appt: Appointment, staff_id: int) -> AssignmentOutcome:
    """Coach-chosen assignment; may replace an existing one."""
    if appt.status in TERMINAL_STATUSES:
        raise InvalidStateError(f"Cannot assign a {appt.status} appointment.")
    staff = await staff_crud.get_staff(db, staff_id, coach_id=appt.coach_id, active_only=True)
    if staff is None:
        raise NotFoundError("Staff member not found or inactive.")

    conflicts = await find_staff_conflicts(
        db, staff.id, appt.coach_id, appt.starts_at, appt.ends_at, exclude_appointment_id=appt.id, lock=True
    )
    if conflicts:
        raise ConflictError(
            "Staff member has a scheduling conflict at this time.",
            code="staff_conflict",
            details={"conflict_count": len(conflicts)},
        )

    previous = appt.assigned_staff_id
    appt.assigned_staff_id = staff.id
    appt.assigned_at = utcnow()
    await appointment_crud.save_appointment(db, appt)
    logger.info("appointment_assigned_manually", appointment_id=appt.id, staff_id=staff.id, previous_staff_id=previous)
    return AssignmentOutcome(
        assigned=True,
        staff_id=staff.id,
        staff_name=staff.name,
        distribution_ratio=_ratio(staff),
        staff_considered=1,
    )


# ---------- leads ----------

async def auto_assign_lead(db: AsyncSession, coach_id: str, lead_id: str) -> AssignmentOutcome:
    lead = await lead_crud.get_lead(db, lead_id, coach_id=coach_id)
    if lead is None:
        raise NotFoundError("Lead not found.")
    if lead.assigned_to is not None:
        return AssignmentOutcome(assigned=False, staff_id=lead.assigned_to, reason=REASON_ALREADY_ASSIGNED)

    staff = [s for s in await staff_crud.list_staff(db, coach_id=coach_id, active_only=True) if _ratio(s) > 0]
    if not staff:
        return AssignmentOutcome(assigned=False, reason=REASON_NO_STAFF)

    counts = await lead_crud.count_leads_by_staff(db, coach_id=coach_id, staff_ids=[s.id for s in staff])
    selection = select_by_deficit([Candidate(s.id, _ratio(s), counts.get(s.id, 0), s.name) for s in staff])

    claimed = await lead_crud.claim_lead_for_staff(db, lead_id, selection.candidate.staff_id, utcnow())
    await db.refresh(lead)
    if not claimed:
        return AssignmentOutcome(assigned=False, staff_id=lead.assigned_to, reason=REASON_ALREADY_ASSIGNED)

    logger.info("lead_assigned", lead_id=lead_id, staff_id=selection.candidate.staff_id,
                staff_considered=selection.considered, total_ratio=selection.total_ratio)
    return AssignmentOutcome(
        assigned=True,
        staff_id=selection.candidate.staff_id,
        staff_name=selection.candidate.name,
        distribution_ratio=selection.candidate.ratio,
        total_ratio=selection.total_ratio,
        staff_considered=selection.considered,
    )


async def assignable_staff_for_leads(db: AsyncSession, coach_id: str) -> List[Dict[str, Any]]:
    staff = await staff_crud.list_staff(db, coach_id=coach_id, active_only=True)
    counts = await lead_crud.count_leads_by_staff(db, coach_id=coach_id, staff_ids=[s.id for s in staff])
    return [
        {
            "staff_id": s.id,
            "name": s.name,
            "email": s.email,
            "distribution_ratio": _ratio(s),
            "assigned_lead_count": counts.get(s.id, 0),
            "is_active": s.is_active,
        }
        for s in staff
    ]


# ---------- distribution + stats ----------

async def set_distribution_ratio(db: AsyncSession, coach_id: str, staff_id: int, ratio: float) -> Staff:
    if ratio is None or ratio < 0:
        raise ValidationError("distribution_ratio must be zero or positive.")
    staff = await staff_crud.get_staff(db, staff_id, coach_id=coach_id)
    if staff is None:
        raise NotFoundError("Staff member not found.")
    staff = await staff_crud.set_distribution_ratio(db, staff, ratio)
    logger.info("distribution_ratio_updated", staff_id=staff_id, ratio=ratio)
    return staff


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


async def assignment_stats(db: AsyncSession, coach_id: str, days: int = 30) -> Dict[str, Any]:
    if days <= 0:
        raise ValidationError("days must be positive.")
    since = utcnow() - timedelta(days=days)

    staff = await staff_crud.list_staff(db, coach_id=coach_id, active_only=False)
    ids = [s.id for s in staff]
    totals = await appointment_crud.count_assigned_by_staff(db, coach_id=coach_id, staff_ids=ids, since=since)
    completed = await appointment_crud.count_assigned_by_staff(
        db, coach_id=coach_id, staff_ids=ids, since=since, statuses=[STATUS_COMPLETED]
    )

    staff_stats = [
        {
            "staff_id": s.id,
            "name": s.name,
            "email": s.email,
            "total_assigned": totals.get(s.id, 0),
            "completed": completed.get(s.id, 0),
            "completion_rate": _percent(completed.get(s.id, 0), totals.get(s.id, 0)),
            "distribution_ratio": _ratio(s),
        }
        for s in staff
    ]
    staff_stats.sort(key=lambda row: row["total_assigned"], reverse=True)

    total = await appointment_crud.count_appointments(db, coach_id=coach_id, since=since)
    assigned = await appointment_crud.count_appointments(db, coach_id=coach_id, since=since, assigned_only=True)
    return {
        "total_appointments": total,
        "assigned_appointments": assigned,
        "unassigned_appointments": total - assigned,
        "assignment_rate": _percent(assigned, total),
        "staff_stats": staff_stats,
        "period": f"Last {days} days",
    }
