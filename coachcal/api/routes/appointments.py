# coachcal/api/routes/appointments.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from coachcal.api.deps import get_coach_id, get_orchestrator
from coachcal.core.logging import set_user_context
from coachcal.schemas.appointment import (
    AssignRequest,
    BookingResult,
    BookRequest,
    RescheduleRequest,
    StatusUpdateRequest,
)
from coachcal.services.booking import BookingOrchestrator

router = APIRouter(tags=["appointments"])


@router.post("/coaches/{coach_id}/book", response_model=BookingResult, status_code=201)
async def book_appointment(
    coach_id: str,
    payload: BookRequest,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    """Book one of the coach's currently available slots for a lead."""
    set_user_context(coach_id=coach_id)
    return await orchestrator.book(
        coach_id,
        lead_id=payload.lead_id,
        start_time=payload.start_time,
        duration=payload.duration,
        time_zone=payload.time_zone,
        notes=payload.notes,
    )


@router.put("/appointments/{appointment_id}/reschedule", response_model=BookingResult)
async def reschedule_appointment(
    appointment_id: int,
    payload: RescheduleRequest,
    coach_id: str = Depends(get_coach_id),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.reschedule(
        coach_id, appointment_id, new_start_time=payload.new_start_time, new_duration=payload.new_duration
    )


@router.delete("/appointments/{appointment_id}", response_model=BookingResult)
async def cancel_appointment(
    appointment_id: int,
    coach_id: str = Depends(get_coach_id),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.cancel(coach_id, appointment_id)


@router.patch("/appointments/{appointment_id}/status", response_model=BookingResult)
async def update_appointment_status(
    appointment_id: int,
    payload: StatusUpdateRequest,
    coach_id: str = Depends(get_coach_id),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.update_status(coach_id, appointment_id, payload.status)


@router.post("/appointments/{appointment_id}/assign", response_model=BookingResult)
async def assign_appointment(
    appointment_id: int,
    payload: AssignRequest,
    coach_id: str = Depends(get_coach_id),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.assign(coach_id, appointment_id, payload.staff_id)


@router.post("/appointments/{appointment_id}/auto-assign", response_model=BookingResult)
async def auto_assign_appointment(
    appointment_id: int,
    coach_id: str = Depends(get_coach_id),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
):
    return await orchestrator.auto_assign(coach_id, appointment_id)
