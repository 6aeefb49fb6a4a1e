# coachcal/services/booking.py
"""
Booking orchestrator: requested -> validated -> persisted -> (assigned) ->
side effects dispatched.

Validation and conflicts raise before anything is written. Once the
appointment is committed, nothing can undo it: assignment problems become
``assigned: false`` with a reason, and meeting / reminder / event failures
become response warnings.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Awaitable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.core.config import settings
from coachcal.core.errors import (
    CapacityExhaustedError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from coachcal.core.logging import get_logger
from coachcal.core.timeutil import get_zone, local_date_of, parse_to_utc
from coachcal.crud import appointment as appointment_crud
from coachcal.db.models.appointment import (
    Appointment,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_NO_SHOW,
    STATUS_RESCHEDULED,
    TERMINAL_STATUSES,
)
from coachcal.db.models.availability import Availability
from coachcal.db.types import utcnow
from coachcal.schemas.appointment import AppointmentOut, BookingResult
from coachcal.services import events
from coachcal.services.assignment import (
    AssignmentOutcome,
    auto_assign_appointment,
    auto_assignment_enabled,
    find_staff_conflicts,
    manual_assign_appointment,
)
from coachcal.services.availability import get_coach_availability
from coachcal.services.calendar import compute_available_slots
from coachcal.services.capacity import first_free_seat, multi_seat, peak_overlap
from coachcal.services.conflicts import find_conflicts, find_overlapping, load_busy_intervals
from coachcal.services.meetings import ZoomMeetingService
from coachcal.services.owners import CoachOwner
from coachcal.services.reminders import ReminderService
from coachcal.services.slot_cache import SlotCache
from coachcal.services.slots import AvailabilitySnapshot, find_slot, generate_slots
from coachcal.utils.best_effort import BestEffort, Warnings, run_best_effort

logger = get_logger("booking")

STATUS_TRANSITIONS = (STATUS_COMPLETED, STATUS_NO_SHOW)
SLOT_UNAVAILABLE_MESSAGE = "The requested time slot is not available."


class BookingOrchestrator:
    """
    Façade over slots, conflicts, assignment and side effects for one request.

    Collaborators are injected so tests (and the HTTP layer) can swap them;
    ``meetings=None`` disables meeting creation.
    """

    def __init__(
        self,
        db: AsyncSession,
        *,
        meetings: Optional[ZoomMeetingService] = None,
        reminders: Optional[ReminderService] = None,
        publisher: Optional[events.EventPublisher] = None,
        slot_cache: Optional[SlotCache] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.db = db
        self.meetings = meetings
        self.reminders = reminders or ReminderService(db)
        self.publisher = publisher or events.LoggingEventPublisher()
        self.slot_cache = slot_cache
        self.timeout_seconds = timeout_seconds or settings.INTEGRATION_TIMEOUT_SECONDS

    # ---------- helpers ----------

    async def _load(self, coach_id: str, appointment_id: int) -> Appointment:
        appt = await appointment_crud.get_appointment(self.db, appointment_id, coach_id=coach_id)
        if appt is None:
            raise NotFoundError("Appointment not found.")
        return appt

    async def _best_effort(self, name: str, coro: Awaitable[Any], warnings: Warnings, appt: Appointment) -> BestEffort:
        result = await run_best_effort(name, coro, self.timeout_seconds)
        if not result.ok:
            # leave the session usable for the remaining side effects
            await self.db.rollback()
            await self.db.refresh(appt)
        return warnings.add(result)

    async def _invalidate(self, coach_id: str) -> None:
        if self.slot_cache is not None:
            await self.slot_cache.invalidate(coach_id)

    async def _validate_slot(
        self,
        policy: Availability,
        start_utc: datetime,
        duration: int,
        *,
        exclude_appointment_id: Optional[int] = None,
    ) -> int:
        """
        Authoritative check for [start, start + duration) on the coach calendar.

        Returns the seat to book: 0 for single-owner slots, the lowest free
        pool seat when staff pooling allows several bookings per slot.
        """
        owner = CoachOwner.of(policy.coach_id)
        tz = get_zone(policy.time_zone)
        day = local_date_of(start_utc, tz)
        slots = await compute_available_slots(
            self.db, owner, policy, day, exclude_appointment_id=exclude_appointment_id
        )
        slot = find_slot(slots, start_utc)

        if not multi_seat(policy):
            if slot is None:
                raise ConflictError(SLOT_UNAVAILABLE_MESSAGE, code="slot_unavailable")
            snapshot = AvailabilitySnapshot.from_model(policy)
            conflicts = await find_conflicts(
                self.db, owner, start_utc, start_utc + timedelta(minutes=duration),
                blackouts=snapshot.blackouts, exclude_appointment_id=exclude_appointment_id,
            )
            if conflicts:
                raise ConflictError(
                    "The requested time overlaps an existing booking or blackout.",
                    code="slot_conflict",
                    details={"conflicts": [c.label for c in conflicts]},
                )
            return 0

        if slot is None:
            base = generate_slots(AvailabilitySnapshot.from_model(policy), [], None, day)
            if find_slot(base, start_utc) is not None:
                raise CapacityExhaustedError("All staff are booked for the requested time slot.")
            raise ConflictError(SLOT_UNAVAILABLE_MESSAGE, code="slot_unavailable")

        # A booking longer than the slot can still run into a blackout or the next slot's seats
        end_utc = start_utc + timedelta(minutes=duration)
        blocked = find_overlapping(AvailabilitySnapshot.from_model(policy).blackouts, start_utc, end_utc)
        if blocked:
            raise ConflictError(
                "The requested time overlaps a blackout.",
                code="slot_conflict",
                details={"conflicts": [b.label for b in blocked]},
            )

        capacity = slot.capacity or 0
        taken = await appointment_crud.taken_seats(
            self.db, coach_id=policy.coach_id, starts_at_utc=start_utc, exclude_id=exclude_appointment_id
        )
        seat = first_free_seat(taken, capacity)
        busy = await load_busy_intervals(
            self.db, owner, start_utc, end_utc, exclude_appointment_id=exclude_appointment_id
        )
        if seat is None or peak_overlap(busy, start_utc, end_utc) >= capacity:
            raise CapacityExhaustedError("All staff are booked for the requested time slot.")
        return seat

    async def _after_assignment(self, appt: Appointment, warnings: Warnings, result: BookingResult) -> None:
        """Meeting with the assigned owner's account plus reminders."""
        if self.meetings is not None:
            owner_id = str(appt.assigned_staff_id) if appt.assigned_staff_id else appt.coach_id
            meeting = await self._best_effort(
                "meeting_creation", self.meetings.create_meeting(appt, owner_id), warnings, appt
            )
            result.meeting = meeting.value
        reminders = await self._best_effort(
            "reminder_scheduling", self.reminders.schedule_reminders(appt.id, appt.coach_id), warnings, appt
        )
        result.reminders = reminders.value

    async def _publish(self, event: str, appt: Appointment, warnings: Warnings) -> None:
        await self._best_effort(
            f"{event}_event", self.publisher.publish(event, events.appointment_payload(appt)), warnings, appt
        )

    def _result(self, appt: Appointment, outcome: Optional[AssignmentOutcome] = None) -> BookingResult:
        result = BookingResult(
            appointment=AppointmentOut.model_validate(appt),
            assigned=appt.assigned_staff_id is not None,
            assigned_staff_id=appt.assigned_staff_id,
        )
        if outcome is not None and not outcome.assigned:
            result.reason = outcome.reason
        return result

    # ---------- operations ----------

    async def book(
        self,
        coach_id: str,
        *,
        lead_id: str,
        start_time: Any,
        duration: Optional[int] = None,
        time_zone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingResult:
        if not lead_id:
            raise ValidationError("lead_id is required.")
        try:
            # Row lock serialises concurrent bookings for this coach (no-op on SQLite)
            policy = await get_coach_availability(self.db, coach_id, for_update=True)
            tz_name = time_zone or policy.time_zone
            start_utc = parse_to_utc(start_time, get_zone(tz_name))
            duration = duration or policy.default_duration
            if duration <= 0:
                raise ValidationError("duration must be a positive number of minutes.")

            seat = await self._validate_slot(policy, start_utc, duration)
            appt = appointment_crud.build_appointment(
                coach_id=coach_id,
                lead_id=lead_id,
                starts_at_utc=start_utc,
                duration_min=duration,
                time_zone=tz_name,
                seat=seat,
                notes=notes,
            )
            appt = await appointment_crud.create_appointment_unique(self.db, appt)
        except SchedulingError:
            await self.db.rollback()
            raise

        logger.info("appointment_booked", appointment_id=appt.id, coach_id=coach_id,
                    lead_id=lead_id, starts_at=start_utc.isoformat(), seat=seat)
        await self._invalidate(coach_id)

        warnings = Warnings()
        outcome: Optional[AssignmentOutcome] = None
        if auto_assignment_enabled(policy):
            try:
                outcome = await auto_assign_appointment(self.db, appt, policy)
            except Exception as e:
                logger.warning("assignment_failed", appointment_id=appt.id, error=str(e))
                await self.db.rollback()
                await self.db.refresh(appt)
                outcome = AssignmentOutcome(assigned=False, reason="assignment_failed")
                warnings.items.append(f"assignment failed: {e}")

        result = self._result(appt, outcome)
        await self._after_assignment(appt, warnings, result)
        await self._publish(events.APPOINTMENT_BOOKED, appt, warnings)

        result.appointment = AppointmentOut.model_validate(appt)
        result.warnings = warnings.items
        return result

    async def reschedule(
        self,
        coach_id: str,
        appointment_id: int,
        *,
        new_start_time: Any,
        new_duration: Optional[int] = None,
    ) -> BookingResult:
        """Move an appointment after re-validating the new interval; assignment is kept."""
        try:
            appt = await self._load(coach_id, appointment_id)
            if appt.status in TERMINAL_STATUSES:
                raise InvalidStateError(f"Cannot reschedule a {appt.status} appointment.")

            policy = await get_coach_availability(self.db, coach_id, for_update=True)
            start_utc = parse_to_utc(new_start_time, get_zone(appt.time_zone or policy.time_zone))
            duration = new_duration or appt.duration_min
            if duration <= 0:
                raise ValidationError("duration must be a positive number of minutes.")

            seat = await self._validate_slot(policy, start_utc, duration, exclude_appointment_id=appt.id)
            if appt.assigned_staff_id is not None:
                staff_conflicts = await find_staff_conflicts(
                    self.db,
                    appt.assigned_staff_id,
                    coach_id,
                    start_utc,
                    start_utc + timedelta(minutes=duration),
                    exclude_appointment_id=appt.id,
                    lock=True,
                )
                if staff_conflicts:
                    raise ConflictError(
                        "The assigned staff member is busy at the requested time.",
                        code="staff_conflict",
                        details={"conflict_count": len(staff_conflicts)},
                    )

            previous_start = appt.starts_at
            appt.starts_at = start_utc
            appt.ends_at = start_utc + timedelta(minutes=duration)
            appt.duration_min = duration
            appt.seat = seat
            appt.status = STATUS_RESCHEDULED
            await appointment_crud.save_appointment(self.db, appt)
        except SchedulingError:
            await self.db.rollback()
            raise

        logger.info("appointment_rescheduled", appointment_id=appt.id,
                    previous_start=previous_start.isoformat(), new_start=start_utc.isoformat())
        await self._invalidate(coach_id)

        warnings = Warnings()
        result = self._result(appt)
        reminders = await self._best_effort(
            "reminder_rescheduling", self.reminders.reschedule_reminders(appt.id, coach_id), warnings, appt
        )
        result.reminders = reminders.value
        if self.meetings is not None and appt.meeting_id:
            owner_id = str(appt.assigned_staff_id) if appt.assigned_staff_id else coach_id
            await self._best_effort(
                "meeting_rescheduling", self.meetings.reschedule_meeting(appt, owner_id), warnings, appt
            )
        await self._publish(events.APPOINTMENT_RESCHEDULED, appt, warnings)
        result.warnings = warnings.items
        return result

    async def cancel(self, coach_id: str, appointment_id: int) -> BookingResult:
        """Mark cancelled; the row stays and its interval is free again."""
        appt = await self._load(coach_id, appointment_id)
        if appt.status in TERMINAL_STATUSES:
            raise InvalidStateError(f"Appointment is already {appt.status}.")

        appt.status = STATUS_CANCELLED
        appt.cancelled_at = utcnow()
        await appointment_crud.save_appointment(self.db, appt)
        logger.info("appointment_cancelled", appointment_id=appt.id, coach_id=coach_id)
        await self._invalidate(coach_id)

        warnings = Warnings()
        await self._best_effort(
            "reminder_cancellation", self.reminders.cancel_reminders(appt.id), warnings, appt
        )
        if self.meetings is not None and appt.meeting_id:
            owner_id = str(appt.assigned_staff_id) if appt.assigned_staff_id else coach_id
            await self._best_effort(
                "meeting_cancellation", self.meetings.cancel_meeting(appt, owner_id), warnings, appt
            )
        await self._publish(events.APPOINTMENT_CANCELLED, appt, warnings)

        result = self._result(appt)
        result.warnings = warnings.items
        return result

    async def update_status(self, coach_id: str, appointment_id: int, status: str) -> BookingResult:
        if status not in STATUS_TRANSITIONS:
            raise ValidationError(f"Status must be one of: {', '.join(STATUS_TRANSITIONS)}.")
        appt = await self._load(coach_id, appointment_id)
        if appt.status in TERMINAL_STATUSES:
            raise InvalidStateError(f"Cannot change a {appt.status} appointment.")

        appt.status = status
        await appointment_crud.save_appointment(self.db, appt)
        logger.info("appointment_status_changed", appointment_id=appt.id, status=status)
        await self._invalidate(coach_id)

        warnings = Warnings()
        if status == STATUS_COMPLETED:
            await self._best_effort(
                "reminder_cancellation", self.reminders.cancel_reminders(appt.id), warnings, appt
            )
        result = self._result(appt)
        result.warnings = warnings.items
        return result

    async def assign(self, coach_id: str, appointment_id: int, staff_id: int) -> BookingResult:
        """Manual assignment by the coach, followed by the usual side effects."""
        appt = await self._load(coach_id, appointment_id)
        outcome = await manual_assign_appointment(self.db, appt, staff_id)
        return await self._finish_assignment(appt, outcome)

    async def auto_assign(self, coach_id: str, appointment_id: int) -> BookingResult:
        appt = await self._load(coach_id, appointment_id)
        if appt.status in TERMINAL_STATUSES:
            raise InvalidStateError(f"Cannot assign a {appt.status} appointment.")
        policy = await get_coach_availability(self.db, coach_id)
        outcome = await auto_assign_appointment(self.db, appt, policy)
        if not outcome.assigned:
            return self._result(appt, outcome)
        return await self._finish_assignment(appt, outcome)

    async def _finish_assignment(self, appt: Appointment, outcome: AssignmentOutcome) -> BookingResult:
        await self._invalidate(appt.coach_id)
        warnings = Warnings()
        result = self._result(appt, outcome)
        await self._after_assignment(appt, warnings, result)
        await self._publish(events.APPOINTMENT_ASSIGNED, appt, warnings)
        result.appointment = AppointmentOut.model_validate(appt)
        result.warnings = warnings.items
        return result
