# coachcal/schemas/availability.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorkingHoursIn(BaseModel):
    day_of_week: int = Field(..., description="0=Sunday .. 6=Saturday")
    start_time: str = Field(..., examples=["09:00"])
    end_time: str = Field(..., examples=["17:00"])


class BlackoutIn(BaseModel):
    start_time: str
    end_time: str
    reason: Optional[str] = Field(None, max_length=200)
    staff_id: Optional[int] = Field(None, description="Block a staff calendar instead of the coach's")


class AssignmentPolicyIn(BaseModel):
    enabled: Optional[bool] = None
    mode: Optional[str] = None
    consider_staff_availability: Optional[bool] = None
    allow_multiple_staff_same_slot: Optional[bool] = None


class ReminderOffsetIn(BaseModel):
    name: Optional[str] = None
    minutes_before: int
    channel: str = "whatsapp"


class ReminderPolicyIn(BaseModel):
    enabled: Optional[bool] = None
    offsets: Optional[List[ReminderOffsetIn]] = None


class AvailabilityIn(BaseModel):
    time_zone: Optional[str] = None
    working_hours: List[WorkingHoursIn]
    default_duration: Optional[int] = None
    buffer_time: Optional[int] = None
    blackouts: Optional[List[BlackoutIn]] = None
    assignment: Optional[AssignmentPolicyIn] = None
    reminders: Optional[ReminderPolicyIn] = None


class StaffAvailabilityIn(BaseModel):
    time_zone: Optional[str] = None
    working_hours: List[WorkingHoursIn]
    default_duration: Optional[int] = None
    buffer_time: Optional[int] = None
    blackouts: Optional[List[BlackoutIn]] = None


class WorkingHoursOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int
    start_time: str
    end_time: str


class BlackoutOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[int] = None
    starts_at: datetime
    ends_at: datetime
    reason: Optional[str] = None


class AssignmentPolicyOut(BaseModel):
    enabled: bool
    mode: str
    consider_staff_availability: bool
    allow_multiple_staff_same_slot: bool


class ReminderPolicyOut(BaseModel):
    enabled: bool
    offsets: Optional[list] = None


class AvailabilityOut(BaseModel):
    owner_type: str
    owner_id: str
    coach_id: str
    time_zone: str
    default_duration: int
    buffer_time: int
    working_hours: List[WorkingHoursOut]
    blackouts: List[BlackoutOut]
    copied_from_coach: bool = False
    assignment: Optional[AssignmentPolicyOut] = None
    reminders: Optional[ReminderPolicyOut] = None

    @classmethod
    def from_model(cls, availability) -> "AvailabilityOut":
        is_coach = availability.owner_type == "coach"
        return cls(
            owner_type=availability.owner_type,
            owner_id=availability.owner_id,
            coach_id=availability.coach_id,
            time_zone=availability.time_zone,
            default_duration=availability.default_duration,
            buffer_time=availability.buffer_time,
            working_hours=[WorkingHoursOut.model_validate(wh) for wh in availability.working_hours],
            blackouts=[BlackoutOut.model_validate(b) for b in availability.blackouts],
            copied_from_coach=bool(availability.copied_from_coach),
            assignment=AssignmentPolicyOut(
                enabled=availability.assignment_enabled,
                mode=availability.assignment_mode,
                consider_staff_availability=availability.consider_staff_availability,
                allow_multiple_staff_same_slot=availability.allow_multiple_staff_same_slot,
            ) if is_coach else None,
            reminders=ReminderPolicyOut(
                enabled=availability.reminders_enabled,
                offsets=availability.reminder_offsets,
            ) if is_coach else None,
        )


class SlotOut(BaseModel):
    start_time: str
    end_time: str
    duration: int
    time_zone: str
    capacity: Optional[int] = None
    booked: Optional[int] = None
    available: Optional[int] = None


class SlotsOut(BaseModel):
    date: str
    slots: List[SlotOut]
