# coachcal/schemas/appointment.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class BookRequest(BaseModel):
    lead_id: str = Field(..., min_length=1, max_length=64)
    start_time: str = Field(..., description="ISO 8601; naive values are read in time_zone")
    duration: Optional[int] = Field(None, gt=0, description="Minutes; defaults to the coach's slot length")
    notes: Optional[str] = None
    time_zone: Optional[str] = None


class RescheduleRequest(BaseModel):
    new_start_time: str
    new_duration: Optional[int] = Field(None, gt=0)


class StatusUpdateRequest(BaseModel):
    status: str


class AssignRequest(BaseModel):
    staff_id: int


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coach_id: str
    lead_id: str
    assigned_staff_id: Optional[int] = None
    starts_at: datetime
    ends_at: datetime
    duration_min: int
    time_zone: str
    status: str
    seat: int = 0
    notes: Optional[str] = None
    meeting_id: Optional[str] = None
    meeting_join_url: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BookingResult(BaseModel):
    """What every booking-flow endpoint returns."""
    appointment: AppointmentOut
    assigned: bool = False
    assigned_staff_id: Optional[int] = None
    reason: Optional[str] = Field(None, description="Why no staff member was assigned")
    meeting: Optional[Dict[str, Any]] = None
    reminders: Optional[Dict[str, int]] = None
    warnings: List[str] = Field(default_factory=list)
