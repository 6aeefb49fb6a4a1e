# coachcal/services/owners.py
"""Calendar owners: the coach and each of the coach's staff members share one
slot/conflict pipeline and differ only in how their bookings are looked up."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from coachcal.db.models.appointment import Appointment
from coachcal.db.models.availability import OWNER_COACH, OWNER_STAFF


@dataclass(frozen=True)
class CalendarOwner:
    owner_type: str
    owner_id: str
    coach_id: str

    @property
    def staff_id(self) -> Optional[int]:
        return None

    def appointment_filter(self):
        raise NotImplementedError


class CoachOwner(CalendarOwner):

    @classmethod
    def of(cls, coach_id: str) -> "CoachOwner":
        return cls(OWNER_COACH, str(coach_id), str(coach_id))

    def appointment_filter(self):
        return Appointment.coach_id == self.coach_id


class StaffOwner(CalendarOwner):

    @classmethod
    def of(cls, staff_id: int, coach_id: str) -> "StaffOwner":
        return cls(OWNER_STAFF, str(staff_id), str(coach_id))

    @property
    def staff_id(self) -> Optional[int]:
        return int(self.owner_id)

    def appointment_filter(self):
        return Appointment.assigned_staff_id == self.staff_id
