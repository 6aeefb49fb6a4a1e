# coachcal/schemas/staff.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class DistributionIn(BaseModel):
    distribution_ratio: float = Field(..., ge=0)


class StaffOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    coach_id: str
    name: str
    email: Optional[str] = None
    is_active: bool
    permissions: List[str] = Field(default_factory=list)
    distribution_ratio: float
