"""
Scheduling error taxonomy.

Every error carries the HTTP status it maps to and a machine-readable code so
clients can tell a stale slot (retry with fresh slots) from a bad request.
Integration failures and unavailable staff are deliberately absent: they are
reported as warnings / ``assigned: false`` on successful responses.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    status_code: int = 400
    code: str = "scheduling_error"

    def __init__(self, message: str, *, code: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"detail": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(SchedulingError):
    status_code = 400
    code = "validation_error"


class NotFoundError(SchedulingError):
    status_code = 404
    code = "not_found"


class ConflictError(SchedulingError):
    """The requested interval is no longer free; re-fetch slots and retry."""
    status_code = 409
    code = "slot_conflict"


class CapacityExhaustedError(ConflictError):
    code = "capacity_exhausted"


class InvalidStateError(ConflictError):
    code = "invalid_state"
