# coachcal/services/meetings.py
"""
Zoom meeting integration for booked appointments.

Tokens are stored per calendar owner (coach or staff) in
``meeting_credentials``; refreshing them is handled elsewhere. Every call
raises ``MeetingError`` on failure so the booking flow can turn it into a
warning.
"""
from __future__ import annotations

import logging
from datetime import timezone
from typing import Any, Dict, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from coachcal.core.config import settings
from coachcal.crud.appointment import save_appointment
from coachcal.crud.reminder import get_meeting_credential
from coachcal.db.models.appointment import Appointment
from coachcal.db.types import utcnow

logger = logging.getLogger(__name__)


class MeetingError(Exception):
    """Meeting provider call failed or the owner has no usable credentials."""


class ZoomMeetingService:
    def __init__(
        self,
        db: AsyncSession,
        *,
        base_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.db = db
        self.base_url = (base_url or settings.MEETING_API_BASE_URL).rstrip("/")
        self.client = client
        self.timeout_seconds = timeout_seconds or settings.INTEGRATION_TIMEOUT_SECONDS

    async def _token(self, owner_id: str) -> Optional[str]:
        credential = await get_meeting_credential(self.db, owner_id)
        if credential is None:
            return None
        if credential.expires_at is not None and credential.expires_at <= utcnow():
            return None
        return credential.access_token

    async def has_valid_credentials(self, owner_id: str) -> bool:
        return await self._token(owner_id) is not None

    async def _request(self, method: str, path: str, token: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"}
        url = f"{self.base_url}{path}"
        try:
            if self.client is not None:
                response = await self.client.request(method, url, json=json, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                    response = await client.request(method, url, json=json, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise MeetingError(f"meeting provider error: {e}") from e
        if not response.content:
            return {}
        return response.json()

    async def _require_token(self, owner_id: str) -> str:
        token = await self._token(owner_id)
        if token is None:
            raise MeetingError(f"no valid meeting credentials for owner {owner_id}")
        return token

    async def create_meeting(self, appt: Appointment, owner_id: str) -> Dict[str, Any]:
        """
        Create a scheduled meeting and store its links on the appointment.

        Args:
            appt: The booked appointment
            owner_id: Coach or staff id whose account hosts the meeting

        Returns:
            Dict with meeting_id, join_url and start_url
        """
        token = await self._require_token(owner_id)
        body = {
            "topic": f"Appointment {appt.id}",
            "type": 2,
            "start_time": appt.starts_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": appt.duration_min,
            "timezone": appt.time_zone,
            "agenda": appt.notes or "",
            "settings": {"join_before_host": False, "waiting_room": True},
        }
        data = await self._request("POST", "/users/me/meetings", token, json=body)

        appt.meeting_id = str(data.get("id"))
        appt.meeting_join_url = data.get("join_url")
        appt.meeting_start_url = data.get("start_url")
        await save_appointment(self.db, appt)

        logger.info("Meeting %s created for appointment %s", appt.meeting_id, appt.id)
        return {
            "meeting_id": appt.meeting_id,
            "join_url": appt.meeting_join_url,
            "start_url": appt.meeting_start_url,
        }

    async def reschedule_meeting(self, appt: Appointment, owner_id: str) -> bool:
        if not appt.meeting_id:
            return False
        token = await self._require_token(owner_id)
        body = {
            "start_time": appt.starts_at.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
            "duration": appt.duration_min,
            "timezone": appt.time_zone,
        }
        await self._request("PATCH", f"/meetings/{appt.meeting_id}", token, json=body)
        logger.info("Meeting %s moved for appointment %s", appt.meeting_id, appt.id)
        return True

    async def cancel_meeting(self, appt: Appointment, owner_id: str) -> bool:
        if not appt.meeting_id:
            return False
        token = await self._require_token(owner_id)
        await self._request("DELETE", f"/meetings/{appt.meeting_id}", token)
        logger.info("Meeting %s cancelled for appointment %s", appt.meeting_id, appt.id)
        return True
