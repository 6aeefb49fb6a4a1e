"""
HTTP-level tests: routing, authentication and error mapping.
"""

import pytest

from coachcal.crud.lead import create_lead

from conftest import COACH_ID, WEEKDAY_HOURS, seed_staff

TEN = "2030-01-07T10:00:00Z"


async def post_availability(client, **extra):
    body = {"time_zone": "UTC", "working_hours": WEEKDAY_HOURS, "default_duration": 30, **extra}
    response = await client.post("/availability", json=body)
    assert response.status_code == 200, response.text
    return response.json()


@pytest.mark.integration
class TestAuthentication:
    """API key gate and coach header"""

    @pytest.mark.asyncio
    async def test_health_is_public(self, client):
        response = await client.get("/healthz", headers={"X-API-Key": ""})
        assert response.status_code == 200
        assert response.json() == {"ok": True}

    @pytest.mark.asyncio
    async def test_ready_checks_database(self, client):
        response = await client.get("/readyz")
        assert response.status_code == 200
        assert response.json() == {"db": "ok"}

    @pytest.mark.asyncio
    async def test_missing_or_wrong_api_key(self, client):
        for key in ("", "nope"):
            response = await client.get(f"/coaches/{COACH_ID}/availability", headers={"X-API-Key": key})
            assert response.status_code == 401
            assert response.json()["code"] == "unauthorized"

    @pytest.mark.asyncio
    async def test_openapi_schema_outside_production(self, client):
        response = await client.get("/openapi.json")
        assert response.status_code == 200
        assert response.json()["info"]["title"] == "coachcal"

    @pytest.mark.asyncio
    async def test_coach_header_required_for_coach_operations(self, client):
        response = await client.post(
            "/availability", json={"working_hours": []}, headers={"X-Coach-Id": ""}
        )
        assert response.status_code == 401


@pytest.mark.integration
class TestAvailabilityRoutes:
    """Availability and slot endpoints"""

    @pytest.mark.asyncio
    async def test_set_and_read_availability(self, client):
        saved = await post_availability(client, assignment={"enabled": True, "mode": "automatic"})

        assert saved["owner_type"] == "coach"
        assert len(saved["working_hours"]) == 5
        assert saved["assignment"]["mode"] == "automatic"

        read = (await client.get(f"/coaches/{COACH_ID}/availability")).json()
        assert read["working_hours"] == saved["working_hours"]

    @pytest.mark.asyncio
    async def test_invalid_working_hours_is_400(self, client):
        response = await client.post("/availability", json={
            "working_hours": [{"day_of_week": 1, "start_time": "17:00", "end_time": "09:00"}],
        })
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_malformed_body_is_400(self, client):
        response = await client.post("/availability", json={"working_hours": "always"})
        assert response.status_code == 400
        assert response.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_available_slots(self, client):
        await post_availability(client)

        response = await client.get(f"/coaches/{COACH_ID}/available-slots", params={"date": "2030-01-07"})

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == "2030-01-07"
        assert len(data["slots"]) == 16
        assert data["slots"][0]["start_time"] == "2030-01-07T09:00:00+00:00"

    @pytest.mark.asyncio
    async def test_bad_date_is_400(self, client):
        response = await client.get(f"/coaches/{COACH_ID}/available-slots", params={"date": "07/01/2030"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_blackout_lifecycle(self, client):
        await post_availability(client)

        created = await client.post("/availability/blackouts", json={
            "start_time": "2030-01-07T09:00:00Z", "end_time": "2030-01-07T10:00:00Z", "reason": "gym",
        })
        assert created.status_code == 201
        slots = (await client.get(f"/coaches/{COACH_ID}/available-slots", params={"date": "2030-01-07"})).json()
        assert len(slots["slots"]) == 14

        deleted = await client.delete(f"/availability/blackouts/{created.json()['id']}")
        assert deleted.status_code == 204

    @pytest.mark.asyncio
    async def test_calendar_range_limit(self, client):
        response = await client.get(
            f"/coaches/{COACH_ID}/calendar", params={"start_date": "2030-01-01", "end_date": "2030-12-31"}
        )
        assert response.status_code == 400


@pytest.mark.integration
class TestAppointmentRoutes:
    """Booking flow over HTTP"""

    @pytest.mark.asyncio
    async def test_book_then_double_book(self, client):
        await post_availability(client)

        first = await client.post(f"/coaches/{COACH_ID}/book", json={"lead_id": "lead-1", "start_time": TEN})
        second = await client.post(f"/coaches/{COACH_ID}/book", json={"lead_id": "lead-2", "start_time": TEN})

        assert first.status_code == 201
        body = first.json()
        assert body["appointment"]["status"] == "booked"
        assert body["warnings"] == []
        assert second.status_code == 409
        assert second.json()["code"] in ("slot_unavailable", "slot_taken")

    @pytest.mark.asyncio
    async def test_reschedule_cancel_and_status(self, client):
        await post_availability(client)
        booked = (await client.post(
            f"/coaches/{COACH_ID}/book", json={"lead_id": "lead-1", "start_time": TEN}
        )).json()
        appointment_id = booked["appointment"]["id"]

        moved = await client.put(
            f"/appointments/{appointment_id}/reschedule", json={"new_start_time": "2030-01-07T11:00:00Z"}
        )
        assert moved.status_code == 200
        assert moved.json()["appointment"]["status"] == "rescheduled"

        bad_status = await client.patch(f"/appointments/{appointment_id}/status", json={"status": "lost"})
        assert bad_status.status_code == 400

        cancelled = await client.delete(f"/appointments/{appointment_id}")
        assert cancelled.status_code == 200
        assert cancelled.json()["appointment"]["status"] == "cancelled"

        again = await client.delete(f"/appointments/{appointment_id}")
        assert again.status_code == 409
        assert again.json()["code"] == "invalid_state"

    @pytest.mark.asyncio
    async def test_unknown_appointment_is_404(self, client):
        response = await client.delete("/appointments/12345")
        assert response.status_code == 404
        assert response.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_assign_endpoints(self, client, session_factory):
        await post_availability(client)
        async with session_factory() as db:
            ana = await seed_staff(db, "Ana")
        booked = (await client.post(
            f"/coaches/{COACH_ID}/book", json={"lead_id": "lead-1", "start_time": TEN}
        )).json()
        appointment_id = booked["appointment"]["id"]
        assert booked["assigned"] is False

        auto = await client.post(f"/appointments/{appointment_id}/auto-assign")
        assert auto.status_code == 200
        assert auto.json()["reason"] == "assignment_disabled"

        manual = await client.post(f"/appointments/{appointment_id}/assign", json={"staff_id": ana.id})
        assert manual.status_code == 200
        assert manual.json()["assigned_staff_id"] == ana.id

        missing = await client.post(f"/appointments/{appointment_id}/assign", json={"staff_id": 999})
        assert missing.status_code == 404


@pytest.mark.integration
class TestStaffAndLeadRoutes:
    """Staff calendars, distribution and lead assignment"""

    @pytest.mark.asyncio
    async def test_staff_availability_and_slots(self, client, session_factory):
        await post_availability(client)
        async with session_factory() as db:
            ana = await seed_staff(db, "Ana")

        availability = await client.get(f"/staff/{ana.id}/availability")
        assert availability.status_code == 200
        assert availability.json()["copied_from_coach"] is True

        updated = await client.put(f"/staff/{ana.id}/availability", json={
            "working_hours": [{"day_of_week": 1, "start_time": "09:00", "end_time": "10:00"}],
        })
        assert updated.status_code == 200

        slots = await client.get(f"/staff/{ana.id}/available-slots", params={"date": "2030-01-07"})
        assert len(slots.json()["slots"]) == 2

    @pytest.mark.asyncio
    async def test_staff_of_other_coach_is_404(self, client, session_factory):
        async with session_factory() as db:
            other = await seed_staff(db, "Zed", coach_id="coach-2")
        response = await client.get(f"/staff/{other.id}/availability")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_distribution(self, client, session_factory):
        async with session_factory() as db:
            ana = await seed_staff(db, "Ana")

        ok = await client.put(f"/staff/{ana.id}/distribution", json={"distribution_ratio": 2.5})
        negative = await client.put(f"/staff/{ana.id}/distribution", json={"distribution_ratio": -1})

        assert ok.status_code == 200
        assert ok.json()["distribution_ratio"] == 2.5
        assert negative.status_code == 400

    @pytest.mark.asyncio
    async def test_lead_auto_assign_and_stats(self, client, session_factory):
        async with session_factory() as db:
            ana = await seed_staff(db, "Ana")
            await create_lead(db, lead_id="lead-9", coach_id=COACH_ID)

        assigned = await client.post("/leads/lead-9/auto-assign")
        assert assigned.status_code == 200
        body = assigned.json()
        assert body["assigned"] is True
        assert body["staff_id"] == ana.id
        assert body["lead_id"] == "lead-9"

        staff = (await client.get("/leads/assignable-staff")).json()["staff"]
        assert staff[0]["assigned_lead_count"] == 1

        stats = await client.get("/assignment/stats", params={"days": 7})
        assert stats.status_code == 200
        assert stats.json()["period"] == "Last 7 days"

    @pytest.mark.asyncio
    async def test_unknown_lead_is_404(self, client):
        response = await client.post("/leads/nobody/auto-assign")
        assert response.status_code == 404
