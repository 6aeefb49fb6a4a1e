"""
Shared fixtures: an in-memory SQLite database per test, seed helpers and an
HTTP client bound to the FastAPI app.
"""

import os

# Settings are read at import time, so the test environment goes in first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["APP_ENV"] = "testing"
os.environ["COACHCAL_API_KEY"] = "test-key"
os.environ["REDIS_URL"] = ""
os.environ["MEETING_ENABLED"] = "false"

from datetime import date, datetime, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine, AsyncSession
from sqlalchemy.pool import StaticPool

import coachcal.db.base  # noqa: F401  registers every model
from coachcal.crud.staff import create_staff
from coachcal.db.session import Base, get_session
from coachcal.services.availability import set_availability
from coachcal.services.owners import CoachOwner

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

COACH_ID = "coach-1"
# A Monday well in the future so reminder offsets are never in the past
MONDAY = date(2030, 1, 7)
WEEKDAY_HOURS = [{"day_of_week": d, "start_time": "09:00", "end_time": "17:00"} for d in range(1, 6)]


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def publisher():
    """Event publisher double that records every publish call."""
    mock = AsyncMock()
    mock.publish = AsyncMock(return_value=None)
    return mock


async def seed_coach(db, coach_id=COACH_ID, *, working_hours=None, time_zone="UTC",
                     default_duration=30, buffer_time=0, assignment=None, reminders=None, blackouts=None):
    """Store coach availability (weekdays 09:00-17:00 UTC unless overridden)."""
    return await set_availability(
        db,
        CoachOwner.of(coach_id),
        working_hours=WEEKDAY_HOURS if working_hours is None else working_hours,
        time_zone=time_zone,
        default_duration=default_duration,
        buffer_time=buffer_time,
        blackouts=blackouts,
        assignment=assignment,
        reminders=reminders,
    )


async def seed_staff(db, name, *, coach_id=COACH_ID, ratio=1.0, permissions=("calendar:read",), is_active=True):
    return await create_staff(
        db,
        coach_id=coach_id,
        name=name,
        email=f"{name.lower()}@example.com",
        permissions=permissions,
        distribution_ratio=ratio,
        is_active=is_active,
    )


AUTO_ASSIGNMENT = {"enabled": True, "mode": "automatic"}
POOLED_ASSIGNMENT = {
    "enabled": True,
    "mode": "automatic",
    "consider_staff_availability": True,
    "allow_multiple_staff_same_slot": True,
}


@pytest_asyncio.fixture
async def client(session_factory):
    """HTTP client against the app with the test database and a valid API key."""
    from coachcal.main import app

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(
        transport=transport,
        base_url="http://testserver",
        headers={"X-API-Key": "test-key", "X-Coach-Id": COACH_ID},
    ) as ac:
        yield ac
    app.dependency_overrides.clear()


def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "unit: Pure unit tests with no database")
    config.addinivalue_line("markers", "integration: Tests against the SQLite test database")
    config.addinivalue_line("markers", "slow: Long-running tests")
