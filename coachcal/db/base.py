# coachcal/db/base.py

"""
This file imports all the ORM models so Alembic can discover them.
Whenever you add a new model, import it here.
"""
from coachcal.db.models.availability import Availability, WorkingHours, BlackoutInterval
from coachcal.db.models.staff import Staff, StaffCalendarEvent
from coachcal.db.models.appointment import Appointment
from coachcal.db.models.lead import Lead
from coachcal.db.models.reminder import ScheduledReminder, MeetingCredential
from coachcal.db.session import engine, Base

async def init_db():
    """Initialize database by creating all tables"""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
