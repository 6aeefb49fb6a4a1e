# coachcal/db/models/reminder.py

from __future__ import annotations
from datetime import datetime
import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from coachcal.db.session import Base
from coachcal.db.types import BigIntPK, UTCDateTime, utcnow

REMINDER_PENDING = "pending"
REMINDER_SENT = "sent"
REMINDER_CANCELLED = "cancelled"


class ScheduledReminder(Base):
    __tablename__ = "scheduled_reminders"
    __table_args__ = (
        sa.Index("ix_scheduled_reminders_status_fire_at", "status", "fire_at"),
        sa.Index("ix_scheduled_reminders_appointment_id", "appointment_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    appointment_id: Mapped[int] = mapped_column(
        sa.BigInteger, sa.ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )
    coach_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    name: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    minutes_before: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    channel: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="whatsapp")
    fire_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default=REMINDER_PENDING)
    sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)


class MeetingCredential(Base):
    """Video-meeting access token for one calendar owner (refreshed elsewhere)."""
    __tablename__ = "meeting_credentials"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    owner_id: Mapped[str] = mapped_column(sa.String(64), nullable=False, unique=True)
    provider: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="zoom")
    access_token: Mapped[str] = mapped_column(sa.Text, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
