# coachcal/db/models/appointment.py

from __future__ import annotations
from datetime import datetime
import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from coachcal.db.session import Base
from coachcal.db.types import BigIntPK, UTCDateTime, utcnow

STATUS_BOOKED = "booked"
STATUS_RESCHEDULED = "rescheduled"
STATUS_CANCELLED = "cancelled"
STATUS_COMPLETED = "completed"
STATUS_NO_SHOW = "no_show"

ALL_STATUSES = (STATUS_BOOKED, STATUS_RESCHEDULED, STATUS_CANCELLED, STATUS_COMPLETED, STATUS_NO_SHOW)
# Statuses whose interval is still occupied on the owner's calendar
BLOCKING_STATUSES = (STATUS_BOOKED, STATUS_RESCHEDULED, STATUS_NO_SHOW)
TERMINAL_STATUSES = (STATUS_CANCELLED, STATUS_COMPLETED)

_BLOCKING_SQL = sa.text("status IN ('booked', 'rescheduled', 'no_show')")


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        # Final tie-breaker for concurrent bookings of the same slot seat
        sa.Index(
            "uq_appointments_coach_slot_seat",
            "coach_id", "starts_at", "seat",
            unique=True,
            postgresql_where=_BLOCKING_SQL,
            sqlite_where=_BLOCKING_SQL,
        ),
        sa.Index("ix_appointments_coach_id_starts_at", "coach_id", "starts_at"),
        sa.Index("ix_appointments_assigned_staff_id", "assigned_staff_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    coach_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    lead_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    assigned_staff_id: Mapped[int | None] = mapped_column(
        sa.BigInteger, sa.ForeignKey("staff.id", ondelete="SET NULL")
    )

    # Store as timezone-aware UTC; ends_at is always starts_at + duration_min
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    duration_min: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=30, server_default="30")
    time_zone: Mapped[str] = mapped_column(sa.String(64), nullable=False, default="UTC")
    status: Mapped[str] = mapped_column(sa.String(32), nullable=False, default=STATUS_BOOKED, server_default=STATUS_BOOKED)
    # Index within a pooled slot's capacity; 0 when the slot has a single owner
    seat: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    notes: Mapped[str | None] = mapped_column(sa.Text)

    meeting_id: Mapped[str | None] = mapped_column(sa.String(64))
    meeting_join_url: Mapped[str | None] = mapped_column(sa.Text)
    meeting_start_url: Mapped[str | None] = mapped_column(sa.Text)

    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    cancelled_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_blocking(self) -> bool:
        return self.status in BLOCKING_STATUSES
