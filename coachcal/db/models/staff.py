# coachcal/db/models/staff.py

from __future__ import annotations
from datetime import datetime
import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from coachcal.db.session import Base
from coachcal.db.types import BigIntPK, UTCDateTime, utcnow

CALENDAR_PERMISSIONS = ("calendar:read", "calendar:book")


class Staff(Base):
    __tablename__ = "staff"
    __table_args__ = (
        sa.Index("ix_staff_coach_id", "coach_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    coach_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    name: Mapped[str] = mapped_column(sa.String(120), nullable=False)
    email: Mapped[str | None] = mapped_column(sa.String(255))
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    permissions: Mapped[list] = mapped_column(sa.JSON, nullable=False, default=list)

    # Relative share of auto-assigned work; 0 excludes from auto-assignment
    distribution_ratio: Mapped[float] = mapped_column(sa.Float, nullable=False, default=1.0)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    @property
    def has_calendar_access(self) -> bool:
        return any(p in CALENDAR_PERMISSIONS for p in (self.permissions or []))


class StaffCalendarEvent(Base):
    """Tasks, meetings, breaks etc. on a staff member's own calendar."""
    __tablename__ = "staff_calendar_events"
    __table_args__ = (
        sa.Index("ix_staff_calendar_events_staff_window", "staff_id", "starts_at", "ends_at"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    staff_id: Mapped[int] = mapped_column(
        sa.BigInteger, sa.ForeignKey("staff.id", ondelete="CASCADE"), nullable=False
    )
    coach_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    event_type: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="custom")
    title: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status: Mapped[str] = mapped_column(sa.String(32), nullable=False, default="scheduled")
    notes: Mapped[str | None] = mapped_column(sa.Text)
