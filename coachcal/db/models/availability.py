# coachcal/db/models/availability.py

from __future__ import annotations
from datetime import datetime
import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship
from coachcal.db.session import Base
from coachcal.db.types import BigIntPK, UTCDateTime, utcnow

OWNER_COACH = "coach"
OWNER_STAFF = "staff"


class Availability(Base):
    """Weekly working hours + blackouts for one calendar owner (coach or staff)."""
    __tablename__ = "availabilities"
    __table_args__ = (
        sa.UniqueConstraint("owner_type", "owner_id", name="uq_availabilities_owner"),
        sa.Index("ix_availabilities_coach_id", "coach_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    owner_type: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    owner_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    # Same as owner_id for coach rows; the owning coach for staff rows
    coach_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)

    time_zone: Mapped[str] = mapped_column(sa.String(64), nullable=False, default="UTC")
    default_duration: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=30)
    buffer_time: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)

    # Assignment policy (coach rows only)
    assignment_enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    assignment_mode: Mapped[str] = mapped_column(sa.String(16), nullable=False, default="manual")
    consider_staff_availability: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    allow_multiple_staff_same_slot: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)

    # Reminder policy (coach rows only); None -> default offsets
    reminders_enabled: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    reminder_offsets: Mapped[list | None] = mapped_column(sa.JSON, nullable=True)

    copied_from_coach: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    last_synced_with_coach: Mapped[datetime | None] = mapped_column(UTCDateTime)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow, onupdate=utcnow)

    working_hours: Mapped[list["WorkingHours"]] = relationship(
        back_populates="availability",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="WorkingHours.day_of_week",
    )
    blackouts: Mapped[list["BlackoutInterval"]] = relationship(
        back_populates="availability",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BlackoutInterval.starts_at",
    )


class WorkingHours(Base):
    __tablename__ = "working_hours"
    __table_args__ = (
        sa.UniqueConstraint("availability_id", "day_of_week", name="uq_working_hours_day"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    availability_id: Mapped[int] = mapped_column(
        sa.BigInteger, sa.ForeignKey("availabilities.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(sa.SmallInteger, nullable=False)  # 0=Sun .. 6=Sat
    start_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)  # "HH:MM"
    end_time: Mapped[str] = mapped_column(sa.String(5), nullable=False)

    availability: Mapped["Availability"] = relationship(back_populates="working_hours")


class BlackoutInterval(Base):
    __tablename__ = "blackout_intervals"
    __table_args__ = (
        sa.Index("ix_blackout_intervals_availability_id", "availability_id"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    availability_id: Mapped[int] = mapped_column(
        sa.BigInteger, sa.ForeignKey("availabilities.id", ondelete="CASCADE"), nullable=False
    )
    starts_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    reason: Mapped[str | None] = mapped_column(sa.String(200))

    availability: Mapped["Availability"] = relationship(back_populates="blackouts")
