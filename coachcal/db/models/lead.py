# coachcal/db/models/lead.py

from __future__ import annotations
from datetime import datetime
import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column
from coachcal.db.session import Base
from coachcal.db.types import UTCDateTime, utcnow


class Lead(Base):
    """Lead as seen by the assignment engine; the CRM owns the rest of it."""
    __tablename__ = "leads"
    __table_args__ = (
        sa.Index("ix_leads_coach_id_assigned_to", "coach_id", "assigned_to"),
    )

    id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    coach_id: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    name: Mapped[str | None] = mapped_column(sa.String(120))
    assigned_to: Mapped[int | None] = mapped_column(
        sa.BigInteger, sa.ForeignKey("staff.id", ondelete="SET NULL")
    )
    assigned_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
