"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

import datetime as dt
from datetime import datetime, timezone
from typing import Any, List, Optional

from sqlalchemy import JSON, Boolean, Date, DateTime, ForeignKey, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from deskflow.config import SlaStatus
from deskflow.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class SlaPolicyModel(Base):
    """
    Database model for SlaPolicy entity.

    Maps to the 'sla_policies' table.
    """
    __tablename__ = "sla_policies"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Duration strings, e.g. "2h"
    first_response_time: Mapped[str] = mapped_column(String(20), nullable=False)
    resolution_time: Mapped[str] = mapped_column(String(20), nullable=False)
    next_response_time: Mapped[str] = mapped_column(String(20), nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class AppliedSlaModel(Base):
    """
    Database model for AppliedSla entity.

    Maps to the 'applied_slas' table. One row per conversation at most.
    """
    __tablename__ = "applied_slas"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    conversation_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    sla_policy_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sla_policies.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SlaStatus.PENDING.value)

    first_response_deadline_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolution_deadline_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    applied_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class SlaEventModel(Base):
    """
    Database model for SlaEvent entity.

    Maps to the 'sla_events' table.
    """
    __tablename__ = "sla_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    applied_sla_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("applied_slas.id", ondelete="CASCADE"), nullable=False, index=True
    )
    event_type: Mapped[str] = mapped_column(String(30), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SlaStatus.PENDING.value)

    deadline_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    met_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    breached_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        # At most one pending event per (applied SLA, event type)
        Index(
            "uq_sla_events_one_pending_per_type",
            "applied_sla_id",
            "event_type",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index("ix_sla_events_status_deadline", "status", "deadline_at"),
    )


class HolidayModel(Base):
    """
    Database model for Holiday entity.

    Maps to the 'holidays' table.
    """
    __tablename__ = "holidays"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    recurring: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)


class BusinessHoursModel(Base):
    """
    Database model for a named business hours schedule.

    ``schedule`` holds [{"day": "Monday", "start": "09:00", "end": "17:00"}, ...].
    """
    __tablename__ = "business_hours"

    name: Mapped[str] = mapped_column(String(100), primary_key=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")
    schedule: Mapped[List[Any]] = mapped_column(JSON, nullable=False, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
