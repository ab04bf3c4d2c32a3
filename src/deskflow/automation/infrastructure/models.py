"""
Automation Infrastructure Models
=================================

SQLAlchemy ORM models for the automation module.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, Boolean, CheckConstraint, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from deskflow.infrastructure.database import Base


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AutomationRuleModel(Base):
    """
    Database model for AutomationRule entity.

    Maps to the 'automation_rules' table. Condition and actions are stored
    as their JSON form.
    """
    __tablename__ = "automation_rules"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    rule_type: Mapped[str] = mapped_column(String(50), nullable=False)

    event_subscription: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    condition: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    actions: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)

    priority: Mapped[int] = mapped_column(Integer, nullable=False, default=100)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now)

    __table_args__ = (
        CheckConstraint("priority >= 1 AND priority <= 1000", name="ck_automation_rules_priority"),
        Index("ix_automation_rules_enabled_priority", "enabled", "priority"),
    )


class RuleEvaluationLogModel(Base):
    """
    Database model for RuleEvaluationLog entity.

    Maps to the 'rule_evaluation_logs' table. Rows are never updated.
    """
    __tablename__ = "rule_evaluation_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    rule_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    rule_name: Mapped[str] = mapped_column(String(200), nullable=False)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    conversation_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    matched: Mapped[bool] = mapped_column(Boolean, nullable=False)
    condition_result: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    action_executed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    action_result: Mapped[str] = mapped_column(String(20), nullable=False)
    action_details: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    evaluation_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cascade_depth: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cascade_limited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    evaluated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_now, index=True)
