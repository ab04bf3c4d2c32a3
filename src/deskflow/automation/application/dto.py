"""
Automation Application DTOs
============================

Pydantic models for rule management input and evaluation log queries.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from deskflow.automation.domain.actions import RuleAction
from deskflow.automation.domain.conditions import Condition
from deskflow.automation.domain.entities import (
    DEFAULT_RULE_PRIORITY,
    MAX_RULE_NAME_LENGTH,
    MAX_RULE_PRIORITY,
    MIN_RULE_PRIORITY,
)
from deskflow.config import ConditionResult, EventType, RuleType


class RuleCreateDTO(BaseModel):
    """DTO for creating an automation rule."""
    name: str = Field(..., min_length=1, max_length=MAX_RULE_NAME_LENGTH)
    description: Optional[str] = None
    enabled: bool = True
    rule_type: RuleType
    event_subscription: List[EventType] = Field(..., min_length=1)
    condition: Condition
    actions: List[RuleAction] = Field(..., min_length=1)
    priority: int = Field(default=DEFAULT_RULE_PRIORITY, ge=MIN_RULE_PRIORITY, le=MAX_RULE_PRIORITY)


class RuleUpdateDTO(BaseModel):
    """DTO for updating a rule. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=MAX_RULE_NAME_LENGTH)
    description: Optional[str] = None
    enabled: Optional[bool] = None
    rule_type: Optional[RuleType] = None
    event_subscription: Optional[List[EventType]] = Field(None, min_length=1)
    condition: Optional[Condition] = None
    actions: Optional[List[RuleAction]] = Field(None, min_length=1)
    priority: Optional[int] = Field(None, ge=MIN_RULE_PRIORITY, le=MAX_RULE_PRIORITY)


class EvaluationLogQueryDTO(BaseModel):
    """Filters for listing rule evaluation logs, newest first."""
    rule_id: Optional[str] = None
    conversation_id: Optional[str] = None
    event_type: Optional[EventType] = None
    condition_result: Optional[ConditionResult] = None
    cascade_limited: Optional[bool] = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
