"""
Automation Domain Entities
===========================

Pure Python domain entities for rule-based automation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import ValidationError

from deskflow.config import VALID_EVENT_TYPES, ActionResult, ConditionResult, RuleType
from deskflow.core import ValidationException
from deskflow.automation.domain.actions import RuleAction, parse_actions
from deskflow.automation.domain.conditions import Condition, parse_condition
from deskflow.shared.domain.events import utcnow

MIN_RULE_PRIORITY = 1
MAX_RULE_PRIORITY = 1000
DEFAULT_RULE_PRIORITY = 100
MAX_RULE_NAME_LENGTH = 200


def _new_id() -> str:
    return str(uuid4())


@dataclass
class AutomationRule:
    """
    Event-triggered rule: when a subscribed event arrives and ``condition``
    holds, run ``actions`` in order.

    Lower ``priority`` runs first.
    """

    name: str
    rule_type: RuleType
    event_subscription: List[str]
    condition: Condition
    actions: List[RuleAction]
    description: Optional[str] = None
    enabled: bool = True
    priority: int = DEFAULT_RULE_PRIORITY
    id: str = field(default_factory=_new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def validate(self) -> None:
        """
        Check structural rules and normalize condition/actions into typed trees.

        Raises:
            ValidationException: on the first violated rule
        """
        name = (self.name or "").strip()
        if not name:
            raise ValidationException("Rule name cannot be empty")
        if len(name) > MAX_RULE_NAME_LENGTH:
            raise ValidationException(f"Rule name cannot exceed {MAX_RULE_NAME_LENGTH} characters")
        self.name = name

        try:
            self.rule_type = RuleType(self.rule_type)
        except ValueError:
            raise ValidationException(f"Invalid rule type: {self.rule_type}")

        if not self.event_subscription:
            raise ValidationException("Rule must subscribe to at least one event")
        self.event_subscription = [getattr(e, "value", e) for e in self.event_subscription]
        unknown = [e for e in self.event_subscription if e not in VALID_EVENT_TYPES]
        if unknown:
            raise ValidationException(f"Unknown event types: {unknown}", {"valid": VALID_EVENT_TYPES})

        if not MIN_RULE_PRIORITY <= self.priority <= MAX_RULE_PRIORITY:
            raise ValidationException(
                f"Rule priority must be between {MIN_RULE_PRIORITY} and {MAX_RULE_PRIORITY}"
            )

        if not self.actions:
            raise ValidationException("Rule must have at least one action")

        try:
            self.condition = parse_condition(self.condition)
        except ValidationError as e:
            raise ValidationException(f"Invalid condition: {e}")
        try:
            self.actions = parse_actions(self.actions)
        except ValidationError as e:
            raise ValidationException(f"Invalid actions: {e}")

    def subscribes_to(self, event_type: str) -> bool:
        return getattr(event_type, "value", event_type) in self.event_subscription

    @property
    def sort_key(self):
        return (self.priority, self.created_at, self.id)


@dataclass
class RuleEvaluationLog:
    """
    Audit row for one (rule, event) evaluation. Append-only.

    Cascade-limited entries have no rule and no condition result.
    """

    rule_name: str
    event_type: str
    matched: bool
    action_executed: bool
    action_result: ActionResult
    evaluation_time_ms: int
    cascade_depth: int
    rule_id: Optional[str] = None
    conversation_id: Optional[str] = None
    condition_result: Optional[ConditionResult] = None
    error_message: Optional[str] = None
    cascade_limited: bool = False
    action_details: List[Dict[str, Any]] = field(default_factory=list)
    id: str = field(default_factory=_new_id)
    evaluated_at: datetime = field(default_factory=utcnow)
