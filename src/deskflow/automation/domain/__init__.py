"""
Automation Domain Layer
=======================

Domain layer for rule-based automation.

Contains:
- Entities: AutomationRule, RuleEvaluationLog
- Value Objects: condition trees and action specs (closed Pydantic unions)
- Domain Services: RuleConditionEvaluator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from deskflow.automation.domain.actions import (
    RuleAction,
    SetStatusAction,
    AssignToUserAction,
    AssignToTeamAction,
    AddTagAction,
    SetPriorityAction,
    parse_actions,
    dump_actions,
)
from deskflow.automation.domain.conditions import (
    Condition,
    SimpleCondition,
    AndCondition,
    OrCondition,
    NotCondition,
    ConditionOutcome,
    RuleConditionEvaluator,
    parse_condition,
    dump_condition,
)
from deskflow.automation.domain.entities import (
    AutomationRule,
    RuleEvaluationLog,
    MIN_RULE_PRIORITY,
    MAX_RULE_PRIORITY,
    DEFAULT_RULE_PRIORITY,
)

__all__ = [
    # Actions
    "RuleAction",
    "SetStatusAction",
    "AssignToUserAction",
    "AssignToTeamAction",
    "AddTagAction",
    "SetPriorityAction",
    "parse_actions",
    "dump_actions",
    # Conditions
    "Condition",
    "SimpleCondition",
    "AndCondition",
    "OrCondition",
    "NotCondition",
    "ConditionOutcome",
    "RuleConditionEvaluator",
    "parse_condition",
    "dump_condition",
    # Entities
    "AutomationRule",
    "RuleEvaluationLog",
    "MIN_RULE_PRIORITY",
    "MAX_RULE_PRIORITY",
    "DEFAULT_RULE_PRIORITY",
]
