"""
Automation Infrastructure Layer
================================

- Models: SQLAlchemy ORM models
- Repositories: Data access layer
"""

from deskflow.automation.infrastructure.models import AutomationRuleModel, RuleEvaluationLogModel
from deskflow.automation.infrastructure.repositories import SQLAlchemyAutomationRepository

__all__ = [
    "AutomationRuleModel",
    "RuleEvaluationLogModel",
    "SQLAlchemyAutomationRepository",
]
