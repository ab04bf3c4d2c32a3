"""
Automation Application Layer
=============================

Contains:
- Services: rule management, action execution and the automation engine
- DTOs: validated rule input and log queries
- Ports: repository and conversation service interfaces
"""

from deskflow.automation.application.dto import (
    RuleCreateDTO,
    RuleUpdateDTO,
    EvaluationLogQueryDTO,
)
from deskflow.automation.application.services import (
    AutomationEngine,
    AutomationRuleService,
    RuleActionExecutor,
    ActionOutcome,
    ExecutionReport,
    IAutomationRepository,
    IStatusService,
    IAssignmentService,
    ITaggingService,
    IPriorityService,
)

__all__ = [
    # DTOs
    "RuleCreateDTO",
    "RuleUpdateDTO",
    "EvaluationLogQueryDTO",
    # Services
    "AutomationEngine",
    "AutomationRuleService",
    "RuleActionExecutor",
    "ActionOutcome",
    "ExecutionReport",
    # Ports
    "IAutomationRepository",
    "IStatusService",
    "IAssignmentService",
    "ITaggingService",
    "IPriorityService",
]
