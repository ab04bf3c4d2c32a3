"""
Automation Application Services
================================

Application services for rule management and event-driven rule execution.

Following SOLID principles:
- Single Responsibility: evaluator, executor and engine are separate
- Dependency Inversion: conversation mutations go through service ports
"""

import asyncio
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from deskflow.automation.application.dto import EvaluationLogQueryDTO, RuleCreateDTO, RuleUpdateDTO
from deskflow.automation.domain import (
    AddTagAction,
    AssignToTeamAction,
    AssignToUserAction,
    AutomationRule,
    RuleAction,
    RuleConditionEvaluator,
    RuleEvaluationLog,
    SetPriorityAction,
    SetStatusAction,
)
from deskflow.config import SYSTEM_ACTOR, ActionResult, ConditionResult
from deskflow.core import (
    ActionExecutionFailure,
    CascadeLimitExceeded,
    DuplicateEntryException,
    ResourceNotFoundException,
    ValidationException,
)
from deskflow.shared.domain.events import DomainEvent, utcnow
from deskflow.shared.infrastructure.event_bus import EventBus
from deskflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IAutomationRepository(ABC):
    """Interface for rule and evaluation log data access."""

    @abstractmethod
    async def create_rule(self, rule: AutomationRule) -> AutomationRule:
        """Persist a rule. Raises DuplicateEntryException on a taken name."""

    @abstractmethod
    async def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        """Get rule by ID."""

    @abstractmethod
    async def get_rule_by_name(self, name: str) -> Optional[AutomationRule]:
        """Get rule by unique name."""

    @abstractmethod
    async def list_rules(self, enabled_only: bool = False) -> List[AutomationRule]:
        """List rules ordered by priority, created_at, id."""

    @abstractmethod
    async def update_rule(self, rule: AutomationRule) -> AutomationRule:
        """Overwrite an existing rule."""

    @abstractmethod
    async def delete_rule(self, rule_id: str) -> bool:
        """Delete a rule. Returns False when it did not exist."""

    @abstractmethod
    async def list_enabled_rules_for_event(self, event_type: str) -> List[AutomationRule]:
        """Enabled rules subscribed to ``event_type``, ordered by priority, created_at, id."""

    @abstractmethod
    async def create_evaluation_log(self, log: RuleEvaluationLog) -> RuleEvaluationLog:
        """Append an evaluation log row."""

    @abstractmethod
    async def list_evaluation_logs(self, query: EvaluationLogQueryDTO) -> List[RuleEvaluationLog]:
        """Filtered evaluation logs, newest first."""


# ========== Conversation Service Ports ==========
#
# Each ``apply`` is idempotent and returns the domain events its change
# produced (empty when nothing changed). Failures raise ActionExecutionFailure.

class IStatusService(ABC):
    @abstractmethod
    async def apply(self, conversation_id: str, status: str, actor_id: str) -> List[DomainEvent]:
        """Set the conversation status."""


class IAssignmentService(ABC):
    @abstractmethod
    async def apply(
        self,
        conversation_id: str,
        actor_id: str,
        user_id: Optional[str] = None,
        team_id: Optional[str] = None
    ) -> List[DomainEvent]:
        """Assign the conversation to a user and/or a team."""


class ITaggingService(ABC):
    @abstractmethod
    async def apply(self, conversation_id: str, tag: str, actor_id: str) -> List[DomainEvent]:
        """Add a tag to the conversation."""


class IPriorityService(ABC):
    @abstractmethod
    async def apply(self, conversation_id: str, priority: str, actor_id: str) -> List[DomainEvent]:
        """Set the conversation priority."""


# ========== Action execution ==========

@dataclass
class ActionOutcome:
    """Result of one action."""
    action_type: str
    succeeded: bool
    error: Optional[str] = None
    events: List[DomainEvent] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_type": self.action_type,
            "result": (ActionResult.SUCCESS if self.succeeded else ActionResult.FAILURE).value,
            "error": self.error,
        }


@dataclass
class ExecutionReport:
    """Result of one rule's action list."""
    result: ActionResult
    outcomes: List[ActionOutcome] = field(default_factory=list)

    @classmethod
    def skipped(cls) -> "ExecutionReport":
        return cls(result=ActionResult.SKIPPED)

    @property
    def events(self) -> List[DomainEvent]:
        return [e for outcome in self.outcomes for e in outcome.events]

    @property
    def error_message(self) -> Optional[str]:
        errors = [o.error for o in self.outcomes if o.error]
        return "; ".join(errors) if errors else None

    @property
    def details(self) -> List[Dict[str, Any]]:
        return [o.to_dict() for o in self.outcomes]


class RuleActionExecutor:
    """
    Runs a rule's actions in stored order.

    Each action runs under a timeout. A failed action never stops the
    actions after it.
    """

    def __init__(
        self,
        status_service: IStatusService,
        assignment_service: IAssignmentService,
        tagging_service: ITaggingService,
        priority_service: IPriorityService,
        timeout_seconds: float = 10.0
    ):
        self._status = status_service
        self._assignment = assignment_service
        self._tagging = tagging_service
        self._priority = priority_service
        self._timeout = timeout_seconds

    async def execute(
        self,
        actions: Sequence[RuleAction],
        conversation_id: str,
        actor_id: str = SYSTEM_ACTOR
    ) -> ExecutionReport:
        outcomes = []
        for action in actions:
            outcomes.append(await self._run(action, conversation_id, actor_id))

        all_ok = all(o.succeeded for o in outcomes)
        return ExecutionReport(
            result=ActionResult.SUCCESS if all_ok else ActionResult.FAILURE,
            outcomes=outcomes
        )

    async def _run(self, action: RuleAction, conversation_id: str, actor_id: str) -> ActionOutcome:
        try:
            events = await asyncio.wait_for(
                self._dispatch(action, conversation_id, actor_id),
                timeout=self._timeout
            )
        except asyncio.TimeoutError:
            error = f"{action.action_type}: timed out after {self._timeout}s"
        except ActionExecutionFailure as e:
            error = e.message
        except Exception as e:
            error = f"{action.action_type}: {e}"
        else:
            logger.debug(
                "Action executed",
                extra={"action_type": action.action_type, "conversation_id": conversation_id}
            )
            return ActionOutcome(action.action_type, True, events=list(events or []))

        logger.warning(
            "Action failed",
            extra={"action_type": action.action_type, "conversation_id": conversation_id, "error": error}
        )
        return ActionOutcome(action.action_type, False, error=error)

    async def _dispatch(
        self,
        action: RuleAction,
        conversation_id: str,
        actor_id: str
    ) -> List[DomainEvent]:
        params = action.parameters
        if isinstance(action, SetStatusAction):
            return await self._status.apply(conversation_id, params.status.value, actor_id)
        if isinstance(action, AssignToUserAction):
            return await self._assignment.apply(conversation_id, actor_id, user_id=params.user_id)
        if isinstance(action, AssignToTeamAction):
            return await self._assignment.apply(conversation_id, actor_id, team_id=params.team_id)
        if isinstance(action, AddTagAction):
            return await self._tagging.apply(conversation_id, params.tag, actor_id)
        if isinstance(action, SetPriorityAction):
            return await self._priority.apply(conversation_id, params.priority.value, actor_id)
        raise ActionExecutionFailure(getattr(action, "action_type", "unknown"), "unsupported action")


# ========== Engine ==========

CASCADE_LIMIT_RULE_NAME = "cascade_limit"


class AutomationEngine:
    """
    Evaluates subscribed rules against each domain event.

    Rules run one after another in priority order. Events produced by
    actions are published after every rule has run, one cascade level deeper.
    """

    def __init__(
        self,
        automation_repository: IAutomationRepository,
        evaluator: RuleConditionEvaluator,
        executor: RuleActionExecutor,
        event_bus: EventBus,
        max_cascade_depth: int = 5
    ):
        self._repo = automation_repository
        self._evaluator = evaluator
        self._executor = executor
        self._bus = event_bus
        self._max_cascade_depth = max_cascade_depth

    async def handle_event(self, event: DomainEvent) -> List[RuleEvaluationLog]:
        """
        Evaluate every enabled rule subscribed to ``event``.

        Returns:
            The evaluation logs written for this event
        """
        event_type = event.event_type.value
        rules = sorted(
            await self._repo.list_enabled_rules_for_event(event_type),
            key=lambda r: r.sort_key
        )
        if not rules:
            return []

        if event.cascade_depth >= self._max_cascade_depth:
            return [await self._refuse(event)]

        payload = event.payload()
        logs: List[RuleEvaluationLog] = []
        produced: List[DomainEvent] = []
        for rule in rules:
            log, events = await self._evaluate_rule(rule, event, payload)
            await self._write_log(log)
            logs.append(log)
            produced.extend(events)

        for side_effect in produced:
            await self._bus.publish(side_effect.with_cascade_depth(event.cascade_depth + 1))

        return logs

    async def _evaluate_rule(
        self,
        rule: AutomationRule,
        event: DomainEvent,
        payload: Dict[str, Any]
    ) -> Tuple[RuleEvaluationLog, List[DomainEvent]]:
        started = time.perf_counter()
        condition_result: Optional[ConditionResult] = None
        try:
            outcome = self._evaluator.evaluate(rule.condition, payload)
            condition_result = outcome.result
            if outcome.matched:
                report = await self._executor.execute(rule.actions, event.conversation_id)
            else:
                report = ExecutionReport.skipped()
        except Exception as e:
            logger.error(
                "Rule evaluation failed",
                extra={"rule_id": rule.id, "conversation_id": event.conversation_id, "error": str(e)},
                exc_info=True
            )
            log = self._new_log(rule, event, started)
            log.condition_result = condition_result
            log.action_result = ActionResult.ERROR
            log.error_message = str(e)
            return log, []

        log = self._new_log(rule, event, started)
        log.matched = outcome.matched
        log.condition_result = outcome.result
        log.action_executed = outcome.matched
        log.action_result = report.result
        log.error_message = outcome.error or report.error_message
        log.action_details = report.details

        logger.info(
            "Rule evaluated",
            extra={
                "rule_id": rule.id,
                "rule_name": rule.name,
                "event_type": log.event_type,
                "conversation_id": event.conversation_id,
                "condition_result": outcome.result.value,
                "action_result": report.result.value,
                "cascade_depth": event.cascade_depth,
            }
        )
        return log, report.events

    @staticmethod
    def _new_log(rule: AutomationRule, event: DomainEvent, started: float) -> RuleEvaluationLog:
        return RuleEvaluationLog(
            rule_id=rule.id,
            rule_name=rule.name,
            event_type=event.event_type.value,
            conversation_id=event.conversation_id,
            matched=False,
            action_executed=False,
            action_result=ActionResult.SKIPPED,
            evaluation_time_ms=int((time.perf_counter() - started) * 1000),
            cascade_depth=event.cascade_depth,
        )

    async def _refuse(self, event: DomainEvent) -> RuleEvaluationLog:
        limit = CascadeLimitExceeded(
            event.event_type.value, event.cascade_depth, self._max_cascade_depth
        )
        log = RuleEvaluationLog(
            rule_name=CASCADE_LIMIT_RULE_NAME,
            event_type=event.event_type.value,
            conversation_id=event.conversation_id,
            matched=False,
            action_executed=False,
            action_result=ActionResult.SKIPPED,
            evaluation_time_ms=0,
            cascade_depth=event.cascade_depth,
            error_message=limit.message,
            cascade_limited=True,
        )
        logger.warning(
            "Automation cascade limit reached",
            extra={
                "event_type": log.event_type,
                "conversation_id": event.conversation_id,
                "cascade_depth": event.cascade_depth,
                "max_cascade_depth": self._max_cascade_depth,
            }
        )
        await self._write_log(log)
        return log

    async def _write_log(self, log: RuleEvaluationLog) -> None:
        try:
            await self._repo.create_evaluation_log(log)
        except Exception as e:
            logger.error(
                "Failed to write rule evaluation log",
                extra={"rule_id": log.rule_id, "conversation_id": log.conversation_id, "error": str(e)},
                exc_info=True
            )


# ========== Rule management ==========

class AutomationRuleService:
    """CRUD over automation rules plus evaluation log queries."""

    def __init__(self, automation_repository: IAutomationRepository):
        self._repo = automation_repository

    async def create_rule(self, dto: RuleCreateDTO) -> AutomationRule:
        rule = AutomationRule(
            name=dto.name,
            description=dto.description,
            enabled=dto.enabled,
            rule_type=dto.rule_type,
            event_subscription=list(dto.event_subscription),
            condition=dto.condition,
            actions=list(dto.actions),
            priority=dto.priority,
        )
        rule.validate()

        if await self._repo.get_rule_by_name(rule.name):
            raise ValidationException(f"Automation rule '{rule.name}' already exists")
        try:
            created = await self._repo.create_rule(rule)
        except DuplicateEntryException:
            raise ValidationException(f"Automation rule '{rule.name}' already exists")

        logger.info(
            "Automation rule created",
            extra={"rule_id": created.id, "rule_name": created.name, "priority": created.priority}
        )
        return created

    async def update_rule(self, rule_id: str, dto: RuleUpdateDTO) -> AutomationRule:
        rule = await self.get_rule(rule_id)

        for field_name in dto.model_fields_set:
            value = getattr(dto, field_name)
            if value is not None:
                setattr(rule, field_name, list(value) if isinstance(value, list) else value)
        rule.validate()
        rule.updated_at = utcnow()

        try:
            updated = await self._repo.update_rule(rule)
        except DuplicateEntryException:
            raise ValidationException(f"Automation rule '{rule.name}' already exists")

        logger.info("Automation rule updated", extra={"rule_id": rule_id})
        return updated

    async def get_rule(self, rule_id: str) -> AutomationRule:
        rule = await self._repo.get_rule(rule_id)
        if rule is None:
            raise ResourceNotFoundException("AutomationRule", rule_id)
        return rule

    async def list_rules(self, enabled_only: bool = False) -> List[AutomationRule]:
        return await self._repo.list_rules(enabled_only=enabled_only)

    async def enable_rule(self, rule_id: str) -> AutomationRule:
        return await self._set_enabled(rule_id, True)

    async def disable_rule(self, rule_id: str) -> AutomationRule:
        return await self._set_enabled(rule_id, False)

    async def _set_enabled(self, rule_id: str, enabled: bool) -> AutomationRule:
        rule = await self.get_rule(rule_id)
        if rule.enabled == enabled:
            return rule
        rule.enabled = enabled
        rule.updated_at = utcnow()
        updated = await self._repo.update_rule(rule)
        logger.info("Automation rule toggled", extra={"rule_id": rule_id, "enabled": enabled})
        return updated

    async def delete_rule(self, rule_id: str) -> None:
        if not await self._repo.delete_rule(rule_id):
            raise ResourceNotFoundException("AutomationRule", rule_id)
        logger.info("Automation rule deleted", extra={"rule_id": rule_id})

    async def list_evaluation_logs(
        self,
        query: Optional[EvaluationLogQueryDTO] = None
    ) -> List[RuleEvaluationLog]:
        return await self._repo.list_evaluation_logs(query or EvaluationLogQueryDTO())
