"""
Automation Infrastructure Repositories
=======================================

SQLAlchemy implementation of the automation repository.
"""

from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy import delete, select

from deskflow.automation.application.dto import EvaluationLogQueryDTO
from deskflow.automation.application.services import IAutomationRepository
from deskflow.automation.domain import (
    AutomationRule,
    RuleEvaluationLog,
    dump_actions,
    dump_condition,
    parse_actions,
    parse_condition,
)
from deskflow.automation.infrastructure.models import AutomationRuleModel, RuleEvaluationLogModel
from deskflow.config import ActionResult, ConditionResult, RuleType
from deskflow.core import ResourceNotFoundException
from deskflow.infrastructure.database import SQLAlchemyRepository
from deskflow.shared.infrastructure.logging import get_logger
from deskflow.sla.domain import ensure_utc

logger = get_logger(__name__)


def _rule_to_entity(model: AutomationRuleModel) -> AutomationRule:
    return AutomationRule(
        id=model.id,
        name=model.name,
        description=model.description,
        enabled=model.enabled,
        rule_type=RuleType(model.rule_type),
        event_subscription=list(model.event_subscription or []),
        condition=parse_condition(model.condition),
        actions=parse_actions(model.actions),
        priority=model.priority,
        created_at=ensure_utc(model.created_at),
        updated_at=ensure_utc(model.updated_at),
    )


def _rules_to_entities(models) -> List[AutomationRule]:
    rules = []
    for model in models:
        try:
            rules.append(_rule_to_entity(model))
        except (ValidationError, ValueError) as e:
            logger.error("Skipping unreadable automation rule", extra={"rule_id": model.id, "error": str(e)})
    return rules


def _copy_rule(model: AutomationRuleModel, rule: AutomationRule) -> None:
    model.name = rule.name
    model.description = rule.description
    model.enabled = rule.enabled
    model.rule_type = RuleType(rule.rule_type).value
    model.event_subscription = list(rule.event_subscription)
    model.condition = dump_condition(rule.condition)
    model.actions = dump_actions(rule.actions)
    model.priority = rule.priority
    model.updated_at = ensure_utc(rule.updated_at)


def _log_to_entity(model: RuleEvaluationLogModel) -> RuleEvaluationLog:
    return RuleEvaluationLog(
        id=model.id,
        rule_id=model.rule_id,
        rule_name=model.rule_name,
        event_type=model.event_type,
        conversation_id=model.conversation_id,
        matched=model.matched,
        condition_result=ConditionResult(model.condition_result) if model.condition_result else None,
        action_executed=model.action_executed,
        action_result=ActionResult(model.action_result),
        action_details=list(model.action_details or []),
        error_message=model.error_message,
        evaluation_time_ms=model.evaluation_time_ms,
        cascade_depth=model.cascade_depth,
        cascade_limited=model.cascade_limited,
        evaluated_at=ensure_utc(model.evaluated_at),
    )


_RULE_ORDER = (AutomationRuleModel.priority, AutomationRuleModel.created_at, AutomationRuleModel.id)


class SQLAlchemyAutomationRepository(SQLAlchemyRepository, IAutomationRepository):
    """
    SQLAlchemy implementation of the automation repository.

    Handles persistence of AutomationRule and RuleEvaluationLog entities.
    """

    async def create_rule(self, rule: AutomationRule) -> AutomationRule:
        async with self._transaction() as session:
            model = AutomationRuleModel(id=rule.id, created_at=ensure_utc(rule.created_at))
            _copy_rule(model, rule)
            session.add(model)
        return rule

    async def get_rule(self, rule_id: str) -> Optional[AutomationRule]:
        async with self._transaction() as session:
            model = await session.get(AutomationRuleModel, rule_id)
            return _rule_to_entity(model) if model else None

    async def get_rule_by_name(self, name: str) -> Optional[AutomationRule]:
        async with self._transaction() as session:
            result = await session.execute(
                select(AutomationRuleModel).where(AutomationRuleModel.name == name)
            )
            model = result.scalar_one_or_none()
            return _rule_to_entity(model) if model else None

    async def list_rules(self, enabled_only: bool = False) -> List[AutomationRule]:
        stmt = select(AutomationRuleModel).order_by(*_RULE_ORDER)
        if enabled_only:
            stmt = stmt.where(AutomationRuleModel.enabled.is_(True))

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return _rules_to_entities(result.scalars().all())

    async def update_rule(self, rule: AutomationRule) -> AutomationRule:
        async with self._transaction() as session:
            model = await session.get(AutomationRuleModel, rule.id)
            if model is None:
                raise ResourceNotFoundException("AutomationRule", rule.id)
            _copy_rule(model, rule)
        return rule

    async def delete_rule(self, rule_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                delete(AutomationRuleModel).where(AutomationRuleModel.id == rule_id)
            )
            return result.rowcount > 0

    async def list_enabled_rules_for_event(self, event_type: str) -> List[AutomationRule]:
        # Subscription lists are JSON; filtered here to stay database-neutral
        rules = await self.list_rules(enabled_only=True)
        return [r for r in rules if r.subscribes_to(event_type)]

    async def create_evaluation_log(self, log: RuleEvaluationLog) -> RuleEvaluationLog:
        async with self._transaction() as session:
            session.add(RuleEvaluationLogModel(
                id=log.id,
                rule_id=log.rule_id,
                rule_name=log.rule_name,
                event_type=log.event_type,
                conversation_id=log.conversation_id,
                matched=log.matched,
                condition_result=log.condition_result.value if log.condition_result else None,
                action_executed=log.action_executed,
                action_result=ActionResult(log.action_result).value,
                action_details=list(log.action_details),
                error_message=log.error_message,
                evaluation_time_ms=log.evaluation_time_ms,
                cascade_depth=log.cascade_depth,
                cascade_limited=log.cascade_limited,
                evaluated_at=ensure_utc(log.evaluated_at),
            ))
        return log

    async def list_evaluation_logs(self, query: EvaluationLogQueryDTO) -> List[RuleEvaluationLog]:
        stmt = select(RuleEvaluationLogModel)
        if query.rule_id:
            stmt = stmt.where(RuleEvaluationLogModel.rule_id == query.rule_id)
        if query.conversation_id:
            stmt = stmt.where(RuleEvaluationLogModel.conversation_id == query.conversation_id)
        if query.event_type:
            stmt = stmt.where(RuleEvaluationLogModel.event_type == query.event_type.value)
        if query.condition_result:
            stmt = stmt.where(RuleEvaluationLogModel.condition_result == query.condition_result.value)
        if query.cascade_limited is not None:
            stmt = stmt.where(RuleEvaluationLogModel.cascade_limited.is_(query.cascade_limited))

        stmt = stmt.order_by(
            RuleEvaluationLogModel.evaluated_at.desc(), RuleEvaluationLogModel.id
        ).limit(query.limit).offset(query.offset)

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return [_log_to_entity(m) for m in result.scalars().all()]
