"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. State transitions are conditional UPDATEs
so concurrent writers never move an event out of a terminal state.
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, select, update

from deskflow.config import SlaEventType, SlaStatus
from deskflow.core import ResourceNotFoundException
from deskflow.infrastructure.database import SQLAlchemyRepository
from deskflow.shared.domain.events import utcnow
from deskflow.sla.application.services import ICalendarRepository, ISlaRepository
from deskflow.sla.domain import AppliedSla, BusinessHours, Holiday, SlaEvent, SlaPolicy, ensure_utc
from deskflow.sla.infrastructure.models import (
    AppliedSlaModel,
    BusinessHoursModel,
    HolidayModel,
    SlaEventModel,
    SlaPolicyModel,
)


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


def _policy_to_entity(model: SlaPolicyModel) -> SlaPolicy:
    return SlaPolicy(
        id=model.id,
        name=model.name,
        description=model.description,
        first_response_time=model.first_response_time,
        resolution_time=model.resolution_time,
        next_response_time=model.next_response_time,
        created_at=_utc(model.created_at),
        updated_at=_utc(model.updated_at),
    )


def _applied_to_entity(model: AppliedSlaModel) -> AppliedSla:
    return AppliedSla(
        id=model.id,
        conversation_id=model.conversation_id,
        sla_policy_id=model.sla_policy_id,
        status=SlaStatus(model.status),
        first_response_deadline_at=_utc(model.first_response_deadline_at),
        resolution_deadline_at=_utc(model.resolution_deadline_at),
        applied_at=_utc(model.applied_at),
        updated_at=_utc(model.updated_at),
    )


def _event_to_entity(model: SlaEventModel) -> SlaEvent:
    return SlaEvent(
        id=model.id,
        applied_sla_id=model.applied_sla_id,
        event_type=SlaEventType(model.event_type),
        status=SlaStatus(model.status),
        deadline_at=_utc(model.deadline_at),
        met_at=_utc(model.met_at),
        breached_at=_utc(model.breached_at),
        created_at=_utc(model.created_at),
        updated_at=_utc(model.updated_at),
    )


def _event_to_model(event: SlaEvent) -> SlaEventModel:
    return SlaEventModel(
        id=event.id,
        applied_sla_id=event.applied_sla_id,
        event_type=event.event_type.value,
        status=event.status.value,
        deadline_at=ensure_utc(event.deadline_at),
        met_at=_utc(event.met_at),
        breached_at=_utc(event.breached_at),
        created_at=ensure_utc(event.created_at),
        updated_at=ensure_utc(event.updated_at),
    )


class SQLAlchemySlaRepository(SQLAlchemyRepository, ISlaRepository):
    """
    SQLAlchemy implementation of the SLA repository.

    Handles persistence of SlaPolicy, AppliedSla and SlaEvent entities.
    """

    # ========== Policies ==========

    async def create_policy(self, policy: SlaPolicy) -> SlaPolicy:
        async with self._transaction() as session:
            session.add(SlaPolicyModel(
                id=policy.id,
                name=policy.name,
                description=policy.description,
                first_response_time=policy.first_response_time,
                resolution_time=policy.resolution_time,
                next_response_time=policy.next_response_time,
                created_at=ensure_utc(policy.created_at),
                updated_at=ensure_utc(policy.updated_at),
            ))
        return policy

    async def get_policy(self, policy_id: str) -> Optional[SlaPolicy]:
        async with self._transaction() as session:
            model = await session.get(SlaPolicyModel, policy_id)
            return _policy_to_entity(model) if model else None

    async def get_policy_by_name(self, name: str) -> Optional[SlaPolicy]:
        async with self._transaction() as session:
            result = await session.execute(select(SlaPolicyModel).where(SlaPolicyModel.name == name))
            model = result.scalar_one_or_none()
            return _policy_to_entity(model) if model else None

    async def list_policies(self) -> List[SlaPolicy]:
        async with self._transaction() as session:
            result = await session.execute(select(SlaPolicyModel).order_by(SlaPolicyModel.name))
            return [_policy_to_entity(m) for m in result.scalars().all()]

    async def update_policy(self, policy: SlaPolicy) -> SlaPolicy:
        async with self._transaction() as session:
            model = await session.get(SlaPolicyModel, policy.id)
            if model is None:
                raise ResourceNotFoundException("SlaPolicy", policy.id)

            model.name = policy.name
            model.description = policy.description
            model.first_response_time = policy.first_response_time
            model.resolution_time = policy.resolution_time
            model.next_response_time = policy.next_response_time
            model.updated_at = ensure_utc(policy.updated_at)
        return policy

    async def delete_policy(self, policy_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(delete(SlaPolicyModel).where(SlaPolicyModel.id == policy_id))
            return result.rowcount > 0

    # ========== Applied SLAs ==========

    async def create_applied_sla(
        self,
        applied_sla: AppliedSla,
        events: Sequence[SlaEvent]
    ) -> AppliedSla:
        async with self._transaction() as session:
            session.add(AppliedSlaModel(
                id=applied_sla.id,
                conversation_id=applied_sla.conversation_id,
                sla_policy_id=applied_sla.sla_policy_id,
                status=applied_sla.status.value,
                first_response_deadline_at=ensure_utc(applied_sla.first_response_deadline_at),
                resolution_deadline_at=ensure_utc(applied_sla.resolution_deadline_at),
                applied_at=ensure_utc(applied_sla.applied_at),
                updated_at=ensure_utc(applied_sla.updated_at),
            ))
            await session.flush()
            session.add_all([_event_to_model(e) for e in events])
        return applied_sla

    async def get_applied_sla(self, applied_sla_id: str) -> Optional[AppliedSla]:
        async with self._transaction() as session:
            model = await session.get(AppliedSlaModel, applied_sla_id)
            return _applied_to_entity(model) if model else None

    async def get_applied_sla_by_conversation(self, conversation_id: str) -> Optional[AppliedSla]:
        async with self._transaction() as session:
            result = await session.execute(
                select(AppliedSlaModel).where(AppliedSlaModel.conversation_id == conversation_id)
            )
            model = result.scalar_one_or_none()
            return _applied_to_entity(model) if model else None

    async def update_applied_sla_status(self, applied_sla_id: str, status: SlaStatus) -> None:
        async with self._transaction() as session:
            await session.execute(
                update(AppliedSlaModel)
                .where(AppliedSlaModel.id == applied_sla_id)
                .values(status=SlaStatus(status).value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

    # ========== SLA events ==========

    async def create_sla_event(self, event: SlaEvent) -> SlaEvent:
        async with self._transaction() as session:
            session.add(_event_to_model(event))
        return event

    async def get_sla_events(self, applied_sla_id: str) -> List[SlaEvent]:
        async with self._transaction() as session:
            result = await session.execute(
                select(SlaEventModel)
                .where(SlaEventModel.applied_sla_id == applied_sla_id)
                .order_by(SlaEventModel.created_at, SlaEventModel.id)
            )
            return [_event_to_entity(m) for m in result.scalars().all()]

    async def get_pending_sla_event(
        self,
        applied_sla_id: str,
        event_type: SlaEventType
    ) -> Optional[SlaEvent]:
        async with self._transaction() as session:
            result = await session.execute(
                select(SlaEventModel).where(
                    SlaEventModel.applied_sla_id == applied_sla_id,
                    SlaEventModel.event_type == SlaEventType(event_type).value,
                    SlaEventModel.status == SlaStatus.PENDING.value,
                )
            )
            model = result.scalar_one_or_none()
            return _event_to_entity(model) if model else None

    async def list_pending_events_due_by(
        self,
        instant: datetime,
        limit: Optional[int] = None
    ) -> List[SlaEvent]:
        stmt = (
            select(SlaEventModel)
            .where(
                SlaEventModel.status == SlaStatus.PENDING.value,
                SlaEventModel.deadline_at <= ensure_utc(instant),
            )
            .order_by(SlaEventModel.deadline_at, SlaEventModel.id)
        )
        if limit:
            stmt = stmt.limit(limit)

        async with self._transaction() as session:
            result = await session.execute(stmt)
            return [_event_to_entity(m) for m in result.scalars().all()]

    async def mark_event_met_if_pending(
        self,
        applied_sla_id: str,
        event_type: SlaEventType,
        met_at: datetime
    ) -> bool:
        async with self._transaction() as session:
            result = await session.execute(
                update(SlaEventModel)
                .where(
                    SlaEventModel.applied_sla_id == applied_sla_id,
                    SlaEventModel.event_type == SlaEventType(event_type).value,
                    SlaEventModel.status == SlaStatus.PENDING.value,
                )
                .values(status=SlaStatus.MET.value, met_at=ensure_utc(met_at), updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount > 0

    async def mark_event_breached_if_pending(self, event_id: str, breached_at: datetime) -> bool:
        async with self._transaction() as session:
            applied_sla_id = await session.scalar(
                select(SlaEventModel.applied_sla_id).where(SlaEventModel.id == event_id)
            )
            if applied_sla_id is None:
                return False
            result = await session.execute(
                update(SlaEventModel)
                .where(
                    SlaEventModel.id == event_id,
                    SlaEventModel.status == SlaStatus.PENDING.value,
                )
                .values(
                    status=SlaStatus.BREACHED.value,
                    breached_at=ensure_utc(breached_at),
                    updated_at=utcnow()
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                return False
            # Any breached event makes the applied SLA breached
            await session.execute(
                update(AppliedSlaModel)
                .where(AppliedSlaModel.id == applied_sla_id)
                .values(status=SlaStatus.BREACHED.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return True


class SQLAlchemyCalendarRepository(SQLAlchemyRepository, ICalendarRepository):
    """SQLAlchemy implementation of business hours and holiday storage."""

    async def get_business_hours(self, name: str) -> Optional[BusinessHours]:
        async with self._transaction() as session:
            model = await session.get(BusinessHoursModel, name)
            if model is None:
                return None
            return BusinessHours(name=model.name, timezone=model.timezone, schedule=model.schedule)

    async def save_business_hours(self, hours: BusinessHours) -> BusinessHours:
        schedule = [entry.model_dump() for entry in hours.schedule]
        async with self._transaction() as session:
            model = await session.get(BusinessHoursModel, hours.name)
            if model is None:
                session.add(BusinessHoursModel(
                    name=hours.name,
                    timezone=hours.timezone,
                    schedule=schedule,
                    updated_at=utcnow(),
                ))
            else:
                model.timezone = hours.timezone
                model.schedule = schedule
                model.updated_at = utcnow()
        return hours

    async def list_holidays(self) -> List[Holiday]:
        async with self._transaction() as session:
            result = await session.execute(select(HolidayModel).order_by(HolidayModel.date))
            return [
                Holiday(
                    id=m.id,
                    name=m.name,
                    date=m.date,
                    recurring=m.recurring,
                    created_at=_utc(m.created_at),
                )
                for m in result.scalars().all()
            ]

    async def create_holiday(self, holiday: Holiday) -> Holiday:
        async with self._transaction() as session:
            session.add(HolidayModel(
                id=holiday.id,
                name=holiday.name,
                date=holiday.date,
                recurring=holiday.recurring,
                created_at=ensure_utc(holiday.created_at),
            ))
        return holiday

    async def delete_holiday(self, holiday_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(delete(HolidayModel).where(HolidayModel.id == holiday_id))
            return result.rowcount > 0
