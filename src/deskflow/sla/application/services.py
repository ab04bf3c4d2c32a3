"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional, Sequence

from deskflow.config import SYSTEM_ACTOR, ConversationStatus, SlaEventType, SlaStatus
from deskflow.core import (
    AlreadyApplied,
    DuplicateEntryException,
    RepositoryException,
    ResourceNotFoundException,
    ValidationException,
)
from deskflow.shared.domain.events import (
    ConversationAssigned,
    ConversationCreated,
    DomainEvent,
    MessageReceived,
    MessageSent,
    SlaBreached,
    StatusChanged,
    utcnow,
)
from deskflow.shared.infrastructure.event_bus import EventBus
from deskflow.shared.infrastructure.logging import get_logger
from deskflow.sla.application.dto import (
    AppliedSlaResponse,
    BusinessHoursDTO,
    HolidayCreateDTO,
    SlaEventResponse,
    SlaPolicyCreateDTO,
    SlaPolicyUpdateDTO,
)
from deskflow.sla.domain import (
    AppliedSla,
    BusinessCalendar,
    BusinessHours,
    Holiday,
    SlaDeadlineCalculator,
    SlaEvent,
    SlaPolicy,
    ensure_utc,
)

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISlaRepository(ABC):
    """Interface for SLA policy, applied SLA and SLA event data access."""

    @abstractmethod
    async def create_policy(self, policy: SlaPolicy) -> SlaPolicy:
        """Persist a new policy. Raises DuplicateEntryException on a taken name."""

    @abstractmethod
    async def get_policy(self, policy_id: str) -> Optional[SlaPolicy]:
        """Get policy by ID."""

    @abstractmethod
    async def get_policy_by_name(self, name: str) -> Optional[SlaPolicy]:
        """Get policy by unique name."""

    @abstractmethod
    async def list_policies(self) -> List[SlaPolicy]:
        """List all policies ordered by name."""

    @abstractmethod
    async def update_policy(self, policy: SlaPolicy) -> SlaPolicy:
        """Overwrite an existing policy."""

    @abstractmethod
    async def delete_policy(self, policy_id: str) -> bool:
        """Delete a policy. Returns False when it did not exist."""

    @abstractmethod
    async def create_applied_sla(
        self,
        applied_sla: AppliedSla,
        events: Sequence[SlaEvent]
    ) -> AppliedSla:
        """
        Persist an applied SLA and its events in one transaction.

        Raises DuplicateEntryException when the conversation already has one.
        """

    @abstractmethod
    async def get_applied_sla(self, applied_sla_id: str) -> Optional[AppliedSla]:
        """Get applied SLA by ID."""

    @abstractmethod
    async def get_applied_sla_by_conversation(self, conversation_id: str) -> Optional[AppliedSla]:
        """Get the applied SLA of a conversation."""

    @abstractmethod
    async def update_applied_sla_status(self, applied_sla_id: str, status: SlaStatus) -> None:
        """Store a recomputed aggregate status."""

    @abstractmethod
    async def create_sla_event(self, event: SlaEvent) -> SlaEvent:
        """Persist one SLA event. Raises DuplicateEntryException if one is already pending."""

    @abstractmethod
    async def get_sla_events(self, applied_sla_id: str) -> List[SlaEvent]:
        """All events of an applied SLA, oldest first."""

    @abstractmethod
    async def get_pending_sla_event(
        self,
        applied_sla_id: str,
        event_type: SlaEventType
    ) -> Optional[SlaEvent]:
        """The pending event of the given type, if any."""

    @abstractmethod
    async def list_pending_events_due_by(
        self,
        instant: datetime,
        limit: Optional[int] = None
    ) -> List[SlaEvent]:
        """Pending events with deadline_at <= instant, earliest deadline first."""

    @abstractmethod
    async def mark_event_met_if_pending(
        self,
        applied_sla_id: str,
        event_type: SlaEventType,
        met_at: datetime
    ) -> bool:
        """Conditional pending -> met. Returns True when a row changed."""

    @abstractmethod
    async def mark_event_breached_if_pending(self, event_id: str, breached_at: datetime) -> bool:
        """
        Conditional pending -> breached.

        The owning applied SLA is set to breached in the same transaction.
        Returns True when the event row changed.
        """


class ICalendarRepository(ABC):
    """Interface for business hours and holiday data access."""

    @abstractmethod
    async def get_business_hours(self, name: str) -> Optional[BusinessHours]:
        """Get a named schedule."""

    @abstractmethod
    async def save_business_hours(self, hours: BusinessHours) -> BusinessHours:
        """Create or replace a named schedule."""

    @abstractmethod
    async def list_holidays(self) -> List[Holiday]:
        """All holidays ordered by date."""

    @abstractmethod
    async def create_holiday(self, holiday: Holiday) -> Holiday:
        """Persist a holiday."""

    @abstractmethod
    async def delete_holiday(self, holiday_id: str) -> bool:
        """Delete a holiday. Returns False when it did not exist."""


class ITeamSlaDirectory(ABC):
    """Interface for per-team SLA configuration."""

    @abstractmethod
    def get_default_policy_id(self, team_id: str) -> Optional[str]:
        """Policy applied automatically when a conversation lands on the team."""

    @abstractmethod
    def get_business_hours_name(self, team_id: str) -> Optional[str]:
        """Name of the team's business hours schedule."""


async def _recompute_status(repository: ISlaRepository, applied_sla_id: str) -> SlaStatus:
    events = await repository.get_sla_events(applied_sla_id)
    status = AppliedSla.aggregate_status(events)
    await repository.update_applied_sla_status(applied_sla_id, status)
    return status


# ========== Application Services ==========

class SlaPolicyService:
    """CRUD over SLA policies with duration validation."""

    def __init__(self, sla_repository: ISlaRepository):
        self._repo = sla_repository

    async def create_policy(self, dto: SlaPolicyCreateDTO) -> SlaPolicy:
        policy = SlaPolicy(
            name=dto.name,
            description=dto.description,
            first_response_time=dto.first_response_time,
            resolution_time=dto.resolution_time,
            next_response_time=dto.next_response_time,
        )
        policy.validate()

        if await self._repo.get_policy_by_name(policy.name):
            raise ValidationException(f"SLA policy '{policy.name}' already exists")
        try:
            created = await self._repo.create_policy(policy)
        except DuplicateEntryException:
            raise ValidationException(f"SLA policy '{policy.name}' already exists")

        logger.info("SLA policy created", extra={"sla_policy_id": created.id, "policy_name": created.name})
        return created

    async def update_policy(self, policy_id: str, dto: SlaPolicyUpdateDTO) -> SlaPolicy:
        policy = await self.get_policy(policy_id)

        for field_name, value in dto.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(policy, field_name, value)
        policy.validate()
        policy.updated_at = utcnow()

        try:
            updated = await self._repo.update_policy(policy)
        except DuplicateEntryException:
            raise ValidationException(f"SLA policy '{policy.name}' already exists")

        logger.info("SLA policy updated", extra={"sla_policy_id": policy_id})
        return updated

    async def get_policy(self, policy_id: str) -> SlaPolicy:
        policy = await self._repo.get_policy(policy_id)
        if policy is None:
            raise ResourceNotFoundException("SlaPolicy", policy_id)
        return policy

    async def list_policies(self) -> List[SlaPolicy]:
        return await self._repo.list_policies()

    async def delete_policy(self, policy_id: str) -> None:
        if not await self._repo.delete_policy(policy_id):
            raise ResourceNotFoundException("SlaPolicy", policy_id)
        logger.info("SLA policy deleted", extra={"sla_policy_id": policy_id})


class BusinessCalendarService:
    """
    Business hours and holiday management.

    Also builds the calendar snapshot used for a team's deadlines.
    """

    def __init__(
        self,
        calendar_repository: ICalendarRepository,
        team_directory: ITeamSlaDirectory,
        default_hours_name: str = "default"
    ):
        self._repo = calendar_repository
        self._teams = team_directory
        self._default_hours_name = default_hours_name

    async def save_business_hours(self, dto: BusinessHoursDTO) -> BusinessHours:
        hours = BusinessHours(name=dto.name, timezone=dto.timezone, schedule=dto.schedule)
        # Rejects schedules with no open day before they are stored
        BusinessCalendar.from_business_hours(hours)
        saved = await self._repo.save_business_hours(hours)
        logger.info("Business hours saved", extra={"hours_name": saved.name, "timezone": saved.timezone})
        return saved

    async def get_business_hours(self, name: str) -> BusinessHours:
        hours = await self._repo.get_business_hours(name)
        if hours is None:
            raise ResourceNotFoundException("BusinessHours", name)
        return hours

    async def add_holiday(self, dto: HolidayCreateDTO) -> Holiday:
        holiday = await self._repo.create_holiday(
            Holiday(name=dto.name, date=dto.date, recurring=dto.recurring)
        )
        logger.info(
            "Holiday added",
            extra={"holiday_id": holiday.id, "date": holiday.date.isoformat(), "recurring": holiday.recurring}
        )
        return holiday

    async def remove_holiday(self, holiday_id: str) -> None:
        if not await self._repo.delete_holiday(holiday_id):
            raise ResourceNotFoundException("Holiday", holiday_id)

    async def list_holidays(self) -> List[Holiday]:
        return await self._repo.list_holidays()

    async def calendar_for_team(self, team_id: Optional[str]) -> BusinessCalendar:
        """
        Calendar snapshot for a team.

        Falls back to the default schedule, then to 24/7 when no schedule
        is stored.
        """
        name = (self._teams.get_business_hours_name(team_id) if team_id else None) \
            or self._default_hours_name
        hours = await self._repo.get_business_hours(name)
        if hours is None:
            logger.debug("No business hours stored, using 24/7", extra={"hours_name": name, "team_id": team_id})
            hours = BusinessHours.around_the_clock()
        holidays = await self._repo.list_holidays()
        return BusinessCalendar.from_business_hours(hours, holidays)


class SlaLifecycleManager:
    """
    Applies SLAs to conversations and moves their events to ``met``.

    Subscribed to the event bus through ``handle_event``.
    """

    def __init__(
        self,
        sla_repository: ISlaRepository,
        calendar_service: BusinessCalendarService,
        team_directory: ITeamSlaDirectory
    ):
        self._repo = sla_repository
        self._calendars = calendar_service
        self._teams = team_directory

    async def apply_sla(
        self,
        conversation_id: str,
        policy_id: str,
        base_instant: datetime,
        calendar: Optional[BusinessCalendar] = None
    ) -> AppliedSla:
        """
        Bind a policy to a conversation and create its pending events.

        Args:
            conversation_id: Conversation the SLA applies to
            policy_id: SLA policy ID
            base_instant: Instant the SLA clocks start from
            calendar: Business calendar (24/7 when omitted)

        Raises:
            ResourceNotFoundException: unknown policy
            AlreadyApplied: the conversation already has an applied SLA
        """
        policy = await self._repo.get_policy(policy_id)
        if policy is None:
            raise ResourceNotFoundException("SlaPolicy", policy_id)

        if await self._repo.get_applied_sla_by_conversation(conversation_id) is not None:
            raise AlreadyApplied(conversation_id)

        calendar = calendar or BusinessCalendar.around_the_clock()
        base_instant = ensure_utc(base_instant)
        first_response_deadline = SlaDeadlineCalculator.compute_deadline(
            base_instant, policy.first_response_time, calendar
        )
        resolution_deadline = SlaDeadlineCalculator.compute_deadline(
            base_instant, policy.resolution_time, calendar
        )

        applied = AppliedSla(
            conversation_id=conversation_id,
            sla_policy_id=policy.id,
            first_response_deadline_at=first_response_deadline,
            resolution_deadline_at=resolution_deadline,
        )
        events = [
            SlaEvent(
                applied_sla_id=applied.id,
                event_type=SlaEventType.FIRST_RESPONSE,
                deadline_at=first_response_deadline
            ),
            SlaEvent(
                applied_sla_id=applied.id,
                event_type=SlaEventType.RESOLUTION,
                deadline_at=resolution_deadline
            ),
        ]

        try:
            await self._repo.create_applied_sla(applied, events)
        except DuplicateEntryException:
            raise AlreadyApplied(conversation_id)

        logger.info(
            "SLA applied",
            extra={
                "conversation_id": conversation_id,
                "applied_sla_id": applied.id,
                "sla_policy_id": policy.id,
                "first_response_deadline_at": first_response_deadline.isoformat(),
                "resolution_deadline_at": resolution_deadline.isoformat(),
            }
        )
        return applied

    async def mark_met(
        self,
        applied_sla_id: str,
        event_type: SlaEventType,
        met_instant: datetime
    ) -> bool:
        """
        Mark the pending event of ``event_type`` as met.

        Returns:
            False (no-op) when no such event was pending
        """
        changed = await self._repo.mark_event_met_if_pending(
            applied_sla_id, SlaEventType(event_type), ensure_utc(met_instant)
        )
        if not changed:
            return False

        status = await _recompute_status(self._repo, applied_sla_id)
        logger.info(
            "SLA event met",
            extra={
                "applied_sla_id": applied_sla_id,
                "sla_event_type": SlaEventType(event_type).value,
                "applied_sla_status": status.value,
            }
        )
        return True

    async def get_by_conversation(self, conversation_id: str) -> Optional[AppliedSla]:
        return await self._repo.get_applied_sla_by_conversation(conversation_id)

    async def get_events(self, applied_sla_id: str) -> List[SlaEvent]:
        return await self._repo.get_sla_events(applied_sla_id)

    async def describe(self, conversation_id: str) -> Optional[AppliedSlaResponse]:
        """Applied SLA of a conversation together with its events."""
        applied = await self.get_by_conversation(conversation_id)
        if applied is None:
            return None
        response = AppliedSlaResponse.model_validate(applied)
        response.events = [
            SlaEventResponse.model_validate(e) for e in await self.get_events(applied.id)
        ]
        return response

    async def handle_event(self, event: DomainEvent) -> None:
        """Event bus entry point."""
        if isinstance(event, ConversationCreated) and event.team_id:
            await self._apply_team_policy(event.conversation_id, event.team_id, event.occurred_at)
        elif isinstance(event, ConversationAssigned) and event.assigned_team_id:
            await self._apply_team_policy(
                event.conversation_id, event.assigned_team_id, event.occurred_at
            )
        elif isinstance(event, MessageSent):
            await self._on_agent_reply(event)
        elif isinstance(event, MessageReceived):
            await self._on_contact_message(event)
        elif isinstance(event, StatusChanged) and event.new_status == ConversationStatus.RESOLVED.value:
            applied = await self.get_by_conversation(event.conversation_id)
            if applied is not None:
                await self.mark_met(applied.id, SlaEventType.RESOLUTION, event.occurred_at)

    async def _apply_team_policy(
        self,
        conversation_id: str,
        team_id: str,
        base_instant: datetime
    ) -> None:
        policy_id = self._teams.get_default_policy_id(team_id)
        if not policy_id:
            return

        calendar = await self._calendars.calendar_for_team(team_id)
        try:
            await self.apply_sla(conversation_id, policy_id, base_instant, calendar)
        except AlreadyApplied:
            logger.info(
                "SLA already applied, team default ignored",
                extra={"conversation_id": conversation_id, "team_id": team_id}
            )

    async def _on_agent_reply(self, event: MessageSent) -> None:
        applied = await self.get_by_conversation(event.conversation_id)
        if applied is None:
            return
        await self.mark_met(applied.id, SlaEventType.FIRST_RESPONSE, event.occurred_at)
        await self.mark_met(applied.id, SlaEventType.NEXT_RESPONSE, event.occurred_at)

    async def _on_contact_message(self, event: MessageReceived) -> None:
        """Start a next_response clock once the first response has been given."""
        applied = await self.get_by_conversation(event.conversation_id)
        if applied is None:
            return

        events = await self._repo.get_sla_events(applied.id)
        first_response_met = any(
            e.event_type == SlaEventType.FIRST_RESPONSE and e.status == SlaStatus.MET
            for e in events
        )
        next_response_pending = any(
            e.event_type == SlaEventType.NEXT_RESPONSE and e.is_pending for e in events
        )
        if not first_response_met or next_response_pending:
            return

        policy = await self._repo.get_policy(applied.sla_policy_id)
        if policy is None:
            logger.warning(
                "Applied SLA references a missing policy",
                extra={"applied_sla_id": applied.id, "sla_policy_id": applied.sla_policy_id}
            )
            return

        team_id = event.attributes.get("assigned_team_id")
        calendar = await self._calendars.calendar_for_team(team_id)
        deadline = SlaDeadlineCalculator.compute_deadline(
            event.occurred_at, policy.next_response_time, calendar
        )
        try:
            await self._repo.create_sla_event(
                SlaEvent(
                    applied_sla_id=applied.id,
                    event_type=SlaEventType.NEXT_RESPONSE,
                    deadline_at=deadline
                )
            )
        except DuplicateEntryException:
            return

        await _recompute_status(self._repo, applied.id)
        logger.info(
            "Next response SLA started",
            extra={
                "conversation_id": event.conversation_id,
                "applied_sla_id": applied.id,
                "deadline_at": deadline.isoformat(),
            }
        )


class BreachScanner:
    """
    Moves overdue pending SLA events to ``breached``.

    Run periodically; one call to ``scan_once`` is one tick.
    """

    def __init__(
        self,
        sla_repository: ISlaRepository,
        event_bus: EventBus,
        batch_size: Optional[int] = None
    ):
        self._repo = sla_repository
        self._bus = event_bus
        self._batch_size = batch_size

    async def scan_once(self, now: Optional[datetime] = None) -> int:
        """
        Breach every pending event due by ``now``.

        Returns:
            Number of events this tick moved to breached
        """
        now = ensure_utc(now or utcnow())

        try:
            due = await self._repo.list_pending_events_due_by(now, self._batch_size)
        except RepositoryException as e:
            logger.error("Breach scan failed to list due events", extra={"error": e.message})
            return 0

        breached = 0
        for sla_event in due:
            try:
                applied = await self._repo.get_applied_sla(sla_event.applied_sla_id)
                if not await self._repo.mark_event_breached_if_pending(sla_event.id, now):
                    logger.debug("SLA event no longer pending", extra={"sla_event_id": sla_event.id})
                    continue
            except RepositoryException as e:
                logger.error(
                    "Breach scan aborted",
                    extra={"sla_event_id": sla_event.id, "breached": breached, "error": e.message}
                )
                return breached

            breached += 1
            logger.warning(
                "SLA breached",
                extra={
                    "sla_event_id": sla_event.id,
                    "applied_sla_id": sla_event.applied_sla_id,
                    "sla_event_type": sla_event.event_type.value,
                    "deadline_at": sla_event.deadline_at.isoformat(),
                }
            )
            if applied is None:
                continue

            await self._bus.publish(
                SlaBreached(
                    conversation_id=applied.conversation_id,
                    actor_id=SYSTEM_ACTOR,
                    occurred_at=now,
                    sla_event_id=sla_event.id,
                    applied_sla_id=sla_event.applied_sla_id,
                    sla_event_type=sla_event.event_type.value,
                    deadline_at=sla_event.deadline_at,
                    breached_at=now,
                )
            )

        if breached:
            logger.info("Breach scan complete", extra={"breached": breached, "due": len(due)})
        return breached
