"""
Deskflow - Main Application
============================

SLA tracking and rule-based automation for a helpdesk.

Modules:
- SLA: deadlines in business time, met/breach tracking
- Automation: event-triggered rules with cascade protection

Clean Architecture Layers:
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, config watcher, scheduler

The host application publishes conversation events on ``Application.event_bus``
and supplies the conversation services automation actions call into.
"""

import asyncio
import signal
from typing import List, Optional

from deskflow.automation.application import (
    AutomationEngine,
    AutomationRuleService,
    IAssignmentService,
    IPriorityService,
    IStatusService,
    ITaggingService,
    RuleActionExecutor,
)
from deskflow.automation.domain import RuleConditionEvaluator
from deskflow.automation.infrastructure import SQLAlchemyAutomationRepository
from deskflow.config import EventType, Settings, get_settings
from deskflow.core import ActionExecutionFailure, ApplicationException
from deskflow.infrastructure.database import (
    close_database,
    create_tables,
    get_session_maker,
    init_database,
)
from deskflow.shared.domain.events import DomainEvent
from deskflow.shared.infrastructure.event_bus import EventBus
from deskflow.shared.infrastructure.logging import get_logger, setup_logging
from deskflow.sla.application import (
    BreachScanner,
    BusinessCalendarService,
    SlaLifecycleManager,
    SlaPolicyService,
)
from deskflow.sla.infrastructure import (
    BreachScanScheduler,
    SQLAlchemyCalendarRepository,
    SQLAlchemySlaRepository,
    TeamSlaConfigManager,
)

logger = get_logger(__name__)

SLA_EVENT_TYPES = [
    EventType.CONVERSATION_CREATED,
    EventType.CONVERSATION_ASSIGNED,
    EventType.MESSAGE_RECEIVED,
    EventType.MESSAGE_SENT,
    EventType.STATUS_CHANGED,
]


class UnconfiguredConversationService(IStatusService, IAssignmentService, ITaggingService, IPriorityService):
    """Stand-in used until the host supplies real conversation services; every action fails."""

    async def apply(self, conversation_id: str, *args, **kwargs) -> List[DomainEvent]:
        raise ActionExecutionFailure("conversation_service", "no conversation service configured")


class Application:
    """
    Composition root.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (and tables when requested)
    3. Load team SLA directory and start watching it
    4. Build services and subscribe them to the event bus
    5. Start the breach scan scheduler

    SHUTDOWN runs the same steps in reverse.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        status_service: Optional[IStatusService] = None,
        assignment_service: Optional[IAssignmentService] = None,
        tagging_service: Optional[ITaggingService] = None,
        priority_service: Optional[IPriorityService] = None
    ):
        self.settings = settings or get_settings()
        fallback = UnconfiguredConversationService()
        self._status_service = status_service or fallback
        self._assignment_service = assignment_service or fallback
        self._tagging_service = tagging_service or fallback
        self._priority_service = priority_service or fallback

        self.event_bus = EventBus()
        self.team_directory = TeamSlaConfigManager()
        self.policy_service: Optional[SlaPolicyService] = None
        self.calendar_service: Optional[BusinessCalendarService] = None
        self.lifecycle_manager: Optional[SlaLifecycleManager] = None
        self.breach_scanner: Optional[BreachScanner] = None
        self.rule_service: Optional[AutomationRuleService] = None
        self.automation_engine: Optional[AutomationEngine] = None
        self.scheduler: Optional[BreachScanScheduler] = None
        self._started = False

    async def start(self, create_schema: bool = False) -> None:
        if self._started:
            return
        settings = self.settings

        setup_logging(settings.log_level, settings.environment)
        logger.info("Starting Deskflow", extra={
            "version": settings.app_version,
            "environment": settings.environment
        })

        init_database(settings.database_url)
        if create_schema:
            await create_tables()
        session_maker = get_session_maker()

        self.team_directory.load(settings.sla_config_path)
        self.team_directory.start_watching()

        sla_repository = SQLAlchemySlaRepository(session_maker)
        calendar_repository = SQLAlchemyCalendarRepository(session_maker)
        automation_repository = SQLAlchemyAutomationRepository(session_maker)

        self.policy_service = SlaPolicyService(sla_repository)
        self.calendar_service = BusinessCalendarService(
            calendar_repository, self.team_directory, settings.default_business_hours_name
        )
        self.lifecycle_manager = SlaLifecycleManager(
            sla_repository, self.calendar_service, self.team_directory
        )
        self.breach_scanner = BreachScanner(sla_repository, self.event_bus)

        self.rule_service = AutomationRuleService(automation_repository)
        self.automation_engine = AutomationEngine(
            automation_repository,
            RuleConditionEvaluator(),
            RuleActionExecutor(
                self._status_service,
                self._assignment_service,
                self._tagging_service,
                self._priority_service,
                timeout_seconds=settings.automation_action_timeout_seconds,
            ),
            self.event_bus,
            max_cascade_depth=settings.max_cascade_depth,
        )

        # SLA bookkeeping sees each event before rules react to it
        self.event_bus.subscribe(
            self.lifecycle_manager.handle_event, SLA_EVENT_TYPES, name="sla_lifecycle"
        )
        self.event_bus.subscribe(self.automation_engine.handle_event, name="automation_engine")

        self.scheduler = BreachScanScheduler(
            self.breach_scanner, interval_seconds=settings.breach_scan_interval_seconds
        )
        await self.scheduler.start()

        self._started = True
        logger.info("Deskflow started", extra={"subscribers": self.event_bus.subscriber_count})

    async def stop(self) -> None:
        if not self._started:
            return
        logger.info("Shutting down Deskflow")

        if self.scheduler:
            await self.scheduler.stop()
        self.team_directory.stop_watching()
        await close_database()

        self._started = False
        logger.info("Deskflow stopped")

    async def publish(self, event: DomainEvent) -> None:
        await self.event_bus.publish(event)

    async def run(self, create_schema: bool = False) -> None:
        """Start, wait for SIGINT/SIGTERM, stop."""
        stop_requested = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, stop_requested.set)
            except NotImplementedError:
                # Windows event loops
                pass

        await self.start(create_schema=create_schema)
        try:
            await stop_requested.wait()
        finally:
            await self.stop()


def main() -> None:
    """Console entry point."""
    settings = get_settings()
    try:
        asyncio.run(Application(settings).run(create_schema=settings.environment == "development"))
    except ApplicationException as e:
        logger.critical("Deskflow failed to start", extra={"error": e.message, "details": e.details})
        raise SystemExit(1)


if __name__ == "__main__":
    main()
