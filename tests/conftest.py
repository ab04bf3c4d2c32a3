"""Pytest configuration and shared fixtures for all tests.

This module provides:
- An in-memory SQLite database with every table created
- SQLAlchemy repositories bound to it
- A static team SLA directory
- In-memory conversation services used as automation action targets
"""

from typing import Any, AsyncGenerator, Dict, List, Optional

import pytest
from _pytest.config import Config
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

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
from deskflow.infrastructure.database import build_session_maker, create_tables, enable_sqlite_foreign_keys
from deskflow.shared.domain.events import (
    ConversationAssigned,
    DomainEvent,
    PriorityChanged,
    StatusChanged,
    TagAdded,
)
from deskflow.shared.infrastructure.event_bus import EventBus
from deskflow.sla.application import (
    BreachScanner,
    BusinessCalendarService,
    ITeamSlaDirectory,
    SlaLifecycleManager,
    SlaPolicyService,
)
from deskflow.sla.infrastructure import SQLAlchemyCalendarRepository, SQLAlchemySlaRepository

# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================


def pytest_configure(config: Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, no external dependencies)")
    config.addinivalue_line("markers", "repository: Tests running against the SQLite database")


# ============================================================================
# DATABASE FIXTURES
# ============================================================================


@pytest.fixture
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine shared by every session of one test."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    enable_sqlite_foreign_keys(engine)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_maker(db_engine)


@pytest.fixture
def sla_repository(session_maker) -> SQLAlchemySlaRepository:
    return SQLAlchemySlaRepository(session_maker)


@pytest.fixture
def calendar_repository(session_maker) -> SQLAlchemyCalendarRepository:
    return SQLAlchemyCalendarRepository(session_maker)


@pytest.fixture
def automation_repository(session_maker) -> SQLAlchemyAutomationRepository:
    return SQLAlchemyAutomationRepository(session_maker)


# ============================================================================
# SLA FIXTURES
# ============================================================================


class StaticTeamDirectory(ITeamSlaDirectory):
    """Team directory backed by plain dicts."""

    def __init__(self):
        self.default_policies: Dict[str, str] = {}
        self.business_hours: Dict[str, str] = {}

    def get_default_policy_id(self, team_id: str) -> Optional[str]:
        return self.default_policies.get(team_id)

    def get_business_hours_name(self, team_id: str) -> Optional[str]:
        return self.business_hours.get(team_id)


@pytest.fixture
def team_directory() -> StaticTeamDirectory:
    return StaticTeamDirectory()


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def policy_service(sla_repository) -> SlaPolicyService:
    return SlaPolicyService(sla_repository)


@pytest.fixture
def calendar_service(calendar_repository, team_directory) -> BusinessCalendarService:
    return BusinessCalendarService(calendar_repository, team_directory, "default")


@pytest.fixture
def lifecycle_manager(sla_repository, calendar_service, team_directory) -> SlaLifecycleManager:
    return SlaLifecycleManager(sla_repository, calendar_service, team_directory)


@pytest.fixture
def breach_scanner(sla_repository, event_bus) -> BreachScanner:
    return BreachScanner(sla_repository, event_bus)


# ============================================================================
# CONVERSATION SERVICE FAKES
# ============================================================================


class ConversationStore:
    """In-memory conversations shared by the fake services."""

    def __init__(self):
        self.conversations: Dict[str, Dict[str, Any]] = {}
        self.calls: List[tuple] = []

    def get(self, conversation_id: str) -> Dict[str, Any]:
        return self.conversations.setdefault(conversation_id, {
            "status": "open",
            "priority": "medium",
            "tags": [],
            "assigned_user_id": None,
            "assigned_team_id": None,
        })

    def snapshot(self, conversation_id: str) -> Dict[str, Any]:
        conversation = self.get(conversation_id)
        return {**conversation, "tags": list(conversation["tags"])}


class FakeStatusService(IStatusService):
    def __init__(self, store: ConversationStore):
        self.store = store

    async def apply(self, conversation_id: str, status: str, actor_id: str) -> List[DomainEvent]:
        self.store.calls.append(("set_status", conversation_id, status))
        conversation = self.store.get(conversation_id)
        if conversation["status"] == status:
            return []
        old = conversation["status"]
        conversation["status"] = status
        return [StatusChanged(
            conversation_id=conversation_id,
            actor_id=actor_id,
            new_status=status,
            old_status=old,
            attributes=self.store.snapshot(conversation_id),
        )]


class FakeAssignmentService(IAssignmentService):
    def __init__(self, store: ConversationStore):
        self.store = store

    async def apply(
        self,
        conversation_id: str,
        actor_id: str,
        user_id: Optional[str] = None,
        team_id: Optional[str] = None
    ) -> List[DomainEvent]:
        self.store.calls.append(("assign", conversation_id, user_id, team_id))
        conversation = self.store.get(conversation_id)
        if user_id:
            conversation["assigned_user_id"] = user_id
        if team_id:
            conversation["assigned_team_id"] = team_id
        return [ConversationAssigned(
            conversation_id=conversation_id,
            actor_id=actor_id,
            assigned_user_id=user_id,
            assigned_team_id=team_id,
            attributes=self.store.snapshot(conversation_id),
        )]


class FakeTaggingService(ITaggingService):
    def __init__(self, store: ConversationStore):
        self.store = store

    async def apply(self, conversation_id: str, tag: str, actor_id: str) -> List[DomainEvent]:
        self.store.calls.append(("add_tag", conversation_id, tag))
        conversation = self.store.get(conversation_id)
        if tag in conversation["tags"]:
            return []
        conversation["tags"].append(tag)
        return [TagAdded(
            conversation_id=conversation_id,
            actor_id=actor_id,
            tag=tag,
            attributes=self.store.snapshot(conversation_id),
        )]


class FakePriorityService(IPriorityService):
    def __init__(self, store: ConversationStore):
        self.store = store

    async def apply(self, conversation_id: str, priority: str, actor_id: str) -> List[DomainEvent]:
        self.store.calls.append(("set_priority", conversation_id, priority))
        conversation = self.store.get(conversation_id)
        if conversation["priority"] == priority:
            return []
        old = conversation["priority"]
        conversation["priority"] = priority
        return [PriorityChanged(
            conversation_id=conversation_id,
            actor_id=actor_id,
            new_priority=priority,
            old_priority=old,
            attributes=self.store.snapshot(conversation_id),
        )]


@pytest.fixture
def conversation_store() -> ConversationStore:
    return ConversationStore()


@pytest.fixture
def conversation_services(conversation_store) -> Dict[str, Any]:
    """Keyword arguments accepted by RuleActionExecutor and Application."""
    return {
        "status_service": FakeStatusService(conversation_store),
        "assignment_service": FakeAssignmentService(conversation_store),
        "tagging_service": FakeTaggingService(conversation_store),
        "priority_service": FakePriorityService(conversation_store),
    }


@pytest.fixture
def action_executor(conversation_services) -> RuleActionExecutor:
    return RuleActionExecutor(**conversation_services, timeout_seconds=1.0)


@pytest.fixture
def rule_service(automation_repository) -> AutomationRuleService:
    return AutomationRuleService(automation_repository)


@pytest.fixture
def automation_engine(automation_repository, action_executor, event_bus) -> AutomationEngine:
    """Engine subscribed to every event on the bus, as the application wires it."""
    engine = AutomationEngine(
        automation_repository,
        RuleConditionEvaluator(),
        action_executor,
        event_bus,
        max_cascade_depth=5,
    )
    event_bus.subscribe(engine.handle_event, name="automation_engine")
    return engine
