"""
Domain Events
=============

Immutable events exchanged over the in-process event bus.

Every event names the conversation it concerns and carries its
``cascade_depth``: 0 for events raised by people or the breach scanner,
``n + 1`` for events produced by automation while handling an event of
depth ``n``. The depth lives in the value itself so it survives any
re-publication boundary.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Mapping, Optional

from deskflow.config import EventType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, kw_only=True)
class DomainEvent:
    """
    Base class for all domain events.

    ``attributes`` is a snapshot of the conversation (priority, status, tags,
    assignee, ...) supplied by the publisher so rules can look at the
    conversation without a repository round trip. It is copied on
    construction and exposed read-only.
    """

    event_type: ClassVar[EventType]

    conversation_id: str
    actor_id: Optional[str] = None
    occurred_at: datetime = field(default_factory=utcnow)
    attributes: Mapping[str, Any] = field(default_factory=dict)
    cascade_depth: int = 0

    def __post_init__(self):
        if self.cascade_depth < 0:
            raise ValueError("cascade_depth cannot be negative")
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    def payload(self) -> Dict[str, Any]:
        """Flat mapping rule conditions are evaluated against."""
        data: Dict[str, Any] = dict(self.attributes)
        for f in fields(self):
            if f.name in ("attributes", "cascade_depth"):
                continue
            value = getattr(self, f.name)
            data[f.name] = value.value if isinstance(value, Enum) else value
        data["event_type"] = self.event_type.value
        return data

    def with_cascade_depth(self, cascade_depth: int) -> "DomainEvent":
        return replace(self, cascade_depth=cascade_depth)


@dataclass(frozen=True, kw_only=True)
class ConversationCreated(DomainEvent):
    event_type: ClassVar[EventType] = EventType.CONVERSATION_CREATED

    inbox_id: str
    contact_id: str
    status: str = "open"
    team_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class ConversationAssigned(DomainEvent):
    event_type: ClassVar[EventType] = EventType.CONVERSATION_ASSIGNED

    assigned_user_id: Optional[str] = None
    assigned_team_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class ConversationUnassigned(DomainEvent):
    event_type: ClassVar[EventType] = EventType.CONVERSATION_UNASSIGNED

    previous_user_id: Optional[str] = None
    previous_team_id: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class MessageReceived(DomainEvent):
    """A contact wrote into the conversation."""

    event_type: ClassVar[EventType] = EventType.MESSAGE_RECEIVED

    message_id: str
    contact_id: str


@dataclass(frozen=True, kw_only=True)
class MessageSent(DomainEvent):
    """An agent replied in the conversation."""

    event_type: ClassVar[EventType] = EventType.MESSAGE_SENT

    message_id: str
    agent_id: str


@dataclass(frozen=True, kw_only=True)
class StatusChanged(DomainEvent):
    event_type: ClassVar[EventType] = EventType.STATUS_CHANGED

    new_status: str
    old_status: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class TagAdded(DomainEvent):
    event_type: ClassVar[EventType] = EventType.TAG_ADDED

    tag: str


@dataclass(frozen=True, kw_only=True)
class PriorityChanged(DomainEvent):
    event_type: ClassVar[EventType] = EventType.PRIORITY_CHANGED

    new_priority: str
    old_priority: Optional[str] = None


@dataclass(frozen=True, kw_only=True)
class SlaBreached(DomainEvent):
    event_type: ClassVar[EventType] = EventType.SLA_BREACHED

    sla_event_id: str
    applied_sla_id: str
    sla_event_type: str
    deadline_at: datetime
    breached_at: datetime
