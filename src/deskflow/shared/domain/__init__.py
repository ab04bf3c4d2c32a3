"""
Shared Domain Layer
===================

Domain events common to the SLA and Automation bounded contexts.
"""

from deskflow.shared.domain.events import (
    DomainEvent,
    ConversationCreated,
    ConversationAssigned,
    ConversationUnassigned,
    MessageReceived,
    MessageSent,
    StatusChanged,
    TagAdded,
    PriorityChanged,
    SlaBreached,
    utcnow,
)

__all__ = [
    "DomainEvent",
    "ConversationCreated",
    "ConversationAssigned",
    "ConversationUnassigned",
    "MessageReceived",
    "MessageSent",
    "StatusChanged",
    "TagAdded",
    "PriorityChanged",
    "SlaBreached",
    "utcnow",
]
