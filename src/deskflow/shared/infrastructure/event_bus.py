"""
Event Bus
=========

In-process publish/subscribe fan-out of domain events.

The bus is an ordinary object created by the composition root and handed to
components by reference. ``publish`` awaits every matching handler in
subscription order inside the publisher's task; a failing handler is logged
and never reaches the publisher or the remaining handlers.
"""

from dataclasses import dataclass, field
from typing import Awaitable, Callable, FrozenSet, List, Optional, Iterable
from uuid import uuid4

from deskflow.shared.domain.events import DomainEvent
from deskflow.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


@dataclass(frozen=True)
class Subscription:
    """Handle returned by ``EventBus.subscribe``."""
    handler: EventHandler
    event_types: Optional[FrozenSet[str]] = None
    name: str = ""
    id: str = field(default_factory=lambda: str(uuid4()))

    def matches(self, event: DomainEvent) -> bool:
        return self.event_types is None or event.event_type.value in self.event_types


class EventBus:
    """Explicit in-process event bus."""

    def __init__(self):
        self._subscriptions: List[Subscription] = []

    def subscribe(
        self,
        handler: EventHandler,
        event_types: Optional[Iterable[str]] = None,
        name: Optional[str] = None
    ) -> Subscription:
        """
        Register ``handler`` for the given event type names (all when None).

        Returns:
            Subscription usable with ``unsubscribe``
        """
        types = None
        if event_types is not None:
            types = frozenset(getattr(t, "value", t) for t in event_types)

        subscription = Subscription(
            handler=handler,
            event_types=types,
            name=name or getattr(handler, "__qualname__", repr(handler)),
        )
        self._subscriptions.append(subscription)
        logger.debug(
            "Event handler subscribed",
            extra={"subscriber": subscription.name, "event_types": sorted(types or [])}
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        self._subscriptions = [s for s in self._subscriptions if s.id != subscription.id]

    async def publish(self, event: DomainEvent) -> None:
        """Deliver ``event`` to every matching subscriber, in order."""
        targets = [s for s in self._subscriptions if s.matches(event)]
        if not targets:
            logger.debug(
                "No subscribers for event",
                extra={"event_type": event.event_type.value}
            )
            return

        for subscription in targets:
            try:
                await subscription.handler(event)
            except Exception as e:
                logger.error(
                    "Event handler failed",
                    extra={
                        "subscriber": subscription.name,
                        "event_type": event.event_type.value,
                        "conversation_id": event.conversation_id,
                        "cascade_depth": event.cascade_depth,
                        "error": str(e),
                    },
                    exc_info=True
                )

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)
