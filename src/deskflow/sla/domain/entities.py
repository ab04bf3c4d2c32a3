"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional
from uuid import uuid4

from deskflow.config import SlaEventType, SlaStatus
from deskflow.core import DomainException
from deskflow.shared.domain.events import utcnow
from deskflow.sla.domain.value_objects import parse_duration


def new_id() -> str:
    return str(uuid4())


@dataclass
class SlaPolicy:
    """
    Named set of SLA targets.

    Durations are kept as the strings users configure ("2h", "1d") and
    parsed whenever a deadline is computed.
    """

    name: str
    first_response_time: str
    resolution_time: str
    next_response_time: str
    description: Optional[str] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def validate(self) -> None:
        """
        Check every duration.

        Raises:
            InvalidDuration: on the first malformed duration
        """
        for spec in (self.first_response_time, self.resolution_time, self.next_response_time):
            parse_duration(spec)

    def duration_for(self, event_type: SlaEventType) -> str:
        return {
            SlaEventType.FIRST_RESPONSE: self.first_response_time,
            SlaEventType.RESOLUTION: self.resolution_time,
            SlaEventType.NEXT_RESPONSE: self.next_response_time,
        }[SlaEventType(event_type)]


@dataclass
class SlaEvent:
    """
    One tracked target of an applied SLA.

    Leaves ``pending`` at most once, for ``met`` or ``breached``.
    """

    applied_sla_id: str
    event_type: SlaEventType
    deadline_at: datetime
    status: SlaStatus = SlaStatus.PENDING
    met_at: Optional[datetime] = None
    breached_at: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.event_type = SlaEventType(self.event_type)
        self.status = SlaStatus(self.status)
        self.validate_status_exclusive()

    @property
    def is_pending(self) -> bool:
        return self.status == SlaStatus.PENDING

    def validate_status_exclusive(self) -> None:
        """met_at / breached_at must agree with status."""
        if self.met_at is not None and self.breached_at is not None:
            raise DomainException(
                "SLA event cannot be both met and breached",
                {"sla_event_id": self.id}
            )
        expected = {
            SlaStatus.PENDING: (False, False),
            SlaStatus.MET: (True, False),
            SlaStatus.BREACHED: (False, True),
        }[self.status]
        if (self.met_at is not None, self.breached_at is not None) != expected:
            raise DomainException(
                f"SLA event timestamps inconsistent with status {self.status.value}",
                {"sla_event_id": self.id}
            )


@dataclass
class AppliedSla:
    """A policy bound to one conversation, with the deadlines computed at apply time."""

    conversation_id: str
    sla_policy_id: str
    first_response_deadline_at: datetime
    resolution_deadline_at: datetime
    status: SlaStatus = SlaStatus.PENDING
    id: str = field(default_factory=new_id)
    applied_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.status = SlaStatus(self.status)

    @staticmethod
    def aggregate_status(events: Iterable[SlaEvent]) -> SlaStatus:
        """Worst outcome across events: breached > pending > met."""
        statuses = {e.status for e in events}
        if SlaStatus.BREACHED in statuses:
            return SlaStatus.BREACHED
        if SlaStatus.PENDING in statuses or not statuses:
            return SlaStatus.PENDING
        return SlaStatus.MET


@dataclass
class Holiday:
    """Non-business day. Recurring holidays repeat every year on the same month/day."""

    name: str
    date: date
    recurring: bool = False
    id: str = field(default_factory=new_id)
    created_at: datetime = field(default_factory=utcnow)
