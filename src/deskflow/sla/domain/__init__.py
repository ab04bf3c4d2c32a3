"""
SLA Domain Layer
================

Domain layer for SLA tracking.

Contains:
- Entities: Core business objects with identity (SlaPolicy, AppliedSla, SlaEvent, Holiday)
- Value Objects: Immutable objects defined by attributes (BusinessHours, DaySchedule)
- Domain Services: Stateless business logic (BusinessCalendar, SlaDeadlineCalculator)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from deskflow.sla.domain.entities import SlaPolicy, AppliedSla, SlaEvent, Holiday
from deskflow.sla.domain.value_objects import (
    BusinessCalendar,
    BusinessHours,
    DaySchedule,
    SlaDeadlineCalculator,
    ensure_utc,
    parse_duration,
)

__all__ = [
    # Entities
    "SlaPolicy",
    "AppliedSla",
    "SlaEvent",
    "Holiday",
    # Value Objects & Services
    "BusinessCalendar",
    "BusinessHours",
    "DaySchedule",
    "SlaDeadlineCalculator",
    "ensure_utc",
    "parse_duration",
]
