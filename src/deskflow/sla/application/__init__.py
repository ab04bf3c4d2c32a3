"""
SLA Application Layer
======================

Application layer for SLA tracking.

Contains:
- Services: Orchestrate business logic and coordinate with repositories
- DTOs: Data transfer objects for validated input and read models

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from deskflow.sla.application.dto import (
    SlaPolicyCreateDTO,
    SlaPolicyUpdateDTO,
    BusinessHoursDTO,
    HolidayCreateDTO,
    SlaEventResponse,
    AppliedSlaResponse,
)
from deskflow.sla.application.services import (
    SlaPolicyService,
    BusinessCalendarService,
    SlaLifecycleManager,
    BreachScanner,
    ISlaRepository,
    ICalendarRepository,
    ITeamSlaDirectory,
)

__all__ = [
    # DTOs
    "SlaPolicyCreateDTO",
    "SlaPolicyUpdateDTO",
    "BusinessHoursDTO",
    "HolidayCreateDTO",
    "SlaEventResponse",
    "AppliedSlaResponse",
    # Services
    "SlaPolicyService",
    "BusinessCalendarService",
    "SlaLifecycleManager",
    "BreachScanner",
    # Repository Interfaces
    "ISlaRepository",
    "ICalendarRepository",
    "ITeamSlaDirectory",
]
