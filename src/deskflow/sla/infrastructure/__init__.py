"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: Team SLA config watcher and breach scan scheduler
"""

from deskflow.sla.infrastructure.models import (
    SlaPolicyModel,
    AppliedSlaModel,
    SlaEventModel,
    HolidayModel,
    BusinessHoursModel,
)
from deskflow.sla.infrastructure.repositories import (
    SQLAlchemySlaRepository,
    SQLAlchemyCalendarRepository,
)
from deskflow.sla.infrastructure.external import (
    TeamSlaConfig,
    TeamSlaConfigManager,
    BreachScanScheduler,
)

__all__ = [
    "SlaPolicyModel",
    "AppliedSlaModel",
    "SlaEventModel",
    "HolidayModel",
    "BusinessHoursModel",
    "SQLAlchemySlaRepository",
    "SQLAlchemyCalendarRepository",
    "TeamSlaConfig",
    "TeamSlaConfigManager",
    "BreachScanScheduler",
]
