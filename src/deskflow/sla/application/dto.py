"""
SLA Application DTOs
=====================

Data Transfer Objects for the SLA application services.

These Pydantic models validate input from outer surfaces before it reaches
the services. Following YAGNI - only what's needed.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from deskflow.config import SlaEventType, SlaStatus
from deskflow.core import InvalidDuration
from deskflow.sla.domain.value_objects import DaySchedule, parse_duration


def _check_duration(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        parse_duration(v)
    except InvalidDuration as e:
        raise ValueError(e.message)
    return v


# ========== Request DTOs ==========

class SlaPolicyCreateDTO(BaseModel):
    """DTO for creating an SLA policy."""
    name: str = Field(..., min_length=1, max_length=200, description="Unique policy name")
    description: Optional[str] = Field(None, description="Free-form description")
    first_response_time: str = Field(..., description="e.g. 2h")
    resolution_time: str = Field(..., description="e.g. 1d")
    next_response_time: str = Field(..., description="e.g. 4h")

    @field_validator("first_response_time", "resolution_time", "next_response_time")
    @classmethod
    def validate_duration(cls, v: str) -> str:
        return _check_duration(v)


class SlaPolicyUpdateDTO(BaseModel):
    """DTO for updating an SLA policy. Omitted fields are left unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    first_response_time: Optional[str] = None
    resolution_time: Optional[str] = None
    next_response_time: Optional[str] = None

    @field_validator("first_response_time", "resolution_time", "next_response_time")
    @classmethod
    def validate_duration(cls, v: Optional[str]) -> Optional[str]:
        return _check_duration(v)


class BusinessHoursDTO(BaseModel):
    """DTO for saving a business hours schedule."""
    name: str = Field(default="default", min_length=1, max_length=100)
    timezone: str = Field(default="UTC", description="IANA timezone identifier")
    schedule: List[DaySchedule] = Field(..., min_length=1)


class HolidayCreateDTO(BaseModel):
    """DTO for creating a holiday."""
    name: str = Field(..., min_length=1, max_length=200)
    date: date
    recurring: bool = Field(default=False, description="Repeat every year on this month/day")


# ========== Response DTOs ==========

class SlaEventResponse(BaseModel):
    """One tracked SLA target."""
    id: str
    applied_sla_id: str
    event_type: SlaEventType
    status: SlaStatus
    deadline_at: datetime
    met_at: Optional[datetime] = None
    breached_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AppliedSlaResponse(BaseModel):
    """Applied SLA with its events."""
    id: str
    conversation_id: str
    sla_policy_id: str
    status: SlaStatus
    first_response_deadline_at: datetime
    resolution_deadline_at: datetime
    applied_at: datetime
    events: List[SlaEventResponse] = Field(default_factory=list)

    model_config = {"from_attributes": True}
