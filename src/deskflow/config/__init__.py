"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="deskflow", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Async SQLAlchemy connection URL"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA ==========
    sla_config_path: Path = Field(
        default=Path("sla_config.yaml"),
        description="Path to the team SLA directory YAML file"
    )
    breach_scan_interval_seconds: int = Field(
        default=60,
        description="Seconds between breach scanner ticks",
        ge=1
    )
    default_business_hours_name: str = Field(
        default="default",
        description="Business hours schedule used when a team names none"
    )

    # ========== Automation ==========
    max_cascade_depth: int = Field(
        default=5,
        description="Events at or beyond this cascade depth are not evaluated",
        ge=1
    )
    automation_action_timeout_seconds: float = Field(
        default=10.0,
        description="Timeout for a single automation action",
        gt=0,
        le=300
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

DURATION_PATTERN = r"^(\d+)([mhd])$"

SYSTEM_ACTOR = "system"


class ConversationStatus(str, Enum):
    """Conversation lifecycle statuses."""
    OPEN = "open"
    SNOOZED = "snoozed"
    RESOLVED = "resolved"
    CLOSED = "closed"


class ConversationPriority(str, Enum):
    """Conversation priority levels."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class SlaStatus(str, Enum):
    """Status shared by applied SLAs and SLA events."""
    PENDING = "pending"
    MET = "met"
    BREACHED = "breached"


class SlaEventType(str, Enum):
    """Tracked SLA targets."""
    FIRST_RESPONSE = "first_response"
    RESOLUTION = "resolution"
    NEXT_RESPONSE = "next_response"


class RuleType(str, Enum):
    """Structural category of an automation rule trigger."""
    CONVERSATION_UPDATE = "conversation_update"
    MESSAGE_RECEIVED = "message_received"
    ASSIGNMENT_CHANGED = "assignment_changed"


class ConditionResult(str, Enum):
    """Outcome of evaluating a rule condition."""
    TRUE = "true"
    FALSE = "false"
    ERROR = "error"


class ActionResult(str, Enum):
    """Outcome of executing a rule's action list."""
    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"
    SKIPPED = "skipped"


class EventType(str, Enum):
    """Domain event type names used in rule subscriptions."""
    CONVERSATION_CREATED = "conversation.created"
    CONVERSATION_ASSIGNED = "conversation.assigned"
    CONVERSATION_UNASSIGNED = "conversation.unassigned"
    MESSAGE_RECEIVED = "conversation.message_received"
    MESSAGE_SENT = "conversation.message_sent"
    STATUS_CHANGED = "conversation.status_changed"
    TAG_ADDED = "conversation.tag_added"
    PRIORITY_CHANGED = "conversation.priority_changed"
    SLA_BREACHED = "sla.breached"


# ========== Lists for validation ==========

VALID_STATUSES = [s.value for s in ConversationStatus]
VALID_PRIORITIES = [p.value for p in ConversationPriority]
VALID_SLA_EVENT_TYPES = [t.value for t in SlaEventType]
VALID_EVENT_TYPES = [e.value for e in EventType]
