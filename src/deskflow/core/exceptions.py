"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Any, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class DuplicateEntryException(RepositoryException):
    """Raised when a write violates a uniqueness constraint."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class InvalidDuration(ValidationException):
    """Raised when an SLA duration string does not match <number><m|h|d>."""

    def __init__(self, value: Any, reason: Optional[str] = None):
        self.value = value
        message = f"Invalid duration format: {value!r}. Expected format: <number><m|h|d>"
        if reason:
            message = f"Invalid duration {value!r}: {reason}"
        super().__init__(message, {"value": value})


class AlreadyApplied(DomainException):
    """Raised when a conversation already has an applied SLA."""

    def __init__(self, conversation_id: str, details: Optional[dict] = None):
        self.conversation_id = conversation_id
        super().__init__(
            f"SLA already applied to conversation {conversation_id}",
            details or {"conversation_id": conversation_id}
        )


class ConditionEvaluationError(DomainException):
    """
    A condition referenced a missing attribute or compared incompatible types.

    Never escapes the evaluator; it is turned into a ``ConditionResult.ERROR``.
    """


class ActionExecutionFailure(DomainException):
    """Raised by action-target services when an action cannot be applied."""

    def __init__(
        self,
        action_type: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.action_type = action_type
        super().__init__(f"{action_type}: {message}", details)


class CascadeLimitExceeded(DomainException):
    """An event reached the configured automation cascade ceiling."""

    def __init__(self, event_type: str, cascade_depth: int, max_depth: int):
        self.event_type = event_type
        self.cascade_depth = cascade_depth
        self.max_depth = max_depth
        super().__init__(
            f"Cascade depth {cascade_depth} reached limit {max_depth} for event {event_type}",
            {"event_type": event_type, "cascade_depth": cascade_depth, "max_depth": max_depth}
        )
