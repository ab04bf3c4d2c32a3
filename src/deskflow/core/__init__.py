"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from deskflow.core.exceptions import (
    ApplicationException,
    DomainException,
    RepositoryException,
    DuplicateEntryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    InvalidDuration,
    AlreadyApplied,
    ConditionEvaluationError,
    ActionExecutionFailure,
    CascadeLimitExceeded,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "RepositoryException",
    "DuplicateEntryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "InvalidDuration",
    "AlreadyApplied",
    "ConditionEvaluationError",
    "ActionExecutionFailure",
    "CascadeLimitExceeded",
]
