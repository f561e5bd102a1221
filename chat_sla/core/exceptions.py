"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import Optional


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
    """
    Exception for configuration errors.

    Raised before any computation when office hours, targets or the
    timezone are unusable. Never used for missing conversation data.
    """


class MetricComputationException(DomainException):
    """Exception raised when a conversation's SLA metrics cannot be computed."""

    def __init__(
        self,
        conversation_id: str,
        reason: str,
        details: Optional[dict] = None
    ):
        self.conversation_id = conversation_id
        self.reason = reason
        super().__init__(
            f"Cannot compute SLA metrics for conversation {conversation_id}: {reason}",
            details or {"conversation_id": conversation_id, "reason": reason}
        )
