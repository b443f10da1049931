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


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested resource is not found."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Any] = None,
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


class InvalidStatusTransitionException(ValidationException):
    """Raised when a ticket is asked to move along an edge the lifecycle forbids."""

    def __init__(self, ticket_id: Any, current: Any, requested: Any):
        self.ticket_id = ticket_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Ticket {ticket_id} cannot move from {getattr(current, 'value', current)} "
            f"to {getattr(requested, 'value', requested)}",
            {
                "ticket_id": str(ticket_id),
                "from": getattr(current, "value", current),
                "to": getattr(requested, "value", requested),
            }
        )


class ConcurrencyConflictException(RepositoryException):
    """A conditional write found the row changed since it was read."""

    def __init__(self, ticket_id: Any, details: Optional[dict] = None):
        self.ticket_id = ticket_id
        super().__init__(
            f"Ticket {ticket_id} was modified concurrently",
            details or {"ticket_id": str(ticket_id)}
        )


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class TransientNotificationFailure(ExternalServiceException):
    """Delivery of a notification failed. Logged, never surfaced to callers."""

    def __init__(self, channel: str, message: str, details: Optional[dict] = None):
        super().__init__(f"Notification channel {channel}", message, details)
