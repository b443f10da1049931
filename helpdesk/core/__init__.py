"""
Core Module
============

Shared core utilities and abstractions used across the application.

This module contains framework-agnostic code that defines the fundamental
building blocks of the system.
"""

from helpdesk.core.clock import Clock, SystemClock
from helpdesk.core.exceptions import (
    ApplicationException,
    RepositoryException,
    ValidationException,
    ResourceNotFoundException,
    ConfigurationException,
    InvalidStatusTransitionException,
    ConcurrencyConflictException,
    ExternalServiceException,
    TransientNotificationFailure,
)

__all__ = [
    "Clock",
    "SystemClock",
    "ApplicationException",
    "RepositoryException",
    "ValidationException",
    "ResourceNotFoundException",
    "ConfigurationException",
    "InvalidStatusTransitionException",
    "ConcurrencyConflictException",
    "ExternalServiceException",
    "TransientNotificationFailure",
]
