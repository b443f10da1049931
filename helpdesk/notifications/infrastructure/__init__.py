"""
Notifications Infrastructure Layer
==================================
"""

from helpdesk.notifications.infrastructure.external import (
    CircuitBreaker,
    CircuitState,
    DatabaseNotificationChannel,
    SlackNotificationChannel,
)
from helpdesk.notifications.infrastructure.models import NotificationModel
from helpdesk.notifications.infrastructure.repositories import SQLAlchemyNotificationRepository

__all__ = [
    "CircuitBreaker",
    "CircuitState",
    "DatabaseNotificationChannel",
    "SlackNotificationChannel",
    "NotificationModel",
    "SQLAlchemyNotificationRepository",
]
