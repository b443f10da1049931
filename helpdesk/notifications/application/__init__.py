"""
Notifications Application Layer
===============================
"""

from helpdesk.notifications.application.services import (
    INotificationChannel,
    INotificationRepository,
    INotifier,
    NotificationDispatcher,
)

__all__ = [
    "INotificationChannel",
    "INotificationRepository",
    "INotifier",
    "NotificationDispatcher",
]
