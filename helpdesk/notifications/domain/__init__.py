"""
Notifications Domain Layer
==========================
"""

from helpdesk.notifications.domain.entities import Notification

__all__ = ["Notification"]
