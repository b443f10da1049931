"""
Notification Domain Entities
============================
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from helpdesk.config import NotificationType


@dataclass
class Notification:
    """An in-app message for one user, optionally tied to a ticket."""

    user_id: UUID
    title: str
    message: str
    kind: NotificationType
    created_at: datetime
    related_ticket_id: Optional[UUID] = None
    is_read: bool = False
    id: UUID = field(default_factory=uuid4)

    def mark_read(self) -> None:
        self.is_read = True
