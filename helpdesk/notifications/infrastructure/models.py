"""
Notifications Infrastructure Models
===================================
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.config import NotificationType
from helpdesk.infrastructure.database import Base, UTCDateTime


class NotificationModel(Base):
    """
    Database model for in-app notifications.

    Maps to the 'notifications' table. user_id is not a foreign key: ticket
    reporters live outside the staff table.
    """
    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[NotificationType] = mapped_column(String(50), nullable=False)
    related_ticket_id: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    __table_args__ = (
        Index("ix_notifications_user_created", "user_id", "created_at"),
    )
