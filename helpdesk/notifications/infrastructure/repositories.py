"""
Notifications Infrastructure Repositories
=========================================
"""

from typing import List
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import NotificationType
from helpdesk.notifications.application import INotificationRepository
from helpdesk.notifications.domain import Notification
from helpdesk.notifications.infrastructure.models import NotificationModel


class SQLAlchemyNotificationRepository(INotificationRepository):
    """SQLAlchemy implementation of notification repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: NotificationModel) -> Notification:
        return Notification(
            id=model.id,
            user_id=model.user_id,
            title=model.title,
            message=model.message,
            kind=NotificationType(model.kind),
            related_ticket_id=model.related_ticket_id,
            is_read=model.is_read,
            created_at=model.created_at,
        )

    async def add(self, notification: Notification) -> Notification:
        # Redelivery of the same notification is a no-op.
        if await self._session.get(NotificationModel, notification.id) is not None:
            return notification

        self._session.add(NotificationModel(
            id=notification.id,
            user_id=notification.user_id,
            title=notification.title,
            message=notification.message,
            kind=notification.kind.value,
            related_ticket_id=notification.related_ticket_id,
            is_read=notification.is_read,
            created_at=notification.created_at,
        ))
        await self._session.flush()
        return notification

    async def list_for_user(
        self,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        stmt = select(NotificationModel).where(NotificationModel.user_id == user_id)
        if unread_only:
            stmt = stmt.where(NotificationModel.is_read.is_(False))
        stmt = stmt.order_by(NotificationModel.created_at.desc()).limit(limit)

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def mark_read(self, notification_id: UUID) -> bool:
        model = await self._session.get(NotificationModel, notification_id)
        if model is None:
            return False
        model.is_read = True
        await self._session.flush()
        return True
