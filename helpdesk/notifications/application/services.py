"""
Notifications Application Services
==================================

Fire-and-forget notification dispatch.

``notify()`` only builds the notification and schedules one delivery task per
channel on the running event loop, so callers on the assignment and status
paths never wait on (or fail because of) delivery.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Set
from uuid import UUID

from helpdesk.config import NotificationType
from helpdesk.core import Clock, SystemClock, TransientNotificationFailure
from helpdesk.notifications.domain import Notification
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.shared.infrastructure.metrics import MetricsRegistry

logger = get_logger(__name__)


# ========== Interfaces ==========

class INotifier(ABC):
    """Interface the other modules use to notify users."""

    @abstractmethod
    def notify(
        self,
        user_id: UUID,
        title: str,
        message: str,
        kind: NotificationType,
        related_ticket_id: Optional[UUID] = None,
    ) -> None:
        """Queue a notification. Returns immediately and never raises."""


class INotificationChannel(ABC):
    """One delivery medium."""

    name: str = "channel"

    @abstractmethod
    async def deliver(self, notification: Notification) -> None:
        """
        Deliver one notification.

        Raises:
            TransientNotificationFailure: If delivery failed and may be retried
        """


class INotificationRepository(ABC):
    """Interface for in-app notification storage."""

    @abstractmethod
    async def add(self, notification: Notification) -> Notification:
        """Store a notification."""

    @abstractmethod
    async def list_for_user(
        self,
        user_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> List[Notification]:
        """Newest first."""

    @abstractmethod
    async def mark_read(self, notification_id: UUID) -> bool:
        """Returns False if the notification does not exist."""


# ========== Application Services ==========

class NotificationDispatcher(INotifier):
    """
    Fans notifications out to every channel with at-least-once retries.

    Each channel gets ``max_attempts`` tries with delays of base, 2*base,
    4*base... seconds. A channel that still fails is logged and counted;
    the failure never reaches the caller.
    """

    def __init__(
        self,
        channels: Sequence[INotificationChannel],
        clock: Optional[Clock] = None,
        max_attempts: int = 3,
        base_delay_seconds: float = 1.0,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self._channels = list(channels)
        self._clock = clock or SystemClock()
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay_seconds
        self._metrics = metrics
        self._pending: Set[asyncio.Task] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def notify(
        self,
        user_id: UUID,
        title: str,
        message: str,
        kind: NotificationType,
        related_ticket_id: Optional[UUID] = None,
    ) -> None:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            kind=kind,
            related_ticket_id=related_ticket_id,
            created_at=self._clock.now(),
        )

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(
                "No running event loop, notification dropped",
                extra={"user_id": str(user_id), "kind": kind.value},
            )
            return

        for channel in self._channels:
            task = loop.create_task(self._deliver(channel, notification))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, channel: INotificationChannel, notification: Notification) -> None:
        last_error: Optional[Exception] = None

        for attempt in range(1, self._max_attempts + 1):
            try:
                await channel.deliver(notification)
                if self._metrics is not None:
                    self._metrics.increment("notifications_sent_total", channel=channel.name)
                return
            except Exception as e:
                last_error = e
                logger.debug(
                    "Notification attempt failed",
                    extra={
                        "channel": channel.name,
                        "attempt": attempt,
                        "notification_id": str(notification.id),
                        "error": str(e),
                    },
                )

            if attempt < self._max_attempts and self._base_delay > 0:
                await asyncio.sleep(self._base_delay * 2 ** (attempt - 1))

        failure = (
            last_error
            if isinstance(last_error, TransientNotificationFailure)
            else TransientNotificationFailure(channel.name, str(last_error))
        )
        if self._metrics is not None:
            self._metrics.increment("notification_failures_total", channel=channel.name)
        logger.warning(
            "Notification delivery failed",
            extra={
                "channel": channel.name,
                "attempts": self._max_attempts,
                "notification_id": str(notification.id),
                "user_id": str(notification.user_id),
                "kind": notification.kind.value,
                "error": failure.message,
            },
        )

    async def drain(self) -> None:
        """Wait for every queued delivery (shutdown and tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
