"""
Notifications External Integrations
===================================

Delivery channels:
- DatabaseNotificationChannel: in-app notifications table
- SlackNotificationChannel: Slack webhook with circuit breaker

Retries belong to the dispatcher; a channel makes one attempt per call and
raises TransientNotificationFailure when it fails.
"""

import time
from typing import Any, AsyncContextManager, Callable, Dict, FrozenSet, Iterable, Optional

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import NotificationType
from helpdesk.core import TransientNotificationFailure
from helpdesk.notifications.application import INotificationChannel
from helpdesk.notifications.domain import Notification
from helpdesk.notifications.infrastructure.repositories import SQLAlchemyNotificationRepository
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        time_func: Callable[[], float] = time.monotonic,
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._time = time_func
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        """Get current circuit state."""
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._time() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._time()

        if self._state == CircuitState.HALF_OPEN or self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


class DatabaseNotificationChannel(INotificationChannel):
    """
    Stores notifications in the notifications table.

    Uses its own short session so delivery never joins (or rolls back) the
    caller's transaction.
    """

    name = "database"

    def __init__(self, session_factory: SessionFactory):
        self._session_factory = session_factory

    async def deliver(self, notification: Notification) -> None:
        try:
            async with self._session_factory() as session:
                await SQLAlchemyNotificationRepository(session).add(notification)
        except SQLAlchemyError as e:
            raise TransientNotificationFailure(self.name, str(e)) from e


DEFAULT_SLACK_KINDS = frozenset({NotificationType.ESCALATION, NotificationType.SYSTEM_ALERT})


class SlackNotificationChannel(INotificationChannel):
    """
    Slack webhook channel with circuit breaker.

    Only escalation and system alert notifications are posted; everything
    else is accepted and ignored.
    """

    name = "slack"

    def __init__(
        self,
        webhook_url: Optional[str],
        channel: str,
        timeout_seconds: float = 5.0,
        kinds: Iterable[NotificationType] = DEFAULT_SLACK_KINDS,
        circuit_breaker: Optional[CircuitBreaker] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._webhook_url = webhook_url
        self._channel = channel
        self._timeout = timeout_seconds
        self._kinds: FrozenSet[NotificationType] = frozenset(kinds)
        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=5,
            recovery_timeout=60
        )
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    def is_enabled(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._http_client

    def _build_message(self, notification: Notification) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        if notification.kind == NotificationType.SYSTEM_ALERT:
            header_text = f":rotating_light: {notification.title}"
        else:
            header_text = f":arrow_double_up: {notification.title}"

        ticket = str(notification.related_ticket_id) if notification.related_ticket_id else "-"
        blocks = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": header_text, "emoji": True}
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": notification.message}
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"Ticket: {ticket} | Kind: {notification.kind.value} | "
                                f"{notification.created_at.isoformat()}"
                    }
                ]
            }
        ]
        return {"channel": self._channel, "blocks": blocks}

    async def deliver(self, notification: Notification) -> None:
        if not self.is_enabled() or notification.kind not in self._kinds:
            return

        if not self._circuit_breaker.allow_request():
            raise TransientNotificationFailure(self.name, "circuit breaker open")

        try:
            client = await self._get_client()
            response = await client.post(self._webhook_url, json=self._build_message(notification))
        except httpx.HTTPError as e:
            self._circuit_breaker.record_failure()
            raise TransientNotificationFailure(self.name, str(e)) from e

        if response.status_code != 200:
            self._circuit_breaker.record_failure()
            raise TransientNotificationFailure(
                self.name,
                f"webhook returned {response.status_code}",
                details={"status_code": response.status_code},
            )

        self._circuit_breaker.record_success()
        logger.info(
            "Slack notification sent",
            extra={
                "notification_id": str(notification.id),
                "kind": notification.kind.value,
            }
        )

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None
