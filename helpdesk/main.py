"""
Hostel Helpdesk - Main Application
==================================

Routing, SLA and escalation engine for hostel maintenance tickets.

Modules:
- Routing: staff mappings, workload and assignment
- SLA: deadlines and the ticket lifecycle
- Escalation: stalled-ticket promotion
- Notifications: fire-and-forget delivery

Clean Architecture Layers:
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, Slack, scheduler

There is no wire protocol: the surrounding application calls the entry
points on HelpdeskApplication in-process.
"""

import asyncio
import signal
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import AsyncIterator, Optional, Union
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

# Configuration and Core
from helpdesk.config import Settings, TicketCategory, TicketPriority, TicketStatus, get_settings
from helpdesk.config.policy import IPolicyProvider
from helpdesk.core import Clock, SystemClock

# Infrastructure
from helpdesk.infrastructure.database import (
    SQLAlchemyUnitOfWork,
    close_database,
    create_tables,
    get_session_context,
    init_database,
)

# Modules
from helpdesk.escalation.application import EscalationService
from helpdesk.escalation.domain import EscalationResult, SweepSummary
from helpdesk.escalation.infrastructure import EscalationScheduler, SQLAlchemyEscalationRepository
from helpdesk.notifications.application import NotificationDispatcher
from helpdesk.notifications.infrastructure import (
    DatabaseNotificationChannel,
    SlackNotificationChannel,
)
from helpdesk.routing.application import AssignmentService, MappingRegistry, WorkloadTracker
from helpdesk.routing.domain import RoutableTicket
from helpdesk.routing.infrastructure import SQLAlchemyMappingRepository, SQLAlchemyStaffRepository
from helpdesk.sla.application import SLAService, TicketCreateRequest, TicketWorkflowService
from helpdesk.sla.domain import SLADeadline, Ticket
from helpdesk.sla.infrastructure import SQLAlchemyTicketRepository

# Logging and metrics
from helpdesk.shared.infrastructure.logging import get_logger, setup_logging
from helpdesk.shared.infrastructure.metrics import GrafanaOTLPExporter, MetricsRegistry
from helpdesk.shared.infrastructure.policy_loader import PolicyConfigManager

logger = get_logger(__name__)


@dataclass
class ServiceBundle:
    """Services bound to one database session."""
    session: AsyncSession
    registry: MappingRegistry
    tracker: WorkloadTracker
    assignment: AssignmentService
    workflow: TicketWorkflowService
    escalation: EscalationService


class HelpdeskApplication:
    """
    Application lifecycle and in-process entry points.

    STARTUP:
    1. Setup structured logging
    2. Initialize database (and tables outside production)
    3. Load routing policy and start the file watcher
    4. Build notification channels and the dispatcher
    5. Start the escalation scheduler

    SHUTDOWN:
    1. Stop the scheduler
    2. Stop the policy watcher
    3. Drain notifications and close Slack
    4. Close database connections
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        policy_provider: Optional[IPolicyProvider] = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or SystemClock()
        self.metrics = MetricsRegistry()
        self._policy_provider = policy_provider
        self._policy_manager: Optional[PolicyConfigManager] = None
        self._dispatcher: Optional[NotificationDispatcher] = None
        self._slack: Optional[SlackNotificationChannel] = None
        self._scheduler: Optional[EscalationScheduler] = None
        self._exporter: Optional[GrafanaOTLPExporter] = None
        # One guard per process: every assignment decision and its commit
        # happen while holding it.
        self._capacity_guard = asyncio.Lock()
        self._started = False

    @property
    def policy_provider(self) -> IPolicyProvider:
        if self._policy_provider is None:
            raise RuntimeError("Application not started. Call start() first.")
        return self._policy_provider

    @property
    def notifier(self) -> NotificationDispatcher:
        if self._dispatcher is None:
            raise RuntimeError("Application not started. Call start() first.")
        return self._dispatcher

    # ========== Lifecycle ==========

    async def start(self, create_schema: Optional[bool] = None) -> None:
        if self._started:
            return
        settings = self.settings

        setup_logging(settings.log_level, settings.environment)
        logger.info("Starting helpdesk engine", extra={
            "version": settings.app_version,
            "environment": settings.environment
        })

        logger.info("Initializing database")
        init_database(
            settings.database_url,
            echo=settings.debug,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
        )
        if create_schema is None:
            create_schema = settings.environment != "production"
        if create_schema:
            # Production uses migrations
            await create_tables()

        if self._policy_provider is None:
            logger.info("Loading routing policy", extra={"path": str(settings.routing_policy_path)})
            self._policy_manager = PolicyConfigManager()
            self._policy_manager.load(settings.routing_policy_path)
            if settings.watch_policy_file:
                self._policy_manager.start_watching()
            self._policy_provider = self._policy_manager

        self._slack = SlackNotificationChannel(
            webhook_url=settings.slack_webhook_url,
            channel=settings.slack_channel,
            timeout_seconds=settings.slack_timeout_seconds,
        )
        channels = [DatabaseNotificationChannel(get_session_context)]
        if self._slack.is_enabled():
            channels.append(self._slack)
        self._dispatcher = NotificationDispatcher(
            channels,
            clock=self.clock,
            max_attempts=settings.notification_max_retries,
            base_delay_seconds=settings.notification_retry_base_seconds,
            metrics=self.metrics,
        )

        self._exporter = GrafanaOTLPExporter(
            host=settings.grafana_host,
            api_key=settings.grafana_api_key,
            instance_id=settings.grafana_instance_id,
            service_name=settings.app_name,
            service_version=settings.app_version,
            environment=settings.environment,
        )

        if settings.escalation_sweep_interval_minutes > 0:
            self._scheduler = EscalationScheduler(
                sweep_interval_minutes=settings.escalation_sweep_interval_minutes,
                auto_close_interval_minutes=settings.auto_close_interval_minutes,
            )
            await self._scheduler.start(self._sweep_job, self._auto_close_job)
        else:
            logger.info("Escalation scheduler disabled")

        self._started = True
        logger.info("Helpdesk engine started")

    async def stop(self) -> None:
        if not self._started:
            return
        logger.info("Shutting down helpdesk engine")

        if self._scheduler:
            await self._scheduler.stop()
            self._scheduler = None

        if self._policy_manager:
            self._policy_manager.stop_watching()

        if self._dispatcher:
            await self._dispatcher.drain()

        if self._slack:
            await self._slack.close()

        await close_database()
        self._started = False
        logger.info("Helpdesk engine stopped")

    # ========== Wiring ==========

    def build_services(self, session: AsyncSession) -> ServiceBundle:
        """Wire every service against one session."""
        policy = self.policy_provider
        tickets = SQLAlchemyTicketRepository(session)
        staff = SQLAlchemyStaffRepository(session)
        mappings = SQLAlchemyMappingRepository(session)
        escalations = SQLAlchemyEscalationRepository(session)
        uow = SQLAlchemyUnitOfWork(session)

        registry = MappingRegistry(staff, mappings, policy)
        tracker = WorkloadTracker(tickets, policy, self.clock)
        assignment = AssignmentService(
            registry, tracker, staff, tickets, policy,
            clock=self.clock, metrics=self.metrics, guard=self._capacity_guard,
        )
        escalation = EscalationService(
            tickets, escalations, staff, tickets, assignment, self.notifier, uow, policy,
            clock=self.clock, metrics=self.metrics,
        )
        workflow = TicketWorkflowService(
            tickets, staff, assignment, SLAService(policy, self.clock), self.notifier, uow, policy,
            escalation_tracker=escalation, clock=self.clock, metrics=self.metrics,
        )
        return ServiceBundle(
            session=session,
            registry=registry,
            tracker=tracker,
            assignment=assignment,
            workflow=workflow,
            escalation=escalation,
        )

    @asynccontextmanager
    async def services(self) -> AsyncIterator[ServiceBundle]:
        """
        Session-scoped services; commits on success, rolls back on error.

        Usage:
            async with app.services() as svc:
                await svc.workflow.change_status(ticket_id, TicketStatus.IN_PROGRESS)
        """
        async with get_session_context() as session:
            yield self.build_services(session)

    # ========== Entry points ==========

    async def assign(self, ticket: RoutableTicket) -> Optional[UUID]:
        """Who would receive this ticket right now. Persists nothing."""
        async with self.services() as svc:
            return await svc.assignment.assign(ticket)

    def compute_deadlines(
        self,
        category: Optional[Union[TicketCategory, str]],
        priority: TicketPriority,
        now: Optional[datetime] = None,
    ) -> SLADeadline:
        return SLAService(self.policy_provider, self.clock).compute_deadlines(category, priority, now)

    async def run_escalation_sweep(self) -> SweepSummary:
        async with self.services() as svc:
            summary = await svc.escalation.run_escalation_sweep()
        if self._exporter is not None and self._exporter.is_enabled():
            await self._exporter.export(self.metrics)
        return summary

    async def manual_escalate(
        self,
        ticket_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
    ) -> EscalationResult:
        async with self.services() as svc:
            return await svc.escalation.manual_escalate(ticket_id, actor_id, reason)

    async def create_ticket(self, request: TicketCreateRequest) -> Ticket:
        async with self.services() as svc:
            return await svc.workflow.create_ticket(request)

    async def change_status(
        self,
        ticket_id: UUID,
        new_status: TicketStatus,
        actor_id: Optional[UUID] = None,
    ) -> Ticket:
        async with self.services() as svc:
            return await svc.workflow.change_status(ticket_id, new_status, actor_id)

    async def reject_resolution(
        self,
        ticket_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
    ) -> Ticket:
        async with self.services() as svc:
            return await svc.workflow.reject_resolution(ticket_id, actor_id, reason)

    async def auto_close_resolved(self) -> int:
        async with self.services() as svc:
            return await svc.workflow.auto_close_resolved()

    # ========== Background jobs ==========

    async def _sweep_job(self) -> None:
        """Background escalation sweep job."""
        try:
            await self.run_escalation_sweep()
        except Exception:
            logger.exception("Escalation sweep job failed")
            self.metrics.increment("escalation_sweep_failures_total")

    async def _auto_close_job(self) -> None:
        """Background auto-close job."""
        try:
            await self.auto_close_resolved()
        except Exception:
            logger.exception("Auto-close job failed")


async def serve(settings: Optional[Settings] = None) -> None:
    """Run the background jobs until SIGINT or SIGTERM."""
    app = HelpdeskApplication(settings)
    await app.start()

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # Windows event loops have no signal handlers
            pass

    try:
        await stop_event.wait()
    finally:
        await app.stop()


def run() -> None:
    """Console entry point."""
    asyncio.run(serve())


if __name__ == "__main__":
    run()
