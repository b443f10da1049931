"""
SLA Application Services
========================

Application services for deadlines and the ticket lifecycle.

- SLAService: deadline computation and adherence reporting
- TicketWorkflowService: intake, status changes, resolution verification
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence, Set, Tuple, Union
from uuid import UUID, uuid4

from helpdesk.config import (
    NotificationType,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from helpdesk.config.policy import IPolicyProvider
from helpdesk.core import (
    ApplicationException,
    Clock,
    ResourceNotFoundException,
    SystemClock,
    ValidationException,
)
from helpdesk.core.uow import IUnitOfWork
from helpdesk.notifications.application import INotifier
from helpdesk.routing.application import AssignmentService, IStaffRepository, IWorkloadRepository
from helpdesk.sla.application.dto import TicketCreateRequest
from helpdesk.sla.domain import SLACalculator, SLAComplianceReport, SLADeadline, Ticket
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.shared.infrastructure.metrics import MetricsRegistry

logger = get_logger(__name__)

RESOLUTION_STATUSES = frozenset({
    TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED,
})

# (user_id, title, message, kind, ticket_id)
PendingNotification = Tuple[UUID, str, str, NotificationType, UUID]


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(IWorkloadRepository):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: UUID) -> Optional[Ticket]:
        """Get ticket by ID, freshly read from storage."""

    @abstractmethod
    async def add(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket."""

    @abstractmethod
    async def save(self, ticket: Ticket) -> Ticket:
        """
        Persist changes if the stored version still matches ``ticket.version``.

        Bumps ``ticket.version`` on success.

        Raises:
            ConcurrencyConflictException: If the row changed since it was read
        """

    @abstractmethod
    async def list_by_status(self, statuses: Sequence[TicketStatus]) -> List[Ticket]:
        """Tickets in any of the given statuses, oldest first."""

    @abstractmethod
    async def list_resolved_before(self, cutoff: datetime) -> List[Ticket]:
        """RESOLVED tickets whose resolved_at is at or before ``cutoff``."""


class IEscalationTracker(ABC):
    """What the lifecycle needs from the escalation module."""

    @abstractmethod
    async def resolve_escalations(self, ticket_id: UUID, now: Optional[datetime] = None) -> int:
        """Mark the ticket's ACTIVE escalation records RESOLVED. Returns the count."""

    @abstractmethod
    async def staff_in_chain(self, ticket_id: UUID) -> Set[UUID]:
        """Every staff member who held the ticket across its escalation records."""

    @abstractmethod
    async def current_rank(self, ticket: Ticket) -> int:
        """Escalation level the ticket sits at in its current lifecycle."""

    @abstractmethod
    async def supervision_chain(self, ticket: Ticket) -> Set[UUID]:
        """
        Who answers for the ticket above its assignee: staff in its escalation
        chain, active members of every higher level and administrators.
        """


# ========== Application Services ==========

class SLAService:
    """Deadline computation against the current policy."""

    def __init__(self, policy_provider: IPolicyProvider, clock: Optional[Clock] = None):
        self._policy_provider = policy_provider
        self._clock = clock or SystemClock()

    def compute_deadlines(
        self,
        category: Optional[Union[TicketCategory, str]],
        priority: TicketPriority,
        now: Optional[datetime] = None,
    ) -> SLADeadline:
        """
        Compute the estimated resolution and breach deadlines.

        Raises:
            ValidationException: If no duration row applies
        """
        return SLACalculator.compute_deadlines(
            self._policy_provider.get_policy(),
            category,
            priority,
            now or self._clock.now(),
        )

    @staticmethod
    def is_within_sla(ticket: Ticket) -> Optional[bool]:
        return SLACalculator.is_within_sla(ticket)

    @staticmethod
    def compliance_report(tickets: Iterable[Ticket]) -> SLAComplianceReport:
        return SLACalculator.compliance_report(tickets)


class TicketWorkflowService:
    """
    Ticket lifecycle orchestration.

    Status rules live on the Ticket entity; this service loads, persists,
    assigns and notifies around them.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        staff_repository: IStaffRepository,
        assignment_service: AssignmentService,
        sla_service: SLAService,
        notifier: INotifier,
        unit_of_work: IUnitOfWork,
        policy_provider: IPolicyProvider,
        escalation_tracker: Optional[IEscalationTracker] = None,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self._tickets = ticket_repository
        self._staff_repo = staff_repository
        self._assignment = assignment_service
        self._sla = sla_service
        self._notifier = notifier
        self._uow = unit_of_work
        self._policy_provider = policy_provider
        self._escalations = escalation_tracker
        self._clock = clock or SystemClock()
        self._metrics = metrics

    def attach_escalation_tracker(self, tracker: IEscalationTracker) -> None:
        self._escalations = tracker

    async def get_ticket(self, ticket_id: UUID) -> Ticket:
        """
        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return ticket

    async def create_ticket(self, request: TicketCreateRequest) -> Ticket:
        """
        Intake a new ticket.

        Deadlines are stamped once from the creation time. Assignment is
        decided and committed under the capacity guard; with nobody eligible
        the ticket simply stays OPEN.

        Returns:
            The persisted ticket
        """
        now = self._clock.now()
        ticket = Ticket(
            title=request.title,
            description=request.description,
            priority=request.priority,
            created_by=request.created_by,
            created_at=now,
            category=request.category,
            custom_category=request.custom_category,
            hostel_block=request.hostel_block,
            room_number=request.room_number,
            ticket_number=self._ticket_number(now),
        )
        deadline = self._sla.compute_deadlines(ticket.category_key, ticket.priority, now)
        ticket.stamp_deadlines(deadline.estimated_resolution, deadline.breach_time)

        async with self._assignment.capacity_guard():
            staff_id = await self._assignment.assign(ticket, now)
            if staff_id is not None:
                ticket.assign_to(staff_id, now)
            await self._tickets.add(ticket)
            await self._uow.commit()

        logger.info(
            "Ticket created",
            extra={
                "ticket_id": str(ticket.id),
                "ticket_number": ticket.ticket_number,
                "category": ticket.category_key or ticket.custom_category,
                "priority": ticket.priority.value,
                "status": ticket.status.value,
                "assigned_to": str(staff_id) if staff_id else None,
            }
        )

        if staff_id is not None:
            self._notifier.notify(
                staff_id,
                "New ticket assigned",
                f"Ticket {ticket.ticket_number} ({ticket.title}) has been assigned to you.",
                NotificationType.TICKET_ASSIGNED,
                ticket.id,
            )
        return ticket

    async def manual_assign(self, ticket_id: UUID, staff_id: UUID, actor_id: UUID) -> Ticket:
        """
        Administrative assignment; capacity ceilings do not apply.

        An open ticket never drops down the escalation hierarchy, so handing
        it to someone below its current level is refused.

        Raises:
            ResourceNotFoundException: If the ticket or staff member is missing
            ValidationException: If the target is not an active STAFF-role
                member or sits below the ticket's escalation level
        """
        staff = await self._staff_repo.get_by_id(staff_id)
        if staff is None:
            raise ResourceNotFoundException("Staff", str(staff_id))
        if not staff.is_assignable:
            raise ValidationException(
                "Tickets can only be assigned to active staff members",
                details={"staff_id": str(staff_id)},
            )

        async with self._assignment.capacity_guard():
            ticket = await self.get_ticket(ticket_id)
            previous = ticket.assigned_to
            now = self._clock.now()
            level = None
            if self._escalations is not None:
                level = await self._escalations.current_rank(ticket)
            ticket.assign_to(staff_id, now)
            if level is not None:
                new_level = await self._escalations.current_rank(ticket)
                if new_level < level:
                    raise ValidationException(
                        "Assignment would move the ticket below its escalation level",
                        details={
                            "ticket_id": str(ticket_id),
                            "staff_id": str(staff_id),
                            "level": level,
                            "assignee_level": new_level,
                        },
                    )
            await self._tickets.save(ticket)
            await self._uow.commit()

        logger.info(
            "Ticket manually assigned",
            extra={
                "ticket_id": str(ticket_id),
                "staff_id": str(staff_id),
                "previous_assignee": str(previous) if previous else None,
                "actor_id": str(actor_id),
            }
        )
        self._notifier.notify(
            staff_id,
            "Ticket assigned",
            f"Ticket {ticket.ticket_number} has been assigned to you.",
            NotificationType.TICKET_ASSIGNED,
            ticket.id,
        )
        return ticket

    async def change_status(
        self,
        ticket_id: UUID,
        new_status: TicketStatus,
        actor_id: Optional[UUID] = None,
    ) -> Ticket:
        """
        Apply one status transition.

        Raises:
            ResourceNotFoundException: If the ticket does not exist
            InvalidStatusTransitionException: If the transition is not allowed
            ConcurrencyConflictException: If the ticket changed meanwhile
        """
        ticket = await self.get_ticket(ticket_id)
        now = self._clock.now()

        async with self._uow.atomic():
            previous = ticket.transition_to(new_status, now)
            await self._tickets.save(ticket)
            if new_status in RESOLUTION_STATUSES and self._escalations is not None:
                await self._escalations.resolve_escalations(ticket.id, now)
        await self._uow.commit()

        logger.info(
            "Ticket status changed",
            extra={
                "ticket_id": str(ticket.id),
                "from_status": previous.value,
                "to_status": new_status.value,
                "actor_id": str(actor_id) if actor_id else None,
            }
        )

        recipients = {ticket.created_by}
        if ticket.assigned_to is not None:
            recipients.add(ticket.assigned_to)
        recipients.discard(actor_id)
        self._flush([
            (
                user_id,
                "Ticket status updated",
                f"Ticket {ticket.ticket_number} moved from {previous.value} to {new_status.value}.",
                NotificationType.STATUS_CHANGED,
                ticket.id,
            )
            for user_id in sorted(recipients, key=str)
        ])
        return ticket

    async def confirm_resolution(self, ticket_id: UUID, actor_id: UUID) -> Ticket:
        """The reporter accepts the fix: RESOLVED -> CLOSED."""
        return await self.change_status(ticket_id, TicketStatus.CLOSED, actor_id)

    async def reject_resolution(
        self,
        ticket_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
    ) -> Ticket:
        """
        The reporter rejects the fix: the ticket is REOPENED.

        The whole hierarchy above the ticket hears about it, not just the
        current assignee.
        """
        ticket = await self.get_ticket(ticket_id)
        now = self._clock.now()

        # The chain is read before the reopen starts a new lifecycle.
        recipients: Set[UUID] = set()
        if self._escalations is not None:
            recipients |= await self._escalations.supervision_chain(ticket)
        if ticket.assigned_to is not None:
            recipients.add(ticket.assigned_to)

        async with self._uow.atomic():
            previous = ticket.transition_to(TicketStatus.REOPENED, now)
            await self._tickets.save(ticket)
        await self._uow.commit()

        logger.info(
            "Resolution rejected",
            extra={
                "ticket_id": str(ticket.id),
                "from_status": previous.value,
                "actor_id": str(actor_id),
                "notified": len(recipients),
            }
        )

        message = f"The resolution of ticket {ticket.ticket_number} was rejected."
        if reason:
            message += f" Reason: {reason}"
        self._flush([
            (user_id, "Resolution rejected", message, NotificationType.RESOLUTION_REJECTED, ticket.id)
            for user_id in sorted(recipients, key=str)
        ])
        return ticket

    async def auto_close_resolved(self) -> int:
        """
        Close RESOLVED tickets whose verification window has passed.

        A failure on one ticket is logged and does not stop the batch.

        Returns:
            Number of tickets closed
        """
        now = self._clock.now()
        window = timedelta(hours=self._policy_provider.get_policy().verification_window_hours)
        cutoff = now - window
        closed = 0

        for candidate in await self._tickets.list_resolved_before(cutoff):
            try:
                async with self._uow.atomic():
                    ticket = await self._tickets.get_by_id(candidate.id)
                    if (
                        ticket is None
                        or ticket.status != TicketStatus.RESOLVED
                        or ticket.resolved_at is None
                        or ticket.resolved_at > cutoff
                    ):
                        continue
                    ticket.transition_to(TicketStatus.CLOSED, now)
                    await self._tickets.save(ticket)
                    if self._escalations is not None:
                        await self._escalations.resolve_escalations(ticket.id, now)
                await self._uow.commit()
            except ApplicationException as e:
                logger.warning(
                    "Auto-close skipped ticket",
                    extra={"ticket_id": str(candidate.id), "error": e.message}
                )
                continue
            except Exception as e:
                logger.exception(
                    "Auto-close failed for ticket",
                    extra={"ticket_id": str(candidate.id), "error": str(e)}
                )
                continue

            closed += 1
            self._flush([(
                ticket.created_by,
                "Ticket closed",
                f"Ticket {ticket.ticket_number} was closed automatically after verification.",
                NotificationType.STATUS_CHANGED,
                ticket.id,
            )])

        if self._metrics is not None and closed:
            self._metrics.increment("tickets_auto_closed_total", closed)
        logger.info("Auto-close run complete", extra={"closed": closed, "cutoff": cutoff.isoformat()})
        return closed

    def _flush(self, outbox: List[PendingNotification]) -> None:
        for user_id, title, message, kind, ticket_id in outbox:
            self._notifier.notify(user_id, title, message, kind, ticket_id)

    @staticmethod
    def _ticket_number(now: datetime) -> str:
        return f"TKT-{now.year}-{uuid4().hex[:8].upper()}"
