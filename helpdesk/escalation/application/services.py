"""
Escalation Application Services
===============================

The escalation state machine: periodic sweep, manual escalation and the
queries around a ticket's escalation chain.

Each ticket is processed inside its own atomic block under the capacity
guard. The ticket is re-read inside the block, so a ticket that turned
terminal (or was modified) after the sweep listed it is skipped instead of
overwritten.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional, Set, Tuple
from uuid import UUID

from helpdesk.config import (
    ESCALATION_CANDIDATE_STATUSES,
    EscalationReason,
    EscalationStanding,
    NotificationType,
    StaffVertical,
    TicketStatus,
)
from helpdesk.config.policy import EscalationLevelConfig, IPolicyProvider, RoutingPolicy
from helpdesk.core import (
    Clock,
    ConcurrencyConflictException,
    ResourceNotFoundException,
    SystemClock,
)
from helpdesk.core.uow import IUnitOfWork
from helpdesk.escalation.domain import (
    EscalationHierarchy,
    EscalationOutcome,
    EscalationRecord,
    EscalationResult,
    EscalationRules,
    EscalationStatus,
    SweepSummary,
)
from helpdesk.notifications.application import INotifier
from helpdesk.routing.application import (
    AssignmentService,
    IStaffRepository,
    IWorkloadRepository,
    MappingRegistry,
)
from helpdesk.sla.application import IEscalationTracker, ITicketRepository
from helpdesk.sla.domain import Ticket
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.shared.infrastructure.metrics import MetricsRegistry

logger = get_logger(__name__)

# (user_id, title, message, kind, ticket_id)
PendingNotification = Tuple[UUID, str, str, NotificationType, UUID]


# ========== Repository Interfaces (Dependency Inversion) ==========

class IEscalationRepository(ABC):
    """Interface for escalation record data access."""

    @abstractmethod
    async def add(self, record: EscalationRecord) -> EscalationRecord:
        """Insert a record."""

    @abstractmethod
    async def save(self, record: EscalationRecord) -> EscalationRecord:
        """Update status and resolved_at of a record."""

    @abstractmethod
    async def latest_for_ticket(
        self,
        ticket_id: UUID,
        since: Optional[datetime] = None,
    ) -> Optional[EscalationRecord]:
        """Most recent record, optionally only those at or after ``since``."""

    @abstractmethod
    async def latest_to_level(
        self,
        ticket_id: UUID,
        level: int,
        since: Optional[datetime] = None,
    ) -> Optional[EscalationRecord]:
        """Most recent record promoting the ticket to ``level``."""

    @abstractmethod
    async def exists_since(self, ticket_id: UUID, level: int, since: datetime) -> bool:
        """Whether a record to ``level`` was created at or after ``since``."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: UUID) -> List[EscalationRecord]:
        """Every record of the ticket, oldest first."""

    @abstractmethod
    async def list_active(self, ticket_id: UUID) -> List[EscalationRecord]:
        """ACTIVE records of the ticket, oldest first."""


# ========== Application Services ==========

class EscalationService(IEscalationTracker):
    """
    Service for escalation decisions and their side effects.

    Reason precedence: time threshold at the current level, SLA breach,
    priority minimum level, assignee inactive or overloaded, reopened ticket.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        escalation_repository: IEscalationRepository,
        staff_repository: IStaffRepository,
        workload_repository: IWorkloadRepository,
        assignment_service: AssignmentService,
        notifier: INotifier,
        unit_of_work: IUnitOfWork,
        policy_provider: IPolicyProvider,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self._tickets = ticket_repository
        self._escalations = escalation_repository
        self._staff_repo = staff_repository
        self._workload_repo = workload_repository
        self._assignment = assignment_service
        self._notifier = notifier
        self._uow = unit_of_work
        self._policy_provider = policy_provider
        self._clock = clock or SystemClock()
        self._metrics = metrics

    # ---------- Level derivation ----------

    def _hierarchy(self) -> EscalationHierarchy:
        return EscalationHierarchy.from_policy(self._policy_provider.get_policy())

    async def current_level(
        self,
        ticket: Ticket,
        hierarchy: Optional[EscalationHierarchy] = None,
    ) -> EscalationLevelConfig:
        """
        Latest record of the current lifecycle, else the assignee's vertical,
        else the lowest level.
        """
        hierarchy = hierarchy or self._hierarchy()
        latest = await self._escalations.latest_for_ticket(ticket.id, ticket.lifecycle_started_at)
        if latest is not None:
            return hierarchy.get(latest.to_level)

        if ticket.assigned_to is not None:
            staff = await self._staff_repo.get_by_id(ticket.assigned_to)
            if staff is not None:
                inferred = hierarchy.infer_for_vertical(staff.vertical)
                if inferred is not None:
                    return inferred

        return hierarchy.lowest

    async def level_started_at(self, ticket: Ticket, level: EscalationLevelConfig) -> Optional[datetime]:
        """When the ticket arrived at ``level`` in the current lifecycle."""
        lifecycle_start = ticket.lifecycle_started_at
        record = await self._escalations.latest_to_level(ticket.id, level.rank, lifecycle_start)
        if record is not None:
            return record.escalated_at
        if ticket.assigned_at is not None and ticket.assigned_at >= lifecycle_start:
            return ticket.assigned_at
        return lifecycle_start

    async def determine_reason(
        self,
        ticket: Ticket,
        level: EscalationLevelConfig,
        now: datetime,
        policy: RoutingPolicy,
    ) -> EscalationReason:
        """
        First applicable reason in precedence order.

        Raises:
            ResourceNotFoundException: If the assignee has no staff record
        """
        started = await self.level_started_at(ticket, level)
        if EscalationRules.threshold_exceeded(level, ticket.priority, started, now):
            return EscalationReason.TIME_THRESHOLD_EXCEEDED

        if EscalationRules.sla_breached(ticket, now):
            return EscalationReason.SLA_BREACH

        if EscalationRules.below_priority_minimum(ticket, level, policy):
            return EscalationReason.HIGH_PRIORITY

        if ticket.assigned_to is not None:
            staff = await self._staff_repo.get_by_id(ticket.assigned_to)
            if staff is None:
                raise ResourceNotFoundException("Staff", str(ticket.assigned_to))
            if not staff.is_active:
                return EscalationReason.STAFF_UNAVAILABLE
            profile = MappingRegistry.resolve_profile(staff, policy)
            active = await self._workload_repo.count_active_for_staff(staff.id)
            if active > profile.capacity_ceiling:
                return EscalationReason.STAFF_UNAVAILABLE

        # A reopen counts as one complaint: once escalated in this lifecycle,
        # only the time and SLA rules move it further.
        if ticket.status == TicketStatus.REOPENED:
            since_reopen = await self._escalations.latest_for_ticket(
                ticket.id, ticket.lifecycle_started_at
            )
            if since_reopen is None:
                return EscalationReason.CUSTOMER_COMPLAINT

        return EscalationReason.NO_ESCALATION_NEEDED

    # ---------- Sweep ----------

    async def run_escalation_sweep(self) -> SweepSummary:
        """
        Evaluate every non-terminal, unresolved ticket once.

        A failure on one ticket is logged and counted; the sweep carries on.
        """
        now = self._clock.now()
        summary = SweepSummary(started_at=now)
        candidates = await self._tickets.list_by_status(ESCALATION_CANDIDATE_STATUSES)

        for candidate in candidates:
            try:
                result = await self.process_ticket(candidate.id, now)
            except Exception as e:
                logger.exception(
                    "Escalation failed for ticket",
                    extra={"ticket_id": str(candidate.id), "error": str(e)},
                )
                result = EscalationResult(
                    ticket_id=candidate.id,
                    outcome=EscalationOutcome.FAILED,
                    detail=str(e),
                )
                if self._metrics is not None:
                    self._metrics.increment("escalation_sweep_failures_total")
            summary.record(result)

        summary.finished_at = self._clock.now()
        if self._metrics is not None:
            self._metrics.increment("escalation_sweeps_total")
        logger.info("Escalation sweep complete", extra=summary.to_dict())
        return summary

    async def process_ticket(self, ticket_id: UUID, now: Optional[datetime] = None) -> EscalationResult:
        """
        Evaluate one ticket and escalate it if a reason applies.

        Raises:
            ResourceNotFoundException: If the ticket (or its assignee) is missing
        """
        now = now or self._clock.now()
        policy = self._policy_provider.get_policy()
        hierarchy = EscalationHierarchy.from_policy(policy)
        outbox: List[PendingNotification] = []

        try:
            async with self._assignment.capacity_guard():
                async with self._uow.atomic():
                    ticket = await self._tickets.get_by_id(ticket_id)
                    if ticket is None:
                        raise ResourceNotFoundException("Ticket", str(ticket_id))
                    if ticket.status not in ESCALATION_CANDIDATE_STATUSES:
                        return EscalationResult(
                            ticket_id=ticket_id,
                            outcome=EscalationOutcome.SKIPPED,
                            detail=f"status {ticket.status.value}",
                        )

                    current = await self.current_level(ticket, hierarchy)
                    reason = await self.determine_reason(ticket, current, now, policy)
                    if reason == EscalationReason.NO_ESCALATION_NEEDED:
                        return EscalationResult(
                            ticket_id=ticket_id,
                            outcome=EscalationOutcome.NOT_NEEDED,
                            from_level=current.rank,
                        )

                    result = await self._promote(
                        ticket, current, hierarchy, reason, now, policy, outbox,
                    )
                if result.escalated:
                    await self._uow.commit()
        except ConcurrencyConflictException:
            logger.info(
                "Ticket changed during escalation, skipped",
                extra={"ticket_id": str(ticket_id)},
            )
            if self._metrics is not None:
                self._metrics.increment("escalation_conflicts_skipped_total")
            return EscalationResult(ticket_id=ticket_id, outcome=EscalationOutcome.CONFLICT)

        self._flush(outbox)
        return result

    # ---------- Manual escalation ----------

    async def manual_escalate(
        self,
        ticket_id: UUID,
        actor_id: UUID,
        reason: Optional[str] = None,
    ) -> EscalationResult:
        """
        Escalate one level on request, skipping reason derivation.

        The 24 hour de-duplication window still applies; at the top level
        nothing happens.

        Raises:
            ResourceNotFoundException: If the ticket or actor does not exist
            ConcurrencyConflictException: If the ticket changed meanwhile
        """
        if await self._staff_repo.get_by_id(actor_id) is None:
            raise ResourceNotFoundException("Staff", str(actor_id))

        now = self._clock.now()
        policy = self._policy_provider.get_policy()
        hierarchy = EscalationHierarchy.from_policy(policy)
        outbox: List[PendingNotification] = []

        async with self._assignment.capacity_guard():
            async with self._uow.atomic():
                ticket = await self._tickets.get_by_id(ticket_id)
                if ticket is None:
                    raise ResourceNotFoundException("Ticket", str(ticket_id))
                if ticket.status not in ESCALATION_CANDIDATE_STATUSES:
                    return EscalationResult(
                        ticket_id=ticket_id,
                        outcome=EscalationOutcome.SKIPPED,
                        reason=EscalationReason.MANUAL_ESCALATION,
                        detail=f"status {ticket.status.value}",
                    )

                current = await self.current_level(ticket, hierarchy)
                result = await self._promote(
                    ticket, current, hierarchy, EscalationReason.MANUAL_ESCALATION,
                    now, policy, outbox, actor_id=actor_id, notes=reason,
                )
            if result.escalated:
                await self._uow.commit()

        self._flush(outbox)
        return result

    # ---------- Promotion ----------

    async def _promote(
        self,
        ticket: Ticket,
        current: EscalationLevelConfig,
        hierarchy: EscalationHierarchy,
        reason: EscalationReason,
        now: datetime,
        policy: RoutingPolicy,
        outbox: List[PendingNotification],
        actor_id: Optional[UUID] = None,
        notes: Optional[str] = None,
    ) -> EscalationResult:
        target = hierarchy.next_after(current.rank)
        if target is None:
            if self._metrics is not None:
                self._metrics.increment("escalation_max_level_total", reason=reason.value)
            logger.info(
                "Ticket at maximum escalation level",
                extra={
                    "ticket_id": str(ticket.id),
                    "level": current.rank,
                    "reason": reason.value,
                },
            )
            return EscalationResult(
                ticket_id=ticket.id,
                outcome=EscalationOutcome.MAX_LEVEL,
                reason=reason,
                from_level=current.rank,
            )

        window = timedelta(hours=policy.escalation_dedupe_window_hours)
        if await self._escalations.exists_since(ticket.id, target.rank, now - window):
            return EscalationResult(
                ticket_id=ticket.id,
                outcome=EscalationOutcome.DEDUPLICATED,
                reason=reason,
                from_level=current.rank,
                to_level=target.rank,
            )

        prior_assignee = ticket.assigned_to
        new_assignee = await self._select_target(target, prior_assignee, now)

        if target.critical:
            ticket.raise_priority_to(policy.critical_priority_floor, now)
        if new_assignee is not None:
            ticket.assign_to(new_assignee, now)
        else:
            ticket.updated_at = now
        await self._tickets.save(ticket)

        record = EscalationRecord(
            ticket_id=ticket.id,
            from_level=current.rank,
            to_level=target.rank,
            reason=reason,
            escalated_at=now,
            notes=notes,
            escalated_by=actor_id,
            from_assignee=prior_assignee,
            to_assignee=new_assignee,
        )
        await self._escalations.add(record)

        if self._metrics is not None:
            self._metrics.increment(
                "escalations_created_total", reason=reason.value, level=target.name
            )
        logger.info(
            "Ticket escalated",
            extra={
                "ticket_id": str(ticket.id),
                "from_level": current.rank,
                "to_level": target.rank,
                "reason": reason.value,
                "prior_assignee": str(prior_assignee) if prior_assignee else None,
                "new_assignee": str(new_assignee) if new_assignee else None,
                "manual": actor_id is not None,
            },
        )

        await self._queue_escalation_notices(
            ticket, record, target, prior_assignee, new_assignee, outbox,
        )
        return EscalationResult(
            ticket_id=ticket.id,
            outcome=EscalationOutcome.ESCALATED,
            reason=reason,
            from_level=current.rank,
            to_level=target.rank,
            record_id=record.id,
            new_assignee=new_assignee,
        )

    async def _select_target(
        self,
        level: EscalationLevelConfig,
        exclude: Optional[UUID],
        now: datetime,
    ) -> Optional[UUID]:
        """Least-loaded active member of the level's target verticals."""
        if not level.targets:
            return None
        members = await self._staff_repo.list_active(verticals=level.targets)
        members = [m for m in members if m.id != exclude]
        ranked = await self._assignment.rank_by_workload(members, now)
        return ranked[0].staff_id if ranked else None

    async def _queue_escalation_notices(
        self,
        ticket: Ticket,
        record: EscalationRecord,
        level: EscalationLevelConfig,
        prior_assignee: Optional[UUID],
        new_assignee: Optional[UUID],
        outbox: List[PendingNotification],
    ) -> None:
        title = f"Ticket escalated to {level.display_name}"
        message = (
            f"Ticket {ticket.ticket_number} ({ticket.title}) was escalated to "
            f"{level.display_name}: {record.reason.display_name}."
        )

        recipients: List[UUID] = []
        for user_id in (prior_assignee, new_assignee, ticket.created_by):
            if user_id is not None and user_id not in recipients:
                recipients.append(user_id)
        admins = await self._staff_repo.list_admins()
        for admin in admins:
            if admin.id not in recipients:
                recipients.append(admin.id)

        for user_id in recipients:
            outbox.append((user_id, title, message, NotificationType.ESCALATION, ticket.id))

        if new_assignee is None:
            alert = (
                f"Ticket {ticket.ticket_number} reached {level.display_name} but no "
                f"active staff member is available there; it stays with its current assignee."
            )
            for admin in admins:
                outbox.append((
                    admin.id, "Escalation target unavailable", alert,
                    NotificationType.SYSTEM_ALERT, ticket.id,
                ))

    def _flush(self, outbox: List[PendingNotification]) -> None:
        for user_id, title, message, kind, ticket_id in outbox:
            self._notifier.notify(user_id, title, message, kind, ticket_id)

    # ---------- Queries and lifecycle hooks ----------

    async def escalation_history(self, ticket_id: UUID) -> List[EscalationRecord]:
        """
        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        if await self._tickets.get_by_id(ticket_id) is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))
        return await self._escalations.list_for_ticket(ticket_id)

    async def current_standing(self, ticket_id: UUID) -> EscalationStatus:
        """
        Raises:
            ResourceNotFoundException: If the ticket does not exist
        """
        ticket = await self._tickets.get_by_id(ticket_id)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", str(ticket_id))

        hierarchy = self._hierarchy()
        level = await self.current_level(ticket, hierarchy)
        records = await self._escalations.list_for_ticket(ticket_id)
        active = [r for r in records if r.is_active]

        if level.critical:
            standing = EscalationStanding.CRITICAL
        elif active or level.rank > hierarchy.lowest.rank:
            standing = EscalationStanding.ESCALATED
        else:
            standing = EscalationStanding.NORMAL

        return EscalationStatus(
            ticket_id=ticket_id,
            level=level.rank,
            level_name=level.name,
            standing=standing,
            active_records=len(active),
            total_records=len(records),
            last_escalated_at=records[-1].escalated_at if records else None,
        )

    async def resolve_escalations(self, ticket_id: UUID, now: Optional[datetime] = None) -> int:
        now = now or self._clock.now()
        resolved = 0
        for record in await self._escalations.list_active(ticket_id):
            if record.resolve(now):
                await self._escalations.save(record)
                resolved += 1
        if resolved:
            logger.info(
                "Escalations resolved",
                extra={"ticket_id": str(ticket_id), "count": resolved},
            )
        return resolved

    async def staff_in_chain(self, ticket_id: UUID) -> Set[UUID]:
        chain: Set[UUID] = set()
        for record in await self._escalations.list_for_ticket(ticket_id):
            if record.from_assignee is not None:
                chain.add(record.from_assignee)
            if record.to_assignee is not None:
                chain.add(record.to_assignee)
        return chain

    async def current_rank(self, ticket: Ticket) -> int:
        return (await self.current_level(ticket)).rank

    async def supervision_chain(self, ticket: Ticket) -> Set[UUID]:
        hierarchy = self._hierarchy()
        current = await self.current_level(ticket, hierarchy)

        verticals: List[StaffVertical] = []
        for level in hierarchy.levels:
            if level.rank <= current.rank:
                continue
            for vertical in level.holders + level.targets:
                if vertical not in verticals:
                    verticals.append(vertical)

        chain = await self.staff_in_chain(ticket.id)
        if verticals:
            chain.update(m.id for m in await self._staff_repo.list_active(verticals=verticals))
        chain.update(admin.id for admin in await self._staff_repo.list_admins())
        return chain
