"""In-memory test doubles and wiring helpers shared by the service tests."""

import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from helpdesk.config import (
    ACTIVE_WORK_STATUSES,
    EscalationRecordStatus,
    NotificationType,
    StaffVertical,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    UserRole,
)
from helpdesk.config.policy import RoutingPolicy, StaticPolicyProvider
from helpdesk.core import Clock, ConcurrencyConflictException
from helpdesk.core.uow import IUnitOfWork
from helpdesk.escalation.application import EscalationService, IEscalationRepository
from helpdesk.escalation.domain import EscalationRecord
from helpdesk.notifications.application import INotifier
from helpdesk.routing.application import (
    AssignmentService,
    IMappingRepository,
    IStaffRepository,
    MappingRegistry,
    WorkloadTracker,
)
from helpdesk.routing.domain import StaffMapping, StaffMember
from helpdesk.sla.application import ITicketRepository, SLAService, TicketWorkflowService
from helpdesk.sla.domain import Ticket
from helpdesk.shared.infrastructure.metrics import MetricsRegistry

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FrozenClock(Clock):
    def __init__(self, now: datetime = T0):
        self._now = now

    def now(self) -> datetime:
        return self._now

    def advance(self, **kwargs) -> datetime:
        self._now += timedelta(**kwargs)
        return self._now


@dataclass
class SentNotification:
    user_id: UUID
    title: str
    message: str
    kind: NotificationType
    related_ticket_id: Optional[UUID]


class RecordingNotifier(INotifier):
    def __init__(self):
        self.sent: List[SentNotification] = []

    def notify(self, user_id, title, message, kind, related_ticket_id=None):
        self.sent.append(SentNotification(user_id, title, message, kind, related_ticket_id))

    def recipients(self, kind: Optional[NotificationType] = None) -> List[UUID]:
        return [n.user_id for n in self.sent if kind is None or n.kind == kind]


class FakeUnitOfWork(IUnitOfWork):
    def __init__(self):
        self.commits = 0
        self.rollbacks = 0

    @asynccontextmanager
    async def atomic(self):
        try:
            yield
        except Exception:
            self.rollbacks += 1
            raise

    async def commit(self):
        self.commits += 1


class InMemoryStaffRepository(IStaffRepository):
    def __init__(self):
        self.rows: Dict[UUID, StaffMember] = {}

    def add(self, staff: StaffMember) -> StaffMember:
        self.rows[staff.id] = staff
        return staff

    async def get_by_id(self, staff_id):
        return self.rows.get(staff_id)

    async def list_active(self, role=None, verticals=None):
        members = [
            s for s in self.rows.values()
            if s.is_active
            and (role is None or s.role == role)
            and (verticals is None or s.vertical in verticals)
        ]
        return sorted(members, key=lambda s: str(s.id))

    async def list_admins(self):
        return await self.list_active(role=UserRole.ADMIN)


class InMemoryMappingRepository(IMappingRepository):
    def __init__(self):
        self.rows: Dict[UUID, StaffMapping] = {}

    def add(self, mapping: StaffMapping) -> StaffMapping:
        self.rows[mapping.id] = mapping
        return mapping

    async def mappings_for(self, hostel_block, category):
        found = [
            m for m in self.rows.values()
            if m.is_active and m.category == category and m.hostel_block == hostel_block
        ]
        return sorted(found, key=lambda m: (m.priority_level, str(m.staff_id)))

    async def get_by_id(self, mapping_id):
        mapping = self.rows.get(mapping_id)
        return copy.copy(mapping) if mapping else None

    async def find(self, staff_id, hostel_block, category):
        for m in self.rows.values():
            if m.staff_id == staff_id and m.hostel_block == hostel_block and m.category == category:
                return copy.copy(m)
        return None

    async def list_for_staff(self, staff_id):
        return [m for m in self.rows.values() if m.staff_id == staff_id]

    async def save(self, mapping):
        self.rows[mapping.id] = copy.copy(mapping)
        return mapping


class InMemoryTicketRepository(ITicketRepository):
    """Hands out copies and applies version-checked saves, like the SQL repository."""

    def __init__(self):
        self.rows: Dict[UUID, Ticket] = {}
        self.saves = 0

    def put(self, ticket: Ticket) -> Ticket:
        self.rows[ticket.id] = copy.deepcopy(ticket)
        return ticket

    def stored(self, ticket_id: UUID) -> Ticket:
        return self.rows[ticket_id]

    async def get_by_id(self, ticket_id):
        row = self.rows.get(ticket_id)
        return copy.deepcopy(row) if row else None

    async def add(self, ticket):
        self.rows[ticket.id] = copy.deepcopy(ticket)
        return ticket

    async def save(self, ticket):
        stored = self.rows.get(ticket.id)
        if stored is None or stored.version != ticket.version:
            raise ConcurrencyConflictException(ticket.id)
        ticket.version += 1
        self.rows[ticket.id] = copy.deepcopy(ticket)
        self.saves += 1
        return ticket

    async def list_by_status(self, statuses):
        found = [t for t in self.rows.values() if t.status in statuses]
        return [copy.deepcopy(t) for t in sorted(found, key=lambda t: (t.created_at, str(t.id)))]

    async def list_resolved_before(self, cutoff):
        found = [
            t for t in self.rows.values()
            if t.status == TicketStatus.RESOLVED and t.resolved_at is not None and t.resolved_at <= cutoff
        ]
        return [copy.deepcopy(t) for t in sorted(found, key=lambda t: t.resolved_at)]

    async def list_active_for_staff(self, staff_id):
        return [
            copy.deepcopy(t) for t in self.rows.values()
            if t.assigned_to == staff_id and t.status in ACTIVE_WORK_STATUSES
        ]

    async def count_active_for_staff(self, staff_id):
        return len(await self.list_active_for_staff(staff_id))

    async def list_for_staff(self, staff_id):
        return [copy.deepcopy(t) for t in self.rows.values() if t.assigned_to == staff_id]


class InMemoryEscalationRepository(IEscalationRepository):
    def __init__(self):
        self.rows: List[EscalationRecord] = []

    async def add(self, record):
        self.rows.append(copy.copy(record))
        return record

    async def save(self, record):
        for i, row in enumerate(self.rows):
            if row.id == record.id:
                self.rows[i] = copy.copy(record)
        return record

    def _for(self, ticket_id, since=None) -> List[EscalationRecord]:
        rows = [
            r for r in self.rows
            if r.ticket_id == ticket_id and (since is None or r.escalated_at >= since)
        ]
        return sorted(rows, key=lambda r: (r.escalated_at, r.to_level))

    async def latest_for_ticket(self, ticket_id, since=None):
        rows = self._for(ticket_id, since)
        return copy.copy(rows[-1]) if rows else None

    async def latest_to_level(self, ticket_id, level, since=None):
        rows = [r for r in self._for(ticket_id, since) if r.to_level == level]
        return copy.copy(rows[-1]) if rows else None

    async def exists_since(self, ticket_id, level, since):
        return any(r.to_level == level for r in self._for(ticket_id, since))

    async def list_for_ticket(self, ticket_id):
        return [copy.copy(r) for r in self._for(ticket_id)]

    async def list_active(self, ticket_id):
        return [
            copy.copy(r) for r in self._for(ticket_id)
            if r.status == EscalationRecordStatus.ACTIVE
        ]


# ========== Builders ==========

def make_staff(
    vertical: Optional[StaffVertical] = StaffVertical.ELECTRICAL,
    role: UserRole = UserRole.STAFF,
    is_active: bool = True,
    name: str = "Staff Member",
    staff_id: Optional[UUID] = None,
    performance_factor: Optional[float] = None,
) -> StaffMember:
    staff_id = staff_id or uuid4()
    return StaffMember(
        id=staff_id,
        full_name=name,
        email=f"{staff_id.hex[:8]}@hostel.example.edu",
        role=role,
        vertical=vertical,
        is_active=is_active,
        performance_factor=performance_factor,
    )


def make_ticket(
    category: Optional[TicketCategory] = TicketCategory.ELECTRICAL_ISSUES,
    priority: TicketPriority = TicketPriority.MEDIUM,
    created_at: datetime = T0,
    created_by: Optional[UUID] = None,
    hostel_block: Optional[str] = "BlockA",
    **overrides,
) -> Ticket:
    ticket = Ticket(
        title="Light not working",
        description="Ceiling light flickers and goes out",
        priority=priority,
        created_by=created_by or uuid4(),
        created_at=created_at,
        category=category,
        hostel_block=hostel_block,
        room_number="101",
        ticket_number=f"TKT-{created_at.year}-{uuid4().hex[:8].upper()}",
        **overrides,
    )
    return ticket


@dataclass
class Harness:
    """Every service wired against in-memory repositories."""

    clock: FrozenClock
    policy: RoutingPolicy
    staff: InMemoryStaffRepository
    mappings: InMemoryMappingRepository
    tickets: InMemoryTicketRepository
    escalations: InMemoryEscalationRepository
    uow: FakeUnitOfWork
    notifier: RecordingNotifier
    metrics: MetricsRegistry
    registry: MappingRegistry
    tracker: WorkloadTracker
    assignment: AssignmentService
    workflow: TicketWorkflowService
    escalation: EscalationService

    def add_staff(self, *args, mapped: Sequence[Tuple[Optional[str], str]] = (), **kwargs) -> StaffMember:
        """Add a staff member, mapped to each given (block, category) pair."""
        staff = self.staff.add(make_staff(*args, **kwargs))
        for block, category in mapped:
            self.mappings.add(StaffMapping(staff_id=staff.id, category=category, hostel_block=block))
        return staff

    def give_active_tickets(self, staff: StaffMember, count: int) -> None:
        for _ in range(count):
            ticket = make_ticket(status=TicketStatus.IN_PROGRESS, assigned_to=staff.id)
            self.tickets.put(ticket)


def build_harness(policy: Optional[RoutingPolicy] = None, now: datetime = T0) -> Harness:
    clock = FrozenClock(now)
    policy = policy or RoutingPolicy()
    provider = StaticPolicyProvider(policy)
    staff = InMemoryStaffRepository()
    mappings = InMemoryMappingRepository()
    tickets = InMemoryTicketRepository()
    escalations = InMemoryEscalationRepository()
    uow = FakeUnitOfWork()
    notifier = RecordingNotifier()
    metrics = MetricsRegistry()

    registry = MappingRegistry(staff, mappings, provider)
    tracker = WorkloadTracker(tickets, provider, clock)
    assignment = AssignmentService(
        registry, tracker, staff, tickets, provider, clock=clock, metrics=metrics,
    )
    escalation = EscalationService(
        tickets, escalations, staff, tickets, assignment, notifier, uow, provider,
        clock=clock, metrics=metrics,
    )
    workflow = TicketWorkflowService(
        tickets, staff, assignment, SLAService(provider, clock), notifier, uow, provider,
        escalation_tracker=escalation, clock=clock, metrics=metrics,
    )
    return Harness(
        clock=clock,
        policy=policy,
        staff=staff,
        mappings=mappings,
        tickets=tickets,
        escalations=escalations,
        uow=uow,
        notifier=notifier,
        metrics=metrics,
        registry=registry,
        tracker=tracker,
        assignment=assignment,
        workflow=workflow,
        escalation=escalation,
    )
