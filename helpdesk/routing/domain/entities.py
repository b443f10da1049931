"""
Routing Domain Entities
=======================

Pure Python domain entities for staff routing.

Staff members, their (location, category) mappings, and the read models the
assignment engine builds at decision time.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol, Tuple
from uuid import UUID, uuid4

from helpdesk.config import (
    AssignmentStrategy,
    RoleTier,
    StaffVertical,
    TicketCategory,
    TicketPriority,
    TicketStatus,
    UserRole,
)


class RoutableTicket(Protocol):
    """What the assignment engine needs to know about a ticket."""

    id: UUID
    category: Optional[TicketCategory]
    custom_category: Optional[str]
    priority: TicketPriority
    hostel_block: Optional[str]


class WorkItem(Protocol):
    """What the workload tracker needs to know about an active ticket."""

    category: Optional[TicketCategory]
    priority: TicketPriority
    status: TicketStatus
    estimated_resolution_time: Optional[datetime]
    resolved_at: Optional[datetime]


@dataclass
class StaffMember:
    """A user who may receive tickets (staff) or oversee them (admin)."""

    id: UUID
    full_name: str
    email: str
    role: UserRole
    vertical: Optional[StaffVertical] = None
    is_active: bool = True
    performance_factor: Optional[float] = None

    @property
    def is_assignable(self) -> bool:
        """Only active STAFF-role members receive routed work."""
        return self.is_active and self.role == UserRole.STAFF


@dataclass
class StaffMapping:
    """
    Association of a staff member with a (location, category) pair.

    A null hostel_block means the mapping covers every block and forms the
    category-wide fallback tier.
    """

    staff_id: UUID
    category: str
    hostel_block: Optional[str] = None
    priority_level: int = 1
    capacity_weight: float = 1.0
    expertise_level: int = 1
    is_active: bool = True
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        """Validate mapping on initialization."""
        if self.priority_level < 1:
            raise ValueError("priority_level must be >= 1")
        if self.capacity_weight <= 0:
            raise ValueError("capacity_weight must be positive")
        if not 1 <= self.expertise_level <= 5:
            raise ValueError("expertise_level must be between 1 and 5")


@dataclass(frozen=True)
class StaffProfile:
    """A staff member with their role tier and ceiling resolved once."""

    staff: StaffMember
    role_tier: RoleTier
    capacity_ceiling: int

    @property
    def staff_id(self) -> UUID:
        return self.staff.id


@dataclass(frozen=True)
class WorkloadSnapshot:
    """Workload of one staff member, computed at decision time."""

    staff_id: UUID
    active_count: int
    estimated_remaining_hours: float
    utilization: float
    performance_factor: float
    capacity_ceiling: int

    @property
    def at_capacity(self) -> bool:
        return self.active_count >= self.capacity_ceiling

    @property
    def overloaded(self) -> bool:
        return self.active_count > self.capacity_ceiling


@dataclass(frozen=True)
class CandidateScore:
    """One scored assignment candidate."""

    staff_id: UUID
    score: float
    workload: WorkloadSnapshot
    priority_level: int = 1
    capacity_weight: float = 1.0
    excluded: bool = False

    @property
    def rank_key(self) -> Tuple[float, int, str]:
        """Lowest score first, then fewest active items, then staff id."""
        return (self.score, self.workload.active_count, str(self.staff_id))


@dataclass(frozen=True)
class AssignmentDecision:
    """
    Outcome of the assignment engine.

    ``staff_id is None`` with strategy NONE is a normal outcome: the ticket
    stays OPEN for manual assignment.
    """

    strategy: AssignmentStrategy
    staff_id: Optional[UUID] = None
    score: Optional[float] = None
    candidates: Tuple[CandidateScore, ...] = ()
    reason: str = ""

    @property
    def is_assigned(self) -> bool:
        return self.staff_id is not None


@dataclass(frozen=True)
class WorkloadStats:
    """Historical workload statistics for one staff member."""

    total_tickets: int
    active_tickets: int
    completed_tickets: int
    overdue_tickets: int

    @property
    def completion_rate(self) -> float:
        if self.total_tickets == 0:
            return 0.0
        return self.completed_tickets / self.total_tickets * 100

    @property
    def overdue_rate(self) -> float:
        if self.active_tickets == 0:
            return 0.0
        return self.overdue_tickets / self.active_tickets * 100
