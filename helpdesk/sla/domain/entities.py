"""
SLA Domain Entities
===================

Pure Python domain entities for the ticket lifecycle.

The Ticket entity owns the status state machine: a data-driven transition
table plus the timestamp stamping each transition implies.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, FrozenSet, Optional
from uuid import UUID, uuid4

from helpdesk.config import (
    ACTIVE_WORK_STATUSES,
    TicketCategory,
    TicketPriority,
    TicketStatus,
)
from helpdesk.core import InvalidStatusTransitionException, ValidationException


TRANSITIONS: Dict[TicketStatus, FrozenSet[TicketStatus]] = {
    TicketStatus.OPEN: frozenset({TicketStatus.ASSIGNED, TicketStatus.CANCELLED}),
    TicketStatus.ASSIGNED: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.ON_HOLD, TicketStatus.CANCELLED,
    }),
    TicketStatus.IN_PROGRESS: frozenset({
        TicketStatus.ON_HOLD, TicketStatus.RESOLVED, TicketStatus.CANCELLED,
    }),
    TicketStatus.ON_HOLD: frozenset({
        TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED, TicketStatus.CANCELLED,
    }),
    TicketStatus.RESOLVED: frozenset({TicketStatus.CLOSED, TicketStatus.REOPENED}),
    TicketStatus.CLOSED: frozenset({TicketStatus.REOPENED}),
    TicketStatus.CANCELLED: frozenset({TicketStatus.OPEN}),
    TicketStatus.REOPENED: frozenset({
        TicketStatus.ASSIGNED, TicketStatus.IN_PROGRESS, TicketStatus.CANCELLED,
    }),
}


def can_transition(current: TicketStatus, requested: TicketStatus) -> bool:
    """Check the transition table."""
    return requested in TRANSITIONS.get(current, frozenset())


@dataclass
class Ticket:
    """
    Ticket entity representing a maintenance request.

    estimated_resolution_time and sla_breach_time are stamped once at intake
    and never recomputed, reopen included. ``version`` is bumped by the
    repository on every persisted change.
    """

    # Core attributes
    title: str
    description: str
    priority: TicketPriority
    created_by: UUID
    created_at: datetime
    category: Optional[TicketCategory] = None
    custom_category: Optional[str] = None
    hostel_block: Optional[str] = None
    room_number: Optional[str] = None
    ticket_number: str = ""
    status: TicketStatus = TicketStatus.OPEN
    assigned_to: Optional[UUID] = None

    # SLA deadlines
    estimated_resolution_time: Optional[datetime] = None
    sla_breach_time: Optional[datetime] = None

    # Lifecycle timestamps
    updated_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    reopened_at: Optional[datetime] = None

    version: int = 0
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        """Validate ticket on initialization."""
        if self.category is None and not self.custom_category:
            raise ValueError("either category or custom_category is required")
        if self.updated_at is None:
            self.updated_at = self.created_at
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

    @property
    def category_key(self) -> Optional[str]:
        """Category name used for duration lookups; None for free text."""
        if self.custom_category or self.category is None:
            return None
        return self.category.value

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_active_work(self) -> bool:
        return self.status in ACTIVE_WORK_STATUSES

    @property
    def lifecycle_started_at(self) -> datetime:
        """Start of the current lifecycle: the last reopen, or creation."""
        return self.reopened_at or self.created_at

    def stamp_deadlines(self, estimated_resolution: datetime, breach_time: datetime) -> None:
        """Set the SLA deadlines. Allowed once."""
        if self.estimated_resolution_time is not None or self.sla_breach_time is not None:
            raise ValidationException(
                "SLA deadlines are already set",
                details={"ticket_id": str(self.id)},
            )
        self.estimated_resolution_time = estimated_resolution
        self.sla_breach_time = breach_time

    def transition_to(self, new_status: TicketStatus, now: datetime) -> TicketStatus:
        """
        Move to a new status.

        Validation happens before any field is touched, so a rejected
        transition leaves the ticket unchanged.

        Returns:
            The previous status

        Raises:
            InvalidStatusTransitionException: If the table forbids the move
            ValidationException: If ASSIGNED is requested without an assignee
        """
        if not can_transition(self.status, new_status):
            raise InvalidStatusTransitionException(self.id, self.status, new_status)
        if new_status == TicketStatus.ASSIGNED and self.assigned_to is None:
            raise ValidationException(
                "Cannot move to ASSIGNED without an assignee",
                details={"ticket_id": str(self.id)},
            )

        previous = self.status
        self.status = new_status
        self.updated_at = now

        if new_status == TicketStatus.ASSIGNED and self.assigned_at is None:
            self.assigned_at = now
        elif new_status == TicketStatus.IN_PROGRESS and self.started_at is None:
            self.started_at = now
        elif new_status == TicketStatus.RESOLVED:
            self.resolved_at = now
        elif new_status == TicketStatus.CLOSED:
            self.closed_at = now
        elif new_status == TicketStatus.REOPENED:
            self.reopened_at = now
            self.resolved_at = None
            self.closed_at = None

        return previous

    def assign_to(self, staff_id: UUID, now: datetime) -> None:
        """
        Hand the ticket to a staff member.

        OPEN and REOPENED tickets move to ASSIGNED; tickets already being
        worked only change hands.

        Raises:
            ValidationException: If the ticket is resolved or terminal
        """
        if self.status in (TicketStatus.OPEN, TicketStatus.REOPENED):
            self.assigned_to = staff_id
            self.assigned_at = now
            self.transition_to(TicketStatus.ASSIGNED, now)
            return

        if self.status not in ACTIVE_WORK_STATUSES:
            raise ValidationException(
                f"Cannot assign a ticket in status {self.status.value}",
                details={"ticket_id": str(self.id)},
            )
        self.assigned_to = staff_id
        self.assigned_at = now
        self.updated_at = now

    def raise_priority_to(self, floor: TicketPriority, now: datetime) -> bool:
        """Raise priority to at least ``floor``. Returns True if it changed."""
        if self.priority.rank >= floor.rank:
            return False
        self.priority = floor
        self.updated_at = now
        return True
