"""
Escalation Domain Entities
==========================

Pure Python domain entities for escalation tracking.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional
from uuid import UUID, uuid4

from helpdesk.config import EscalationReason, EscalationRecordStatus, EscalationStanding


@dataclass
class EscalationRecord:
    """
    One promotion of a ticket from one level to the next.

    ``escalated_by`` is None for automatic (sweep) escalations.
    """

    ticket_id: UUID
    from_level: int
    to_level: int
    reason: EscalationReason
    escalated_at: datetime
    notes: Optional[str] = None
    escalated_by: Optional[UUID] = None
    from_assignee: Optional[UUID] = None
    to_assignee: Optional[UUID] = None
    resolved_at: Optional[datetime] = None
    status: EscalationRecordStatus = EscalationRecordStatus.ACTIVE
    id: UUID = field(default_factory=uuid4)

    def __post_init__(self):
        """Validate record on initialization."""
        if self.to_level <= self.from_level:
            raise ValueError("to_level must be above from_level")

    @property
    def is_active(self) -> bool:
        return self.status == EscalationRecordStatus.ACTIVE

    @property
    def is_automatic(self) -> bool:
        return self.escalated_by is None

    def resolve(self, now: datetime) -> bool:
        """Mark resolved. Returns False if it already was."""
        if not self.is_active:
            return False
        self.status = EscalationRecordStatus.RESOLVED
        self.resolved_at = now
        return True


class EscalationOutcome(str, Enum):
    """What happened to one ticket during a sweep or manual escalation."""
    ESCALATED = "ESCALATED"
    NOT_NEEDED = "NOT_NEEDED"
    MAX_LEVEL = "MAX_LEVEL"
    DEDUPLICATED = "DEDUPLICATED"
    SKIPPED = "SKIPPED"
    CONFLICT = "CONFLICT"
    FAILED = "FAILED"


@dataclass(frozen=True)
class EscalationResult:
    """Outcome of processing one ticket."""

    ticket_id: UUID
    outcome: EscalationOutcome
    reason: EscalationReason = EscalationReason.NO_ESCALATION_NEEDED
    from_level: Optional[int] = None
    to_level: Optional[int] = None
    record_id: Optional[UUID] = None
    new_assignee: Optional[UUID] = None
    detail: Optional[str] = None

    @property
    def escalated(self) -> bool:
        return self.outcome == EscalationOutcome.ESCALATED


@dataclass
class SweepSummary:
    """Counters for one escalation sweep."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    examined: int = 0
    escalated: int = 0
    not_needed: int = 0
    at_max_level: int = 0
    deduplicated: int = 0
    skipped: int = 0
    conflicts: int = 0
    failed: int = 0
    results: List[EscalationResult] = field(default_factory=list)

    def record(self, result: EscalationResult) -> None:
        self.examined += 1
        self.results.append(result)
        if result.outcome == EscalationOutcome.ESCALATED:
            self.escalated += 1
        elif result.outcome == EscalationOutcome.NOT_NEEDED:
            self.not_needed += 1
        elif result.outcome == EscalationOutcome.MAX_LEVEL:
            self.at_max_level += 1
        elif result.outcome == EscalationOutcome.DEDUPLICATED:
            self.deduplicated += 1
        elif result.outcome == EscalationOutcome.SKIPPED:
            self.skipped += 1
        elif result.outcome == EscalationOutcome.CONFLICT:
            self.conflicts += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "examined": self.examined,
            "escalated": self.escalated,
            "not_needed": self.not_needed,
            "at_max_level": self.at_max_level,
            "deduplicated": self.deduplicated,
            "skipped": self.skipped,
            "conflicts": self.conflicts,
            "failed": self.failed,
        }


@dataclass(frozen=True)
class EscalationStatus:
    """Where a ticket currently stands in the hierarchy."""

    ticket_id: UUID
    level: int
    level_name: str
    standing: EscalationStanding
    active_records: int
    total_records: int
    last_escalated_at: Optional[datetime] = None
