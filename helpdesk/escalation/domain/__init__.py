"""
Escalation Domain Layer
=======================

Contains:
- Entities: EscalationRecord, EscalationResult, SweepSummary, EscalationStatus
- Value Objects: EscalationHierarchy, EscalationRules

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.escalation.domain.entities import (
    EscalationOutcome,
    EscalationRecord,
    EscalationResult,
    EscalationStatus,
    SweepSummary,
)
from helpdesk.escalation.domain.value_objects import EscalationHierarchy, EscalationRules

__all__ = [
    "EscalationOutcome",
    "EscalationRecord",
    "EscalationResult",
    "EscalationStatus",
    "SweepSummary",
    "EscalationHierarchy",
    "EscalationRules",
]
