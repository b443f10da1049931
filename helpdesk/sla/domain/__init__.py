"""
SLA Domain Layer
================

Contains:
- Entities: Ticket and its status transition table
- Value Objects: SLADeadline, SLAComplianceReport, SLACalculator

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.sla.domain.entities import TRANSITIONS, Ticket, can_transition
from helpdesk.sla.domain.value_objects import (
    SLACalculator,
    SLAComplianceReport,
    SLADeadline,
)

__all__ = [
    "TRANSITIONS",
    "Ticket",
    "can_transition",
    "SLACalculator",
    "SLAComplianceReport",
    "SLADeadline",
]
