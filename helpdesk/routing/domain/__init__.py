"""
Routing Domain Layer
====================

Contains:
- Entities: StaffMember, StaffMapping, StaffProfile and assignment read models
- Value Objects: WorkloadScorer

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.routing.domain.entities import (
    AssignmentDecision,
    CandidateScore,
    RoutableTicket,
    StaffMapping,
    StaffMember,
    StaffProfile,
    WorkItem,
    WorkloadSnapshot,
    WorkloadStats,
)
from helpdesk.routing.domain.value_objects import WorkloadScorer

__all__ = [
    "AssignmentDecision",
    "CandidateScore",
    "RoutableTicket",
    "StaffMapping",
    "StaffMember",
    "StaffProfile",
    "WorkItem",
    "WorkloadSnapshot",
    "WorkloadStats",
    "WorkloadScorer",
]
