"""
Routing Application Layer
=========================

Application services and repository interfaces for staff routing.
"""

from helpdesk.routing.application.services import (
    AssignmentService,
    IMappingRepository,
    IStaffRepository,
    IWorkloadRepository,
    MappingRegistry,
    WorkloadTracker,
)

__all__ = [
    "AssignmentService",
    "IMappingRepository",
    "IStaffRepository",
    "IWorkloadRepository",
    "MappingRegistry",
    "WorkloadTracker",
]
