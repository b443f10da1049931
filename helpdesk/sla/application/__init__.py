"""
SLA Application Layer
=====================

Application services, DTOs and repository interfaces for deadlines and the
ticket lifecycle.
"""

from helpdesk.sla.application.dto import TicketCreateRequest
from helpdesk.sla.application.services import (
    IEscalationTracker,
    ITicketRepository,
    SLAService,
    TicketWorkflowService,
)

__all__ = [
    "TicketCreateRequest",
    "IEscalationTracker",
    "ITicketRepository",
    "SLAService",
    "TicketWorkflowService",
]
