"""
SLA Infrastructure Layer
========================
"""

from helpdesk.sla.infrastructure.models import TicketModel
from helpdesk.sla.infrastructure.repositories import SQLAlchemyTicketRepository

__all__ = ["TicketModel", "SQLAlchemyTicketRepository"]
