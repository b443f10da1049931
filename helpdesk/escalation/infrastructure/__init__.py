"""
Escalation Infrastructure Layer
===============================
"""

from helpdesk.escalation.infrastructure.external import EscalationScheduler
from helpdesk.escalation.infrastructure.models import EscalationRecordModel
from helpdesk.escalation.infrastructure.repositories import SQLAlchemyEscalationRepository

__all__ = [
    "EscalationScheduler",
    "EscalationRecordModel",
    "SQLAlchemyEscalationRepository",
]
