"""
Escalation Application Layer
============================
"""

from helpdesk.escalation.application.services import EscalationService, IEscalationRepository

__all__ = ["EscalationService", "IEscalationRepository"]
