"""
Escalation Infrastructure Models
================================

SQLAlchemy ORM models for the escalation module.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.config import EscalationReason, EscalationRecordStatus
from helpdesk.infrastructure.database import Base, UTCDateTime


class EscalationRecordModel(Base):
    """
    Database model for EscalationRecord entity.

    Maps to the 'escalation_records' table.
    """
    __tablename__ = "escalation_records"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    ticket_id: Mapped[UUID] = mapped_column(Uuid, ForeignKey("tickets.id"), nullable=False)

    from_level: Mapped[int] = mapped_column(Integer, nullable=False)
    to_level: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[EscalationReason] = mapped_column(String(50), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Null for automatic escalations
    escalated_by: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    from_assignee: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)
    to_assignee: Mapped[Optional[UUID]] = mapped_column(Uuid, nullable=True)

    escalated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    status: Mapped[EscalationRecordStatus] = mapped_column(String(20), nullable=False)

    __table_args__ = (
        Index("ix_escalation_ticket_time", "ticket_id", "escalated_at"),
        Index("ix_escalation_ticket_level", "ticket_id", "to_level", "escalated_at"),
    )
