"""
SLA Infrastructure Models
=========================

SQLAlchemy ORM models for the SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import ForeignKey, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.config import TicketCategory, TicketPriority, TicketStatus
from helpdesk.infrastructure.database import Base, UTCDateTime


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. ``version`` backs the conditional writes
    that detect concurrent modification.
    """
    __tablename__ = "tickets"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Business identifier
    ticket_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    # Content
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[Optional[TicketCategory]] = mapped_column(String(50), nullable=True)
    custom_category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    priority: Mapped[TicketPriority] = mapped_column(String(20), nullable=False)
    status: Mapped[TicketStatus] = mapped_column(String(20), nullable=False, index=True)

    # Location
    hostel_block: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    room_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    # People
    created_by: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    assigned_to: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("staff_members.id"), nullable=True
    )

    # SLA deadlines (set once at intake)
    estimated_resolution_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    sla_breach_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    # Lifecycle timestamps
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    assigned_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    reopened_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("ix_tickets_assignee_status", "assigned_to", "status"),
    )
