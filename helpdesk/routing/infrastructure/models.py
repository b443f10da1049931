"""
Routing Infrastructure Models
=============================

SQLAlchemy ORM models for the routing module.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.config import StaffVertical, UserRole
from helpdesk.infrastructure.database import Base, UTCDateTime


class StaffModel(Base):
    """
    Database model for StaffMember entity.

    Maps to the 'staff_members' table. Holds administrators too; students are
    not stored here.
    """
    __tablename__ = "staff_members"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(String(20), nullable=False, index=True)
    vertical: Mapped[Optional[StaffVertical]] = mapped_column(String(50), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    performance_factor: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )


class StaffMappingModel(Base):
    """
    Database model for StaffMapping entity.

    Maps to the 'staff_mappings' table. A null hostel_block is a
    category-wide mapping.
    """
    __tablename__ = "staff_mappings"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    staff_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("staff_members.id"), nullable=False, index=True
    )
    hostel_block: Mapped[Optional[str]] = mapped_column(String(100), nullable=True, index=True)
    category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)

    priority_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    capacity_weight: Mapped[float] = mapped_column(Float, nullable=False, default=1.0)
    expertise_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("staff_id", "hostel_block", "category", name="uq_staff_block_category"),
    )
