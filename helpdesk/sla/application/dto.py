"""
SLA Application DTOs
====================

Data Transfer Objects for ticket intake.

These Pydantic models validate what the surrounding application hands in.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from helpdesk.config import TicketCategory, TicketPriority


class TicketCreateRequest(BaseModel):
    """DTO for creating a single ticket."""
    title: str = Field(..., min_length=1, max_length=200, description="Short summary")
    description: str = Field(..., min_length=1, description="Full problem description")
    priority: TicketPriority = Field(default=TicketPriority.MEDIUM)
    category: Optional[TicketCategory] = Field(None, description="Enumerated category")
    custom_category: Optional[str] = Field(
        None,
        min_length=1,
        max_length=100,
        description="Free-text category; never auto-assigned"
    )
    hostel_block: Optional[str] = Field(None, max_length=100)
    room_number: Optional[str] = Field(None, max_length=20)
    created_by: UUID = Field(..., description="Reporting user")

    @model_validator(mode="after")
    def validate_category(self) -> "TicketCreateRequest":
        """Exactly one of category and custom_category."""
        if (self.category is None) == (self.custom_category is None):
            raise ValueError("provide exactly one of category or custom_category")
        return self
