"""
Routing Infrastructure Layer
============================

SQLAlchemy models and repositories for staff and staff mappings.
"""

from helpdesk.routing.infrastructure.models import StaffMappingModel, StaffModel
from helpdesk.routing.infrastructure.repositories import (
    SQLAlchemyMappingRepository,
    SQLAlchemyStaffRepository,
)

__all__ = [
    "StaffMappingModel",
    "StaffModel",
    "SQLAlchemyMappingRepository",
    "SQLAlchemyStaffRepository",
]
