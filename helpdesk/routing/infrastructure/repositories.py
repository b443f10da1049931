"""
Routing Infrastructure Repositories
===================================

Concrete implementations of the routing repository interfaces using
SQLAlchemy.
"""

from datetime import datetime, timezone
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import StaffVertical, UserRole
from helpdesk.routing.application import IMappingRepository, IStaffRepository
from helpdesk.routing.domain import StaffMapping, StaffMember
from helpdesk.routing.infrastructure.models import StaffMappingModel, StaffModel


class SQLAlchemyStaffRepository(IStaffRepository):
    """
    SQLAlchemy implementation of staff repository.

    Staff records are read-only from the routing point of view; ``add`` exists
    for provisioning and tests.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: StaffModel) -> StaffMember:
        return StaffMember(
            id=model.id,
            full_name=model.full_name,
            email=model.email,
            role=UserRole(model.role),
            vertical=StaffVertical(model.vertical) if model.vertical else None,
            is_active=model.is_active,
            performance_factor=model.performance_factor,
        )

    async def add(self, staff: StaffMember) -> StaffMember:
        model = StaffModel(
            id=staff.id,
            full_name=staff.full_name,
            email=staff.email,
            role=staff.role.value,
            vertical=staff.vertical.value if staff.vertical else None,
            is_active=staff.is_active,
            performance_factor=staff.performance_factor,
        )
        self._session.add(model)
        await self._session.flush()
        return staff

    async def get_by_id(self, staff_id: UUID) -> Optional[StaffMember]:
        model = await self._session.get(StaffModel, staff_id)
        return self._to_entity(model) if model else None

    async def list_active(
        self,
        role: Optional[UserRole] = None,
        verticals: Optional[Sequence[StaffVertical]] = None,
    ) -> List[StaffMember]:
        stmt = select(StaffModel).where(StaffModel.is_active.is_(True))
        if role is not None:
            stmt = stmt.where(StaffModel.role == role.value)
        if verticals is not None:
            stmt = stmt.where(StaffModel.vertical.in_([v.value for v in verticals]))
        stmt = stmt.order_by(StaffModel.id)

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_admins(self) -> List[StaffMember]:
        return await self.list_active(role=UserRole.ADMIN)


class SQLAlchemyMappingRepository(IMappingRepository):
    """SQLAlchemy implementation of staff mapping repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: StaffMappingModel) -> StaffMapping:
        return StaffMapping(
            id=model.id,
            staff_id=model.staff_id,
            hostel_block=model.hostel_block,
            category=model.category,
            priority_level=model.priority_level,
            capacity_weight=model.capacity_weight,
            expertise_level=model.expertise_level,
            is_active=model.is_active,
        )

    async def mappings_for(
        self,
        hostel_block: Optional[str],
        category: str,
    ) -> List[StaffMapping]:
        stmt = select(StaffMappingModel).where(
            StaffMappingModel.category == category,
            StaffMappingModel.is_active.is_(True),
        )
        if hostel_block is None:
            stmt = stmt.where(StaffMappingModel.hostel_block.is_(None))
        else:
            stmt = stmt.where(StaffMappingModel.hostel_block == hostel_block)
        stmt = stmt.order_by(StaffMappingModel.priority_level, StaffMappingModel.staff_id)

        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def get_by_id(self, mapping_id: UUID) -> Optional[StaffMapping]:
        model = await self._session.get(StaffMappingModel, mapping_id)
        return self._to_entity(model) if model else None

    async def find(
        self,
        staff_id: UUID,
        hostel_block: Optional[str],
        category: str,
    ) -> Optional[StaffMapping]:
        stmt = select(StaffMappingModel).where(
            StaffMappingModel.staff_id == staff_id,
            StaffMappingModel.category == category,
        )
        if hostel_block is None:
            stmt = stmt.where(StaffMappingModel.hostel_block.is_(None))
        else:
            stmt = stmt.where(StaffMappingModel.hostel_block == hostel_block)

        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_entity(model) if model else None

    async def list_for_staff(self, staff_id: UUID) -> List[StaffMapping]:
        stmt = (
            select(StaffMappingModel)
            .where(StaffMappingModel.staff_id == staff_id)
            .order_by(StaffMappingModel.priority_level, StaffMappingModel.category)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def save(self, mapping: StaffMapping) -> StaffMapping:
        model = await self._session.get(StaffMappingModel, mapping.id)
        if model is None:
            model = StaffMappingModel(id=mapping.id)
            self._session.add(model)

        model.staff_id = mapping.staff_id
        model.hostel_block = mapping.hostel_block
        model.category = mapping.category
        model.priority_level = mapping.priority_level
        model.capacity_weight = mapping.capacity_weight
        model.expertise_level = mapping.expertise_level
        model.is_active = mapping.is_active
        model.updated_at = datetime.now(timezone.utc)

        await self._session.flush()
        return mapping
