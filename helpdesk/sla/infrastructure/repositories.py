"""
SLA Infrastructure Repositories
===============================

Concrete implementations of repository interfaces using SQLAlchemy.

Reads always refresh from the database (``populate_existing``) and writes
are conditional on the version read, so a stale copy can never overwrite a
newer row.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import ACTIVE_WORK_STATUSES, TicketCategory, TicketPriority, TicketStatus
from helpdesk.core import ConcurrencyConflictException
from helpdesk.sla.application import ITicketRepository
from helpdesk.sla.domain import Ticket
from helpdesk.sla.infrastructure.models import TicketModel

_ACTIVE_VALUES = [s.value for s in ACTIVE_WORK_STATUSES]


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    Handles persistence of Ticket entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: TicketModel) -> Ticket:
        return Ticket(
            id=model.id,
            ticket_number=model.ticket_number,
            title=model.title,
            description=model.description,
            category=TicketCategory(model.category) if model.category else None,
            custom_category=model.custom_category,
            priority=TicketPriority(model.priority),
            status=TicketStatus(model.status),
            hostel_block=model.hostel_block,
            room_number=model.room_number,
            created_by=model.created_by,
            assigned_to=model.assigned_to,
            estimated_resolution_time=model.estimated_resolution_time,
            sla_breach_time=model.sla_breach_time,
            created_at=model.created_at,
            updated_at=model.updated_at,
            assigned_at=model.assigned_at,
            started_at=model.started_at,
            resolved_at=model.resolved_at,
            closed_at=model.closed_at,
            reopened_at=model.reopened_at,
            version=model.version,
        )

    @staticmethod
    def _values(ticket: Ticket) -> Dict[str, Any]:
        return {
            "ticket_number": ticket.ticket_number,
            "title": ticket.title,
            "description": ticket.description,
            "category": ticket.category.value if ticket.category else None,
            "custom_category": ticket.custom_category,
            "priority": ticket.priority.value,
            "status": ticket.status.value,
            "hostel_block": ticket.hostel_block,
            "room_number": ticket.room_number,
            "created_by": ticket.created_by,
            "assigned_to": ticket.assigned_to,
            "estimated_resolution_time": ticket.estimated_resolution_time,
            "sla_breach_time": ticket.sla_breach_time,
            "created_at": ticket.created_at,
            "updated_at": ticket.updated_at,
            "assigned_at": ticket.assigned_at,
            "started_at": ticket.started_at,
            "resolved_at": ticket.resolved_at,
            "closed_at": ticket.closed_at,
            "reopened_at": ticket.reopened_at,
        }

    async def _fetch(self, stmt: Select) -> List[Ticket]:
        result = await self._session.execute(stmt.execution_options(populate_existing=True))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def get_by_id(self, ticket_id: UUID) -> Optional[Ticket]:
        tickets = await self._fetch(select(TicketModel).where(TicketModel.id == ticket_id))
        return tickets[0] if tickets else None

    async def add(self, ticket: Ticket) -> Ticket:
        self._session.add(TicketModel(id=ticket.id, version=ticket.version, **self._values(ticket)))
        await self._session.flush()
        return ticket

    async def save(self, ticket: Ticket) -> Ticket:
        stmt = (
            update(TicketModel)
            .where(TicketModel.id == ticket.id, TicketModel.version == ticket.version)
            .values(version=ticket.version + 1, **self._values(ticket))
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        if result.rowcount != 1:
            raise ConcurrencyConflictException(
                ticket.id,
                details={"ticket_id": str(ticket.id), "expected_version": ticket.version},
            )
        ticket.version += 1
        return ticket

    async def list_by_status(self, statuses: Sequence[TicketStatus]) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.status.in_([s.value for s in statuses]))
            .order_by(TicketModel.created_at, TicketModel.id)
        )
        return await self._fetch(stmt)

    async def list_resolved_before(self, cutoff: datetime) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(
                TicketModel.status == TicketStatus.RESOLVED.value,
                TicketModel.resolved_at <= cutoff,
            )
            .order_by(TicketModel.resolved_at)
        )
        return await self._fetch(stmt)

    async def list_active_for_staff(self, staff_id: UUID) -> List[Ticket]:
        stmt = select(TicketModel).where(
            TicketModel.assigned_to == staff_id,
            TicketModel.status.in_(_ACTIVE_VALUES),
        )
        return await self._fetch(stmt)

    async def count_active_for_staff(self, staff_id: UUID) -> int:
        stmt = select(func.count()).select_from(TicketModel).where(
            TicketModel.assigned_to == staff_id,
            TicketModel.status.in_(_ACTIVE_VALUES),
        )
        result = await self._session.execute(stmt)
        return result.scalar_one()

    async def list_for_staff(self, staff_id: UUID) -> List[Ticket]:
        stmt = (
            select(TicketModel)
            .where(TicketModel.assigned_to == staff_id)
            .order_by(TicketModel.created_at)
        )
        return await self._fetch(stmt)
