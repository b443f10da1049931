"""
Escalation Infrastructure Repositories
======================================

Concrete implementation of the escalation repository using SQLAlchemy.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.config import EscalationReason, EscalationRecordStatus
from helpdesk.core import RepositoryException
from helpdesk.escalation.application import IEscalationRepository
from helpdesk.escalation.domain import EscalationRecord
from helpdesk.escalation.infrastructure.models import EscalationRecordModel


class SQLAlchemyEscalationRepository(IEscalationRepository):
    """
    SQLAlchemy implementation of escalation repository.

    Handles persistence of EscalationRecord entities.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    @staticmethod
    def _to_entity(model: EscalationRecordModel) -> EscalationRecord:
        return EscalationRecord(
            id=model.id,
            ticket_id=model.ticket_id,
            from_level=model.from_level,
            to_level=model.to_level,
            reason=EscalationReason(model.reason),
            notes=model.notes,
            escalated_by=model.escalated_by,
            from_assignee=model.from_assignee,
            to_assignee=model.to_assignee,
            escalated_at=model.escalated_at,
            resolved_at=model.resolved_at,
            status=EscalationRecordStatus(model.status),
        )

    async def _first(self, stmt: Select) -> Optional[EscalationRecord]:
        result = await self._session.execute(stmt.limit(1))
        model = result.scalars().first()
        return self._to_entity(model) if model else None

    async def add(self, record: EscalationRecord) -> EscalationRecord:
        self._session.add(EscalationRecordModel(
            id=record.id,
            ticket_id=record.ticket_id,
            from_level=record.from_level,
            to_level=record.to_level,
            reason=record.reason.value,
            notes=record.notes,
            escalated_by=record.escalated_by,
            from_assignee=record.from_assignee,
            to_assignee=record.to_assignee,
            escalated_at=record.escalated_at,
            resolved_at=record.resolved_at,
            status=record.status.value,
        ))
        await self._session.flush()
        return record

    async def save(self, record: EscalationRecord) -> EscalationRecord:
        model = await self._session.get(EscalationRecordModel, record.id)
        if model is None:
            raise RepositoryException(f"Escalation record {record.id} not found")
        model.status = record.status.value
        model.resolved_at = record.resolved_at
        await self._session.flush()
        return record

    async def latest_for_ticket(
        self,
        ticket_id: UUID,
        since: Optional[datetime] = None,
    ) -> Optional[EscalationRecord]:
        stmt = select(EscalationRecordModel).where(EscalationRecordModel.ticket_id == ticket_id)
        if since is not None:
            stmt = stmt.where(EscalationRecordModel.escalated_at >= since)
        stmt = stmt.order_by(
            EscalationRecordModel.escalated_at.desc(),
            EscalationRecordModel.to_level.desc(),
        )
        return await self._first(stmt)

    async def latest_to_level(
        self,
        ticket_id: UUID,
        level: int,
        since: Optional[datetime] = None,
    ) -> Optional[EscalationRecord]:
        stmt = select(EscalationRecordModel).where(
            EscalationRecordModel.ticket_id == ticket_id,
            EscalationRecordModel.to_level == level,
        )
        if since is not None:
            stmt = stmt.where(EscalationRecordModel.escalated_at >= since)
        stmt = stmt.order_by(EscalationRecordModel.escalated_at.desc())
        return await self._first(stmt)

    async def exists_since(self, ticket_id: UUID, level: int, since: datetime) -> bool:
        stmt = select(func.count()).select_from(EscalationRecordModel).where(
            EscalationRecordModel.ticket_id == ticket_id,
            EscalationRecordModel.to_level == level,
            EscalationRecordModel.escalated_at >= since,
        )
        result = await self._session.execute(stmt)
        return result.scalar_one() > 0

    async def list_for_ticket(self, ticket_id: UUID) -> List[EscalationRecord]:
        stmt = (
            select(EscalationRecordModel)
            .where(EscalationRecordModel.ticket_id == ticket_id)
            .order_by(EscalationRecordModel.escalated_at, EscalationRecordModel.to_level)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_active(self, ticket_id: UUID) -> List[EscalationRecord]:
        stmt = (
            select(EscalationRecordModel)
            .where(
                EscalationRecordModel.ticket_id == ticket_id,
                EscalationRecordModel.status == EscalationRecordStatus.ACTIVE.value,
            )
            .order_by(EscalationRecordModel.escalated_at)
        )
        result = await self._session.execute(stmt)
        return [self._to_entity(m) for m in result.scalars().all()]
