"""Tests for the SQLAlchemy repositories against an in-memory SQLite database."""

import unittest
from datetime import timedelta
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from helpdesk.config import (
    EscalationReason,
    EscalationRecordStatus,
    NotificationType,
    StaffVertical,
    TicketCategory,
    TicketStatus,
    UserRole,
)
from helpdesk.core import ConcurrencyConflictException
from helpdesk.escalation.domain import EscalationRecord
from helpdesk.escalation.infrastructure import SQLAlchemyEscalationRepository
from helpdesk.infrastructure.database import Base, SQLAlchemyUnitOfWork
from helpdesk.notifications.domain import Notification
from helpdesk.notifications.infrastructure import (
    DatabaseNotificationChannel,
    SQLAlchemyNotificationRepository,
)
from helpdesk.routing.domain import StaffMapping
from helpdesk.routing.infrastructure import SQLAlchemyMappingRepository, SQLAlchemyStaffRepository
from helpdesk.sla.infrastructure import SQLAlchemyTicketRepository

from tests.fakes import T0, make_staff, make_ticket

ELECTRICAL = TicketCategory.ELECTRICAL_ISSUES.value


class RepositoryTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.sessions = async_sessionmaker(self.engine, class_=AsyncSession, expire_on_commit=False)
        self.session = self.sessions()
        self.staff = SQLAlchemyStaffRepository(self.session)
        self.mappings = SQLAlchemyMappingRepository(self.session)
        self.tickets = SQLAlchemyTicketRepository(self.session)
        self.escalations = SQLAlchemyEscalationRepository(self.session)

    async def asyncTearDown(self) -> None:
        await self.session.close()
        await self.engine.dispose()


class TicketRepositoryTests(RepositoryTestCase):
    async def test_round_trip_keeps_aware_timestamps(self) -> None:
        ticket = make_ticket(
            estimated_resolution_time=T0 + timedelta(hours=36),
            sla_breach_time=T0 + timedelta(hours=43.2),
        )
        await self.tickets.add(ticket)
        await self.session.commit()

        loaded = await self.tickets.get_by_id(ticket.id)

        self.assertEqual(loaded.ticket_number, ticket.ticket_number)
        self.assertEqual(loaded.category, TicketCategory.ELECTRICAL_ISSUES)
        self.assertEqual(loaded.created_at, T0)
        self.assertIsNotNone(loaded.created_at.tzinfo)
        self.assertEqual(loaded.sla_breach_time, T0 + timedelta(hours=43.2))
        self.assertIsNone(await self.tickets.get_by_id(uuid4()))

    async def test_save_is_conditional_on_version(self) -> None:
        ticket = await self.tickets.add(make_ticket())
        first = await self.tickets.get_by_id(ticket.id)
        second = await self.tickets.get_by_id(ticket.id)

        first.status = TicketStatus.CANCELLED
        await self.tickets.save(first)
        self.assertEqual(first.version, 1)

        second.title = "Stale edit"
        with self.assertRaises(ConcurrencyConflictException):
            await self.tickets.save(second)

        stored = await self.tickets.get_by_id(ticket.id)
        self.assertEqual(stored.status, TicketStatus.CANCELLED)
        self.assertEqual(stored.version, 1)

    async def test_active_work_queries(self) -> None:
        staff = await self.staff.add(make_staff())
        for status in (TicketStatus.ASSIGNED, TicketStatus.REOPENED, TicketStatus.RESOLVED, TicketStatus.CLOSED):
            await self.tickets.add(make_ticket(status=status, assigned_to=staff.id))
        other = await self.staff.add(make_staff())
        await self.tickets.add(make_ticket(status=TicketStatus.ASSIGNED, assigned_to=other.id))

        self.assertEqual(await self.tickets.count_active_for_staff(staff.id), 2)
        active = await self.tickets.list_active_for_staff(staff.id)
        self.assertEqual(
            {t.status for t in active},
            {TicketStatus.ASSIGNED, TicketStatus.REOPENED},
        )
        self.assertEqual(len(await self.tickets.list_for_staff(staff.id)), 4)

    async def test_list_by_status_oldest_first(self) -> None:
        later = await self.tickets.add(make_ticket(created_at=T0 + timedelta(hours=2)))
        earlier = await self.tickets.add(make_ticket(created_at=T0))
        await self.tickets.add(make_ticket(status=TicketStatus.CLOSED))

        listed = await self.tickets.list_by_status([TicketStatus.OPEN])

        self.assertEqual([t.id for t in listed], [earlier.id, later.id])

    async def test_list_resolved_before(self) -> None:
        old = await self.tickets.add(make_ticket(status=TicketStatus.RESOLVED, resolved_at=T0))
        await self.tickets.add(make_ticket(status=TicketStatus.RESOLVED, resolved_at=T0 + timedelta(hours=30)))
        await self.tickets.add(make_ticket(status=TicketStatus.CLOSED, resolved_at=T0))

        listed = await self.tickets.list_resolved_before(T0 + timedelta(hours=1))

        self.assertEqual([t.id for t in listed], [old.id])


class RoutingRepositoryTests(RepositoryTestCase):
    async def test_list_active_filters(self) -> None:
        electrician = await self.staff.add(make_staff())
        await self.staff.add(make_staff(is_active=False))
        lead = await self.staff.add(make_staff(vertical=StaffVertical.BLOCK_SUPERVISOR))
        admin = await self.staff.add(make_staff(vertical=None, role=UserRole.ADMIN))

        everyone = await self.staff.list_active()
        self.assertEqual(
            [s.id for s in everyone],
            sorted([electrician.id, lead.id, admin.id]),
        )
        leads = await self.staff.list_active(verticals=[StaffVertical.BLOCK_SUPERVISOR])
        self.assertEqual([s.id for s in leads], [lead.id])
        self.assertEqual([s.id for s in await self.staff.list_admins()], [admin.id])
        self.assertEqual((await self.staff.get_by_id(lead.id)).vertical, StaffVertical.BLOCK_SUPERVISOR)

    async def test_mappings_for_block_and_category_wide(self) -> None:
        first = await self.staff.add(make_staff())
        second = await self.staff.add(make_staff())
        wide = await self.staff.add(make_staff())
        await self.mappings.save(StaffMapping(staff_id=second.id, hostel_block="BlockA", category=ELECTRICAL, priority_level=2))
        await self.mappings.save(StaffMapping(staff_id=first.id, hostel_block="BlockA", category=ELECTRICAL))
        await self.mappings.save(StaffMapping(staff_id=wide.id, hostel_block=None, category=ELECTRICAL))
        await self.mappings.save(StaffMapping(
            staff_id=wide.id, hostel_block="BlockA", category=ELECTRICAL, priority_level=3, is_active=False,
        ))

        exact = await self.mappings.mappings_for("BlockA", ELECTRICAL)
        category_wide = await self.mappings.mappings_for(None, ELECTRICAL)

        self.assertEqual([m.staff_id for m in exact], [first.id, second.id])
        self.assertEqual([m.staff_id for m in category_wide], [wide.id])
        self.assertIsNotNone(await self.mappings.find(wide.id, None, ELECTRICAL))
        self.assertIsNone(await self.mappings.find(first.id, None, ELECTRICAL))

    async def test_save_updates_existing_mapping(self) -> None:
        staff = await self.staff.add(make_staff())
        mapping = await self.mappings.save(StaffMapping(staff_id=staff.id, hostel_block="BlockB", category=ELECTRICAL))

        mapping.capacity_weight = 1.5
        mapping.is_active = False
        await self.mappings.save(mapping)

        loaded = await self.mappings.get_by_id(mapping.id)
        self.assertEqual(loaded.capacity_weight, 1.5)
        self.assertFalse(loaded.is_active)
        self.assertEqual(len(await self.mappings.list_for_staff(staff.id)), 1)
        self.assertEqual(await self.mappings.mappings_for("BlockB", ELECTRICAL), [])


class EscalationRepositoryTests(RepositoryTestCase):
    async def asyncSetUp(self) -> None:
        await super().asyncSetUp()
        self.ticket = await self.tickets.add(make_ticket())

    async def record(self, from_level, to_level, hours, **kwargs):
        return await self.escalations.add(EscalationRecord(
            ticket_id=self.ticket.id,
            from_level=from_level,
            to_level=to_level,
            reason=kwargs.pop("reason", EscalationReason.TIME_THRESHOLD_EXCEEDED),
            escalated_at=T0 + timedelta(hours=hours),
            **kwargs,
        ))

    async def test_history_queries(self) -> None:
        first = await self.record(1, 2, 5)
        second = await self.record(2, 3, 10, reason=EscalationReason.SLA_BREACH)
        again = await self.record(1, 2, 30)

        self.assertEqual(
            [r.id for r in await self.escalations.list_for_ticket(self.ticket.id)],
            [first.id, second.id, again.id],
        )
        self.assertEqual((await self.escalations.latest_for_ticket(self.ticket.id)).id, again.id)
        self.assertEqual(
            (await self.escalations.latest_to_level(self.ticket.id, 2)).id,
            again.id,
        )
        self.assertIsNone(
            await self.escalations.latest_for_ticket(self.ticket.id, since=T0 + timedelta(hours=31))
        )
        self.assertTrue(await self.escalations.exists_since(self.ticket.id, 3, T0 + timedelta(hours=10)))
        self.assertFalse(await self.escalations.exists_since(self.ticket.id, 3, T0 + timedelta(hours=11)))

    async def test_resolving_records(self) -> None:
        record = await self.record(1, 2, 5)
        await self.record(2, 3, 10)

        record.resolve(T0 + timedelta(hours=12))
        await self.escalations.save(record)

        active = await self.escalations.list_active(self.ticket.id)
        self.assertEqual([r.to_level for r in active], [3])
        history = await self.escalations.list_for_ticket(self.ticket.id)
        self.assertEqual(history[0].status, EscalationRecordStatus.RESOLVED)
        self.assertEqual(history[0].resolved_at, T0 + timedelta(hours=12))


class UnitOfWorkTests(RepositoryTestCase):
    async def test_atomic_block_rolls_back_on_error(self) -> None:
        uow = SQLAlchemyUnitOfWork(self.session)
        kept = await self.tickets.add(make_ticket())
        dropped = make_ticket()

        with self.assertRaises(RuntimeError):
            async with uow.atomic():
                await self.tickets.add(dropped)
                raise RuntimeError("fail mid-operation")
        await uow.commit()

        self.assertIsNotNone(await self.tickets.get_by_id(kept.id))
        self.assertIsNone(await self.tickets.get_by_id(dropped.id))


class NotificationRepositoryTests(RepositoryTestCase):
    def notification(self, user_id, hours=0, kind=NotificationType.STATUS_CHANGED):
        return Notification(
            user_id=user_id,
            title="Status changed",
            message="Ticket moved to IN_PROGRESS",
            kind=kind,
            created_at=T0 + timedelta(hours=hours),
        )

    async def test_add_is_idempotent_and_newest_first(self) -> None:
        repo = SQLAlchemyNotificationRepository(self.session)
        user_id = uuid4()
        older = self.notification(user_id)
        newer = self.notification(user_id, hours=1, kind=NotificationType.ESCALATION)

        await repo.add(older)
        await repo.add(older)
        await repo.add(newer)
        await repo.add(self.notification(uuid4()))

        listed = await repo.list_for_user(user_id)
        self.assertEqual([n.id for n in listed], [newer.id, older.id])
        self.assertEqual(listed[0].kind, NotificationType.ESCALATION)

    async def test_mark_read(self) -> None:
        repo = SQLAlchemyNotificationRepository(self.session)
        user_id = uuid4()
        first, second = self.notification(user_id), self.notification(user_id, hours=1)
        await repo.add(first)
        await repo.add(second)

        self.assertTrue(await repo.mark_read(first.id))
        self.assertFalse(await repo.mark_read(uuid4()))

        unread = await repo.list_for_user(user_id, unread_only=True)
        self.assertEqual([n.id for n in unread], [second.id])

    async def test_database_channel_uses_its_own_session(self) -> None:
        channel = DatabaseNotificationChannel(self.sessions.begin)
        sent = self.notification(uuid4())

        await channel.deliver(sent)
        await channel.deliver(sent)

        listed = await SQLAlchemyNotificationRepository(self.session).list_for_user(sent.user_id)
        self.assertEqual([n.id for n in listed], [sent.id])
