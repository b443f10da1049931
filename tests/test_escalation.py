"""Tests for the escalation sweep, manual escalation and escalation queries."""

import unittest
from datetime import timedelta
from uuid import uuid4

from helpdesk.config import (
    EscalationReason,
    EscalationStanding,
    NotificationType,
    StaffVertical,
    TicketPriority,
    TicketStatus,
    UserRole,
)
from helpdesk.config.policy import RoutingPolicy
from helpdesk.core import ResourceNotFoundException
from helpdesk.escalation.domain import (
    EscalationHierarchy,
    EscalationOutcome,
    EscalationRecord,
    EscalationRules,
)

from tests.fakes import T0, build_harness, make_ticket


class EscalationHierarchyTests(unittest.TestCase):
    def setUp(self) -> None:
        self.hierarchy = EscalationHierarchy.from_policy(RoutingPolicy())

    def test_levels_are_ordered(self) -> None:
        self.assertEqual([level.rank for level in self.hierarchy.levels], [1, 2, 3, 4, 5])
        self.assertEqual(self.hierarchy.lowest.name, "STAFF_MEMBER")
        self.assertEqual(self.hierarchy.highest.name, "INSTITUTE_ADMINISTRATION")
        self.assertEqual(self.hierarchy.next_after(1).name, "TEAM_LEAD")
        self.assertIsNone(self.hierarchy.next_after(5))

    def test_thresholds(self) -> None:
        expected = {
            1: (1, 2, 4, 8),
            2: (2, 4, 8, 16),
            3: (3, 6, 12, 24),
            4: (6, 12, 24, 48),
            5: (12, 24, 48, 96),
        }
        priorities = (
            TicketPriority.EMERGENCY, TicketPriority.HIGH,
            TicketPriority.MEDIUM, TicketPriority.LOW,
        )
        for rank, hours in expected.items():
            for priority, value in zip(priorities, hours):
                with self.subTest(rank=rank, priority=priority):
                    self.assertEqual(self.hierarchy.threshold_hours(rank, priority), value)

    def test_vertical_inference(self) -> None:
        self.assertEqual(self.hierarchy.infer_for_vertical(StaffVertical.BLOCK_SUPERVISOR).rank, 2)
        self.assertEqual(self.hierarchy.infer_for_vertical(StaffVertical.HOSTEL_WARDEN).rank, 3)
        self.assertEqual(self.hierarchy.infer_for_vertical(StaffVertical.CHIEF_WARDEN).rank, 4)
        self.assertIsNone(self.hierarchy.infer_for_vertical(StaffVertical.ELECTRICAL))
        self.assertIsNone(self.hierarchy.infer_for_vertical(None))

    def test_threshold_is_strict(self) -> None:
        level = self.hierarchy.lowest
        self.assertFalse(EscalationRules.threshold_exceeded(
            level, TicketPriority.MEDIUM, T0, T0 + timedelta(hours=4)
        ))
        self.assertTrue(EscalationRules.threshold_exceeded(
            level, TicketPriority.MEDIUM, T0, T0 + timedelta(hours=4, seconds=1)
        ))
        self.assertFalse(EscalationRules.threshold_exceeded(level, TicketPriority.MEDIUM, None, T0))

    def test_record_levels_must_increase(self) -> None:
        with self.assertRaises(ValueError):
            EscalationRecord(
                ticket_id=uuid4(), from_level=2, to_level=2,
                reason=EscalationReason.SLA_BREACH, escalated_at=T0,
            )


class EscalationTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self.h = build_harness()
        self.electrician = self.h.add_staff(StaffVertical.ELECTRICAL, name="Electrician")
        self.busy_lead = self.h.add_staff(StaffVertical.BLOCK_SUPERVISOR, name="Block Supervisor")
        self.idle_lead = self.h.add_staff(StaffVertical.MAINTENANCE_SUPERVISOR, name="Maintenance Supervisor")
        self.admin = self.h.add_staff(StaffVertical.ADMIN_OFFICER, role=UserRole.ADMIN, name="Admin")
        self.h.give_active_tickets(self.busy_lead, 1)

    def assigned_ticket(self, priority=TicketPriority.MEDIUM, assignee=None, **overrides):
        assignee = assignee or self.electrician
        fields = {
            "status": TicketStatus.ASSIGNED,
            "assigned_to": assignee.id,
            "assigned_at": T0,
            "estimated_resolution_time": T0 + timedelta(hours=36),
            "sla_breach_time": T0 + timedelta(hours=43.2),
        }
        fields.update(overrides)
        return self.h.tickets.put(make_ticket(priority=priority, **fields))

    def add_record(self, ticket, from_level, to_level, at, **kwargs):
        record = EscalationRecord(
            ticket_id=ticket.id,
            from_level=from_level,
            to_level=to_level,
            reason=kwargs.pop("reason", EscalationReason.TIME_THRESHOLD_EXCEEDED),
            escalated_at=at,
            **kwargs,
        )
        self.h.escalations.rows.append(record)
        return record


class EscalationSweepTests(EscalationTestCase):
    async def test_stalled_ticket_moves_to_least_loaded_team_lead(self) -> None:
        ticket = self.assigned_ticket()
        self.h.clock.advance(hours=5)

        summary = await self.h.escalation.run_escalation_sweep()

        self.assertEqual(summary.escalated, 1)
        self.assertEqual(len(self.h.escalations.rows), 1)
        record = self.h.escalations.rows[0]
        self.assertEqual((record.from_level, record.to_level), (1, 2))
        self.assertEqual(record.reason, EscalationReason.TIME_THRESHOLD_EXCEEDED)
        self.assertEqual(record.from_assignee, self.electrician.id)
        self.assertEqual(record.to_assignee, self.idle_lead.id)
        self.assertIsNone(record.escalated_by)

        stored = self.h.tickets.stored(ticket.id)
        self.assertEqual(stored.assigned_to, self.idle_lead.id)
        self.assertEqual(stored.status, TicketStatus.ASSIGNED)
        self.assertEqual(
            self.h.notifier.recipients(NotificationType.ESCALATION),
            [self.electrician.id, self.idle_lead.id, ticket.created_by, self.admin.id],
        )
        self.assertEqual(self.h.uow.commits, 1)
        self.assertEqual(
            self.h.metrics.value(
                "escalations_created_total",
                reason="TIME_THRESHOLD_EXCEEDED",
                level="TEAM_LEAD",
            ),
            1,
        )

    async def test_ticket_at_top_level_is_not_escalated_further(self) -> None:
        chief = self.h.add_staff(StaffVertical.CHIEF_WARDEN)
        ticket = self.assigned_ticket(assignee=chief)
        self.add_record(ticket, 4, 5, T0 + timedelta(hours=1), to_assignee=chief.id)
        self.h.clock.advance(hours=100)

        result = await self.h.escalation.process_ticket(ticket.id)

        self.assertEqual(result.outcome, EscalationOutcome.MAX_LEVEL)
        self.assertEqual(result.reason, EscalationReason.TIME_THRESHOLD_EXCEEDED)
        self.assertEqual(len(self.h.escalations.rows), 1)
        self.assertEqual(self.h.tickets.stored(ticket.id).assigned_to, chief.id)
        self.assertEqual(self.h.notifier.sent, [])
        self.assertEqual(self.h.metrics.total("escalation_max_level_total"), 1)

    async def test_level_only_increases(self) -> None:
        ticket = self.assigned_ticket()
        self.h.clock.advance(hours=5)
        await self.h.escalation.process_ticket(ticket.id)

        self.h.clock.advance(hours=1)
        result = await self.h.escalation.process_ticket(ticket.id)
        self.assertEqual(result.outcome, EscalationOutcome.NOT_NEEDED)
        self.assertEqual(result.from_level, 2)

        self.h.clock.advance(hours=8)
        result = await self.h.escalation.process_ticket(ticket.id)
        self.assertEqual(result.outcome, EscalationOutcome.ESCALATED)
        self.assertEqual((result.from_level, result.to_level), (2, 3))
        self.assertEqual([r.to_level for r in self.h.escalations.rows], [2, 3])

    async def test_no_eligible_target_alerts_admins(self) -> None:
        lead_ticket = self.assigned_ticket(assignee=self.idle_lead)
        self.h.clock.advance(hours=9)

        result = await self.h.escalation.process_ticket(lead_ticket.id)

        self.assertEqual(result.outcome, EscalationOutcome.ESCALATED)
        self.assertEqual((result.from_level, result.to_level), (2, 3))
        self.assertIsNone(result.new_assignee)
        self.assertEqual(self.h.tickets.stored(lead_ticket.id).assigned_to, self.idle_lead.id)
        self.assertEqual(
            self.h.notifier.recipients(NotificationType.SYSTEM_ALERT),
            [self.admin.id],
        )

    async def test_critical_level_raises_priority(self) -> None:
        warden = self.h.add_staff(StaffVertical.HOSTEL_WARDEN)
        chief = self.h.add_staff(StaffVertical.CHIEF_WARDEN)
        ticket = self.assigned_ticket(
            priority=TicketPriority.LOW, assignee=warden, sla_breach_time=T0 + timedelta(days=10),
        )
        self.h.clock.advance(hours=25)

        result = await self.h.escalation.process_ticket(ticket.id)

        self.assertEqual((result.from_level, result.to_level), (3, 4))
        stored = self.h.tickets.stored(ticket.id)
        self.assertEqual(stored.priority, TicketPriority.HIGH)
        self.assertEqual(stored.assigned_to, chief.id)

        standing = await self.h.escalation.current_standing(ticket.id)
        self.assertEqual(standing.standing, EscalationStanding.CRITICAL)

    async def test_recent_escalation_to_same_level_is_deduplicated(self) -> None:
        ticket = self.assigned_ticket(reopened_at=T0 + timedelta(hours=2), status=TicketStatus.REOPENED)
        self.add_record(ticket, 1, 2, T0 + timedelta(hours=1), to_assignee=self.idle_lead.id)
        self.h.clock.advance(hours=10)

        result = await self.h.escalation.process_ticket(ticket.id)

        self.assertEqual(result.outcome, EscalationOutcome.DEDUPLICATED)
        self.assertEqual(len(self.h.escalations.rows), 1)
        self.assertEqual(self.h.notifier.sent, [])

    async def test_sweep_ignores_resolved_and_terminal_tickets(self) -> None:
        done = {
            self.assigned_ticket(status=status).id
            for status in (TicketStatus.RESOLVED, TicketStatus.CLOSED, TicketStatus.CANCELLED)
        }
        self.h.clock.advance(hours=50)

        summary = await self.h.escalation.run_escalation_sweep()

        # only the supervisor's own ticket from setUp is looked at
        self.assertEqual(summary.examined, 1)
        self.assertFalse(done & {r.ticket_id for r in self.h.escalations.rows})
        self.assertFalse(done & {r.ticket_id for r in summary.results})

    async def test_ticket_closed_after_listing_is_skipped(self) -> None:
        ticket = self.assigned_ticket(status=TicketStatus.CLOSED)

        result = await self.h.escalation.process_ticket(ticket.id, T0 + timedelta(hours=50))

        self.assertEqual(result.outcome, EscalationOutcome.SKIPPED)

    async def test_concurrent_modification_is_skipped(self) -> None:
        ticket = self.assigned_ticket()
        self.h.clock.advance(hours=5)
        tickets = self.h.tickets
        read = tickets.get_by_id

        async def read_then_modified_elsewhere(ticket_id):
            found = await read(ticket_id)
            if ticket_id == ticket.id:
                tickets.stored(ticket_id).version += 1
            return found

        tickets.get_by_id = read_then_modified_elsewhere
        result = await self.h.escalation.process_ticket(ticket.id)

        self.assertEqual(result.outcome, EscalationOutcome.CONFLICT)
        self.assertEqual(self.h.escalations.rows, [])
        self.assertEqual(self.h.notifier.sent, [])
        self.assertEqual(tickets.stored(ticket.id).assigned_to, self.electrician.id)
        self.assertEqual(self.h.metrics.value("escalation_conflicts_skipped_total"), 1)

    async def test_one_failing_ticket_does_not_stop_the_sweep(self) -> None:
        orphan = self.assigned_ticket()
        orphan.assigned_to = uuid4()
        self.h.tickets.put(orphan)
        stalled = self.assigned_ticket(
            created_at=T0 - timedelta(hours=5), assigned_at=T0 - timedelta(hours=5),
        )
        self.h.clock.advance(hours=1)

        summary = await self.h.escalation.run_escalation_sweep()

        self.assertEqual(summary.failed, 1)
        self.assertEqual(summary.escalated, 1)
        self.assertEqual(self.h.tickets.stored(stalled.id).assigned_to, self.idle_lead.id)
        self.assertEqual(self.h.metrics.value("escalation_sweep_failures_total"), 1)


class EscalationReasonTests(EscalationTestCase):
    async def reason_for(self, ticket, now):
        policy = self.h.policy
        level = await self.h.escalation.current_level(ticket)
        return await self.h.escalation.determine_reason(ticket, level, now, policy)

    async def test_sla_breach(self) -> None:
        ticket = self.assigned_ticket(sla_breach_time=T0 + timedelta(hours=1))
        reason = await self.reason_for(ticket, T0 + timedelta(hours=2))
        self.assertEqual(reason, EscalationReason.SLA_BREACH)

    async def test_threshold_takes_precedence_over_breach(self) -> None:
        ticket = self.assigned_ticket(sla_breach_time=T0 + timedelta(hours=1))
        reason = await self.reason_for(ticket, T0 + timedelta(hours=5))
        self.assertEqual(reason, EscalationReason.TIME_THRESHOLD_EXCEEDED)

    async def test_priority_minimum_level(self) -> None:
        ticket = self.assigned_ticket(priority=TicketPriority.EMERGENCY)
        reason = await self.reason_for(ticket, T0 + timedelta(minutes=30))
        self.assertEqual(reason, EscalationReason.HIGH_PRIORITY)

    async def test_inactive_assignee(self) -> None:
        ticket = self.assigned_ticket()
        self.electrician.is_active = False
        reason = await self.reason_for(ticket, T0 + timedelta(hours=1))
        self.assertEqual(reason, EscalationReason.STAFF_UNAVAILABLE)

    async def test_overloaded_assignee(self) -> None:
        ticket = self.assigned_ticket()
        reason = await self.reason_for(ticket, T0 + timedelta(hours=1))
        self.assertEqual(reason, EscalationReason.NO_ESCALATION_NEEDED)

        self.h.give_active_tickets(self.electrician, 8)
        reason = await self.reason_for(ticket, T0 + timedelta(hours=1))
        self.assertEqual(reason, EscalationReason.STAFF_UNAVAILABLE)

    async def test_reopened_ticket_counts_as_one_complaint(self) -> None:
        ticket = self.assigned_ticket(status=TicketStatus.REOPENED, reopened_at=T0 + timedelta(hours=1))
        now = T0 + timedelta(hours=2)
        self.assertEqual(await self.reason_for(ticket, now), EscalationReason.CUSTOMER_COMPLAINT)

        self.add_record(ticket, 1, 2, now, reason=EscalationReason.CUSTOMER_COMPLAINT)
        self.assertEqual(
            await self.reason_for(ticket, now + timedelta(hours=1)),
            EscalationReason.NO_ESCALATION_NEEDED,
        )

    async def test_missing_assignee_record(self) -> None:
        ticket = self.assigned_ticket()
        ticket.assigned_to = uuid4()
        with self.assertRaises(ResourceNotFoundException):
            await self.reason_for(ticket, T0 + timedelta(hours=1))

    async def test_current_level_from_assignee_vertical(self) -> None:
        ticket = self.assigned_ticket(assignee=self.busy_lead)
        level = await self.h.escalation.current_level(ticket)
        self.assertEqual(level.name, "TEAM_LEAD")


class ManualEscalationTests(EscalationTestCase):
    async def test_manual_escalation(self) -> None:
        ticket = self.assigned_ticket()

        result = await self.h.escalation.manual_escalate(ticket.id, self.admin.id, "Warden request")

        self.assertEqual(result.outcome, EscalationOutcome.ESCALATED)
        record = self.h.escalations.rows[0]
        self.assertEqual(record.reason, EscalationReason.MANUAL_ESCALATION)
        self.assertEqual(record.escalated_by, self.admin.id)
        self.assertEqual(record.notes, "Warden request")
        self.assertEqual(self.h.tickets.stored(ticket.id).assigned_to, self.idle_lead.id)

        history = await self.h.escalation.escalation_history(ticket.id)
        self.assertEqual([r.id for r in history], [record.id])
        standing = await self.h.escalation.current_standing(ticket.id)
        self.assertEqual(standing.standing, EscalationStanding.ESCALATED)
        self.assertEqual(standing.level, 2)

    async def test_manual_escalation_requires_known_actor(self) -> None:
        ticket = self.assigned_ticket()
        with self.assertRaises(ResourceNotFoundException):
            await self.h.escalation.manual_escalate(ticket.id, uuid4())
        with self.assertRaises(ResourceNotFoundException):
            await self.h.escalation.manual_escalate(uuid4(), self.admin.id)

    async def test_standing_without_escalation(self) -> None:
        ticket = self.assigned_ticket()
        standing = await self.h.escalation.current_standing(ticket.id)
        self.assertEqual(standing.standing, EscalationStanding.NORMAL)
        self.assertEqual(standing.total_records, 0)
