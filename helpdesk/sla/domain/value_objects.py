"""
SLA Value Objects
=================

Immutable objects and pure calculations for resolution deadlines.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Iterable, Optional, Union

from helpdesk.config import TicketCategory, TicketPriority
from helpdesk.config.policy import RoutingPolicy
from helpdesk.core import ValidationException
from helpdesk.sla.domain.entities import Ticket


@dataclass(frozen=True)
class SLADeadline:
    """
    Immutable value object holding the two deadlines of a ticket.

    breach_time = created + breach_multiplier x resolution_hours.
    """
    estimated_resolution: datetime
    breach_time: datetime
    resolution_hours: float

    def is_breached_at(self, moment: datetime) -> bool:
        return moment > self.breach_time


@dataclass(frozen=True)
class SLAComplianceReport:
    """Adherence summary over a set of tickets."""
    total_tickets: int
    evaluated_tickets: int
    on_time: int
    late: int
    breached: int
    average_resolution_hours: Optional[float]

    @property
    def compliance_rate(self) -> float:
        if self.evaluated_tickets == 0:
            return 0.0
        return self.on_time / self.evaluated_tickets * 100


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class: all deadline and adherence logic in one place.
    """

    @staticmethod
    def compute_deadlines(
        policy: RoutingPolicy,
        category: Optional[Union[TicketCategory, str]],
        priority: TicketPriority,
        now: datetime,
    ) -> SLADeadline:
        """
        Calculate both deadlines for a new ticket.

        Args:
            policy: Current routing policy (duration table and multiplier)
            category: Category enum or name; None or unknown uses GENERAL
            priority: Ticket priority
            now: Creation time

        Raises:
            ValidationException: If neither the category nor GENERAL has hours
        """
        key = category.value if isinstance(category, TicketCategory) else category
        hours = policy.resolution_hours_for(key, priority)
        if hours is None:
            raise ValidationException(
                "No resolution hours for category and no GENERAL fallback",
                details={"category": key, "priority": priority.value},
            )
        return SLADeadline(
            estimated_resolution=now + timedelta(hours=hours),
            breach_time=now + timedelta(hours=hours * policy.breach_multiplier),
            resolution_hours=hours,
        )

    @staticmethod
    def is_within_sla(ticket: Ticket) -> Optional[bool]:
        """
        Whether the ticket was resolved by its estimated resolution time.

        Returns None while the rule does not apply yet (unresolved, or no
        deadline recorded).
        """
        if ticket.resolved_at is None or ticket.estimated_resolution_time is None:
            return None
        return ticket.resolved_at <= ticket.estimated_resolution_time

    @staticmethod
    def compliance_report(tickets: Iterable[Ticket]) -> SLAComplianceReport:
        total = 0
        on_time = 0
        late = 0
        breached = 0
        resolution_hours = []

        for ticket in tickets:
            total += 1
            within = SLACalculator.is_within_sla(ticket)
            if within is None:
                continue
            if within:
                on_time += 1
            else:
                late += 1
            if ticket.sla_breach_time is not None and ticket.resolved_at > ticket.sla_breach_time:
                breached += 1
            resolution_hours.append(
                (ticket.resolved_at - ticket.created_at).total_seconds() / 3600
            )

        average = sum(resolution_hours) / len(resolution_hours) if resolution_hours else None
        return SLAComplianceReport(
            total_tickets=total,
            evaluated_tickets=on_time + late,
            on_time=on_time,
            late=late,
            breached=breached,
            average_resolution_hours=average,
        )
