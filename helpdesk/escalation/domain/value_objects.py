"""
Escalation Value Objects
========================

The escalation hierarchy and the stateless rules evaluated against it.
"""

from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from helpdesk.config import StaffVertical, TicketPriority
from helpdesk.config.policy import EscalationLevelConfig, RoutingPolicy
from helpdesk.sla.domain import Ticket


class EscalationHierarchy:
    """
    Strict total order of escalation levels, built from the policy.

    Levels are addressed by rank (1 = lowest).
    """

    def __init__(self, levels: Sequence[EscalationLevelConfig]):
        self._levels: List[EscalationLevelConfig] = sorted(levels, key=lambda l: l.rank)
        self._by_rank: Dict[int, EscalationLevelConfig] = {l.rank: l for l in self._levels}
        self._by_holder: Dict[StaffVertical, EscalationLevelConfig] = {}
        for level in self._levels:
            for vertical in level.holders:
                self._by_holder[vertical] = level

    @classmethod
    def from_policy(cls, policy: RoutingPolicy) -> "EscalationHierarchy":
        return cls(policy.escalation_levels)

    @property
    def levels(self) -> List[EscalationLevelConfig]:
        return list(self._levels)

    @property
    def lowest(self) -> EscalationLevelConfig:
        return self._levels[0]

    @property
    def highest(self) -> EscalationLevelConfig:
        return self._levels[-1]

    def get(self, rank: int) -> EscalationLevelConfig:
        """Level at ``rank``, clamped into the hierarchy."""
        if rank in self._by_rank:
            return self._by_rank[rank]
        return self.highest if rank > self.highest.rank else self.lowest

    def next_after(self, rank: int) -> Optional[EscalationLevelConfig]:
        """The level directly above, or None at the top."""
        if rank >= self.highest.rank:
            return None
        return self._by_rank.get(rank + 1)

    def threshold_hours(self, rank: int, priority: TicketPriority) -> float:
        return self.get(rank).thresholds[priority]

    def infer_for_vertical(self, vertical: Optional[StaffVertical]) -> Optional[EscalationLevelConfig]:
        """Level whose holders include the vertical, if any."""
        if vertical is None:
            return None
        return self._by_holder.get(vertical)

    def is_critical(self, rank: int) -> bool:
        return self.get(rank).critical


class EscalationRules:
    """
    Pure checks behind each escalation reason.

    A missing timestamp makes the corresponding rule not applicable.
    """

    @staticmethod
    def threshold_exceeded(
        level: EscalationLevelConfig,
        priority: TicketPriority,
        level_started_at: Optional[datetime],
        now: datetime,
    ) -> bool:
        if level_started_at is None:
            return False
        return now - level_started_at > timedelta(hours=level.thresholds[priority])

    @staticmethod
    def sla_breached(ticket: Ticket, now: datetime) -> bool:
        if ticket.sla_breach_time is None:
            return False
        return now > ticket.sla_breach_time

    @staticmethod
    def below_priority_minimum(
        ticket: Ticket,
        level: EscalationLevelConfig,
        policy: RoutingPolicy,
    ) -> bool:
        minimum = policy.priority_minimum_levels.get(ticket.priority)
        return minimum is not None and level.rank < minimum
