"""
Routing Value Objects
=====================

Stateless scoring rules for the assignment engine.
"""

from datetime import datetime
from typing import Iterable, Optional

from helpdesk.config.policy import WorkloadWeights
from helpdesk.routing.domain.entities import CandidateScore, WorkloadSnapshot


class WorkloadScorer:
    """
    Pure functions for workload scoring.

    score = (active*w_a + hours*w_h + utilization*w_u + performance*w_p)
            / capacity_weight
            * (1 + penalty * (priority_level - 1))
    """

    @staticmethod
    def score(
        workload: WorkloadSnapshot,
        weights: WorkloadWeights,
        capacity_weight: float = 1.0,
        priority_level: int = 1,
    ) -> float:
        base = (
            workload.active_count * weights.active_tickets
            + workload.estimated_remaining_hours * weights.remaining_hours
            + workload.utilization * weights.utilization
            + workload.performance_factor * weights.performance
        )
        score = base / capacity_weight
        return score * (1.0 + weights.preference_penalty * (priority_level - 1))

    @staticmethod
    def best(candidates: Iterable[CandidateScore]) -> Optional[CandidateScore]:
        """Lowest-ranked eligible candidate, or None."""
        eligible = [c for c in candidates if not c.excluded]
        if not eligible:
            return None
        return min(eligible, key=lambda c: c.rank_key)

    @staticmethod
    def remaining_hours(
        deadline: Optional[datetime],
        now: datetime,
        fallback_hours: float,
    ) -> float:
        """Hours left until a ticket's estimated resolution, or its table estimate."""
        if deadline is not None and deadline > now:
            return (deadline - now).total_seconds() / 3600
        return fallback_hours
