"""
Routing Policy
==============

Single authoritative table of every routing, SLA and escalation constant.

The policy is an immutable pydantic model. It is loaded once from YAML (see
``helpdesk.shared.infrastructure.policy_loader``) and injected into services
through an ``IPolicyProvider``; a reload replaces the whole snapshot.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from helpdesk.config import (
    GENERAL_CATEGORY,
    RoleTier,
    StaffVertical,
    TicketPriority,
)


class WorkloadWeights(BaseModel):
    """Weights of the workload score. Lower score = more available."""

    model_config = ConfigDict(frozen=True)

    active_tickets: float = Field(default=0.4, ge=0)
    remaining_hours: float = Field(default=0.3, ge=0)
    utilization: float = Field(default=0.2, ge=0)
    performance: float = Field(default=0.1, ge=0)
    preference_penalty: float = Field(
        default=0.1,
        ge=0,
        description="Score multiplier step per preference level below the first"
    )


class EscalationLevelConfig(BaseModel):
    """One rung of the escalation hierarchy."""

    model_config = ConfigDict(frozen=True)

    rank: int = Field(ge=1, description="Position in the hierarchy (1 = lowest)")
    name: str = Field(min_length=1)
    display_name: str = Field(min_length=1)
    thresholds: Dict[TicketPriority, float] = Field(
        description="Hours at this level before promotion is due, by priority"
    )
    holders: List[StaffVertical] = Field(
        default_factory=list,
        description="Verticals whose assignees are considered to sit at this level"
    )
    targets: List[StaffVertical] = Field(
        default_factory=list,
        description="Verticals eligible to receive work escalated to this level"
    )
    critical: bool = False

    @field_validator("thresholds")
    @classmethod
    def validate_thresholds(cls, v: Dict[TicketPriority, float]) -> Dict[TicketPriority, float]:
        """Every priority needs a positive threshold."""
        missing = [p.value for p in TicketPriority if p not in v]
        if missing:
            raise ValueError(f"thresholds missing for priorities: {missing}")
        if any(hours <= 0 for hours in v.values()):
            raise ValueError("thresholds must be positive")
        return v


def _level(
    rank: int,
    name: str,
    display_name: str,
    base_hours: int,
    holders: List[StaffVertical],
    targets: List[StaffVertical],
    critical: bool = False,
) -> EscalationLevelConfig:
    """
    Build a level whose thresholds scale with priority from ``base_hours``:
    emergency max(1, base/4), high max(2, base/2), medium base, low 2 * base.
    """
    return EscalationLevelConfig(
        rank=rank,
        name=name,
        display_name=display_name,
        thresholds={
            TicketPriority.EMERGENCY: max(1, base_hours // 4),
            TicketPriority.HIGH: max(2, base_hours // 2),
            TicketPriority.MEDIUM: base_hours,
            TicketPriority.LOW: base_hours * 2,
        },
        holders=holders,
        targets=targets,
        critical=critical,
    )


DEFAULT_ESCALATION_LEVELS = [
    _level(
        1, "STAFF_MEMBER", "Staff Member", 4,
        holders=[],
        targets=[
            StaffVertical.ELECTRICAL, StaffVertical.PLUMBING, StaffVertical.HVAC,
            StaffVertical.IT_SUPPORT, StaffVertical.GENERAL_MAINTENANCE,
            StaffVertical.HOUSEKEEPING,
        ],
    ),
    _level(
        2, "TEAM_LEAD", "Team Lead/Supervisor", 8,
        holders=[StaffVertical.BLOCK_SUPERVISOR, StaffVertical.MAINTENANCE_SUPERVISOR],
        targets=[StaffVertical.BLOCK_SUPERVISOR, StaffVertical.MAINTENANCE_SUPERVISOR],
    ),
    _level(
        3, "DEPARTMENT_HEAD", "Department Head/Warden", 12,
        holders=[StaffVertical.HOSTEL_WARDEN, StaffVertical.ASSISTANT_WARDEN],
        targets=[StaffVertical.HOSTEL_WARDEN, StaffVertical.ASSISTANT_WARDEN],
    ),
    _level(
        4, "HOSTEL_ADMINISTRATION", "Hostel Administration", 24,
        holders=[StaffVertical.CHIEF_WARDEN, StaffVertical.ADMIN_OFFICER],
        targets=[StaffVertical.HOSTEL_WARDEN, StaffVertical.CHIEF_WARDEN],
        critical=True,
    ),
    _level(
        5, "INSTITUTE_ADMINISTRATION", "Institute Administration", 48,
        holders=[],
        targets=[StaffVertical.CHIEF_WARDEN, StaffVertical.ADMIN_OFFICER],
        critical=True,
    ),
]

DEFAULT_RESOLUTION_HOURS: Dict[str, Dict[TicketPriority, float]] = {
    "ELECTRICAL_ISSUES": {
        TicketPriority.EMERGENCY: 4, TicketPriority.HIGH: 8,
        TicketPriority.MEDIUM: 36, TicketPriority.LOW: 48,
    },
    "PLUMBING_WATER": {
        TicketPriority.EMERGENCY: 3, TicketPriority.HIGH: 6,
        TicketPriority.MEDIUM: 36, TicketPriority.LOW: 48,
    },
    "HVAC": {
        TicketPriority.EMERGENCY: 6, TicketPriority.HIGH: 12,
        TicketPriority.MEDIUM: 48, TicketPriority.LOW: 96,
    },
    "NETWORK_INTERNET": {
        TicketPriority.EMERGENCY: 2, TicketPriority.HIGH: 4,
        TicketPriority.MEDIUM: 8, TicketPriority.LOW: 12,
    },
    "SAFETY_SECURITY": {
        TicketPriority.EMERGENCY: 1, TicketPriority.HIGH: 2,
        TicketPriority.MEDIUM: 4, TicketPriority.LOW: 6,
    },
    GENERAL_CATEGORY: {
        TicketPriority.EMERGENCY: 4, TicketPriority.HIGH: 8,
        TicketPriority.MEDIUM: 24, TicketPriority.LOW: 48,
    },
}

DEFAULT_VERTICAL_TIERS: Dict[StaffVertical, RoleTier] = {
    StaffVertical.HOSTEL_WARDEN: RoleTier.SUPERVISOR,
    StaffVertical.ASSISTANT_WARDEN: RoleTier.SUPERVISOR,
    StaffVertical.CHIEF_WARDEN: RoleTier.SUPERVISOR,
    StaffVertical.BLOCK_SUPERVISOR: RoleTier.SUPERVISOR,
    StaffVertical.MAINTENANCE_SUPERVISOR: RoleTier.SUPERVISOR,
    StaffVertical.ADMIN_OFFICER: RoleTier.SUPERVISOR,
    StaffVertical.ELECTRICAL: RoleTier.SKILLED_TRADE,
    StaffVertical.PLUMBING: RoleTier.SKILLED_TRADE,
    StaffVertical.HVAC: RoleTier.SKILLED_TRADE,
    StaffVertical.IT_SUPPORT: RoleTier.SKILLED_TRADE,
    StaffVertical.NETWORK_ADMIN: RoleTier.SKILLED_TRADE,
    StaffVertical.CARPENTRY: RoleTier.SKILLED_TRADE,
    StaffVertical.SECURITY_SYSTEMS: RoleTier.SKILLED_TRADE,
}


class RoutingPolicy(BaseModel):
    """
    Routing, SLA and escalation policy.

    This is a value object - immutable and defined by its attributes.
    """

    model_config = ConfigDict(frozen=True)

    # ---- Assignment ----
    workload_weights: WorkloadWeights = Field(default_factory=WorkloadWeights)
    capacity_ceilings: Dict[RoleTier, int] = Field(
        default_factory=lambda: {
            RoleTier.SUPERVISOR: 12,
            RoleTier.SKILLED_TRADE: 8,
            RoleTier.GENERAL: 5,
        },
        description="Maximum concurrently active tickets per role tier"
    )
    vertical_tiers: Dict[StaffVertical, RoleTier] = Field(
        default_factory=lambda: dict(DEFAULT_VERTICAL_TIERS),
        description="Role tier of each vertical; unlisted verticals are GENERAL"
    )
    default_performance_factor: float = Field(default=0.5, ge=0)

    # ---- SLA ----
    resolution_hours: Dict[str, Dict[TicketPriority, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_RESOLUTION_HOURS.items()},
        description="Expected resolution hours by category and priority"
    )
    breach_multiplier: float = Field(default=1.2, gt=1.0)
    verification_window_hours: float = Field(default=24, gt=0)

    # ---- Escalation ----
    escalation_levels: List[EscalationLevelConfig] = Field(
        default_factory=lambda: list(DEFAULT_ESCALATION_LEVELS)
    )
    priority_minimum_levels: Dict[TicketPriority, int] = Field(
        default_factory=lambda: {TicketPriority.EMERGENCY: 3, TicketPriority.HIGH: 2},
        description="Lowest escalation rank a ticket of this priority may sit at"
    )
    escalation_dedupe_window_hours: float = Field(default=24, gt=0)
    critical_priority_floor: TicketPriority = TicketPriority.HIGH

    @field_validator("capacity_ceilings")
    @classmethod
    def validate_capacity_ceilings(cls, v: Dict[RoleTier, int]) -> Dict[RoleTier, int]:
        """Every tier needs a positive ceiling."""
        missing = [t.value for t in RoleTier if t not in v]
        if missing:
            raise ValueError(f"capacity ceilings missing for tiers: {missing}")
        if any(ceiling < 1 for ceiling in v.values()):
            raise ValueError("capacity ceilings must be at least 1")
        return v

    @field_validator("resolution_hours")
    @classmethod
    def validate_resolution_hours(
        cls, v: Dict[str, Dict[TicketPriority, float]]
    ) -> Dict[str, Dict[TicketPriority, float]]:
        """Hours must be positive and the GENERAL row must cover every priority."""
        general = v.get(GENERAL_CATEGORY)
        if general is None:
            raise ValueError(f"resolution hours need a {GENERAL_CATEGORY} row")
        missing = [p.value for p in TicketPriority if p not in general]
        if missing:
            raise ValueError(f"{GENERAL_CATEGORY} resolution hours missing for priorities: {missing}")
        for category, row in v.items():
            if any(hours <= 0 for hours in row.values()):
                raise ValueError(f"resolution hours for {category} must be positive")
        return v

    @model_validator(mode="after")
    def validate_escalation_levels(self) -> "RoutingPolicy":
        """Levels must form a contiguous strict order starting at rank 1."""
        ranks = sorted(level.rank for level in self.escalation_levels)
        if not ranks:
            raise ValueError("at least one escalation level is required")
        if ranks != list(range(1, len(ranks) + 1)):
            raise ValueError(f"escalation ranks must be 1..n without gaps, got {ranks}")
        return self

    def tier_for(self, vertical: Optional[StaffVertical]) -> RoleTier:
        """Resolve the role tier of a vertical."""
        if vertical is None:
            return RoleTier.GENERAL
        return self.vertical_tiers.get(vertical, RoleTier.GENERAL)

    def capacity_for(self, tier: RoleTier) -> int:
        """Capacity ceiling of a role tier."""
        return self.capacity_ceilings[tier]

    def resolution_hours_for(
        self,
        category: Optional[str],
        priority: TicketPriority
    ) -> Optional[float]:
        """
        Look up expected resolution hours.

        Unmapped and free-text categories use the GENERAL row. Returns None
        when neither the category nor GENERAL has an entry for the priority.
        """
        row = self.resolution_hours.get(category) if category else None
        if row is None or priority not in row:
            row = self.resolution_hours.get(GENERAL_CATEGORY, {})
        return row.get(priority)


class IPolicyProvider(ABC):
    """Interface for routing policy access."""

    @abstractmethod
    def get_policy(self) -> RoutingPolicy:
        """Get the current policy snapshot."""


class StaticPolicyProvider(IPolicyProvider):
    """Serves one fixed policy snapshot."""

    def __init__(self, policy: Optional[RoutingPolicy] = None):
        self._policy = policy or RoutingPolicy()

    def get_policy(self) -> RoutingPolicy:
        return self._policy
