"""
Routing Application Services
============================

Application services orchestrate staff lookup, workload measurement and the
assignment decision.

Following SOLID principles:
- Single Responsibility: registry, tracker and engine are separate services
- Dependency Inversion: depend on repository interfaces, not SQLAlchemy
"""

import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional, Sequence, Tuple
from uuid import UUID, uuid4

from helpdesk.config import (
    ACTIVE_WORK_STATUSES,
    GENERAL_CATEGORY,
    AssignmentStrategy,
    StaffVertical,
    TicketStatus,
    UserRole,
)
from helpdesk.config.policy import IPolicyProvider, RoutingPolicy
from helpdesk.core import Clock, ResourceNotFoundException, SystemClock, ValidationException
from helpdesk.routing.domain import (
    AssignmentDecision,
    CandidateScore,
    RoutableTicket,
    StaffMapping,
    StaffMember,
    StaffProfile,
    WorkItem,
    WorkloadScorer,
    WorkloadSnapshot,
    WorkloadStats,
)
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.shared.infrastructure.metrics import MetricsRegistry

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IStaffRepository(ABC):
    """Interface for staff data access."""

    @abstractmethod
    async def get_by_id(self, staff_id: UUID) -> Optional[StaffMember]:
        """Get a staff member (or admin) by ID."""

    @abstractmethod
    async def list_active(
        self,
        role: Optional[UserRole] = None,
        verticals: Optional[Sequence[StaffVertical]] = None,
    ) -> List[StaffMember]:
        """List active members, optionally filtered by role and vertical."""

    @abstractmethod
    async def list_admins(self) -> List[StaffMember]:
        """List active administrators."""


class IMappingRepository(ABC):
    """Interface for staff mapping data access."""

    @abstractmethod
    async def mappings_for(
        self,
        hostel_block: Optional[str],
        category: str,
    ) -> List[StaffMapping]:
        """
        Active mappings for an exact (block, category) pair.

        ``hostel_block=None`` selects the category-wide mappings. Results are
        ordered by priority level, then staff id.
        """

    @abstractmethod
    async def get_by_id(self, mapping_id: UUID) -> Optional[StaffMapping]:
        """Get a mapping by ID."""

    @abstractmethod
    async def find(
        self,
        staff_id: UUID,
        hostel_block: Optional[str],
        category: str,
    ) -> Optional[StaffMapping]:
        """Get the mapping on its unique key, active or not."""

    @abstractmethod
    async def list_for_staff(self, staff_id: UUID) -> List[StaffMapping]:
        """All mappings of a staff member."""

    @abstractmethod
    async def save(self, mapping: StaffMapping) -> StaffMapping:
        """Insert or update a mapping."""


class IWorkloadRepository(ABC):
    """Interface for the ticket queries workload measurement needs."""

    @abstractmethod
    async def list_active_for_staff(self, staff_id: UUID) -> List[WorkItem]:
        """Tickets assigned to the staff member in an active-work status."""

    @abstractmethod
    async def count_active_for_staff(self, staff_id: UUID) -> int:
        """Number of tickets assigned to the staff member in an active-work status."""

    @abstractmethod
    async def list_for_staff(self, staff_id: UUID) -> List[WorkItem]:
        """Every ticket ever assigned to the staff member."""


# ========== Application Services ==========

class MappingRegistry:
    """
    Service for (location, category) -> staff lookups.

    Each staff member is resolved once per lookup into a StaffProfile carrying
    the role tier and capacity ceiling from the current policy.
    """

    def __init__(
        self,
        staff_repository: IStaffRepository,
        mapping_repository: IMappingRepository,
        policy_provider: IPolicyProvider,
    ):
        self._staff_repo = staff_repository
        self._mapping_repo = mapping_repository
        self._policy_provider = policy_provider

    @staticmethod
    def resolve_profile(staff: StaffMember, policy: RoutingPolicy) -> StaffProfile:
        tier = policy.tier_for(staff.vertical)
        return StaffProfile(
            staff=staff,
            role_tier=tier,
            capacity_ceiling=policy.capacity_for(tier),
        )

    async def profile_for(self, staff_id: UUID) -> StaffProfile:
        """
        Resolve one staff member into a profile.

        Raises:
            ResourceNotFoundException: If no such staff member exists
        """
        staff = await self._staff_repo.get_by_id(staff_id)
        if staff is None:
            raise ResourceNotFoundException("Staff", str(staff_id))
        return self.resolve_profile(staff, self._policy_provider.get_policy())

    async def candidate_mappings(
        self,
        hostel_block: Optional[str],
        category: str,
    ) -> Tuple[AssignmentStrategy, List[Tuple[StaffMapping, StaffProfile]]]:
        """
        Candidate mappings with the widening fallback chain.

        Exact (block, category) first, then category-wide, then GENERAL
        category-wide. A tier whose mappings leave no active STAFF-role member
        falls through to the next one.

        Returns:
            (strategy, [(mapping, profile), ...]); strategy is NONE when every
            tier is empty
        """
        policy = self._policy_provider.get_policy()
        tiers: List[Tuple[AssignmentStrategy, Optional[str], str]] = []
        if hostel_block:
            tiers.append((AssignmentStrategy.EXACT_LOCATION, hostel_block, category))
        tiers.append((AssignmentStrategy.CATEGORY_WIDE, None, category))
        if category != GENERAL_CATEGORY:
            tiers.append((AssignmentStrategy.GENERAL_FALLBACK, None, GENERAL_CATEGORY))

        for strategy, block, tier_category in tiers:
            mappings = await self._mapping_repo.mappings_for(block, tier_category)
            candidates = []
            seen = set()
            for mapping in mappings:
                if not mapping.is_active or mapping.staff_id in seen:
                    continue
                staff = await self._staff_repo.get_by_id(mapping.staff_id)
                if staff is None or not staff.is_assignable:
                    continue
                seen.add(mapping.staff_id)
                candidates.append((mapping, self.resolve_profile(staff, policy)))
            if candidates:
                return strategy, candidates

        return AssignmentStrategy.NONE, []

    async def register_mapping(
        self,
        staff_id: UUID,
        category: str,
        hostel_block: Optional[str] = None,
        priority_level: int = 1,
        capacity_weight: float = 1.0,
        expertise_level: int = 1,
    ) -> StaffMapping:
        """
        Create or update the mapping on (staff, block, category).

        Raises:
            ResourceNotFoundException: If the staff member does not exist
            ValidationException: If the mapping values are out of range
        """
        staff = await self._staff_repo.get_by_id(staff_id)
        if staff is None:
            raise ResourceNotFoundException("Staff", str(staff_id))
        if staff.role != UserRole.STAFF:
            raise ValidationException(
                "Only STAFF-role members can be mapped",
                details={"staff_id": str(staff_id), "role": staff.role.value},
            )

        existing = await self._mapping_repo.find(staff_id, hostel_block, category)
        try:
            mapping = StaffMapping(
                staff_id=staff_id,
                category=category,
                hostel_block=hostel_block,
                priority_level=priority_level,
                capacity_weight=capacity_weight,
                expertise_level=expertise_level,
                is_active=True,
                id=existing.id if existing else uuid4(),
            )
        except ValueError as e:
            raise ValidationException(str(e), details={"staff_id": str(staff_id)}) from e

        saved = await self._mapping_repo.save(mapping)
        logger.info(
            "Staff mapping registered",
            extra={
                "staff_id": str(staff_id),
                "hostel_block": hostel_block,
                "category": category,
                "priority_level": priority_level,
                "updated": existing is not None,
            },
        )
        return saved

    async def deactivate_mapping(self, mapping_id: UUID) -> StaffMapping:
        mapping = await self._mapping_repo.get_by_id(mapping_id)
        if mapping is None:
            raise ResourceNotFoundException("StaffMapping", str(mapping_id))
        mapping.is_active = False
        return await self._mapping_repo.save(mapping)

    async def mappings_for_staff(self, staff_id: UUID) -> List[StaffMapping]:
        return await self._mapping_repo.list_for_staff(staff_id)


class WorkloadTracker:
    """
    Service for per-staff workload measurement.

    Every snapshot is recomputed from the repository; nothing is cached
    between decisions.
    """

    def __init__(
        self,
        workload_repository: IWorkloadRepository,
        policy_provider: IPolicyProvider,
        clock: Optional[Clock] = None,
    ):
        self._workload_repo = workload_repository
        self._policy_provider = policy_provider
        self._clock = clock or SystemClock()

    async def snapshot(
        self,
        profile: StaffProfile,
        now: Optional[datetime] = None,
    ) -> WorkloadSnapshot:
        now = now or self._clock.now()
        policy = self._policy_provider.get_policy()
        items = await self._workload_repo.list_active_for_staff(profile.staff_id)

        remaining = 0.0
        for item in items:
            category = item.category.value if item.category else None
            table_hours = policy.resolution_hours_for(category, item.priority) or 0.0
            remaining += WorkloadScorer.remaining_hours(
                item.estimated_resolution_time, now, table_hours
            )

        active = len(items)
        performance = profile.staff.performance_factor
        if performance is None:
            performance = policy.default_performance_factor

        return WorkloadSnapshot(
            staff_id=profile.staff_id,
            active_count=active,
            estimated_remaining_hours=remaining,
            utilization=active / profile.capacity_ceiling,
            performance_factor=performance,
            capacity_ceiling=profile.capacity_ceiling,
        )

    async def is_at_capacity(self, profile: StaffProfile) -> bool:
        active = await self._workload_repo.count_active_for_staff(profile.staff_id)
        return active >= profile.capacity_ceiling

    async def is_overloaded(self, profile: StaffProfile) -> bool:
        active = await self._workload_repo.count_active_for_staff(profile.staff_id)
        return active > profile.capacity_ceiling

    async def workload_stats(
        self,
        staff_id: UUID,
        now: Optional[datetime] = None,
    ) -> WorkloadStats:
        """Totals over every ticket the staff member has held."""
        now = now or self._clock.now()
        items = await self._workload_repo.list_for_staff(staff_id)

        active = [i for i in items if i.status in ACTIVE_WORK_STATUSES]
        completed = [
            i for i in items
            if i.status in (TicketStatus.RESOLVED, TicketStatus.CLOSED)
        ]
        overdue = [
            i for i in active
            if i.estimated_resolution_time is not None
            and i.estimated_resolution_time < now
        ]
        return WorkloadStats(
            total_tickets=len(items),
            active_tickets=len(active),
            completed_tickets=len(completed),
            overdue_tickets=len(overdue),
        )


class AssignmentService:
    """
    Assignment engine.

    Chooses a staff member for a ticket from the mapping registry and the
    workload tracker. Deciding is read-only; persisting the choice is the
    caller's job, inside ``capacity_guard()``.
    """

    def __init__(
        self,
        registry: MappingRegistry,
        tracker: WorkloadTracker,
        staff_repository: IStaffRepository,
        workload_repository: IWorkloadRepository,
        policy_provider: IPolicyProvider,
        clock: Optional[Clock] = None,
        metrics: Optional[MetricsRegistry] = None,
        guard: Optional[asyncio.Lock] = None,
    ):
        self._registry = registry
        self._tracker = tracker
        self._staff_repo = staff_repository
        self._workload_repo = workload_repository
        self._policy_provider = policy_provider
        self._clock = clock or SystemClock()
        self._metrics = metrics
        # Shared across service instances by the application so that every
        # decide-and-persist sequence in the process is serialized.
        self._guard = guard or asyncio.Lock()

    @asynccontextmanager
    async def capacity_guard(self) -> AsyncIterator[None]:
        """Hold while deciding and persisting an assignment."""
        async with self._guard:
            yield

    async def decide(
        self,
        ticket: RoutableTicket,
        now: Optional[datetime] = None,
    ) -> AssignmentDecision:
        """
        Decide who should receive a ticket.

        Args:
            ticket: Ticket being routed
            now: Decision time (defaults to the clock)

        Returns:
            AssignmentDecision; strategy NONE when nobody qualifies
        """
        now = now or self._clock.now()

        if ticket.custom_category or ticket.category is None:
            return AssignmentDecision(
                strategy=AssignmentStrategy.NONE,
                reason="free-text category requires manual assignment",
            )

        policy = self._policy_provider.get_policy()
        emergency = ticket.priority.is_emergency
        strategy, pairs = await self._registry.candidate_mappings(
            ticket.hostel_block, ticket.category.value
        )

        candidates = []
        for mapping, profile in pairs:
            workload = await self._tracker.snapshot(profile, now)
            candidates.append(
                CandidateScore(
                    staff_id=profile.staff_id,
                    score=WorkloadScorer.score(
                        workload,
                        policy.workload_weights,
                        capacity_weight=mapping.capacity_weight,
                        priority_level=mapping.priority_level,
                    ),
                    workload=workload,
                    priority_level=mapping.priority_level,
                    capacity_weight=mapping.capacity_weight,
                    excluded=workload.at_capacity and not emergency,
                )
            )

        best = WorkloadScorer.best(candidates)
        if best is not None:
            return AssignmentDecision(
                strategy=strategy,
                staff_id=best.staff_id,
                score=best.score,
                candidates=tuple(candidates),
                reason=f"lowest workload score via {strategy.value}",
            )

        if emergency:
            fallback = await self.least_loaded_staff()
            if fallback is not None:
                return AssignmentDecision(
                    strategy=AssignmentStrategy.EMERGENCY_OVERRIDE,
                    staff_id=fallback.id,
                    candidates=tuple(candidates),
                    reason="emergency fallback to least-loaded staff member",
                )

        reason = "all candidates at capacity" if candidates else "no mapped staff"
        return AssignmentDecision(
            strategy=AssignmentStrategy.NONE,
            candidates=tuple(candidates),
            reason=reason,
        )

    async def assign(
        self,
        ticket: RoutableTicket,
        now: Optional[datetime] = None,
    ) -> Optional[UUID]:
        """Decide and return the chosen staff id, or None."""
        decision = await self.decide(ticket, now)

        if self._metrics is not None:
            self._metrics.increment("assignments_total", strategy=decision.strategy.value)

        logger.info(
            "Assignment decided",
            extra={
                "ticket_id": str(ticket.id),
                "strategy": decision.strategy.value,
                "staff_id": str(decision.staff_id) if decision.staff_id else None,
                "score": decision.score,
                "candidates": len(decision.candidates),
                "reason": decision.reason,
            },
        )
        return decision.staff_id

    async def least_loaded_staff(self) -> Optional[StaffMember]:
        """Active STAFF-role member with the fewest active tickets (ties by id)."""
        staff_members = await self._staff_repo.list_active(role=UserRole.STAFF)
        best: Optional[Tuple[int, str, StaffMember]] = None
        for staff in staff_members:
            count = await self._workload_repo.count_active_for_staff(staff.id)
            key = (count, str(staff.id), staff)
            if best is None or key[:2] < best[:2]:
                best = key
        return best[2] if best else None

    async def rank_by_workload(
        self,
        staff_members: Sequence[StaffMember],
        now: Optional[datetime] = None,
    ) -> List[CandidateScore]:
        """
        Score staff members outside of any mapping.

        Used for escalation targets: no capacity filter and neutral mapping
        weights. Sorted best first.
        """
        now = now or self._clock.now()
        policy = self._policy_provider.get_policy()
        ranked = []
        for staff in staff_members:
            profile = MappingRegistry.resolve_profile(staff, policy)
            workload = await self._tracker.snapshot(profile, now)
            ranked.append(
                CandidateScore(
                    staff_id=staff.id,
                    score=WorkloadScorer.score(workload, policy.workload_weights),
                    workload=workload,
                )
            )
        ranked.sort(key=lambda c: c.rank_key)
        return ranked
