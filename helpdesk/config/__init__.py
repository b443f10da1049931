"""
Configuration Module
====================

Application settings and configuration management using Pydantic.

Runtime settings (database, scheduler intervals, integrations) come from the
environment. Routing policy constants live in ``helpdesk.config.policy``.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="hostel-helpdesk", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Routing Policy ==========
    routing_policy_path: Path = Field(
        default=Path("routing_policy.yaml"),
        description="Path to routing policy YAML file"
    )
    watch_policy_file: bool = Field(
        default=True,
        description="Reload the routing policy when the file changes"
    )

    # ========== Background jobs ==========
    escalation_sweep_interval_minutes: int = Field(
        default=30,
        description="Minutes between escalation sweeps (0 disables the scheduler)",
        ge=0
    )
    auto_close_interval_minutes: int = Field(
        default=60,
        description="Minutes between auto-close runs for resolved tickets",
        ge=1
    )

    # ========== Notifications ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for escalation notifications"
    )
    slack_channel: str = Field(
        default="#hostel-helpdesk",
        description="Slack channel for escalation notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )
    notification_max_retries: int = Field(
        default=3,
        description="Delivery attempts per notification channel",
        ge=1,
        le=10
    )
    notification_retry_base_seconds: float = Field(
        default=1.0,
        description="First retry delay; doubles on every further attempt",
        ge=0
    )

    # ========== Grafana OTLP Metrics ==========
    grafana_host: Optional[str] = Field(
        default=None,
        description="Grafana OTLP gateway URL (e.g., https://otlp-gateway-prod-ap-south-1.grafana.net)"
    )
    grafana_api_key: Optional[str] = Field(
        default=None,
        description="Grafana API key for OTLP authentication"
    )
    grafana_instance_id: Optional[str] = Field(
        default=None,
        description="Grafana instance ID for OTLP authentication"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production", "test"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and check the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {v}")
        return level


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    ON_HOLD = "ON_HOLD"
    RESOLVED = "RESOLVED"
    CLOSED = "CLOSED"
    CANCELLED = "CANCELLED"
    REOPENED = "REOPENED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


class TicketPriority(str, Enum):
    """Ticket priority levels, ordered by ``rank``."""
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANKS[self]

    @property
    def is_emergency(self) -> bool:
        return self is TicketPriority.EMERGENCY


_PRIORITY_RANKS = {
    TicketPriority.LOW: 1,
    TicketPriority.MEDIUM: 2,
    TicketPriority.HIGH: 3,
    TicketPriority.EMERGENCY: 4,
}


class TicketCategory(str, Enum):
    """Enumerated maintenance categories. GENERAL is the reserved fallback."""
    ELECTRICAL_ISSUES = "ELECTRICAL_ISSUES"
    PLUMBING_WATER = "PLUMBING_WATER"
    HVAC = "HVAC"
    STRUCTURAL_CIVIL = "STRUCTURAL_CIVIL"
    FURNITURE_FIXTURES = "FURNITURE_FIXTURES"
    NETWORK_INTERNET = "NETWORK_INTERNET"
    COMPUTER_HARDWARE = "COMPUTER_HARDWARE"
    AUDIO_VISUAL_EQUIPMENT = "AUDIO_VISUAL_EQUIPMENT"
    SECURITY_SYSTEMS = "SECURITY_SYSTEMS"
    HOUSEKEEPING_CLEANLINESS = "HOUSEKEEPING_CLEANLINESS"
    SAFETY_SECURITY = "SAFETY_SECURITY"
    LANDSCAPING_OUTDOOR = "LANDSCAPING_OUTDOOR"
    GENERAL = "GENERAL"


class UserRole(str, Enum):
    """System roles."""
    STUDENT = "STUDENT"
    STAFF = "STAFF"
    ADMIN = "ADMIN"


class StaffVertical(str, Enum):
    """Trade or organisational vertical a staff member belongs to."""
    ELECTRICAL = "ELECTRICAL"
    PLUMBING = "PLUMBING"
    HVAC = "HVAC"
    CARPENTRY = "CARPENTRY"
    IT_SUPPORT = "IT_SUPPORT"
    NETWORK_ADMIN = "NETWORK_ADMIN"
    SECURITY_SYSTEMS = "SECURITY_SYSTEMS"
    HOUSEKEEPING = "HOUSEKEEPING"
    LANDSCAPING = "LANDSCAPING"
    GENERAL_MAINTENANCE = "GENERAL_MAINTENANCE"
    SECURITY_OFFICER = "SECURITY_OFFICER"
    BLOCK_SUPERVISOR = "BLOCK_SUPERVISOR"
    MAINTENANCE_SUPERVISOR = "MAINTENANCE_SUPERVISOR"
    HOSTEL_WARDEN = "HOSTEL_WARDEN"
    ASSISTANT_WARDEN = "ASSISTANT_WARDEN"
    CHIEF_WARDEN = "CHIEF_WARDEN"
    ADMIN_OFFICER = "ADMIN_OFFICER"
    ADMIN_STAFF = "ADMIN_STAFF"


class RoleTier(str, Enum):
    """Capacity tiers; each vertical resolves to exactly one."""
    SUPERVISOR = "SUPERVISOR"
    SKILLED_TRADE = "SKILLED_TRADE"
    GENERAL = "GENERAL"


class EscalationReason(str, Enum):
    """Why a ticket was (or would be) escalated, in precedence order."""
    TIME_THRESHOLD_EXCEEDED = "TIME_THRESHOLD_EXCEEDED"
    SLA_BREACH = "SLA_BREACH"
    HIGH_PRIORITY = "HIGH_PRIORITY"
    STAFF_UNAVAILABLE = "STAFF_UNAVAILABLE"
    CUSTOMER_COMPLAINT = "CUSTOMER_COMPLAINT"
    MANUAL_ESCALATION = "MANUAL_ESCALATION"
    NO_ESCALATION_NEEDED = "NO_ESCALATION_NEEDED"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()


class EscalationRecordStatus(str, Enum):
    """Lifecycle of a single escalation record."""
    ACTIVE = "ACTIVE"
    RESOLVED = "RESOLVED"


class EscalationStanding(str, Enum):
    """Reporting view of how far a ticket has been escalated."""
    NORMAL = "NORMAL"
    ESCALATED = "ESCALATED"
    CRITICAL = "CRITICAL"


class NotificationType(str, Enum):
    """Notification kinds."""
    TICKET_ASSIGNED = "TICKET_ASSIGNED"
    STATUS_CHANGED = "STATUS_CHANGED"
    ESCALATION = "ESCALATION"
    RESOLUTION_REJECTED = "RESOLUTION_REJECTED"
    SYSTEM_ALERT = "SYSTEM_ALERT"


class AssignmentStrategy(str, Enum):
    """Which candidate tier produced an assignment decision."""
    EXACT_LOCATION = "EXACT_LOCATION"
    CATEGORY_WIDE = "CATEGORY_WIDE"
    GENERAL_FALLBACK = "GENERAL_FALLBACK"
    EMERGENCY_OVERRIDE = "EMERGENCY_OVERRIDE"
    NONE = "NONE"


# ========== Status groups ==========

TERMINAL_STATUSES = frozenset({TicketStatus.CLOSED, TicketStatus.CANCELLED})

# Statuses that count towards a staff member's workload
ACTIVE_WORK_STATUSES = (
    TicketStatus.ASSIGNED,
    TicketStatus.IN_PROGRESS,
    TicketStatus.ON_HOLD,
    TicketStatus.REOPENED,
)

# Statuses the escalation sweep looks at
ESCALATION_CANDIDATE_STATUSES = (
    TicketStatus.OPEN,
    TicketStatus.ASSIGNED,
    TicketStatus.IN_PROGRESS,
    TicketStatus.ON_HOLD,
    TicketStatus.REOPENED,
)

GENERAL_CATEGORY = TicketCategory.GENERAL.value
