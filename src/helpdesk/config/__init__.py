"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="helpdesk-service", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/helpdesk",
        description="Database connection URL (async driver)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== Workflow ==========
    admin_override_roles: List[str] = Field(
        default=["Admin"],
        description="Roles allowed to approve or reject any workflow stage"
    )

    # ========== Automation Rules ==========
    automation_rules_path: Path = Field(
        default=Path("automation_rules.yaml"),
        description="Path to automation rules YAML file"
    )
    watch_rules_file: bool = Field(
        default=True,
        description="Reload automation rules when the YAML file changes"
    )

    # ========== SLA Sweep ==========
    scheduler_enabled: bool = Field(default=True, description="Run the periodic SLA sweep")
    sla_sweep_interval_seconds: int = Field(
        default=300,
        description="Seconds between SLA sweeps",
        ge=10
    )
    sla_sweep_concurrency: int = Field(
        default=8,
        description="Metrics processed in parallel during a sweep",
        ge=1,
        le=100
    )
    sla_sweep_max_backoff_seconds: int = Field(
        default=3600,
        description="Upper bound for retry backoff of a failing metric",
        ge=0
    )
    sla_shutdown_timeout_seconds: float = Field(
        default=30.0,
        description="How long shutdown waits for an in-flight sweep",
        ge=0
    )

    # ========== Slack Integration ==========
    slack_webhook_url: Optional[str] = Field(
        default=None,
        description="Slack webhook URL for breach and escalation notifications"
    )
    slack_channel: str = Field(
        default="#helpdesk-sla",
        description="Slack channel for SLA notifications"
    )
    slack_timeout_seconds: float = Field(
        default=5.0,
        description="Timeout for Slack API calls",
        ge=0.1,
        le=30
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
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
        allowed = {"development", "test", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class TicketStatus(str, Enum):
    """Ticket lifecycle statuses."""
    DRAFT = "Draft"
    IN_APPROVAL = "InApproval"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CLOSED = "Closed"


class Priority(str, Enum):
    """Ticket priority levels."""
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"
    CRITICAL = "Critical"


class Category(str, Enum):
    """Ticket categories."""
    GENERAL_INQUIRY = "GeneralInquiry"
    TECHNICAL_SUPPORT = "TechnicalSupport"
    BILLING_QUESTION = "BillingQuestion"
    BUG_REPORT = "BugReport"
    FEATURE_REQUEST = "FeatureRequest"
    HARDWARE = "Hardware"
    PRODUCTION_CHANGE = "ProductionChange"


class SLAStatus(str, Enum):
    """SLA metric states, ordered by severity."""
    WITHIN_SLA = "WithinSLA"
    WARNING = "Warning"
    BREACHED = "Breached"

    @property
    def severity(self) -> int:
        return _SLA_SEVERITY[self]

    @classmethod
    def worst(cls, *statuses: "SLAStatus") -> "SLAStatus":
        """Most severe of the given statuses (WithinSLA when empty)."""
        return max(statuses, key=lambda s: s.severity, default=cls.WITHIN_SLA)


_SLA_SEVERITY = {
    SLAStatus.WITHIN_SLA: 0,
    SLAStatus.WARNING: 1,
    SLAStatus.BREACHED: 2,
}


class SLABreachType(str, Enum):
    """Timing dimensions an SLA can be breached on."""
    RESPONSE_TIME = "ResponseTime"
    RESOLUTION_TIME = "ResolutionTime"
    APPROVAL_TIME = "ApprovalTime"


class SLABreachStatus(str, Enum):
    """Breach record lifecycle."""
    OPEN = "Open"
    ACKNOWLEDGED = "Acknowledged"
    RESOLVED = "Resolved"


# ========== Lists for validation ==========

TERMINAL_STATUSES = frozenset({
    TicketStatus.COMPLETED, TicketStatus.CLOSED, TicketStatus.REJECTED
})
VALID_PRIORITIES = [p.value for p in Priority]
VALID_CATEGORIES = [c.value for c in Category]
VALID_STATUSES = [s.value for s in TicketStatus]
