"""
SLA Application DTOs
=====================

Data Transfer Objects for SLA API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses. Following YAGNI - only what's needed.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from helpdesk.config import (
    Category,
    Priority,
    SLABreachStatus,
    SLABreachType,
    SLAStatus,
)
from helpdesk.sla.domain import SLABreach, SLAMetric, SLAPolicy


# ========== Request DTOs ==========

class SLAPolicyCreateRequest(BaseModel):
    """Request model for creating an SLA policy."""
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=2000)
    category: Optional[Category] = Field(None, description="Match tickets of this category; null matches any")
    priority: Optional[Priority] = Field(None, description="Match tickets of this priority; null matches any")
    workflow_id: Optional[int] = Field(None, description="Match tickets on this workflow; null matches any")
    response_time_mins: int = Field(..., gt=0)
    resolution_time_mins: int = Field(..., gt=0)
    approval_time_mins: Optional[int] = Field(None, gt=0)
    warning_threshold: int = Field(default=80, ge=0, le=100, description="Percent of target that raises a warning")
    is_active: bool = True


class SLAPolicyUpdateRequest(BaseModel):
    """Partial update; omitted fields keep their value."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = Field(None, max_length=2000)
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    workflow_id: Optional[int] = None
    response_time_mins: Optional[int] = Field(None, gt=0)
    resolution_time_mins: Optional[int] = Field(None, gt=0)
    approval_time_mins: Optional[int] = Field(None, gt=0)
    warning_threshold: Optional[int] = Field(None, ge=0, le=100)
    is_active: Optional[bool] = None


class BreachAcknowledgeRequest(BaseModel):
    acknowledged_by: int = Field(..., description="User acknowledging the breach")
    resolution_notes: str = Field(..., description="What was done about the breach")


# ========== Response DTOs ==========

class SLAPolicyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    category: Optional[Category]
    priority: Optional[Priority]
    workflow_id: Optional[int]
    response_time_mins: int
    resolution_time_mins: int
    approval_time_mins: Optional[int]
    warning_threshold: int
    is_active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_domain(cls, policy: SLAPolicy) -> "SLAPolicyResponse":
        return cls.model_validate(policy)


class SLAMetricResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    policy_id: Optional[int]
    ticket_created_at: datetime
    target_response_time_mins: int
    target_resolution_time_mins: int
    target_approval_time_mins: Optional[int]
    warning_threshold: int
    first_response_at: Optional[datetime]
    resolved_at: Optional[datetime]
    approval_started_at: Optional[datetime]
    approval_completed_at: Optional[datetime]
    response_time_mins: Optional[int]
    resolution_time_mins: Optional[int]
    approval_time_mins: Optional[int]
    response_status: SLAStatus
    resolution_status: SLAStatus
    approval_status: SLAStatus
    status: SLAStatus
    last_evaluated_at: Optional[datetime]
    finalized_at: Optional[datetime]

    @classmethod
    def from_domain(cls, metric: SLAMetric) -> "SLAMetricResponse":
        return cls.model_validate(metric)


class SLABreachResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    metric_id: int
    ticket_id: int
    policy_id: Optional[int]
    breach_type: SLABreachType
    actual_mins: int
    target_mins: int
    overage_mins: int
    breached_at: datetime
    stage_index: Optional[int] = None
    status: SLABreachStatus
    acknowledged_at: Optional[datetime]
    acknowledged_by: Optional[int]
    resolution_notes: Optional[str]

    @classmethod
    def from_domain(cls, breach: SLABreach) -> "SLABreachResponse":
        return cls.model_validate(breach)


class ReportPeriod(BaseModel):
    start_date: datetime
    end_date: datetime


class ComplianceReportResponse(BaseModel):
    """SLA compliance over a period."""
    total_tickets: int
    tickets_within_sla: int
    tickets_with_warning: int
    tickets_breached: int
    compliance_rate: float
    avg_response_time: float
    avg_resolution_time: float
    avg_approval_time: Optional[float]
    breaches_by_type: Dict[str, int]
    breaches_by_priority: Dict[str, int]
    breaches_by_category: Dict[str, int]
    report_period: ReportPeriod


class BreachedPolicyEntry(BaseModel):
    policy_id: Optional[int]
    policy_name: str
    breach_count: int


class DashboardStatsResponse(BaseModel):
    """Aggregate numbers for the SLA dashboard."""
    total_policies: int
    active_policies: int
    total_metrics: int
    total_breaches: int
    open_breaches: int
    acknowledged_breaches: int
    resolved_breaches: int
    current_compliance_rate: float
    top_breached_policies: List[BreachedPolicyEntry]
    recent_breaches: List[SLABreachResponse]

    @classmethod
    def from_stats(cls, stats: Dict[str, Any]) -> "DashboardStatsResponse":
        data = dict(stats)
        data["recent_breaches"] = [SLABreachResponse.from_domain(b) for b in stats["recent_breaches"]]
        return cls(**data)


class SweepSummaryResponse(BaseModel):
    """Counts from one SLA sweep."""
    evaluated: int
    skipped: int
    failed: int
    finalized: int
    warnings: int
    breaches: int
    escalations: int
    duration_ms: float
