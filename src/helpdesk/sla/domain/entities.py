"""
SLA Domain Entities
====================

Pure Python domain entities for SLA tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from helpdesk.config import (
    Category,
    Priority,
    SLABreachStatus,
    SLABreachType,
    SLAStatus,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SLAPolicy:
    """
    SLA policy with optional matching criteria.

    A criterion left as None is a wildcard. Target times are in minutes;
    ``warning_threshold`` is a percentage (0-100) of the target.
    """

    id: Optional[int]
    name: str
    response_time_mins: int
    resolution_time_mins: int
    approval_time_mins: Optional[int] = None
    warning_threshold: int = 80
    category: Optional[Category] = None
    priority: Optional[Priority] = None
    workflow_id: Optional[int] = None
    description: str = ""
    is_active: bool = True
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def criteria(self) -> tuple:
        return (self.category, self.priority, self.workflow_id)

    @property
    def specificity(self) -> int:
        """Number of non-wildcard criteria (0-3)."""
        return sum(1 for c in self.criteria if c is not None)

    def matches(
        self,
        category: Category,
        priority: Priority,
        workflow_id: Optional[int]
    ) -> bool:
        if not self.is_active:
            return False
        if self.category is not None and self.category != category:
            return False
        if self.priority is not None and self.priority != priority:
            return False
        if self.workflow_id is not None and self.workflow_id != workflow_id:
            return False
        return True


@dataclass
class SLAMetric:
    """
    Per-ticket SLA tracking record.

    Targets and warning threshold are copied from the policy when the metric
    is created, so later policy edits never change an in-flight metric.
    Each tracked dimension keeps its own status; ``status`` is the worst of
    them. Response and resolution run from ticket creation. Approval runs
    from ``approval_started_at``, stamped on submission, and is not
    evaluated before it. Once ``finalized_at`` is set the metric is never
    modified again.
    """

    id: Optional[int]
    ticket_id: int
    policy_id: Optional[int]
    ticket_created_at: datetime
    target_response_time_mins: int
    target_resolution_time_mins: int
    target_approval_time_mins: Optional[int] = None
    warning_threshold: int = 80

    first_response_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    approval_started_at: Optional[datetime] = None
    approval_completed_at: Optional[datetime] = None

    response_time_mins: Optional[int] = None
    resolution_time_mins: Optional[int] = None
    approval_time_mins: Optional[int] = None

    response_status: SLAStatus = SLAStatus.WITHIN_SLA
    resolution_status: SLAStatus = SLAStatus.WITHIN_SLA
    approval_status: SLAStatus = SLAStatus.WITHIN_SLA
    status: SLAStatus = SLAStatus.WITHIN_SLA

    last_evaluated_at: Optional[datetime] = None
    finalized_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    version: int = 1

    @property
    def is_finalized(self) -> bool:
        return self.finalized_at is not None

    def target_for(self, breach_type: SLABreachType) -> Optional[int]:
        return getattr(self, _DIMENSION_FIELDS[breach_type][0])

    def started_at(self, breach_type: SLABreachType) -> Optional[datetime]:
        if breach_type == SLABreachType.APPROVAL_TIME:
            return self.approval_started_at
        return self.ticket_created_at

    def completed_at(self, breach_type: SLABreachType) -> Optional[datetime]:
        return getattr(self, _DIMENSION_FIELDS[breach_type][1])

    def recorded_duration(self, breach_type: SLABreachType) -> Optional[int]:
        return getattr(self, _DIMENSION_FIELDS[breach_type][2])

    def status_for(self, breach_type: SLABreachType) -> SLAStatus:
        return getattr(self, _DIMENSION_FIELDS[breach_type][3])

    def copy(self, **changes: Any) -> "SLAMetric":
        return replace(self, **changes)


# breach type -> (target, completion timestamp, duration, status) attribute names
_DIMENSION_FIELDS: Dict[SLABreachType, tuple] = {
    SLABreachType.RESPONSE_TIME: (
        "target_response_time_mins", "first_response_at", "response_time_mins", "response_status",
    ),
    SLABreachType.RESOLUTION_TIME: (
        "target_resolution_time_mins", "resolved_at", "resolution_time_mins", "resolution_status",
    ),
    SLABreachType.APPROVAL_TIME: (
        "target_approval_time_mins", "approval_completed_at", "approval_time_mins", "approval_status",
    ),
}


def dimension_fields(breach_type: SLABreachType) -> tuple:
    return _DIMENSION_FIELDS[breach_type]


@dataclass
class SLABreach:
    """
    Recorded exceedance of one SLA dimension.

    ``stage_index`` is the approval stage current when an approval
    breach was detected.

    At most one exists per (metric, breach type). Acknowledgment is the
    only change allowed after creation.
    """

    id: Optional[int]
    metric_id: int
    ticket_id: int
    policy_id: Optional[int]
    breach_type: SLABreachType
    actual_mins: int
    target_mins: int
    overage_mins: int
    breached_at: datetime
    stage_index: Optional[int] = None
    status: SLABreachStatus = SLABreachStatus.OPEN
    acknowledged_at: Optional[datetime] = None
    acknowledged_by: Optional[int] = None
    resolution_notes: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == SLABreachStatus.OPEN

    def copy(self, **changes: Any) -> "SLABreach":
        return replace(self, **changes)
