"""
SLA Value Objects
==================

Immutable value objects and pure calculations for the SLA domain.

All warning/breach threshold logic lives in ``SLACalculator`` so every
reader of a metric sees the same status with the same rounding.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

from helpdesk.config import Category, Priority, SLABreachType, SLAStatus
from helpdesk.sla.domain.entities import SLAMetric, SLAPolicy, dimension_fields


@dataclass(frozen=True)
class StatusTransition:
    """A dimension whose status got worse during a recompute."""
    breach_type: SLABreachType
    old_status: SLAStatus
    new_status: SLAStatus
    elapsed_mins: int
    target_mins: int

    @property
    def became_breached(self) -> bool:
        return self.new_status == SLAStatus.BREACHED and self.old_status != SLAStatus.BREACHED

    @property
    def became_warning(self) -> bool:
        return self.new_status == SLAStatus.WARNING and self.old_status == SLAStatus.WITHIN_SLA

    @property
    def overage_mins(self) -> int:
        return max(0, self.elapsed_mins - self.target_mins)


@dataclass(frozen=True)
class StatusEvaluation:
    """Result of ``SLACalculator.recompute_status``."""
    metric: SLAMetric
    transitions: Tuple[StatusTransition, ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.transitions)

    @property
    def breaches(self) -> List[StatusTransition]:
        return [t for t in self.transitions if t.became_breached]

    @property
    def warnings(self) -> List[StatusTransition]:
        return [t for t in self.transitions if t.became_warning]


class SLACalculator:
    """
    Pure functions for SLA calculations.

    Stateless utility class; the tracker, the detector and the reports all
    go through it.
    """

    @staticmethod
    def elapsed_minutes(start: datetime, end: datetime) -> int:
        """Whole minutes between two instants, floored and never negative."""
        return max(0, int((end - start).total_seconds() // 60))

    @staticmethod
    def dimension_status(elapsed_mins: int, target_mins: int, warning_threshold: int) -> SLAStatus:
        """
        Status of one dimension.

        Breached strictly past the target; Warning from
        ``target * warning_threshold / 100`` inclusive.
        """
        if elapsed_mins > target_mins:
            return SLAStatus.BREACHED
        if elapsed_mins * 100 >= target_mins * warning_threshold:
            return SLAStatus.WARNING
        return SLAStatus.WITHIN_SLA

    @classmethod
    def stamp_milestone(
        cls,
        metric: SLAMetric,
        breach_type: SLABreachType,
        completed_at: datetime
    ) -> Optional[SLAMetric]:
        """
        Stamp a dimension's completion time and duration.

        Returns None when the metric is finalized, the dimension is not
        tracked or not started, or it was already stamped; the first stamp
        wins.
        """
        if metric.is_finalized or metric.target_for(breach_type) is None:
            return None
        started_at = metric.started_at(breach_type)
        if started_at is None or metric.completed_at(breach_type) is not None:
            return None
        _, at_field, duration_field, _ = dimension_fields(breach_type)
        duration = cls.elapsed_minutes(started_at, completed_at)
        return metric.copy(**{at_field: completed_at, duration_field: duration})

    @staticmethod
    def start_approval(metric: SLAMetric, started_at: datetime) -> Optional[SLAMetric]:
        """Start the approval clock; None when untracked, finalized or already started."""
        if metric.is_finalized or metric.target_approval_time_mins is None:
            return None
        if metric.approval_started_at is not None:
            return None
        return metric.copy(approval_started_at=started_at)

    @classmethod
    def recompute_status(cls, metric: SLAMetric, now: datetime) -> StatusEvaluation:
        """
        Recompute per-dimension and overall status.

        Open dimensions use the time since their start; completed ones use
        their recorded duration. Dimensions not started yet keep their
        status. A dimension's status never improves. Finalized metrics are
        returned unchanged.
        """
        if metric.is_finalized:
            return StatusEvaluation(metric=metric)

        changes = {}
        transitions = []
        statuses = []

        for breach_type in SLABreachType:
            target = metric.target_for(breach_type)
            previous = metric.status_for(breach_type)
            started_at = metric.started_at(breach_type)
            if target is None or started_at is None:
                statuses.append(previous)
                continue

            elapsed = metric.recorded_duration(breach_type)
            if metric.completed_at(breach_type) is None or elapsed is None:
                elapsed = cls.elapsed_minutes(started_at, now)

            computed = cls.dimension_status(elapsed, target, metric.warning_threshold)
            new_status = SLAStatus.worst(previous, computed)
            statuses.append(new_status)

            if new_status != previous:
                changes[dimension_fields(breach_type)[3]] = new_status
                transitions.append(StatusTransition(
                    breach_type=breach_type,
                    old_status=previous,
                    new_status=new_status,
                    elapsed_mins=elapsed,
                    target_mins=target,
                ))

        changes["status"] = SLAStatus.worst(metric.status, *statuses)
        changes["last_evaluated_at"] = now
        return StatusEvaluation(metric=metric.copy(**changes), transitions=tuple(transitions))

    @staticmethod
    def compliance_rate(total: int, compliant: int) -> float:
        if total <= 0:
            return 0.0
        return round(compliant / total * 100, 1)


class PolicyMatcher:
    """Selects the most specific active policy for a ticket."""

    @staticmethod
    def candidates(
        policies: Iterable[SLAPolicy],
        category: Category,
        priority: Priority,
        workflow_id: Optional[int]
    ) -> List[SLAPolicy]:
        return [p for p in policies if p.matches(category, priority, workflow_id)]

    @classmethod
    def match(
        cls,
        policies: Iterable[SLAPolicy],
        category: Category,
        priority: Priority,
        workflow_id: Optional[int] = None
    ) -> Optional[SLAPolicy]:
        """
        Highest specificity wins; ties go to the most recently created
        policy, then to the highest id.
        """
        matching = cls.candidates(policies, category, priority, workflow_id)
        if not matching:
            return None
        return max(matching, key=lambda p: (p.specificity, p.created_at, p.id or 0))
