"""
SLA Application Services
=========================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: policies, metric tracking, breach detection and
  reporting are separate services
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

from abc import ABC, abstractmethod
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from helpdesk.config import (
    Category,
    Priority,
    SLABreachStatus,
    SLABreachType,
    SLAStatus,
    TicketStatus,
)
from helpdesk.core import (
    ConflictException,
    InvalidTransitionException,
    ResourceNotFoundException,
    ValidationException,
)
from helpdesk.shared.domain import DomainEvent, EventType, IEventPublisher
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.domain import (
    PolicyMatcher,
    SLABreach,
    SLACalculator,
    SLAMetric,
    SLAPolicy,
    StatusEvaluation,
    StatusTransition,
)
from helpdesk.workflow.application import ITicketLifecycleObserver, ITicketRepository, utcnow
from helpdesk.workflow.domain import HistoryAction, Ticket, TransitionResult

logger = get_logger(__name__)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ISLAPolicyRepository(ABC):
    """Interface for SLA policy data access."""

    @abstractmethod
    async def get_by_id(self, policy_id: int) -> Optional[SLAPolicy]:
        """Get policy by ID."""

    @abstractmethod
    async def list(self, is_active: Optional[bool] = None) -> List[SLAPolicy]:
        """List policies, optionally filtered by active flag."""

    @abstractmethod
    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        """Create a policy."""

    @abstractmethod
    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        """Persist a modified policy."""

    @abstractmethod
    async def delete(self, policy_id: int) -> None:
        """Delete a policy."""


class ISLAMetricRepository(ABC):
    """Interface for SLA metric data access."""

    @abstractmethod
    async def get_by_id(self, metric_id: int) -> Optional[SLAMetric]:
        """Get metric by ID."""

    @abstractmethod
    async def get_by_ticket(self, ticket_id: int) -> Optional[SLAMetric]:
        """Metric tracking a ticket, if any."""

    @abstractmethod
    async def get_or_create(self, metric: SLAMetric) -> SLAMetric:
        """Return the ticket's metric, inserting ``metric`` when none exists."""

    @abstractmethod
    async def update(self, metric: SLAMetric) -> SLAMetric:
        """
        Persist a modified metric.

        ``metric.version`` must equal the stored version; raises
        ConflictException otherwise.
        """

    @abstractmethod
    async def list_active(self) -> List[SLAMetric]:
        """Metrics that are not finalized."""

    @abstractmethod
    async def list(
        self,
        status: Optional[SLAStatus] = None,
        policy_id: Optional[int] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> List[SLAMetric]:
        """List metrics with filters; created bounds apply to ticket creation time."""


class ISLABreachRepository(ABC):
    """Interface for SLA breach data access."""

    @abstractmethod
    async def get_by_id(self, breach_id: int) -> Optional[SLABreach]:
        """Get breach by ID."""

    @abstractmethod
    async def find(self, metric_id: int, breach_type: SLABreachType) -> Optional[SLABreach]:
        """The breach of a type recorded for a metric, in any status."""

    @abstractmethod
    async def create(self, breach: SLABreach) -> SLABreach:
        """
        Insert a breach.

        Raises ConflictException when one already exists for the same
        metric and breach type.
        """

    @abstractmethod
    async def update(self, breach: SLABreach) -> SLABreach:
        """Persist an acknowledged breach."""

    @abstractmethod
    async def list(
        self,
        status: Optional[SLABreachStatus] = None,
        ticket_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[SLABreach]:
        """List breaches, most recent first."""


# ========== Application Services ==========

class SLAPolicyService:
    """
    Policy administration with validation.

    Edits never touch existing metrics; metrics keep the targets copied at
    creation.
    """

    _TARGET_FIELDS = ("response_time_mins", "resolution_time_mins", "approval_time_mins")

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        metric_repository: ISLAMetricRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._policies = policy_repository
        self._metrics = metric_repository
        self._clock = clock

    async def get_policy(self, policy_id: int) -> SLAPolicy:
        policy = await self._policies.get_by_id(policy_id)
        if policy is None:
            raise ResourceNotFoundException("SLA Policy", policy_id)
        return policy

    async def list_policies(self, is_active: Optional[bool] = None) -> List[SLAPolicy]:
        return await self._policies.list(is_active=is_active)

    async def create_policy(self, **fields: Any) -> SLAPolicy:
        now = self._clock()
        policy = SLAPolicy(id=None, created_at=now, updated_at=now, **fields)
        self._validate(policy)
        if policy.is_active:
            await self._ensure_unique_criteria(policy)

        created = await self._policies.create(policy)
        logger.info("SLA policy created", extra={"policy_id": created.id, "policy_name": created.name})
        return created

    async def update_policy(self, policy_id: int, **changes: Any) -> SLAPolicy:
        existing = await self.get_policy(policy_id)
        policy = SLAPolicy(**{**existing.__dict__, **changes, "updated_at": self._clock()})
        self._validate(policy)
        if policy.is_active:
            await self._ensure_unique_criteria(policy)

        updated = await self._policies.update(policy)
        logger.info("SLA policy updated", extra={"policy_id": policy_id, "fields": sorted(changes)})
        return updated

    async def delete_policy(self, policy_id: int) -> None:
        await self.get_policy(policy_id)
        in_use = [
            m for m in await self._metrics.list(policy_id=policy_id)
            if not m.is_finalized
        ]
        if in_use:
            raise ValidationException(
                f"Cannot delete SLA Policy: {len(in_use)} active ticket(s) are using this policy",
                {"policy_id": policy_id, "active_metrics": len(in_use)}
            )
        await self._policies.delete(policy_id)
        logger.info("SLA policy deleted", extra={"policy_id": policy_id})

    def _validate(self, policy: SLAPolicy) -> None:
        if not policy.name or not policy.name.strip():
            raise ValidationException("Policy name is required")
        for name in self._TARGET_FIELDS:
            value = getattr(policy, name)
            if value is not None and value <= 0:
                raise ValidationException(f"{name} must be greater than 0", {"field": name, "value": value})
        if not 0 <= policy.warning_threshold <= 100:
            raise ValidationException(
                "Warning threshold must be between 0 and 100",
                {"warning_threshold": policy.warning_threshold}
            )

    async def _ensure_unique_criteria(self, policy: SLAPolicy) -> None:
        for other in await self._policies.list(is_active=True):
            if other.id != policy.id and other.criteria == policy.criteria:
                raise ValidationException(
                    "An active SLA policy already exists for these criteria",
                    {
                        "existing_policy_id": other.id,
                        "category": policy.category.value if policy.category else None,
                        "priority": policy.priority.value if policy.priority else None,
                        "workflow_id": policy.workflow_id,
                    }
                )


class BreachDetector:
    """
    Turns status transitions into warnings and breach records.

    Warnings are events only. Breaches are persisted at most once per
    (metric, breach type) and announced with an ``sla.breach`` event.
    """

    def __init__(
        self,
        breach_repository: ISLABreachRepository,
        event_publisher: IEventPublisher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._breaches = breach_repository
        self._events = event_publisher
        self._clock = clock

    async def process(self, ticket: Ticket, evaluation: StatusEvaluation) -> List[SLABreach]:
        metric = evaluation.metric
        for transition in evaluation.warnings:
            await self._events.publish(DomainEvent(EventType.SLA_WARNING, {
                "ticket_id": ticket.id,
                "ticket_number": ticket.ticket_number,
                "metric_id": metric.id,
                "breach_type": transition.breach_type.value,
                "elapsed_mins": transition.elapsed_mins,
                "target_mins": transition.target_mins,
                "warning_threshold": metric.warning_threshold,
            }))
            logger.info(
                "SLA warning",
                extra={"ticket_id": ticket.id, "metric_id": metric.id, "breach_type": transition.breach_type.value}
            )

        created = []
        for transition in evaluation.breaches:
            breach = await self.record_breach(ticket, metric, transition)
            if breach is not None:
                created.append(breach)
        return created

    async def record_breach(
        self,
        ticket: Ticket,
        metric: SLAMetric,
        transition: StatusTransition
    ) -> Optional[SLABreach]:
        """Create the breach unless one of that type already exists."""
        if await self._breaches.find(metric.id, transition.breach_type) is not None:
            return None

        breach = await self._breaches.create(SLABreach(
            id=None,
            metric_id=metric.id,
            ticket_id=metric.ticket_id,
            policy_id=metric.policy_id,
            breach_type=transition.breach_type,
            actual_mins=transition.elapsed_mins,
            target_mins=transition.target_mins,
            overage_mins=transition.overage_mins,
            breached_at=self._clock(),
            stage_index=_approval_stage(ticket, transition.breach_type),
        ))

        await self._events.publish(DomainEvent(EventType.SLA_BREACH, {
            "ticket_id": ticket.id,
            "ticket_number": ticket.ticket_number,
            "metric_id": metric.id,
            "breach_id": breach.id,
            "policy_id": breach.policy_id,
            "breach_type": breach.breach_type.value,
            "actual_mins": breach.actual_mins,
            "target_mins": breach.target_mins,
            "overage_mins": breach.overage_mins,
            "stage_index": breach.stage_index,
            "priority": ticket.priority.value,
        }))
        logger.warning(
            "SLA breached",
            extra={
                "ticket_id": ticket.id,
                "metric_id": metric.id,
                "breach_id": breach.id,
                "breach_type": breach.breach_type.value,
                "overage_mins": breach.overage_mins,
            }
        )
        return breach

    async def acknowledge(
        self,
        breach_id: int,
        acknowledged_by: int,
        resolution_notes: Optional[str]
    ) -> SLABreach:
        breach = await self.get_breach(breach_id)
        if not breach.is_open:
            raise InvalidTransitionException(breach.status.value, "acknowledge", "breach is not open")
        if not resolution_notes or not resolution_notes.strip():
            raise ValidationException("Resolution notes are required to acknowledge a breach")

        acknowledged = await self._breaches.update(breach.copy(
            status=SLABreachStatus.ACKNOWLEDGED,
            acknowledged_at=self._clock(),
            acknowledged_by=acknowledged_by,
            resolution_notes=resolution_notes.strip(),
        ))

        await self._events.publish(DomainEvent(EventType.SLA_BREACH_ACKNOWLEDGED, {
            "ticket_id": acknowledged.ticket_id,
            "breach_id": acknowledged.id,
            "breach_type": acknowledged.breach_type.value,
            "acknowledged_by": acknowledged_by,
            "resolution_notes": acknowledged.resolution_notes,
        }))
        logger.info("SLA breach acknowledged", extra={"breach_id": breach_id, "acknowledged_by": acknowledged_by})
        return acknowledged

    async def get_breach(self, breach_id: int) -> SLABreach:
        breach = await self._breaches.get_by_id(breach_id)
        if breach is None:
            raise ResourceNotFoundException("SLA Breach", breach_id)
        return breach

    async def list_breaches(
        self,
        status: Optional[SLABreachStatus] = None,
        ticket_id: Optional[int] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[SLABreach]:
        return await self._breaches.list(status=status, ticket_id=ticket_id, limit=limit, offset=offset)


class SLAMetricTracker(ITicketLifecycleObserver):
    """
    Maintains the per-ticket SLA metric.

    Entry points: ticket created, submission, first response, resolution,
    approval completion and scheduler tick. Milestones are stamped once; later
    deliveries of the same milestone are no-ops. Every change goes through
    ``SLACalculator.recompute_status`` and then the breach detector.

    Callers hold the ticket lock.
    """

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        metric_repository: ISLAMetricRepository,
        detector: BreachDetector,
        event_publisher: IEventPublisher,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._policies = policy_repository
        self._metrics = metric_repository
        self._detector = detector
        self._events = event_publisher
        self._clock = clock

    # ----- lifecycle observer -----

    async def on_ticket_created(self, ticket: Ticket) -> Optional[SLAMetric]:
        existing = await self._metrics.get_by_ticket(ticket.id)
        if existing is not None:
            return existing

        policy = PolicyMatcher.match(
            await self._policies.list(is_active=True),
            ticket.category,
            ticket.priority,
            ticket.workflow_id,
        )
        if policy is None:
            logger.debug("No SLA policy matches ticket", extra={"ticket_id": ticket.id})
            return None

        now = self._clock()
        metric = await self._metrics.get_or_create(SLAMetric(
            id=None,
            ticket_id=ticket.id,
            policy_id=policy.id,
            ticket_created_at=ticket.created_at,
            target_response_time_mins=policy.response_time_mins,
            target_resolution_time_mins=policy.resolution_time_mins,
            target_approval_time_mins=policy.approval_time_mins,
            warning_threshold=policy.warning_threshold,
            created_at=now,
            updated_at=now,
        ))

        await self._events.publish(DomainEvent(EventType.SLA_METRIC_CREATED, {
            "ticket_id": ticket.id,
            "ticket_number": ticket.ticket_number,
            "metric_id": metric.id,
            "policy_id": policy.id,
            "policy_name": policy.name,
        }))
        logger.info("SLA tracking started", extra={"ticket_id": ticket.id, "policy_id": policy.id})
        return metric

    async def on_first_response(self, ticket: Ticket, responded_at: datetime) -> Optional[SLAMetric]:
        return await self._stamp(ticket, SLABreachType.RESPONSE_TIME, responded_at)

    async def on_transition(self, ticket: Ticket, result: TransitionResult) -> None:
        if result.action == HistoryAction.SUBMITTED:
            # The workflow is known from here on, so workflow-scoped
            # policies can match a ticket that had none at creation
            if await self._metrics.get_by_ticket(ticket.id) is None:
                await self.on_ticket_created(ticket)
            await self.on_approval_started(ticket, ticket.status_changed_at)
        if result.approval_completed:
            await self.on_approval_completed(ticket, ticket.status_changed_at)
        if result.new_status == TicketStatus.COMPLETED:
            await self.on_resolved(ticket, ticket.status_changed_at)
        if ticket.is_terminal:
            await self.finalize(ticket)

    # ----- milestones -----

    async def on_resolved(self, ticket: Ticket, resolved_at: datetime) -> Optional[SLAMetric]:
        return await self._stamp(ticket, SLABreachType.RESOLUTION_TIME, resolved_at)

    async def on_approval_started(self, ticket: Ticket, started_at: datetime) -> Optional[SLAMetric]:
        metric = await self._metrics.get_by_ticket(ticket.id)
        if metric is None:
            return None

        started = SLACalculator.start_approval(metric, started_at)
        if started is None:
            return metric

        logger.info("SLA approval clock started", extra={"ticket_id": ticket.id, "metric_id": metric.id})
        evaluation = await self._recompute(ticket, started, max(started_at, self._clock()))
        return evaluation.metric

    async def on_approval_completed(self, ticket: Ticket, completed_at: datetime) -> Optional[SLAMetric]:
        return await self._stamp(ticket, SLABreachType.APPROVAL_TIME, completed_at)

    async def on_tick(self, ticket: Ticket, now: Optional[datetime] = None) -> Optional[StatusEvaluation]:
        """Recompute an open metric against the clock."""
        metric = await self._metrics.get_by_ticket(ticket.id)
        if metric is None or metric.is_finalized:
            return None
        return await self._recompute(ticket, metric, now or self._clock())

    async def finalize(self, ticket: Ticket, now: Optional[datetime] = None) -> Optional[SLAMetric]:
        """Final recompute, then freeze the metric."""
        metric = await self._metrics.get_by_ticket(ticket.id)
        if metric is None or metric.is_finalized:
            return metric

        now = now or self._clock()
        evaluation = SLACalculator.recompute_status(metric, now)
        final = await self._metrics.update(evaluation.metric.copy(finalized_at=now, updated_at=now))
        await self._detector.process(ticket, StatusEvaluation(metric=final, transitions=evaluation.transitions))
        logger.info(
            "SLA tracking finalized",
            extra={"ticket_id": ticket.id, "metric_id": final.id, "status": final.status.value}
        )
        return final

    async def get_metric(self, ticket_id: int) -> SLAMetric:
        metric = await self._metrics.get_by_ticket(ticket_id)
        if metric is None:
            raise ResourceNotFoundException("SLA Metric", None, {"ticket_id": ticket_id})
        return metric

    async def list_metrics(
        self,
        status: Optional[SLAStatus] = None,
        policy_id: Optional[int] = None
    ) -> List[SLAMetric]:
        return await self._metrics.list(status=status, policy_id=policy_id)

    async def list_active_metrics(self) -> List[SLAMetric]:
        return await self._metrics.list_active()

    async def _stamp(self, ticket: Ticket, breach_type: SLABreachType, at: datetime) -> Optional[SLAMetric]:
        metric = await self._metrics.get_by_ticket(ticket.id)
        if metric is None:
            return None

        stamped = SLACalculator.stamp_milestone(metric, breach_type, at)
        if stamped is None:
            return metric

        logger.info(
            "SLA milestone stamped",
            extra={"ticket_id": ticket.id, "metric_id": metric.id, "milestone": breach_type.value}
        )
        evaluation = await self._recompute(ticket, stamped, max(at, self._clock()))
        return evaluation.metric

    async def _recompute(self, ticket: Ticket, metric: SLAMetric, now: datetime) -> StatusEvaluation:
        evaluation = SLACalculator.recompute_status(metric, now)
        saved = await self._metrics.update(evaluation.metric.copy(updated_at=now))
        evaluation = StatusEvaluation(metric=saved, transitions=evaluation.transitions)
        await self._detector.process(ticket, evaluation)
        return evaluation


class SLAReportService:
    """Compliance report and dashboard statistics."""

    TOP_POLICIES = 5
    RECENT_BREACHES = 5

    def __init__(
        self,
        policy_repository: ISLAPolicyRepository,
        metric_repository: ISLAMetricRepository,
        breach_repository: ISLABreachRepository,
        ticket_repository: ITicketRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._policies = policy_repository
        self._metrics = metric_repository
        self._breaches = breach_repository
        self._tickets = ticket_repository
        self._clock = clock

    async def compliance_report(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Compliance over metrics of tickets created in the period.

        Breaches are counted when their metric falls in the period.
        """
        metrics = await self._metrics.list(created_from=start_date, created_to=end_date)
        metric_ids = {m.id for m in metrics}
        breaches = [b for b in await self._breaches.list() if b.metric_id in metric_ids]

        by_status = Counter(m.status for m in metrics)
        total = len(metrics)

        by_type = {t.value: 0 for t in SLABreachType}
        by_priority = {p.value: 0 for p in Priority}
        by_category = {c.value: 0 for c in Category}
        tickets: Dict[int, Optional[Ticket]] = {}
        for breach in breaches:
            by_type[breach.breach_type.value] += 1
            if breach.ticket_id not in tickets:
                tickets[breach.ticket_id] = await self._tickets.get_by_id(breach.ticket_id)
            ticket = tickets[breach.ticket_id]
            if ticket is not None:
                by_priority[ticket.priority.value] += 1
                by_category[ticket.category.value] += 1

        return {
            "total_tickets": total,
            "tickets_within_sla": by_status[SLAStatus.WITHIN_SLA],
            "tickets_with_warning": by_status[SLAStatus.WARNING],
            "tickets_breached": by_status[SLAStatus.BREACHED],
            "compliance_rate": SLACalculator.compliance_rate(total, by_status[SLAStatus.WITHIN_SLA]),
            "avg_response_time": _average(m.response_time_mins for m in metrics) or 0.0,
            "avg_resolution_time": _average(m.resolution_time_mins for m in metrics) or 0.0,
            "avg_approval_time": _average(m.approval_time_mins for m in metrics),
            "breaches_by_type": by_type,
            "breaches_by_priority": by_priority,
            "breaches_by_category": by_category,
            "report_period": {
                "start_date": start_date or datetime.fromtimestamp(0, tz=timezone.utc),
                "end_date": end_date or self._clock(),
            },
        }

    async def dashboard_stats(self) -> Dict[str, Any]:
        policies = await self._policies.list()
        metrics = await self._metrics.list()
        breaches = await self._breaches.list()

        total = len(metrics)
        breached = sum(1 for m in metrics if m.status == SLAStatus.BREACHED)
        breach_status = Counter(b.status for b in breaches)

        names = {p.id: p.name for p in policies}
        per_policy = Counter(b.policy_id for b in breaches)
        top = [
            {"policy_id": policy_id, "policy_name": names.get(policy_id, "Unknown"), "breach_count": count}
            for policy_id, count in per_policy.most_common(self.TOP_POLICIES)
        ]

        return {
            "total_policies": len(policies),
            "active_policies": sum(1 for p in policies if p.is_active),
            "total_metrics": total,
            "total_breaches": len(breaches),
            "open_breaches": breach_status[SLABreachStatus.OPEN],
            "acknowledged_breaches": breach_status[SLABreachStatus.ACKNOWLEDGED],
            "resolved_breaches": breach_status[SLABreachStatus.RESOLVED],
            "current_compliance_rate": (
                SLACalculator.compliance_rate(total, total - breached) if total else 100.0
            ),
            "top_breached_policies": top,
            "recent_breaches": breaches[:self.RECENT_BREACHES],
        }


def _average(values) -> Optional[float]:
    present = [v for v in values if v is not None]
    if not present:
        return None
    return round(sum(present) / len(present), 1)


def _approval_stage(ticket: Ticket, breach_type: SLABreachType) -> Optional[int]:
    if breach_type != SLABreachType.APPROVAL_TIME or ticket.workflow_id is None:
        return None
    return ticket.current_stage_index
