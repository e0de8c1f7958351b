"""
SLA Infrastructure Repositories
=================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from helpdesk.config import (
    Category,
    Priority,
    SLABreachStatus,
    SLABreachType,
    SLAStatus,
)
from helpdesk.core import ConflictException, RepositoryException
from helpdesk.sla.application.services import (
    ISLABreachRepository,
    ISLAMetricRepository,
    ISLAPolicyRepository,
)
from helpdesk.sla.domain import SLABreach, SLAMetric, SLAPolicy
from helpdesk.sla.infrastructure.models import SLABreachModel, SLAMetricModel, SLAPolicyModel


# ========== Mappers ==========

def _policy_to_domain(model: SLAPolicyModel) -> SLAPolicy:
    return SLAPolicy(
        id=model.id,
        name=model.name,
        description=model.description,
        category=Category(model.category) if model.category else None,
        priority=Priority(model.priority) if model.priority else None,
        workflow_id=model.workflow_id,
        response_time_mins=model.response_time_mins,
        resolution_time_mins=model.resolution_time_mins,
        approval_time_mins=model.approval_time_mins,
        warning_threshold=model.warning_threshold,
        is_active=model.is_active,
        created_at=model.created_at,
        updated_at=model.updated_at,
    )


def _apply_policy(model: SLAPolicyModel, policy: SLAPolicy) -> None:
    model.name = policy.name
    model.description = policy.description
    model.category = policy.category.value if policy.category else None
    model.priority = policy.priority.value if policy.priority else None
    model.workflow_id = policy.workflow_id
    model.response_time_mins = policy.response_time_mins
    model.resolution_time_mins = policy.resolution_time_mins
    model.approval_time_mins = policy.approval_time_mins
    model.warning_threshold = policy.warning_threshold
    model.is_active = policy.is_active
    model.updated_at = policy.updated_at


def _metric_to_domain(model: SLAMetricModel) -> SLAMetric:
    return SLAMetric(
        id=model.id,
        ticket_id=model.ticket_id,
        policy_id=model.policy_id,
        ticket_created_at=model.ticket_created_at,
        target_response_time_mins=model.target_response_time_mins,
        target_resolution_time_mins=model.target_resolution_time_mins,
        target_approval_time_mins=model.target_approval_time_mins,
        warning_threshold=model.warning_threshold,
        first_response_at=model.first_response_at,
        resolved_at=model.resolved_at,
        approval_started_at=model.approval_started_at,
        approval_completed_at=model.approval_completed_at,
        response_time_mins=model.response_time_mins,
        resolution_time_mins=model.resolution_time_mins,
        approval_time_mins=model.approval_time_mins,
        response_status=SLAStatus(model.response_status),
        resolution_status=SLAStatus(model.resolution_status),
        approval_status=SLAStatus(model.approval_status),
        status=SLAStatus(model.status),
        last_evaluated_at=model.last_evaluated_at,
        finalized_at=model.finalized_at,
        created_at=model.created_at,
        updated_at=model.updated_at,
        version=model.version,
    )


def _breach_to_domain(model: SLABreachModel) -> SLABreach:
    return SLABreach(
        id=model.id,
        metric_id=model.metric_id,
        ticket_id=model.ticket_id,
        policy_id=model.policy_id,
        breach_type=SLABreachType(model.breach_type),
        actual_mins=model.actual_mins,
        target_mins=model.target_mins,
        overage_mins=model.overage_mins,
        breached_at=model.breached_at,
        stage_index=model.stage_index,
        status=SLABreachStatus(model.status),
        acknowledged_at=model.acknowledged_at,
        acknowledged_by=model.acknowledged_by,
        resolution_notes=model.resolution_notes,
    )


# ========== Repositories ==========

class SQLAlchemySLAPolicyRepository(ISLAPolicyRepository):
    """SQLAlchemy implementation of SLA policy repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, policy_id: int) -> Optional[SLAPolicy]:
        model = await self._session.get(SLAPolicyModel, policy_id)
        return _policy_to_domain(model) if model else None

    async def list(self, is_active: Optional[bool] = None) -> List[SLAPolicy]:
        stmt = select(SLAPolicyModel).order_by(SLAPolicyModel.id)
        if is_active is not None:
            stmt = stmt.where(SLAPolicyModel.is_active.is_(is_active))
        result = await self._session.execute(stmt)
        return [_policy_to_domain(m) for m in result.scalars().all()]

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        model = SLAPolicyModel(created_at=policy.created_at)
        _apply_policy(model, policy)
        self._session.add(model)
        await self._session.flush()
        return _policy_to_domain(model)

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        model = await self._session.get(SLAPolicyModel, policy.id)
        if model is None:
            raise RepositoryException(f"SLA policy {policy.id} not found")
        _apply_policy(model, policy)
        await self._session.flush()
        return _policy_to_domain(model)

    async def delete(self, policy_id: int) -> None:
        model = await self._session.get(SLAPolicyModel, policy_id)
        if model is not None:
            await self._session.delete(model)
            await self._session.flush()


class SQLAlchemySLAMetricRepository(ISLAMetricRepository):
    """
    SQLAlchemy implementation of SLA metric repository.

    Updates are version-checked like tickets; a finalized row is never
    written again.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, metric_id: int) -> Optional[SLAMetric]:
        model = await self._session.get(SLAMetricModel, metric_id)
        return _metric_to_domain(model) if model else None

    async def get_by_ticket(self, ticket_id: int) -> Optional[SLAMetric]:
        model = await self._get_model_by_ticket(ticket_id)
        return _metric_to_domain(model) if model else None

    async def _get_model_by_ticket(self, ticket_id: int) -> Optional[SLAMetricModel]:
        stmt = select(SLAMetricModel).where(SLAMetricModel.ticket_id == ticket_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create(self, metric: SLAMetric) -> SLAMetric:
        existing = await self._get_model_by_ticket(metric.ticket_id)
        if existing is not None:
            return _metric_to_domain(existing)

        model = SLAMetricModel(
            ticket_id=metric.ticket_id,
            policy_id=metric.policy_id,
            ticket_created_at=metric.ticket_created_at,
            target_response_time_mins=metric.target_response_time_mins,
            target_resolution_time_mins=metric.target_resolution_time_mins,
            target_approval_time_mins=metric.target_approval_time_mins,
            warning_threshold=metric.warning_threshold,
            response_status=metric.response_status.value,
            resolution_status=metric.resolution_status.value,
            approval_status=metric.approval_status.value,
            status=metric.status.value,
            created_at=metric.created_at,
            updated_at=metric.updated_at,
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConflictException(
                "SLA metric was created concurrently",
                {"ticket_id": metric.ticket_id}
            ) from e
        return _metric_to_domain(model)

    async def update(self, metric: SLAMetric) -> SLAMetric:
        model = await self._session.get(SLAMetricModel, metric.id)
        if model is None:
            raise RepositoryException(f"SLA metric {metric.id} not found")
        if model.version != metric.version:
            raise ConflictException(
                "SLA metric was modified concurrently",
                {"metric_id": metric.id, "expected_version": metric.version, "stored_version": model.version}
            )
        if model.finalized_at is not None:
            raise ConflictException("SLA metric is finalized", {"metric_id": metric.id})

        model.first_response_at = metric.first_response_at
        model.resolved_at = metric.resolved_at
        model.approval_started_at = metric.approval_started_at
        model.approval_completed_at = metric.approval_completed_at
        model.response_time_mins = metric.response_time_mins
        model.resolution_time_mins = metric.resolution_time_mins
        model.approval_time_mins = metric.approval_time_mins
        model.response_status = metric.response_status.value
        model.resolution_status = metric.resolution_status.value
        model.approval_status = metric.approval_status.value
        model.status = metric.status.value
        model.last_evaluated_at = metric.last_evaluated_at
        model.finalized_at = metric.finalized_at
        model.updated_at = metric.updated_at

        try:
            await self._session.flush()
        except StaleDataError as e:
            raise ConflictException(
                "SLA metric was modified concurrently",
                {"metric_id": metric.id, "expected_version": metric.version}
            ) from e
        return _metric_to_domain(model)

    async def list_active(self) -> List[SLAMetric]:
        stmt = (
            select(SLAMetricModel)
            .where(SLAMetricModel.finalized_at.is_(None))
            .order_by(SLAMetricModel.id)
        )
        result = await self._session.execute(stmt)
        return [_metric_to_domain(m) for m in result.scalars().all()]

    async def list(
        self,
        status: Optional[SLAStatus] = None,
        policy_id: Optional[int] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> List[SLAMetric]:
        stmt = select(SLAMetricModel).order_by(SLAMetricModel.id)
        if status is not None:
            stmt = stmt.where(SLAMetricModel.status == status.value)
        if policy_id is not None:
            stmt = stmt.where(SLAMetricModel.policy_id == policy_id)
        if created_from is not None:
            stmt = stmt.where(SLAMetricModel.ticket_created_at >= created_from)
        if created_to is not None:
            stmt = stmt.where(SLAMetricModel.ticket_created_at <= created_to)
        result = await self._session.execute(stmt)
        return [_metric_to_domain(m) for m in result.scalars().all()]


class SQLAlchemySLABreachRepository(ISLABreachRepository):
    """SQLAlchemy implementation of SLA breach repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, breach_id: int) -> Optional[SLABreach]:
        model = await self._session.get(SLABreachModel, breach_id)
        return _breach_to_domain(model) if model else None

    async def find(self, metric_id: int, breach_type: SLABreachType) -> Optional[SLABreach]:
        stmt = select(SLABreachModel).where(
            SLABreachModel.metric_id == metric_id,
            SLABreachModel.breach_type == breach_type.value,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return _breach_to_domain(model) if model else None

    async def create(self, breach: SLABreach) -> SLABreach:
        model = SLABreachModel(
            metric_id=breach.metric_id,
            ticket_id=breach.ticket_id,
            policy_id=breach.policy_id,
            breach_type=breach.breach_type.value,
            actual_mins=breach.actual_mins,
            target_mins=breach.target_mins,
            overage_mins=breach.overage_mins,
            breached_at=breach.breached_at,
            stage_index=breach.stage_index,
            status=breach.status.value,
        )
        self._session.add(model)
        try:
            await self._session.flush()
        except IntegrityError as e:
            raise ConflictException(
                "SLA breach already recorded",
                {"metric_id": breach.metric_id, "breach_type": breach.breach_type.value}
            ) from e
        return _breach_to_domain(model)

    async def update(self, breach: SLABreach) -> SLABreach:
        model = await self._session.get(SLABreachModel, breach.id)
        if model is None:
            raise RepositoryException(f"SLA breach {breach.id} not found")

        model.status = breach.status.value
        model.acknowledged_at = breach.acknowledged_at
        model.acknowledged_by = breach.acknowledged_by
        model.resolution_notes = breach.resolution_notes

        try:
            await self._session.flush()
        except StaleDataError as e:
            raise ConflictException("SLA breach was modified concurrently", {"breach_id": breach.id}) from e
        return _breach_to_domain(model)

    async def list(
        self,
        status: Optional[SLABreachStatus] = None,
        ticket_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[SLABreach]:
        stmt = select(SLABreachModel).order_by(SLABreachModel.breached_at.desc(), SLABreachModel.id.desc())
        if status is not None:
            stmt = stmt.where(SLABreachModel.status == status.value)
        if ticket_id is not None:
            stmt = stmt.where(SLABreachModel.ticket_id == ticket_id)
        if offset:
            stmt = stmt.offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await self._session.execute(stmt)
        return [_breach_to_domain(m) for m in result.scalars().all()]
