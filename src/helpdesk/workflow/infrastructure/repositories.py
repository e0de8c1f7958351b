"""
Workflow Infrastructure Repositories
====================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database.
"""

from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from helpdesk.config import Category, Priority, TicketStatus
from helpdesk.core import ConflictException, RepositoryException
from helpdesk.infrastructure.database import select_for_update
from helpdesk.workflow.application import (
    ITicketHistoryRepository,
    ITicketRepository,
    IWorkflowRepository,
    utcnow,
)
from helpdesk.workflow.domain import HistoryEntry, Ticket, Workflow, WorkflowStage
from helpdesk.workflow.infrastructure.models import (
    TicketHistoryModel,
    TicketModel,
    WorkflowModel,
    WorkflowStageModel,
)


def format_ticket_number(ticket_id: int) -> str:
    return f"TKT-{ticket_id:06d}"


def _ticket_to_domain(model: TicketModel) -> Ticket:
    return Ticket(
        id=model.id,
        ticket_number=format_ticket_number(model.id),
        title=model.title,
        description=model.description,
        category=Category(model.category),
        priority=Priority(model.priority),
        status=TicketStatus(model.status),
        requestor_id=model.requestor_id,
        workflow_id=model.workflow_id,
        current_stage_index=model.current_stage_index,
        assignee_id=model.assignee_id,
        due_date=model.due_date,
        created_at=model.created_at,
        updated_at=model.updated_at,
        status_changed_at=model.status_changed_at,
        version=model.version,
    )


class SQLAlchemyTicketRepository(ITicketRepository):
    """
    SQLAlchemy implementation of ticket repository.

    The mapper's version column makes every UPDATE conditional on the
    version that was read; a lost race surfaces as ConflictException.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, ticket_id: int, for_update: bool = False) -> Optional[Ticket]:
        if for_update:
            result = await self._session.execute(select_for_update(TicketModel, TicketModel.id == ticket_id))
            model = result.scalar_one_or_none()
        else:
            model = await self._session.get(TicketModel, ticket_id)
        return _ticket_to_domain(model) if model else None

    async def create(self, ticket: Ticket) -> Ticket:
        model = TicketModel(
            title=ticket.title,
            description=ticket.description,
            category=ticket.category.value,
            priority=ticket.priority.value,
            status=ticket.status.value,
            requestor_id=ticket.requestor_id,
            workflow_id=ticket.workflow_id,
            current_stage_index=ticket.current_stage_index,
            assignee_id=ticket.assignee_id,
            due_date=ticket.due_date,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            status_changed_at=ticket.status_changed_at,
        )
        self._session.add(model)
        await self._session.flush()
        return _ticket_to_domain(model)

    async def update(self, ticket: Ticket) -> Ticket:
        model = await self._session.get(TicketModel, ticket.id)
        if model is None:
            raise RepositoryException(f"Ticket {ticket.id} not found")
        if model.version != ticket.version:
            raise ConflictException(
                "Ticket was modified concurrently",
                {"ticket_id": ticket.id, "expected_version": ticket.version, "stored_version": model.version}
            )

        model.title = ticket.title
        model.description = ticket.description
        model.category = ticket.category.value
        model.priority = ticket.priority.value
        model.status = ticket.status.value
        model.workflow_id = ticket.workflow_id
        model.current_stage_index = ticket.current_stage_index
        model.assignee_id = ticket.assignee_id
        model.due_date = ticket.due_date
        model.updated_at = max(ticket.updated_at, model.updated_at)
        model.status_changed_at = ticket.status_changed_at

        try:
            await self._session.flush()
        except StaleDataError as e:
            raise ConflictException(
                "Ticket was modified concurrently",
                {"ticket_id": ticket.id, "expected_version": ticket.version}
            ) from e

        return _ticket_to_domain(model)


class SQLAlchemyWorkflowRepository(IWorkflowRepository):
    """SQLAlchemy implementation of workflow repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get_by_id(self, workflow_id: int) -> Optional[Workflow]:
        model = await self._session.get(WorkflowModel, workflow_id)
        if model is None:
            return None

        stmt = (
            select(WorkflowStageModel)
            .where(WorkflowStageModel.workflow_id == workflow_id)
            .order_by(WorkflowStageModel.position)
        )
        result = await self._session.execute(stmt)
        stages = tuple(
            WorkflowStage(name=s.name, approver_role=s.approver_role)
            for s in result.scalars().all()
        )
        return Workflow(id=model.id, name=model.name, stages=stages, description=model.description)

    async def create(self, workflow: Workflow) -> Workflow:
        model = WorkflowModel(
            name=workflow.name,
            description=workflow.description,
            created_at=utcnow(),
        )
        self._session.add(model)
        await self._session.flush()

        for position, stage in enumerate(workflow.stages):
            self._session.add(WorkflowStageModel(
                workflow_id=model.id,
                position=position,
                name=stage.name,
                approver_role=stage.approver_role,
            ))
        await self._session.flush()

        return Workflow(id=model.id, name=model.name, stages=workflow.stages, description=model.description)


class SQLAlchemyTicketHistoryRepository(ITicketHistoryRepository):
    """Append-only history store."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: HistoryEntry) -> HistoryEntry:
        model = TicketHistoryModel(
            ticket_id=entry.ticket_id,
            action=entry.action,
            actor_id=entry.actor_id,
            timestamp=entry.timestamp,
            details=entry.details,
            comment=entry.comment,
            extra=dict(entry.metadata),
        )
        self._session.add(model)
        await self._session.flush()
        return _history_to_domain(model)

    async def list_for_ticket(self, ticket_id: int) -> List[HistoryEntry]:
        stmt = (
            select(TicketHistoryModel)
            .where(TicketHistoryModel.ticket_id == ticket_id)
            .order_by(TicketHistoryModel.id)
        )
        result = await self._session.execute(stmt)
        return [_history_to_domain(m) for m in result.scalars().all()]


def _history_to_domain(model: TicketHistoryModel) -> HistoryEntry:
    return HistoryEntry(
        id=model.id,
        ticket_id=model.ticket_id,
        action=model.action,
        actor_id=model.actor_id,
        timestamp=model.timestamp,
        details=model.details,
        comment=model.comment,
        metadata=dict(model.extra or {}),
    )
