"""
Workflow Application Services
=============================

Application services orchestrate business logic and coordinate between
domain entities and repositories.

Following SOLID principles:
- Single Responsibility: WorkflowService owns the ticket lifecycle only
- Dependency Inversion: Depend on abstractions (repositories, observers),
  not concrete implementations
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional, Sequence

from helpdesk.config import Category, Priority
from helpdesk.core import ResourceNotFoundException, ValidationException
from helpdesk.shared.domain import DomainEvent, EventType, IEventPublisher
from helpdesk.shared.infrastructure.locks import KeyedLock, ticket_locks
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.workflow.domain import (
    HistoryAction,
    HistoryEntry,
    Ticket,
    TransitionResult,
    Workflow,
    WorkflowStage,
    WorkflowStateMachine,
)

logger = get_logger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ========== Repository Interfaces (Dependency Inversion) ==========

class ITicketRepository(ABC):
    """Interface for ticket data access."""

    @abstractmethod
    async def get_by_id(self, ticket_id: int, for_update: bool = False) -> Optional[Ticket]:
        """
        Get ticket by ID.

        ``for_update`` locks the row until the unit of work ends and reads
        the latest committed state.
        """

    @abstractmethod
    async def create(self, ticket: Ticket) -> Ticket:
        """Insert a new ticket and return it with id and ticket number."""

    @abstractmethod
    async def update(self, ticket: Ticket) -> Ticket:
        """
        Persist a modified ticket.

        ``ticket.version`` must equal the stored version; the stored
        version is incremented. Raises ConflictException otherwise.
        """


class IWorkflowRepository(ABC):
    """Interface for workflow data access."""

    @abstractmethod
    async def get_by_id(self, workflow_id: int) -> Optional[Workflow]:
        """Get workflow with its ordered stages."""

    @abstractmethod
    async def create(self, workflow: Workflow) -> Workflow:
        """Create a workflow."""


class ITicketHistoryRepository(ABC):
    """Append-only ticket history store."""

    @abstractmethod
    async def append(self, entry: HistoryEntry) -> HistoryEntry:
        """Append an entry."""

    @abstractmethod
    async def list_for_ticket(self, ticket_id: int) -> List[HistoryEntry]:
        """Entries for a ticket in insertion order."""


class ITicketLifecycleObserver(ABC):
    """
    Receives ticket lifecycle notifications inside the same unit of work.

    Automation and SLA tracking plug in here.
    """

    async def on_ticket_created(self, ticket: Ticket) -> None:
        return None

    async def on_transition(self, ticket: Ticket, result: TransitionResult) -> None:
        return None

    async def on_first_response(self, ticket: Ticket, responded_at: datetime) -> None:
        return None


# ========== Application Services ==========

class WorkflowService:
    """
    Applies workflow transitions.

    Each transition runs under a per-ticket lock: read, validate, write the
    new stage/status, append history. The ticket is read for update, so the
    row stays locked until the unit of work commits and the next writer,
    in this process or another, reads the committed stage. The repository's
    version check remains the last line against lost updates.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        workflow_repository: IWorkflowRepository,
        history_repository: ITicketHistoryRepository,
        event_publisher: IEventPublisher,
        observers: Sequence[ITicketLifecycleObserver] = (),
        state_machine: Optional[WorkflowStateMachine] = None,
        clock: Callable[[], datetime] = utcnow,
        locks: KeyedLock = ticket_locks,
    ):
        self._tickets = ticket_repository
        self._workflows = workflow_repository
        self._history = history_repository
        self._events = event_publisher
        self._observers = list(observers)
        self._machine = state_machine or WorkflowStateMachine()
        self._clock = clock
        self._locks = locks

    # ----- workflows -----

    async def create_workflow(
        self,
        name: str,
        stages: Sequence[WorkflowStage],
        description: str = ""
    ) -> Workflow:
        if not name.strip():
            raise ValidationException("Workflow name is required")
        for stage in stages:
            if not stage.name.strip() or not stage.approver_role.strip():
                raise ValidationException(
                    "Every stage needs a name and an approver role",
                    {"stage": stage.name}
                )
        return await self._workflows.create(
            Workflow(id=None, name=name, stages=tuple(stages), description=description)
        )

    async def get_workflow(self, workflow_id: int) -> Workflow:
        workflow = await self._workflows.get_by_id(workflow_id)
        if workflow is None:
            raise ResourceNotFoundException("Workflow", workflow_id)
        return workflow

    # ----- tickets -----

    async def create_ticket(
        self,
        title: str,
        description: str,
        category: Category,
        priority: Priority,
        requestor_id: int,
        due_date: Optional[datetime] = None,
        workflow_id: Optional[int] = None,
    ) -> Ticket:
        """
        Create a Draft ticket, then run automation and start SLA tracking.

        A ticket created with a workflow is bound to it: SLA policies scoped
        to that workflow match at creation and ``submit`` uses it.
        """
        if workflow_id is not None:
            await self.get_workflow(workflow_id)

        now = self._clock()
        ticket = await self._tickets.create(Ticket(
            id=None,
            title=title,
            description=description,
            category=category,
            priority=priority,
            requestor_id=requestor_id,
            workflow_id=workflow_id,
            due_date=due_date,
            created_at=now,
            updated_at=now,
            status_changed_at=now,
        ))

        await self._history.append(HistoryEntry(
            ticket_id=ticket.id,
            action=HistoryAction.CREATED,
            actor_id=requestor_id,
            timestamp=now,
        ))
        await self._events.publish(DomainEvent(EventType.TICKET_CREATED, {
            "ticket_id": ticket.id,
            "ticket_number": ticket.ticket_number,
            "title": ticket.title,
            "category": ticket.category.value,
            "priority": ticket.priority.value,
            "status": ticket.status.value,
            "requestor_id": ticket.requestor_id,
            "workflow_id": ticket.workflow_id,
        }))

        # Observers see the ticket as left by the previous one (automation
        # may change priority before SLA policy matching)
        for observer in self._observers:
            await observer.on_ticket_created(ticket)
            ticket = await self.get_ticket(ticket.id)

        logger.info("Ticket created", extra={"ticket_id": ticket.id, "ticket_number": ticket.ticket_number})
        return ticket

    async def get_ticket(self, ticket_id: int, for_update: bool = False) -> Ticket:
        ticket = await self._tickets.get_by_id(ticket_id, for_update=for_update)
        if ticket is None:
            raise ResourceNotFoundException("Ticket", ticket_id)
        return ticket

    async def get_history(self, ticket_id: int) -> List[HistoryEntry]:
        await self.get_ticket(ticket_id)
        return await self._history.list_for_ticket(ticket_id)

    # ----- transitions -----

    async def submit(
        self,
        ticket_id: int,
        workflow_id: Optional[int],
        actor_id: int,
        comment: Optional[str] = None
    ) -> Ticket:
        """Submit into ``workflow_id``, or into the workflow the ticket was created with."""
        async with self._locks.hold(ticket_id):
            ticket = await self.get_ticket(ticket_id, for_update=True)
            if workflow_id is None:
                workflow_id = ticket.workflow_id
            if workflow_id is None:
                raise ValidationException("A workflow is required to submit the ticket", {"ticket_id": ticket_id})
            if ticket.workflow_id is not None and ticket.workflow_id != workflow_id:
                raise ValidationException(
                    "Ticket is bound to another workflow",
                    {"ticket_id": ticket_id, "workflow_id": ticket.workflow_id, "requested_workflow_id": workflow_id}
                )
            workflow = await self.get_workflow(workflow_id)
            result = self._machine.submit(ticket, workflow, self._clock())
            return await self._apply(result, actor_id, comment, workflow)

    async def approve(
        self,
        ticket_id: int,
        actor_id: int,
        actor_role: str,
        comment: Optional[str] = None
    ) -> Ticket:
        async with self._locks.hold(ticket_id):
            ticket = await self.get_ticket(ticket_id, for_update=True)
            workflow = await self._workflow_of(ticket)
            result = self._machine.approve(ticket, workflow, actor_role, self._clock())
            return await self._apply(result, actor_id, comment, workflow)

    async def reject(
        self,
        ticket_id: int,
        actor_id: int,
        actor_role: str,
        comment: Optional[str] = None
    ) -> Ticket:
        async with self._locks.hold(ticket_id):
            ticket = await self.get_ticket(ticket_id, for_update=True)
            workflow = await self._workflow_of(ticket)
            result = self._machine.reject(ticket, workflow, actor_role, self._clock())
            return await self._apply(result, actor_id, comment, workflow)

    async def mark_in_progress(self, ticket_id: int, actor_id: int, comment: Optional[str] = None) -> Ticket:
        return await self._advance(ticket_id, "start", actor_id, comment)

    async def complete(self, ticket_id: int, actor_id: int, comment: Optional[str] = None) -> Ticket:
        return await self._advance(ticket_id, "complete", actor_id, comment)

    async def close(self, ticket_id: int, actor_id: int, comment: Optional[str] = None) -> Ticket:
        return await self._advance(ticket_id, "close", actor_id, comment)

    async def record_response(
        self,
        ticket_id: int,
        actor_id: int,
        responded_at: Optional[datetime] = None
    ) -> Ticket:
        """Record an agent response; the SLA tracker stamps only the first one."""
        responded_at = responded_at or self._clock()
        async with self._locks.hold(ticket_id):
            ticket = await self.get_ticket(ticket_id, for_update=True)
            if responded_at < ticket.created_at:
                raise ValidationException("Response cannot precede ticket creation")

            await self._history.append(HistoryEntry(
                ticket_id=ticket_id,
                action=HistoryAction.RESPONDED,
                actor_id=actor_id,
                timestamp=responded_at,
            ))
            for observer in self._observers:
                await observer.on_first_response(ticket, responded_at)
            return ticket

    async def _advance(self, ticket_id: int, action: str, actor_id: int, comment: Optional[str]) -> Ticket:
        async with self._locks.hold(ticket_id):
            ticket = await self.get_ticket(ticket_id, for_update=True)
            result = self._machine.advance(ticket, action, self._clock())
            return await self._apply(result, actor_id, comment)

    async def _workflow_of(self, ticket: Ticket) -> Workflow:
        if ticket.workflow_id is None:
            raise ResourceNotFoundException("Workflow", None, {"ticket_id": ticket.id})
        return await self.get_workflow(ticket.workflow_id)

    async def _apply(
        self,
        result: TransitionResult,
        actor_id: int,
        comment: Optional[str],
        workflow: Optional[Workflow] = None,
    ) -> Ticket:
        saved = await self._tickets.update(result.ticket)

        details = f"{result.old_status.value} -> {result.new_status.value}"
        if result.stage_index is not None and workflow is not None:
            details += f" (stage {result.stage_index}: {workflow.stage_at(result.stage_index).name})"

        await self._history.append(HistoryEntry(
            ticket_id=saved.id,
            action=result.action,
            actor_id=actor_id,
            timestamp=saved.updated_at,
            details=details,
            comment=comment,
            metadata={
                "old_status": result.old_status.value,
                "new_status": result.new_status.value,
                "stage_index": result.stage_index,
            },
        ))

        await self._publish_transition(saved, result, actor_id, comment)

        for observer in self._observers:
            await observer.on_transition(saved, result)

        logger.info(
            "Ticket transition applied",
            extra={
                "ticket_id": saved.id,
                "action": result.action,
                "old_status": result.old_status.value,
                "new_status": result.new_status.value,
                "stage_index": saved.current_stage_index,
            }
        )
        return await self.get_ticket(saved.id)

    async def _publish_transition(
        self,
        ticket: Ticket,
        result: TransitionResult,
        actor_id: int,
        comment: Optional[str]
    ) -> None:
        base = {"ticket_id": ticket.id, "ticket_number": ticket.ticket_number}

        if result.action == HistoryAction.APPROVED:
            await self._events.publish(DomainEvent(EventType.TICKET_APPROVED, {
                **base,
                "approved_by": actor_id,
                "stage_index": result.stage_index,
                "comment": comment,
            }))
        elif result.action == HistoryAction.REJECTED:
            await self._events.publish(DomainEvent(EventType.TICKET_REJECTED, {
                **base,
                "rejected_by": actor_id,
                "stage_index": result.stage_index,
                "reason": comment,
            }))

        if result.status_changed:
            await self._events.publish(DomainEvent(EventType.TICKET_STATUS_CHANGED, {
                **base,
                "old_status": result.old_status.value,
                "new_status": result.new_status.value,
                "changed_by": actor_id,
                "reason": comment,
            }))
