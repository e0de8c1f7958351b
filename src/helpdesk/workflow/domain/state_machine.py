"""
Workflow Stage Machine
======================

Pure transition functions for the ticket lifecycle:

    Draft -> InApproval[stage 0..N-1] -> Approved | Rejected
    Approved -> InProgress -> Completed -> Closed

Transitions are forward-only. Nothing here touches storage; the
application service persists the returned snapshot, appends the history
entry and emits events.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from helpdesk.config import TicketStatus
from helpdesk.core import ForbiddenException, InvalidTransitionException
from helpdesk.workflow.domain.entities import HistoryAction, Ticket, Workflow


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a successful transition."""
    ticket: Ticket
    action: str
    old_status: TicketStatus
    new_status: TicketStatus
    stage_index: Optional[int] = None

    @property
    def status_changed(self) -> bool:
        return self.old_status != self.new_status

    @property
    def approval_completed(self) -> bool:
        return self.old_status == TicketStatus.IN_APPROVAL and self.new_status == TicketStatus.APPROVED


# Linear forward-only steps after approval: action -> (required, target)
LINEAR_TRANSITIONS = {
    "start": (TicketStatus.APPROVED, TicketStatus.IN_PROGRESS),
    "complete": (TicketStatus.IN_PROGRESS, TicketStatus.COMPLETED),
    "close": (TicketStatus.COMPLETED, TicketStatus.CLOSED),
}


class WorkflowStateMachine:
    """
    Stateless transition rules.

    ``admin_override_roles`` may approve or reject any stage.
    """

    def __init__(self, admin_override_roles: Iterable[str] = ()):
        self._override_roles = frozenset(admin_override_roles)

    def submit(self, ticket: Ticket, workflow: Workflow, now: datetime) -> TransitionResult:
        if ticket.status != TicketStatus.DRAFT:
            raise InvalidTransitionException(ticket.status.value, "submit")
        if not ticket.title.strip() or not ticket.description.strip():
            raise InvalidTransitionException(
                ticket.status.value, "submit", "ticket needs a title and a description"
            )
        if workflow.stage_count == 0:
            raise InvalidTransitionException(
                ticket.status.value, "submit", f"workflow '{workflow.name}' has no stages"
            )

        updated = ticket.copy(
            status=TicketStatus.IN_APPROVAL,
            workflow_id=workflow.id,
            current_stage_index=0,
            updated_at=now,
            status_changed_at=now,
        )
        return TransitionResult(
            ticket=updated,
            action=HistoryAction.SUBMITTED,
            old_status=ticket.status,
            new_status=updated.status,
            stage_index=0,
        )

    def approve(self, ticket: Ticket, workflow: Workflow, actor_role: str, now: datetime) -> TransitionResult:
        stage_index = self._check_approver(ticket, workflow, actor_role, "approve")

        if workflow.is_last_stage(stage_index):
            updated = ticket.copy(
                status=TicketStatus.APPROVED,
                updated_at=now,
                status_changed_at=now,
            )
        else:
            updated = ticket.copy(current_stage_index=stage_index + 1, updated_at=now)

        return TransitionResult(
            ticket=updated,
            action=HistoryAction.APPROVED,
            old_status=ticket.status,
            new_status=updated.status,
            stage_index=stage_index,
        )

    def reject(self, ticket: Ticket, workflow: Workflow, actor_role: str, now: datetime) -> TransitionResult:
        stage_index = self._check_approver(ticket, workflow, actor_role, "reject")

        # current_stage_index stays frozen at the rejecting stage
        updated = ticket.copy(
            status=TicketStatus.REJECTED,
            updated_at=now,
            status_changed_at=now,
        )
        return TransitionResult(
            ticket=updated,
            action=HistoryAction.REJECTED,
            old_status=ticket.status,
            new_status=updated.status,
            stage_index=stage_index,
        )

    def advance(self, ticket: Ticket, action: str, now: datetime) -> TransitionResult:
        """Apply one of the linear post-approval steps (start, complete, close)."""
        if action not in LINEAR_TRANSITIONS:
            raise ValueError(f"Unknown linear transition: {action}")

        required, target = LINEAR_TRANSITIONS[action]
        if ticket.status != required:
            raise InvalidTransitionException(
                ticket.status.value, action, f"requires status '{required.value}'"
            )

        updated = ticket.copy(status=target, updated_at=now, status_changed_at=now)
        return TransitionResult(
            ticket=updated,
            action=HistoryAction.STATUS_CHANGE,
            old_status=ticket.status,
            new_status=target,
        )

    def mark_in_progress(self, ticket: Ticket, now: datetime) -> TransitionResult:
        return self.advance(ticket, "start", now)

    def complete(self, ticket: Ticket, now: datetime) -> TransitionResult:
        return self.advance(ticket, "complete", now)

    def close(self, ticket: Ticket, now: datetime) -> TransitionResult:
        return self.advance(ticket, "close", now)

    def _check_approver(self, ticket: Ticket, workflow: Workflow, actor_role: str, action: str) -> int:
        if ticket.status != TicketStatus.IN_APPROVAL:
            raise InvalidTransitionException(ticket.status.value, action)

        stage_index = ticket.current_stage_index
        if stage_index >= workflow.stage_count:
            raise InvalidTransitionException(
                ticket.status.value, action,
                f"stage {stage_index} does not exist in workflow '{workflow.name}'"
            )

        stage = workflow.stage_at(stage_index)
        if actor_role != stage.approver_role and actor_role not in self._override_roles:
            raise ForbiddenException(actor_role, stage.approver_role)

        return stage_index
