"""
Workflow Domain Entities
========================

Pure Python domain entities for tickets and approval workflows.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from helpdesk.config import Category, Priority, TicketStatus, TERMINAL_STATUSES


@dataclass(frozen=True)
class WorkflowStage:
    """One approval step, bound to the role allowed to approve it."""
    name: str
    approver_role: str


@dataclass(frozen=True)
class Workflow:
    """
    Ordered list of approval stages.

    Immutable while tickets traverse it.
    """
    id: Optional[int]
    name: str
    stages: tuple[WorkflowStage, ...]
    description: str = ""

    @property
    def stage_count(self) -> int:
        return len(self.stages)

    def stage_at(self, index: int) -> WorkflowStage:
        return self.stages[index]

    def is_last_stage(self, index: int) -> bool:
        return index == len(self.stages) - 1


@dataclass
class Ticket:
    """
    Ticket aggregate.

    Status and stage are mutated only by the workflow stage machine;
    assignee and priority only by accepted automation proposals.
    """

    id: Optional[int]
    title: str
    description: str
    category: Category
    priority: Priority
    requestor_id: int
    status: TicketStatus = TicketStatus.DRAFT
    ticket_number: Optional[str] = None
    workflow_id: Optional[int] = None
    current_stage_index: int = 0
    assignee_id: Optional[int] = None
    due_date: Optional[datetime] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    status_changed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    version: int = 1

    def __post_init__(self):
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")
        if self.current_stage_index < 0:
            raise ValueError("current_stage_index cannot be negative")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def full_text(self) -> str:
        """Combined title and description used for keyword rules."""
        return f"{self.title} {self.description}"

    def copy(self, **changes: Any) -> "Ticket":
        """Return a modified copy; the original snapshot is untouched."""
        return replace(self, **changes)


@dataclass(frozen=True)
class HistoryEntry:
    """
    Immutable entry of a ticket's append-only history log.

    Stored separately from the ticket and read-joined when needed.
    """
    ticket_id: int
    action: str
    actor_id: Optional[int]
    timestamp: datetime
    details: Optional[str] = None
    comment: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None


class HistoryAction:
    """History log action names."""
    CREATED = "Created"
    SUBMITTED = "Submitted"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    STATUS_CHANGE = "Status Change"
    RESPONDED = "Responded"
    AUTOMATED = "Automated"
    ESCALATED = "Escalated"


SYSTEM_ACTOR_ID: Optional[int] = None
