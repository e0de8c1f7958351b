"""
Workflow Application DTOs
=========================

Data Transfer Objects for the workflow API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from helpdesk.config import Category, Priority, TicketStatus
from helpdesk.workflow.domain import HistoryEntry, Ticket, Workflow


# ========== Request DTOs ==========

class WorkflowStageDTO(BaseModel):
    """One approval stage."""
    name: str = Field(..., min_length=1, description="Stage name")
    approver_role: str = Field(..., min_length=1, description="Role allowed to approve this stage")


class WorkflowCreateRequest(BaseModel):
    """Request model for creating a workflow."""
    name: str = Field(..., min_length=1)
    description: str = Field(default="")
    stages: List[WorkflowStageDTO] = Field(default_factory=list, description="Ordered approval stages")


class TicketCreateRequest(BaseModel):
    """Request model for creating a ticket."""
    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="")
    category: Category
    priority: Priority = Priority.MEDIUM
    requestor_id: int = Field(..., ge=1)
    due_date: Optional[datetime] = None
    workflow_id: Optional[int] = Field(None, ge=1, description="Bind the ticket to a workflow at creation")


class SubmitRequest(BaseModel):
    """Submit a Draft ticket into a workflow."""
    workflow_id: Optional[int] = Field(None, ge=1, description="Defaults to the workflow the ticket was created with")
    actor_id: int = Field(..., ge=1)
    comment: Optional[str] = None


class ApprovalRequest(BaseModel):
    """Approve or reject the current stage."""
    actor_id: int = Field(..., ge=1)
    actor_role: str = Field(..., min_length=1)
    comment: Optional[str] = None


class TransitionRequest(BaseModel):
    """Linear status transition (start, complete, close)."""
    actor_id: int = Field(..., ge=1)
    comment: Optional[str] = None


class ResponseRecordRequest(BaseModel):
    """Agent response on a ticket."""
    actor_id: int = Field(..., ge=1)
    responded_at: Optional[datetime] = None


# ========== Response DTOs ==========

class WorkflowResponse(BaseModel):
    """Response model for a workflow."""
    id: int
    name: str
    description: str
    stages: List[WorkflowStageDTO]

    @classmethod
    def from_domain(cls, workflow: Workflow) -> "WorkflowResponse":
        return cls(
            id=workflow.id,
            name=workflow.name,
            description=workflow.description,
            stages=[
                WorkflowStageDTO(name=s.name, approver_role=s.approver_role)
                for s in workflow.stages
            ],
        )


class TicketResponse(BaseModel):
    """Response model for a ticket."""
    id: int
    ticket_number: str
    title: str
    description: str
    category: Category
    priority: Priority
    status: TicketStatus
    workflow_id: Optional[int]
    current_stage_index: int
    assignee_id: Optional[int]
    requestor_id: int
    due_date: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    status_changed_at: datetime
    version: int

    @classmethod
    def from_domain(cls, ticket: Ticket) -> "TicketResponse":
        return cls(
            id=ticket.id,
            ticket_number=ticket.ticket_number,
            title=ticket.title,
            description=ticket.description,
            category=ticket.category,
            priority=ticket.priority,
            status=ticket.status,
            workflow_id=ticket.workflow_id,
            current_stage_index=ticket.current_stage_index,
            assignee_id=ticket.assignee_id,
            requestor_id=ticket.requestor_id,
            due_date=ticket.due_date,
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
            status_changed_at=ticket.status_changed_at,
            version=ticket.version,
        )


class HistoryEntryResponse(BaseModel):
    """Response model for a history log entry."""
    id: int
    action: str
    actor_id: Optional[int]
    timestamp: datetime
    details: Optional[str] = None
    comment: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, entry: HistoryEntry) -> "HistoryEntryResponse":
        return cls(
            id=entry.id,
            action=entry.action,
            actor_id=entry.actor_id,
            timestamp=entry.timestamp,
            details=entry.details,
            comment=entry.comment,
            metadata=entry.metadata,
        )
