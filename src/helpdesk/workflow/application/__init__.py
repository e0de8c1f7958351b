"""
Workflow Application Layer
==========================

Application layer for the ticket workflow module.

Contains:
- Services: WorkflowService applies lifecycle transitions
- DTOs: Data transfer objects for API serialization
- Interfaces: repositories and lifecycle observers

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.workflow.application.dto import (
    WorkflowStageDTO,
    WorkflowCreateRequest,
    TicketCreateRequest,
    SubmitRequest,
    ApprovalRequest,
    TransitionRequest,
    ResponseRecordRequest,
    WorkflowResponse,
    TicketResponse,
    HistoryEntryResponse,
)
from helpdesk.workflow.application.services import (
    WorkflowService,
    ITicketRepository,
    IWorkflowRepository,
    ITicketHistoryRepository,
    ITicketLifecycleObserver,
    utcnow,
)

__all__ = [
    # DTOs
    "WorkflowStageDTO",
    "WorkflowCreateRequest",
    "TicketCreateRequest",
    "SubmitRequest",
    "ApprovalRequest",
    "TransitionRequest",
    "ResponseRecordRequest",
    "WorkflowResponse",
    "TicketResponse",
    "HistoryEntryResponse",
    # Services
    "WorkflowService",
    "utcnow",
    # Interfaces
    "ITicketRepository",
    "IWorkflowRepository",
    "ITicketHistoryRepository",
    "ITicketLifecycleObserver",
]
