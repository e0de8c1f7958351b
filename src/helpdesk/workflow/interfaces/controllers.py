"""
Workflow Controllers (API Routes)
=================================

FastAPI routes for workflows and the ticket lifecycle.

Controllers are thin - they delegate to application services. Domain
errors are translated to HTTP responses by the application exception
handler.
"""

from typing import List

from fastapi import APIRouter, Depends, status

from helpdesk.bootstrap import ServiceContainer, get_services
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.workflow.application import (
    ApprovalRequest,
    HistoryEntryResponse,
    ResponseRecordRequest,
    SubmitRequest,
    TicketCreateRequest,
    TicketResponse,
    TransitionRequest,
    WorkflowCreateRequest,
    WorkflowResponse,
)
from helpdesk.workflow.domain import WorkflowStage

logger = get_logger(__name__)
router = APIRouter(tags=["Workflow"])


# ========== Example payloads for Swagger ==========

WORKFLOW_CREATE_EXAMPLE = {
    "name": "Production Change",
    "description": "Changes to production systems",
    "stages": [
        {"name": "Team Lead Review", "approver_role": "TeamLead"},
        {"name": "Manager Approval", "approver_role": "Manager"},
        {"name": "CAB Approval", "approver_role": "CAB"},
    ]
}


# ========== Workflows ==========

@router.post(
    "/workflows",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an approval workflow",
    description="""
    Create an ordered list of approval stages. Each stage names the role
    allowed to approve it. Workflows are immutable once created.
    """,
    responses={201: {"content": {"application/json": {"example": {"id": 1, **WORKFLOW_CREATE_EXAMPLE}}}}}
)
async def create_workflow(
    request: WorkflowCreateRequest,
    services: ServiceContainer = Depends(get_services)
):
    workflow = await services.workflow.create_workflow(
        name=request.name,
        description=request.description,
        stages=[WorkflowStage(name=s.name, approver_role=s.approver_role) for s in request.stages],
    )
    return WorkflowResponse.from_domain(workflow)


@router.get("/workflows/{workflow_id}", response_model=WorkflowResponse, summary="Get a workflow")
async def get_workflow(workflow_id: int, services: ServiceContainer = Depends(get_services)):
    return WorkflowResponse.from_domain(await services.workflow.get_workflow(workflow_id))


# ========== Tickets ==========

@router.post(
    "/tickets",
    response_model=TicketResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a ticket",
    description="""
    Create a Draft ticket. Prioritization and assignment rules run
    immediately, then SLA tracking starts against the most specific
    matching policy.

    A ticket created with a workflow_id is bound to that workflow.
    """
)
async def create_ticket(
    request: TicketCreateRequest,
    services: ServiceContainer = Depends(get_services)
):
    ticket = await services.workflow.create_ticket(
        title=request.title,
        description=request.description,
        category=request.category,
        priority=request.priority,
        requestor_id=request.requestor_id,
        due_date=request.due_date,
        workflow_id=request.workflow_id,
    )
    return TicketResponse.from_domain(ticket)


@router.get("/tickets/{ticket_id}", response_model=TicketResponse, summary="Get a ticket")
async def get_ticket(ticket_id: int, services: ServiceContainer = Depends(get_services)):
    return TicketResponse.from_domain(await services.workflow.get_ticket(ticket_id))


@router.get(
    "/tickets/{ticket_id}/history",
    response_model=List[HistoryEntryResponse],
    summary="Get a ticket's history log"
)
async def get_ticket_history(ticket_id: int, services: ServiceContainer = Depends(get_services)):
    return [HistoryEntryResponse.from_domain(e) for e in await services.workflow.get_history(ticket_id)]


@router.post(
    "/tickets/{ticket_id}/submit",
    response_model=TicketResponse,
    summary="Submit a Draft ticket for approval",
    description="""
    Moves the ticket to InApproval at the first stage of the given workflow,
    or of the workflow the ticket was created with.
    """
)
async def submit_ticket(
    ticket_id: int,
    request: SubmitRequest,
    services: ServiceContainer = Depends(get_services)
):
    ticket = await services.workflow.submit(ticket_id, request.workflow_id, request.actor_id, request.comment)
    return TicketResponse.from_domain(ticket)


@router.post(
    "/tickets/{ticket_id}/approve",
    response_model=TicketResponse,
    summary="Approve the current stage",
    description="""
    The actor's role must match the stage's approver role (or be an admin
    override role). Approving the last stage moves the ticket to Approved.
    """
)
async def approve_ticket(
    ticket_id: int,
    request: ApprovalRequest,
    services: ServiceContainer = Depends(get_services)
):
    ticket = await services.workflow.approve(ticket_id, request.actor_id, request.actor_role, request.comment)
    return TicketResponse.from_domain(ticket)


@router.post("/tickets/{ticket_id}/reject", response_model=TicketResponse, summary="Reject the current stage")
async def reject_ticket(
    ticket_id: int,
    request: ApprovalRequest,
    services: ServiceContainer = Depends(get_services)
):
    ticket = await services.workflow.reject(ticket_id, request.actor_id, request.actor_role, request.comment)
    return TicketResponse.from_domain(ticket)


@router.post("/tickets/{ticket_id}/start", response_model=TicketResponse, summary="Approved -> InProgress")
async def start_ticket(
    ticket_id: int,
    request: TransitionRequest,
    services: ServiceContainer = Depends(get_services)
):
    ticket = await services.workflow.mark_in_progress(ticket_id, request.actor_id, request.comment)
    return TicketResponse.from_domain(ticket)


@router.post("/tickets/{ticket_id}/complete", response_model=TicketResponse, summary="InProgress -> Completed")
async def complete_ticket(
    ticket_id: int,
    request: TransitionRequest,
    services: ServiceContainer = Depends(get_services)
):
    ticket = await services.workflow.complete(ticket_id, request.actor_id, request.comment)
    return TicketResponse.from_domain(ticket)


@router.post("/tickets/{ticket_id}/close", response_model=TicketResponse, summary="Completed -> Closed")
async def close_ticket(
    ticket_id: int,
    request: TransitionRequest,
    services: ServiceContainer = Depends(get_services)
):
    ticket = await services.workflow.close(ticket_id, request.actor_id, request.comment)
    return TicketResponse.from_domain(ticket)


@router.post(
    "/tickets/{ticket_id}/responses",
    response_model=TicketResponse,
    summary="Record an agent response",
    description="The first recorded response stamps the ticket's response-time SLA."
)
async def record_response(
    ticket_id: int,
    request: ResponseRecordRequest,
    services: ServiceContainer = Depends(get_services)
):
    ticket = await services.workflow.record_response(ticket_id, request.actor_id, request.responded_at)
    return TicketResponse.from_domain(ticket)


# Export router for inclusion in main app
workflow_router = router
