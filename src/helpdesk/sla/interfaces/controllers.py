"""
SLA Controllers (API Routes)
=============================

FastAPI routes for SLA policies, metrics, breaches and reporting.

Controllers are thin - they delegate to application services.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from helpdesk.bootstrap import ServiceContainer, get_services, get_sweeper
from helpdesk.config import SLABreachStatus, SLAStatus
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.sla.application import (
    BreachAcknowledgeRequest,
    ComplianceReportResponse,
    DashboardStatsResponse,
    SLABreachResponse,
    SLAMetricResponse,
    SLAPolicyCreateRequest,
    SLAPolicyResponse,
    SLAPolicyUpdateRequest,
    SweepSummaryResponse,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/sla", tags=["SLA"])


# ========== Example payloads for Swagger ==========

POLICY_CREATE_EXAMPLE = {
    "name": "Critical Hardware",
    "category": "Hardware",
    "priority": "Critical",
    "response_time_mins": 30,
    "resolution_time_mins": 240,
    "approval_time_mins": 60,
    "warning_threshold": 80
}

COMPLIANCE_REPORT_EXAMPLE = {
    "total_tickets": 10,
    "tickets_within_sla": 7,
    "tickets_with_warning": 2,
    "tickets_breached": 1,
    "compliance_rate": 70.0,
    "avg_response_time": 22.5,
    "avg_resolution_time": 180.0,
    "avg_approval_time": None,
    "breaches_by_type": {"ResponseTime": 1, "ResolutionTime": 0, "ApprovalTime": 0},
    "breaches_by_priority": {"Low": 0, "Medium": 0, "High": 1, "Critical": 0},
    "breaches_by_category": {"Hardware": 1},
    "report_period": {"start_date": "2024-01-01T00:00:00Z", "end_date": "2024-01-31T23:59:59Z"}
}


# ========== Policies ==========

@router.post(
    "/policies",
    response_model=SLAPolicyResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an SLA policy",
    description="""
    Criteria left empty match any ticket. When several active policies
    match a ticket, the most specific one wins (most non-empty criteria),
    then the most recently created.

    Only one active policy may exist per exact criteria combination.
    """,
    responses={201: {"content": {"application/json": {"example": {"id": 1, **POLICY_CREATE_EXAMPLE}}}}}
)
async def create_policy(request: SLAPolicyCreateRequest, services: ServiceContainer = Depends(get_services)):
    policy = await services.sla_policies.create_policy(**request.model_dump())
    return SLAPolicyResponse.from_domain(policy)


@router.get("/policies", response_model=List[SLAPolicyResponse], summary="List SLA policies")
async def list_policies(
    is_active: Optional[bool] = Query(None, description="Filter by active flag"),
    services: ServiceContainer = Depends(get_services)
):
    return [SLAPolicyResponse.from_domain(p) for p in await services.sla_policies.list_policies(is_active)]


@router.get("/policies/{policy_id}", response_model=SLAPolicyResponse, summary="Get an SLA policy")
async def get_policy(policy_id: int, services: ServiceContainer = Depends(get_services)):
    return SLAPolicyResponse.from_domain(await services.sla_policies.get_policy(policy_id))


@router.patch(
    "/policies/{policy_id}",
    response_model=SLAPolicyResponse,
    summary="Update an SLA policy",
    description="Existing metrics keep the targets they were created with."
)
async def update_policy(
    policy_id: int,
    request: SLAPolicyUpdateRequest,
    services: ServiceContainer = Depends(get_services)
):
    policy = await services.sla_policies.update_policy(policy_id, **request.model_dump(exclude_unset=True))
    return SLAPolicyResponse.from_domain(policy)


@router.delete(
    "/policies/{policy_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an SLA policy",
    description="Refused while tickets still being tracked use the policy."
)
async def delete_policy(policy_id: int, services: ServiceContainer = Depends(get_services)):
    await services.sla_policies.delete_policy(policy_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========== Metrics ==========

@router.get("/metrics", response_model=List[SLAMetricResponse], summary="List SLA metrics")
async def list_metrics(
    metric_status: Optional[SLAStatus] = Query(None, alias="status"),
    policy_id: Optional[int] = Query(None),
    services: ServiceContainer = Depends(get_services)
):
    metrics = await services.sla_tracker.list_metrics(status=metric_status, policy_id=policy_id)
    return [SLAMetricResponse.from_domain(m) for m in metrics]


@router.get(
    "/tickets/{ticket_id}",
    response_model=SLAMetricResponse,
    summary="SLA metric of a ticket",
    description="404 when no policy matched the ticket at creation."
)
async def get_ticket_metric(ticket_id: int, services: ServiceContainer = Depends(get_services)):
    return SLAMetricResponse.from_domain(await services.sla_tracker.get_metric(ticket_id))


# ========== Breaches ==========

@router.get("/breaches", response_model=List[SLABreachResponse], summary="List SLA breaches")
async def list_breaches(
    breach_status: Optional[SLABreachStatus] = Query(None, alias="status"),
    ticket_id: Optional[int] = Query(None),
    limit: int = Query(100, ge=1, le=1000, description="Results per page"),
    offset: int = Query(0, ge=0, description="Page offset"),
    services: ServiceContainer = Depends(get_services)
):
    breaches = await services.breaches.list_breaches(
        status=breach_status, ticket_id=ticket_id, limit=limit, offset=offset
    )
    return [SLABreachResponse.from_domain(b) for b in breaches]


@router.get("/breaches/{breach_id}", response_model=SLABreachResponse, summary="Get an SLA breach")
async def get_breach(breach_id: int, services: ServiceContainer = Depends(get_services)):
    return SLABreachResponse.from_domain(await services.breaches.get_breach(breach_id))


@router.post(
    "/breaches/{breach_id}/acknowledge",
    response_model=SLABreachResponse,
    summary="Acknowledge an SLA breach",
    description="Only Open breaches can be acknowledged; resolution notes are required."
)
async def acknowledge_breach(
    breach_id: int,
    request: BreachAcknowledgeRequest,
    services: ServiceContainer = Depends(get_services)
):
    breach = await services.breaches.acknowledge(breach_id, request.acknowledged_by, request.resolution_notes)
    return SLABreachResponse.from_domain(breach)


# ========== Reporting ==========

@router.get(
    "/reports/compliance",
    response_model=ComplianceReportResponse,
    summary="SLA compliance report",
    description="Covers metrics of tickets created in the period; both bounds are optional.",
    responses={200: {"content": {"application/json": {"example": COMPLIANCE_REPORT_EXAMPLE}}}}
)
async def compliance_report(
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    services: ServiceContainer = Depends(get_services)
):
    return ComplianceReportResponse(**await services.reports.compliance_report(start_date, end_date))


@router.get("/dashboard", response_model=DashboardStatsResponse, summary="SLA dashboard statistics")
async def dashboard(services: ServiceContainer = Depends(get_services)):
    return DashboardStatsResponse.from_stats(await services.reports.dashboard_stats())


@router.post(
    "/sweep",
    response_model=SweepSummaryResponse,
    summary="Run an SLA sweep now",
    description="Same work as the scheduled sweep: recompute open metrics, record breaches, run escalations."
)
async def run_sweep():
    summary = await get_sweeper().sweep()
    return SweepSummaryResponse(**summary.to_dict())


# Export router for inclusion in main app
sla_router = router
