"""
SLA Application Layer
======================

Application layer for SLA tracking.

Contains:
- Services: policy administration, metric tracking, breach detection
  and reporting
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from helpdesk.sla.application.dto import (
    SLAPolicyCreateRequest,
    SLAPolicyUpdateRequest,
    BreachAcknowledgeRequest,
    SLAPolicyResponse,
    SLAMetricResponse,
    SLABreachResponse,
    ComplianceReportResponse,
    DashboardStatsResponse,
    SweepSummaryResponse,
)
from helpdesk.sla.application.services import (
    SLAPolicyService,
    SLAMetricTracker,
    BreachDetector,
    SLAReportService,
    ISLAPolicyRepository,
    ISLAMetricRepository,
    ISLABreachRepository,
)

__all__ = [
    # DTOs
    "SLAPolicyCreateRequest",
    "SLAPolicyUpdateRequest",
    "BreachAcknowledgeRequest",
    "SLAPolicyResponse",
    "SLAMetricResponse",
    "SLABreachResponse",
    "ComplianceReportResponse",
    "DashboardStatsResponse",
    "SweepSummaryResponse",
    # Services
    "SLAPolicyService",
    "SLAMetricTracker",
    "BreachDetector",
    "SLAReportService",
    # Repository Interfaces
    "ISLAPolicyRepository",
    "ISLAMetricRepository",
    "ISLABreachRepository",
]
