"""
Service Wiring
==============

Builds the application services for one database session.

The workflow service notifies its lifecycle observers in order:
automation first (prioritization may change the priority used for SLA
policy matching), then the SLA metric tracker.
"""

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.automation.application import AutomationService, IRuleProvider
from helpdesk.automation.infrastructure import (
    RuleSetManager,
    SQLAlchemyRoundRobinCursorRepository,
    SQLAlchemyUserRepository,
)
from helpdesk.config import settings
from helpdesk.infrastructure.database import get_session, get_session_context
from helpdesk.shared.domain import IEventPublisher
from helpdesk.shared.infrastructure.events import get_event_bus
from helpdesk.sla.application import (
    BreachDetector,
    SLAMetricTracker,
    SLAPolicyService,
    SLAReportService,
)
from helpdesk.sla.infrastructure import (
    SQLAlchemySLABreachRepository,
    SQLAlchemySLAMetricRepository,
    SQLAlchemySLAPolicyRepository,
)
from helpdesk.sla.services import SLASweeper
from helpdesk.workflow.application import WorkflowService, utcnow
from helpdesk.workflow.domain import WorkflowStateMachine
from helpdesk.workflow.infrastructure import (
    SQLAlchemyTicketHistoryRepository,
    SQLAlchemyTicketRepository,
    SQLAlchemyWorkflowRepository,
)


@dataclass
class ServiceContainer:
    workflow: WorkflowService
    automation: AutomationService
    sla_policies: SLAPolicyService
    sla_tracker: SLAMetricTracker
    breaches: BreachDetector
    reports: SLAReportService


@lru_cache()
def get_rule_provider() -> RuleSetManager:
    """Process-wide automation rules, loaded from ``settings.automation_rules_path``."""
    manager = RuleSetManager()
    manager.load(settings.automation_rules_path)
    return manager


def build_services(
    session: AsyncSession,
    event_publisher: Optional[IEventPublisher] = None,
    rule_provider: Optional[IRuleProvider] = None,
    clock: Callable[[], datetime] = utcnow,
) -> ServiceContainer:
    events = event_publisher or get_event_bus()
    rules = rule_provider or get_rule_provider()

    tickets = SQLAlchemyTicketRepository(session)
    history = SQLAlchemyTicketHistoryRepository(session)
    policies = SQLAlchemySLAPolicyRepository(session)
    metrics = SQLAlchemySLAMetricRepository(session)
    breaches = SQLAlchemySLABreachRepository(session)

    automation = AutomationService(
        ticket_repository=tickets,
        history_repository=history,
        user_repository=SQLAlchemyUserRepository(session),
        cursor_repository=SQLAlchemyRoundRobinCursorRepository(session),
        rule_provider=rules,
        event_publisher=events,
        clock=clock,
    )
    detector = BreachDetector(breaches, events, clock=clock)
    tracker = SLAMetricTracker(policies, metrics, detector, events, clock=clock)

    workflow = WorkflowService(
        ticket_repository=tickets,
        workflow_repository=SQLAlchemyWorkflowRepository(session),
        history_repository=history,
        event_publisher=events,
        observers=(automation, tracker),
        state_machine=WorkflowStateMachine(settings.admin_override_roles),
        clock=clock,
    )

    return ServiceContainer(
        workflow=workflow,
        automation=automation,
        sla_policies=SLAPolicyService(policies, metrics, clock=clock),
        sla_tracker=tracker,
        breaches=detector,
        reports=SLAReportService(policies, metrics, breaches, tickets, clock=clock),
    )


async def get_services(session: AsyncSession = Depends(get_session)) -> ServiceContainer:
    """FastAPI dependency: services bound to the request's session."""
    return build_services(session)


@lru_cache()
def get_sweeper() -> SLASweeper:
    return SLASweeper(
        session_factory=get_session_context,
        build_services=build_services,
        concurrency=settings.sla_sweep_concurrency,
        base_backoff_seconds=settings.sla_sweep_interval_seconds,
        max_backoff_seconds=settings.sla_sweep_max_backoff_seconds,
    )
