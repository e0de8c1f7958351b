"""
Workflow Infrastructure Layer
=============================

- Models: SQLAlchemy ORM models for workflows, tickets and history
- Repositories: Data access layer with optimistic version checks
"""

from helpdesk.workflow.infrastructure.models import (
    WorkflowModel,
    WorkflowStageModel,
    TicketModel,
    TicketHistoryModel,
)
from helpdesk.workflow.infrastructure.repositories import (
    SQLAlchemyTicketRepository,
    SQLAlchemyWorkflowRepository,
    SQLAlchemyTicketHistoryRepository,
    format_ticket_number,
)

__all__ = [
    "WorkflowModel",
    "WorkflowStageModel",
    "TicketModel",
    "TicketHistoryModel",
    "SQLAlchemyTicketRepository",
    "SQLAlchemyWorkflowRepository",
    "SQLAlchemyTicketHistoryRepository",
    "format_ticket_number",
]
