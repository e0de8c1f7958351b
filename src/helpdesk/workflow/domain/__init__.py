"""
Workflow Domain Layer
=====================

Domain layer for the ticket workflow module.

Contains:
- Entities: Ticket, Workflow, WorkflowStage, HistoryEntry
- State machine: pure, forward-only lifecycle transitions

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.workflow.domain.entities import (
    Ticket,
    Workflow,
    WorkflowStage,
    HistoryEntry,
    HistoryAction,
    SYSTEM_ACTOR_ID,
)
from helpdesk.workflow.domain.state_machine import (
    WorkflowStateMachine,
    TransitionResult,
    LINEAR_TRANSITIONS,
)

__all__ = [
    # Entities
    "Ticket",
    "Workflow",
    "WorkflowStage",
    "HistoryEntry",
    "HistoryAction",
    "SYSTEM_ACTOR_ID",
    # State machine
    "WorkflowStateMachine",
    "TransitionResult",
    "LINEAR_TRANSITIONS",
]
