"""
SLA Domain Layer
================

Domain layer for SLA tracking.

Contains:
- Entities: SLAPolicy, SLAMetric, SLABreach
- Value Objects: StatusTransition, StatusEvaluation
- Domain Services: SLACalculator (status and duration math), PolicyMatcher

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from helpdesk.sla.domain.entities import (
    SLAPolicy,
    SLAMetric,
    SLABreach,
    dimension_fields,
)
from helpdesk.sla.domain.value_objects import (
    SLACalculator,
    PolicyMatcher,
    StatusTransition,
    StatusEvaluation,
)

__all__ = [
    # Entities
    "SLAPolicy",
    "SLAMetric",
    "SLABreach",
    "dimension_fields",
    # Value Objects & Services
    "SLACalculator",
    "PolicyMatcher",
    "StatusTransition",
    "StatusEvaluation",
]
