"""
SLA Infrastructure Layer
=========================

Infrastructure implementations for SLA tracking:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- External: Slack notifications and the sweep scheduler
"""

from helpdesk.sla.infrastructure.models import SLAPolicyModel, SLAMetricModel, SLABreachModel
from helpdesk.sla.infrastructure.repositories import (
    SQLAlchemySLAPolicyRepository,
    SQLAlchemySLAMetricRepository,
    SQLAlchemySLABreachRepository,
)
from helpdesk.sla.infrastructure.external import (
    CircuitBreaker,
    SlackClient,
    SlackMessage,
    SlackNotifier,
    SLAScheduler,
)

__all__ = [
    "SLAPolicyModel",
    "SLAMetricModel",
    "SLABreachModel",
    "SQLAlchemySLAPolicyRepository",
    "SQLAlchemySLAMetricRepository",
    "SQLAlchemySLABreachRepository",
    "CircuitBreaker",
    "SlackClient",
    "SlackMessage",
    "SlackNotifier",
    "SLAScheduler",
]
