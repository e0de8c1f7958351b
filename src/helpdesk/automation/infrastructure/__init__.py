"""
Automation Infrastructure Layer
===============================

- Models: SQLAlchemy ORM models for users and round-robin cursors
- Repositories: Data access layer
- External: YAML rule file manager with hot-reload
"""

from helpdesk.automation.infrastructure.models import UserModel, RoundRobinCursorModel
from helpdesk.automation.infrastructure.repositories import (
    SQLAlchemyUserRepository,
    SQLAlchemyRoundRobinCursorRepository,
)
from helpdesk.automation.infrastructure.external import (
    DEFAULT_RULES,
    RuleSetManager,
    parse_rules,
)

__all__ = [
    "UserModel",
    "RoundRobinCursorModel",
    "SQLAlchemyUserRepository",
    "SQLAlchemyRoundRobinCursorRepository",
    "DEFAULT_RULES",
    "RuleSetManager",
    "parse_rules",
]
