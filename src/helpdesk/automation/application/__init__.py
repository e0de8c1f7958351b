"""
Automation Application Layer
============================

Services applying rule proposals, the repository interfaces they need,
and the API/YAML schemas for rules and users.
"""

from helpdesk.automation.application.dto import (
    UserCreateRequest,
    UserResponse,
    RoundRobinCursorResponse,
    AssignmentRuleSchema,
    PrioritizationRuleSchema,
    EscalationRuleSchema,
    RuleSetSchema,
)
from helpdesk.automation.application.services import (
    AutomationService,
    RoundRobinAssigner,
    IRuleProvider,
    IUserRepository,
    IRoundRobinCursorRepository,
)

__all__ = [
    # DTOs
    "UserCreateRequest",
    "UserResponse",
    "RoundRobinCursorResponse",
    "AssignmentRuleSchema",
    "PrioritizationRuleSchema",
    "EscalationRuleSchema",
    "RuleSetSchema",
    # Services
    "AutomationService",
    "RoundRobinAssigner",
    # Interfaces
    "IRuleProvider",
    "IUserRepository",
    "IRoundRobinCursorRepository",
]
