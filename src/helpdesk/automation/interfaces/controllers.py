"""
Automation Controllers (API Routes)
===================================

FastAPI routes for automation rules, users and round-robin state.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from helpdesk.automation.application import (
    RoundRobinCursorResponse,
    RuleSetSchema,
    UserCreateRequest,
    UserResponse,
)
from helpdesk.bootstrap import ServiceContainer, get_rule_provider, get_services
from helpdesk.core import ConfigurationException
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/automation", tags=["Automation"])


@router.get(
    "/rules",
    response_model=RuleSetSchema,
    summary="Current automation rules",
    description="""
    Prioritization, assignment and escalation rules currently in effect.
    Rules are loaded from the YAML file and reloaded when it changes.
    """
)
async def get_rules(services: ServiceContainer = Depends(get_services)):
    return RuleSetSchema.from_domain(services.automation.get_rules())


@router.post(
    "/rules/reload",
    response_model=RuleSetSchema,
    summary="Reload automation rules from file",
    description="Keeps the current rules and returns 400 when the file is invalid."
)
async def reload_rules():
    manager = get_rule_provider()
    if not manager.reload():
        raise ConfigurationException("Automation rules could not be reloaded; previous rules kept")
    return RuleSetSchema.from_domain(manager.get_rules())


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a user",
    description="Active users of a role take part in round-robin assignment and escalation for that role."
)
async def create_user(request: UserCreateRequest, services: ServiceContainer = Depends(get_services)):
    user = await services.automation.create_user(request.name, request.email, request.role)
    return UserResponse.from_domain(user)


@router.get("/users", response_model=List[UserResponse], summary="List users")
async def list_users(
    role: Optional[str] = Query(None, description="Only active users of this role"),
    services: ServiceContainer = Depends(get_services)
):
    return [UserResponse.from_domain(u) for u in await services.automation.list_users(role)]


@router.get("/users/{user_id}", response_model=UserResponse, summary="Get a user")
async def get_user(user_id: int, services: ServiceContainer = Depends(get_services)):
    return UserResponse.from_domain(await services.automation.get_user(user_id))


@router.get(
    "/round-robin",
    response_model=List[RoundRobinCursorResponse],
    summary="Round-robin cursors",
    description="Last assigned position per role."
)
async def list_cursors(services: ServiceContainer = Depends(get_services)):
    return [RoundRobinCursorResponse.from_domain(c) for c in await services.automation.list_cursors()]


# Export router for inclusion in main app
automation_router = router
