"""Shared fixtures: in-memory SQLite database, controllable clock, services."""

from datetime import datetime, timedelta, timezone

import pytest

from helpdesk.automation.infrastructure import RuleSetManager
from helpdesk.bootstrap import build_services
from helpdesk.config import Category, Priority
from helpdesk.infrastructure.database import (
    close_database,
    create_tables,
    drop_tables,
    get_session_maker,
    init_database,
)
from helpdesk.shared.infrastructure.events import EventBus
from helpdesk.workflow.domain import Ticket, Workflow, WorkflowStage

T0 = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta) -> datetime:
        self.now += timedelta(**delta)
        return self.now


def make_ticket(**overrides) -> Ticket:
    fields = dict(
        id=1,
        ticket_number="TKT-000001",
        title="Laptop screen flickers",
        description="Screen flickers after docking",
        category=Category.HARDWARE,
        priority=Priority.MEDIUM,
        requestor_id=100,
        created_at=T0,
        updated_at=T0,
        status_changed_at=T0,
    )
    fields.update(overrides)
    return Ticket(**fields)


def three_stage_workflow() -> Workflow:
    return Workflow(
        id=1,
        name="Production Change",
        stages=(
            WorkflowStage("Team Lead Review", "TeamLead"),
            WorkflowStage("Manager Approval", "Manager"),
            WorkflowStage("CAB Approval", "CAB"),
        ),
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def rules() -> RuleSetManager:
    return RuleSetManager()


@pytest.fixture
async def database():
    init_database("sqlite+aiosqlite://")
    await create_tables()
    yield
    await drop_tables()
    await close_database()


@pytest.fixture
async def session(database):
    async with get_session_maker()() as session:
        yield session


@pytest.fixture
def services(session, bus, rules, clock):
    return build_services(session, event_publisher=bus, rule_provider=rules, clock=clock)
