import asyncio
from collections import Counter
from datetime import timedelta

import pytest
from sqlalchemy.dialects import postgresql

from helpdesk.automation.infrastructure import RoundRobinCursorModel
from helpdesk.config import Category, Priority, SLABreachType
from helpdesk.core import ForbiddenException
from helpdesk.infrastructure.database import select_for_update
from helpdesk.sla.services import SLASweeper
from helpdesk.workflow.domain import HistoryAction, Ticket, WorkflowStage
from helpdesk.workflow.infrastructure.models import TicketModel

from conftest import T0
from memory import MemoryStore, no_session


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def services(store, clock, bus, rules):
    return store.services(clock, bus, rules)


def sweeper_for(store, services, clock) -> SLASweeper:
    return SLASweeper(
        session_factory=no_session,
        build_services=lambda session: services,
        clock=clock,
        concurrency=4,
        locks=store.ticket_locks,
    )


async def create_ticket(services, title="Laptop screen flickers"):
    return await services.workflow.create_ticket(
        title=title,
        description="Reported by the front desk",
        category=Category.HARDWARE,
        priority=Priority.MEDIUM,
        requestor_id=100,
    )


async def test_concurrent_approvals_of_one_stage_apply_once(store, services):
    workflow = await services.workflow.create_workflow(
        name="Production Change",
        stages=[WorkflowStage("Team Lead Review", "TeamLead"), WorkflowStage("Manager Approval", "Manager")],
    )
    ticket = await create_ticket(services)
    await services.workflow.submit(ticket.id, workflow.id, actor_id=100)

    results = await asyncio.gather(
        services.workflow.approve(ticket.id, actor_id=200, actor_role="TeamLead"),
        services.workflow.approve(ticket.id, actor_id=201, actor_role="TeamLead"),
        return_exceptions=True,
    )

    approved = [r for r in results if isinstance(r, Ticket)]
    refused = [r for r in results if isinstance(r, Exception)]
    assert len(approved) == 1
    assert len(refused) == 1
    assert isinstance(refused[0], ForbiddenException)

    stored = await services.workflow.get_ticket(ticket.id)
    assert stored.current_stage_index == 1
    history = await services.workflow.get_history(ticket.id)
    assert [e.action for e in history].count(HistoryAction.APPROVED) == 1
    assert ticket.id in store.tickets.locking_reads


async def test_round_robin_cycles_under_concurrent_creation(store, services):
    alice = await services.automation.create_user("Alice", "alice@example.com", "HardwareEngineer")
    bob = await services.automation.create_user("Bob", "bob@example.com", "HardwareEngineer")

    tickets = await asyncio.gather(*(create_ticket(services, f"Dock {n} broken") for n in range(4)))

    assert Counter(t.assignee_id for t in tickets) == {alice.id: 2, bob.id: 2}
    (cursor,) = await services.automation.list_cursors()
    assert cursor.version == 4
    assert cursor.last_index == 1
    assert store.cursors.locking_reads == ["HardwareEngineer"] * 4


async def test_overlapping_sweeps_record_one_breach(store, services, clock):
    await services.sla_policies.create_policy(name="Default", response_time_mins=60, resolution_time_mins=480)
    ticket = await create_ticket(services)
    clock.advance(minutes=70)

    first, second = await asyncio.gather(
        sweeper_for(store, services, clock).sweep(),
        sweeper_for(store, services, clock).sweep(),
    )

    assert first.failed == second.failed == 0
    assert first.breaches + second.breaches == 1
    (breach,) = await services.breaches.list_breaches(ticket_id=ticket.id)
    assert breach.breach_type == SLABreachType.RESPONSE_TIME
    assert breach.actual_mins == 70


async def test_sweep_racing_first_response_records_one_breach(store, services, clock):
    await services.sla_policies.create_policy(name="Default", response_time_mins=60, resolution_time_mins=480)
    ticket = await create_ticket(services)
    clock.advance(minutes=65)

    summary, _ = await asyncio.gather(
        sweeper_for(store, services, clock).sweep(),
        services.workflow.record_response(ticket.id, actor_id=5),
    )

    assert summary.failed == 0
    (breach,) = await services.breaches.list_breaches()
    assert breach.breach_type == SLABreachType.RESPONSE_TIME
    assert breach.actual_mins == 65
    metric = await services.sla_tracker.get_metric(ticket.id)
    assert metric.first_response_at == T0 + timedelta(minutes=65)
    assert metric.response_time_mins == 65


@pytest.mark.parametrize("model, criterion", [
    (TicketModel, TicketModel.id == 1),
    (RoundRobinCursorModel, RoundRobinCursorModel.role == "HardwareEngineer"),
])
def test_locking_reads_render_for_update(model, criterion):
    sql = str(select_for_update(model, criterion).compile(dialect=postgresql.dialect()))

    assert sql.rstrip().endswith("FOR UPDATE")
