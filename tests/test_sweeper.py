from datetime import timedelta

import pytest

from helpdesk.bootstrap import build_services
from helpdesk.config import Category, Priority, SLABreachType, SLAStatus
from helpdesk.infrastructure.database import get_session_context
from helpdesk.sla.services import SLASweeper
from helpdesk.workflow.domain import WorkflowStage


@pytest.fixture
def build(bus, rules, clock):
    def factory(session):
        return build_services(session, event_publisher=bus, rule_provider=rules, clock=clock)
    return factory


@pytest.fixture
def sweeper(database, build, clock):
    return SLASweeper(
        session_factory=get_session_context,
        build_services=build,
        clock=clock,
        concurrency=1,
        base_backoff_seconds=60,
        max_backoff_seconds=300,
    )


async def seed_tickets(build, titles):
    async with get_session_context() as session:
        services = build(session)
        await services.sla_policies.create_policy(
            name="Default", response_time_mins=60, resolution_time_mins=480
        )
        tickets = []
        for title in titles:
            tickets.append(await services.workflow.create_ticket(
                title=title,
                description="Reported by the front desk",
                category=Category.HARDWARE,
                priority=Priority.MEDIUM,
                requestor_id=100,
            ))
        return tickets


async def load_metric(build, ticket_id):
    async with get_session_context() as session:
        return await build(session).sla_tracker.get_metric(ticket_id)


async def test_sweep_records_breaches(sweeper, build, clock):
    first, second = await seed_tickets(build, ["Laptop screen flickers", "Keyboard sticky"])

    clock.advance(minutes=50)
    warned = await sweeper.sweep()
    assert warned.evaluated == 2
    assert warned.warnings == 2
    assert warned.breaches == 0

    clock.advance(minutes=20)
    breached = await sweeper.sweep()
    assert breached.breaches == 2
    assert breached.failed == 0

    again = await sweeper.sweep()
    assert again.breaches == 0

    metric = await load_metric(build, first.id)
    assert metric.response_status == SLAStatus.BREACHED
    async with get_session_context() as session:
        breaches = await build(session).breaches.list_breaches()
    assert sorted(b.ticket_id for b in breaches) == [first.id, second.id]
    assert {b.breach_type for b in breaches} == {SLABreachType.RESPONSE_TIME}


async def test_sweep_finalizes_terminal_tickets(sweeper, build, clock):
    (ticket,) = await seed_tickets(build, ["Laptop screen flickers"])
    async with get_session_context() as session:
        services = build(session)
        workflow = await services.workflow.create_workflow(
            name="Lead", stages=[WorkflowStage("Lead", "TeamLead")]
        )
        await services.workflow.submit(ticket.id, workflow.id, actor_id=100)

    # A metric left open on a terminal ticket is closed by the sweep
    async with get_session_context() as session:
        services = build(session)
        services.workflow._observers = []
        await services.workflow.reject(ticket.id, actor_id=200, actor_role="TeamLead")

    summary = await sweeper.sweep()

    assert summary.finalized == 1
    assert (await load_metric(build, ticket.id)).is_finalized
    assert (await sweeper.sweep()).finalized == 0


async def test_failing_metric_is_isolated_and_backs_off(database, bus, rules, clock):
    def flaky(session):
        services = build_services(session, event_publisher=bus, rule_provider=rules, clock=clock)
        on_tick = services.sla_tracker.on_tick

        async def failing_on_tick(ticket, now=None):
            if ticket.id == broken.id:
                raise RuntimeError("metric store unavailable")
            return await on_tick(ticket, now)

        services.sla_tracker.on_tick = failing_on_tick
        return services

    def plain(session):
        return build_services(session, event_publisher=bus, rule_provider=rules, clock=clock)

    broken, healthy = await seed_tickets(plain, ["Laptop screen flickers", "Keyboard sticky"])
    sweeper = SLASweeper(
        session_factory=get_session_context,
        build_services=flaky,
        clock=clock,
        concurrency=1,
        base_backoff_seconds=60,
        max_backoff_seconds=100,
    )
    broken_metric = await load_metric(plain, broken.id)

    clock.advance(minutes=70)
    first = await sweeper.sweep()
    assert first.failed == 1
    assert first.evaluated == 1
    assert first.breaches == 1
    assert sweeper.backoff_for(broken_metric.id) == clock() + timedelta(seconds=60)

    skipped = await sweeper.sweep()
    assert skipped.skipped == 1
    assert skipped.failed == 0

    clock.advance(seconds=60)
    second = await sweeper.sweep()
    assert second.failed == 1
    assert sweeper.backoff_for(broken_metric.id) == clock() + timedelta(seconds=100)

    assert (await load_metric(plain, healthy.id)).status == SLAStatus.BREACHED
    assert (await load_metric(plain, broken.id)).status == SLAStatus.WITHIN_SLA


async def test_sweep_recovery_clears_backoff(database, bus, rules, clock):
    failures = {"remaining": 1}

    def flaky(session):
        services = build_services(session, event_publisher=bus, rule_provider=rules, clock=clock)
        on_tick = services.sla_tracker.on_tick

        async def failing_once(ticket, now=None):
            if failures["remaining"]:
                failures["remaining"] -= 1
                raise RuntimeError("transient")
            return await on_tick(ticket, now)

        services.sla_tracker.on_tick = failing_once
        return services

    def plain(session):
        return build_services(session, event_publisher=bus, rule_provider=rules, clock=clock)

    (ticket,) = await seed_tickets(plain, ["Laptop screen flickers"])
    metric = await load_metric(plain, ticket.id)
    sweeper = SLASweeper(
        session_factory=get_session_context,
        build_services=flaky,
        clock=clock,
        concurrency=1,
        base_backoff_seconds=60,
    )

    assert (await sweeper.sweep()).failed == 1
    clock.advance(minutes=1)
    assert (await sweeper.sweep()).evaluated == 1
    assert sweeper.backoff_for(metric.id) is None


async def test_backoff_forgotten_once_metric_finalized_elsewhere(database, bus, rules, clock):
    def failing(session):
        services = build_services(session, event_publisher=bus, rule_provider=rules, clock=clock)

        async def unavailable(ticket, now=None):
            raise RuntimeError("metric store unavailable")

        services.sla_tracker.on_tick = unavailable
        return services

    def plain(session):
        return build_services(session, event_publisher=bus, rule_provider=rules, clock=clock)

    (ticket,) = await seed_tickets(plain, ["Laptop screen flickers"])
    metric = await load_metric(plain, ticket.id)
    sweeper = SLASweeper(
        session_factory=get_session_context,
        build_services=failing,
        clock=clock,
        concurrency=1,
        base_backoff_seconds=60,
    )

    assert (await sweeper.sweep()).failed == 1
    assert sweeper.backoff_for(metric.id) is not None

    async with get_session_context() as session:
        services = plain(session)
        await services.sla_tracker.finalize(await services.workflow.get_ticket(ticket.id))

    summary = await sweeper.sweep()
    assert summary.skipped == 0
    assert sweeper.backoff_for(metric.id) is None
