from datetime import timedelta

import pytest

from helpdesk.config import Category, Priority, SLABreachStatus, SLABreachType, SLAStatus
from helpdesk.core import InvalidTransitionException, ResourceNotFoundException, ValidationException
from helpdesk.shared.domain import EventType
from helpdesk.workflow.domain import WorkflowStage

from conftest import T0


async def hardware_policy(services, **overrides):
    fields = dict(
        name="Hardware",
        category=Category.HARDWARE,
        response_time_mins=60,
        resolution_time_mins=480,
        warning_threshold=80,
    )
    fields.update(overrides)
    return await services.sla_policies.create_policy(**fields)


async def create_ticket(services, title="Laptop screen flickers", category=Category.HARDWARE):
    return await services.workflow.create_ticket(
        title=title,
        description="Reported by the front desk",
        category=category,
        priority=Priority.MEDIUM,
        requestor_id=100,
    )


async def single_stage_workflow(services):
    return await services.workflow.create_workflow(name="Lead", stages=[WorkflowStage("Lead", "TeamLead")])


async def test_metric_created_from_most_specific_policy(services, bus):
    await services.sla_policies.create_policy(name="Default", response_time_mins=240, resolution_time_mins=2880)
    policy = await hardware_policy(services)

    ticket = await create_ticket(services)
    metric = await services.sla_tracker.get_metric(ticket.id)

    assert metric.policy_id == policy.id
    assert metric.target_response_time_mins == 60
    assert metric.ticket_created_at == T0
    assert metric.status == SLAStatus.WITHIN_SLA
    (event,) = bus.recent(EventType.SLA_METRIC_CREATED)
    assert event.data["policy_name"] == "Hardware"


async def test_no_matching_policy_means_no_metric(services):
    await hardware_policy(services)

    ticket = await create_ticket(services, category=Category.BILLING_QUESTION)

    with pytest.raises(ResourceNotFoundException):
        await services.sla_tracker.get_metric(ticket.id)


async def test_ticket_created_is_idempotent(services):
    await hardware_policy(services)
    ticket = await create_ticket(services)
    first = await services.sla_tracker.get_metric(ticket.id)

    again = await services.sla_tracker.on_ticket_created(ticket)

    assert again.id == first.id
    assert len(await services.sla_tracker.list_metrics()) == 1


async def test_first_response_is_stamped_once(services, clock):
    await hardware_policy(services)
    ticket = await create_ticket(services)

    clock.advance(minutes=10)
    await services.workflow.record_response(ticket.id, actor_id=5)
    clock.advance(minutes=10)
    await services.workflow.record_response(ticket.id, actor_id=6)

    metric = await services.sla_tracker.get_metric(ticket.id)
    assert metric.response_time_mins == 10
    assert metric.first_response_at == T0.replace(minute=10)


async def test_response_before_creation_is_rejected(services):
    ticket = await create_ticket(services)

    with pytest.raises(ValidationException):
        await services.workflow.record_response(ticket.id, actor_id=5, responded_at=T0.replace(hour=8))


async def test_ticks_warn_then_breach_exactly_once(services, clock, bus):
    await hardware_policy(services)
    ticket = await create_ticket(services)

    clock.advance(minutes=50)
    evaluation = await services.sla_tracker.on_tick(ticket)
    assert evaluation.metric.response_status == SLAStatus.WARNING
    assert len(bus.recent(EventType.SLA_WARNING)) == 1

    clock.advance(minutes=15)
    await services.sla_tracker.on_tick(ticket)
    clock.advance(minutes=30)
    await services.sla_tracker.on_tick(ticket)

    (breach,) = await services.breaches.list_breaches(ticket_id=ticket.id)
    assert breach.breach_type == SLABreachType.RESPONSE_TIME
    assert breach.actual_mins == 65
    assert breach.overage_mins == 5
    assert breach.status == SLABreachStatus.OPEN
    assert len(bus.recent(EventType.SLA_BREACH)) == 1
    assert len(bus.recent(EventType.SLA_WARNING)) == 1

    metric = await services.sla_tracker.get_metric(ticket.id)
    assert metric.status == SLAStatus.BREACHED


async def test_acknowledge_breach(services, clock):
    await hardware_policy(services)
    ticket = await create_ticket(services)
    clock.advance(minutes=61)
    await services.sla_tracker.on_tick(ticket)
    (breach,) = await services.breaches.list_breaches()

    with pytest.raises(ValidationException):
        await services.breaches.acknowledge(breach.id, 7, "   ")

    acknowledged = await services.breaches.acknowledge(breach.id, 7, "Replacement laptop shipped")
    assert acknowledged.status == SLABreachStatus.ACKNOWLEDGED
    assert acknowledged.acknowledged_by == 7
    assert acknowledged.acknowledged_at == clock()

    with pytest.raises(InvalidTransitionException):
        await services.breaches.acknowledge(breach.id, 8, "Again")

    with pytest.raises(ResourceNotFoundException):
        await services.breaches.acknowledge(9999, 7, "Missing")


async def test_completion_stamps_resolution_and_finalizes(services, clock):
    await hardware_policy(services)
    workflow = await single_stage_workflow(services)
    ticket = await create_ticket(services)

    await services.workflow.submit(ticket.id, workflow.id, actor_id=100)
    await services.workflow.approve(ticket.id, actor_id=200, actor_role="TeamLead")
    await services.workflow.mark_in_progress(ticket.id, actor_id=300)
    clock.advance(minutes=120)
    await services.workflow.complete(ticket.id, actor_id=300)

    metric = await services.sla_tracker.get_metric(ticket.id)
    assert metric.resolution_time_mins == 120
    assert metric.resolution_status == SLAStatus.WITHIN_SLA
    assert metric.is_finalized
    assert await services.sla_tracker.list_active_metrics() == []

    clock.advance(days=2)
    assert await services.sla_tracker.on_tick(ticket) is None
    assert (await services.sla_tracker.get_metric(ticket.id)).finalized_at == metric.finalized_at


async def test_rejection_finalizes_metric(services):
    await hardware_policy(services)
    workflow = await single_stage_workflow(services)
    ticket = await create_ticket(services)

    await services.workflow.submit(ticket.id, workflow.id, actor_id=100)
    await services.workflow.reject(ticket.id, actor_id=200, actor_role="TeamLead", comment="Not needed")

    assert (await services.sla_tracker.get_metric(ticket.id)).is_finalized


async def test_late_approval_breaches_approval_dimension(services, clock):
    await hardware_policy(services, approval_time_mins=30)
    workflow = await single_stage_workflow(services)
    ticket = await create_ticket(services)

    await services.workflow.submit(ticket.id, workflow.id, actor_id=100)
    clock.advance(minutes=45)
    await services.workflow.approve(ticket.id, actor_id=200, actor_role="TeamLead")

    metric = await services.sla_tracker.get_metric(ticket.id)
    assert metric.approval_time_mins == 45
    assert metric.approval_status == SLAStatus.BREACHED
    assert metric.response_status == SLAStatus.WITHIN_SLA
    (breach,) = await services.breaches.list_breaches()
    assert breach.breach_type == SLABreachType.APPROVAL_TIME
    assert breach.stage_index == 0
    assert breach.overage_mins == 15


@pytest.mark.parametrize("overrides", [
    {"response_time_mins": 0},
    {"resolution_time_mins": -5},
    {"warning_threshold": 101},
    {"name": "  "},
])
async def test_policy_validation(services, overrides):
    with pytest.raises(ValidationException):
        await hardware_policy(services, **overrides)


async def test_duplicate_active_criteria_rejected(services):
    await hardware_policy(services)

    with pytest.raises(ValidationException):
        await hardware_policy(services, name="Hardware again")

    inactive = await hardware_policy(services, name="Hardware draft", is_active=False)
    with pytest.raises(ValidationException):
        await services.sla_policies.update_policy(inactive.id, is_active=True)


async def test_policy_edit_does_not_touch_existing_metrics(services):
    policy = await hardware_policy(services)
    ticket = await create_ticket(services)

    updated = await services.sla_policies.update_policy(policy.id, response_time_mins=15)

    assert updated.response_time_mins == 15
    assert (await services.sla_tracker.get_metric(ticket.id)).target_response_time_mins == 60


async def test_policy_in_use_cannot_be_deleted(services):
    policy = await hardware_policy(services)
    workflow = await single_stage_workflow(services)
    ticket = await create_ticket(services)

    with pytest.raises(ValidationException):
        await services.sla_policies.delete_policy(policy.id)

    await services.workflow.submit(ticket.id, workflow.id, actor_id=100)
    await services.workflow.reject(ticket.id, actor_id=200, actor_role="TeamLead")
    await services.sla_policies.delete_policy(policy.id)

    with pytest.raises(ResourceNotFoundException):
        await services.sla_policies.get_policy(policy.id)


async def test_compliance_report_and_dashboard(services, clock):
    policy = await hardware_policy(services)
    late = await create_ticket(services)
    on_time = await create_ticket(services, title="Mouse not working")
    await services.workflow.record_response(on_time.id, actor_id=5)

    clock.advance(minutes=90)
    for ticket in (late, on_time):
        await services.sla_tracker.on_tick(ticket)

    report = await services.reports.compliance_report()
    assert report["total_tickets"] == 2
    assert report["tickets_within_sla"] == 1
    assert report["tickets_breached"] == 1
    assert report["compliance_rate"] == 50.0
    assert report["avg_response_time"] == 0.0
    assert report["breaches_by_type"]["ResponseTime"] == 1
    assert report["breaches_by_category"]["Hardware"] == 1
    assert report["breaches_by_priority"]["Medium"] == 1

    stats = await services.reports.dashboard_stats()
    assert stats["total_metrics"] == 2
    assert stats["open_breaches"] == 1
    assert stats["current_compliance_rate"] == 50.0
    assert stats["top_breached_policies"] == [
        {"policy_id": policy.id, "policy_name": "Hardware", "breach_count": 1}
    ]
    assert stats["recent_breaches"][0].ticket_id == late.id


async def test_workflow_scoped_policy_matches_on_submission(services):
    workflow = await single_stage_workflow(services)
    scoped = await services.sla_policies.create_policy(
        name="Lead workflow", response_time_mins=30, resolution_time_mins=240, workflow_id=workflow.id
    )
    ticket = await create_ticket(services)

    with pytest.raises(ResourceNotFoundException):
        await services.sla_tracker.get_metric(ticket.id)

    await services.workflow.submit(ticket.id, workflow.id, actor_id=100)

    metric = await services.sla_tracker.get_metric(ticket.id)
    assert metric.policy_id == scoped.id
    assert metric.ticket_created_at == T0
    assert metric.target_response_time_mins == 30


async def test_ticket_created_in_workflow_matches_scoped_policy(services):
    workflow = await single_stage_workflow(services)
    other = await services.workflow.create_workflow(name="Other", stages=[WorkflowStage("Lead", "TeamLead")])
    await hardware_policy(services)
    scoped = await hardware_policy(services, name="Hardware in Lead workflow", workflow_id=workflow.id)

    ticket = await services.workflow.create_ticket(
        title="Laptop screen flickers",
        description="Reported by the front desk",
        category=Category.HARDWARE,
        priority=Priority.MEDIUM,
        requestor_id=100,
        workflow_id=workflow.id,
    )

    assert ticket.workflow_id == workflow.id
    assert (await services.sla_tracker.get_metric(ticket.id)).policy_id == scoped.id

    with pytest.raises(ValidationException):
        await services.workflow.submit(ticket.id, other.id, actor_id=100)

    submitted = await services.workflow.submit(ticket.id, None, actor_id=100)
    assert submitted.workflow_id == workflow.id
    assert submitted.current_stage_index == 0


async def test_ticket_with_unknown_workflow_is_rejected(services):
    with pytest.raises(ResourceNotFoundException):
        await services.workflow.create_ticket(
            title="Laptop screen flickers",
            description="Reported by the front desk",
            category=Category.HARDWARE,
            priority=Priority.MEDIUM,
            requestor_id=100,
            workflow_id=999,
        )


async def test_submit_without_any_workflow_is_rejected(services):
    ticket = await create_ticket(services)

    with pytest.raises(ValidationException):
        await services.workflow.submit(ticket.id, None, actor_id=100)


async def test_approval_clock_starts_at_submission(services, clock):
    await hardware_policy(services, response_time_mins=240, approval_time_mins=60)
    workflow = await single_stage_workflow(services)
    ticket = await create_ticket(services)

    clock.advance(minutes=90)
    evaluation = await services.sla_tracker.on_tick(ticket)

    assert evaluation.metric.approval_status == SLAStatus.WITHIN_SLA
    assert evaluation.metric.approval_started_at is None
    assert await services.breaches.list_breaches() == []

    await services.workflow.submit(ticket.id, workflow.id, actor_id=100)
    clock.advance(minutes=45)
    await services.workflow.approve(ticket.id, actor_id=200, actor_role="TeamLead")

    metric = await services.sla_tracker.get_metric(ticket.id)
    assert metric.approval_started_at == T0 + timedelta(minutes=90)
    assert metric.approval_time_mins == 45
    assert metric.approval_status == SLAStatus.WITHIN_SLA
    assert await services.breaches.list_breaches() == []
