from helpdesk.config import Category, Priority, TicketStatus
from helpdesk.shared.domain import EventType
from helpdesk.workflow.domain import HistoryAction, WorkflowStage


async def create_ticket(services, title="Laptop screen flickers", category=Category.HARDWARE):
    return await services.workflow.create_ticket(
        title=title,
        description="Reported by the front desk",
        category=category,
        priority=Priority.MEDIUM,
        requestor_id=100,
    )


async def approved_ticket(services, title):
    workflow = await services.workflow.create_workflow(
        name="Quick approval", stages=[WorkflowStage("Lead", "TeamLead")]
    )
    ticket = await create_ticket(services, title=title)
    await services.workflow.submit(ticket.id, workflow.id, actor_id=100)
    return await services.workflow.approve(ticket.id, actor_id=200, actor_role="TeamLead")


async def test_hardware_tickets_assigned_round_robin(services):
    alice = await services.automation.create_user("Alice", "alice@example.com", "HardwareEngineer")
    bob = await services.automation.create_user("Bob", "bob@example.com", "HardwareEngineer")

    assignees = [(await create_ticket(services)).assignee_id for _ in range(3)]

    assert assignees == [alice.id, bob.id, alice.id]
    (cursor,) = await services.automation.list_cursors()
    assert cursor.role == "HardwareEngineer"
    assert cursor.last_index == 0


async def test_no_users_for_role_leaves_ticket_unassigned(services):
    ticket = await create_ticket(services)

    assert ticket.assignee_id is None
    assert await services.automation.list_cursors() == []


async def test_uncovered_category_is_not_assigned(services):
    await services.automation.create_user("Alice", "alice@example.com", "HardwareEngineer")

    ticket = await create_ticket(services, category=Category.BILLING_QUESTION)

    assert ticket.assignee_id is None


async def test_keyword_prioritization_is_recorded(services, bus):
    ticket = await create_ticket(services, title="Email outage on floor 3")

    assert ticket.priority == Priority.CRITICAL
    history = await services.workflow.get_history(ticket.id)
    automated = [e for e in history if e.action == HistoryAction.AUTOMATED]
    assert automated[0].metadata["rule"] == "Outage Keywords"
    assert automated[0].metadata["old_value"] == "Medium"
    (event,) = bus.recent(EventType.PRIORITIZATION_APPLIED)
    assert event.data["new_priority"] == "Critical"


async def test_escalation_applies_once_per_rule(services, clock, bus):
    manager = await services.automation.create_user("Maya", "maya@example.com", "Manager")
    ticket = await approved_ticket(services, "Server outage")
    assert ticket.status == TicketStatus.APPROVED

    clock.advance(hours=1)
    assert await services.automation.check_escalation(ticket) is None

    clock.advance(hours=2)
    proposal = await services.automation.check_escalation(await services.workflow.get_ticket(ticket.id))
    assert proposal.rule_names == ("Critical Approved Escalation",)

    escalated = await services.workflow.get_ticket(ticket.id)
    assert escalated.assignee_id == manager.id

    clock.advance(hours=5)
    assert await services.automation.check_escalation(escalated) is None

    history = await services.workflow.get_history(ticket.id)
    assert [e.metadata["rule"] for e in history if e.action == HistoryAction.ESCALATED] == [
        "Critical Approved Escalation"
    ]
    assert len(bus.recent(EventType.ESCALATION_TRIGGERED)) == 1


async def test_escalation_without_users_still_recorded(services, clock):
    ticket = await approved_ticket(services, "Payroll system outage")
    clock.advance(hours=2)

    proposal = await services.automation.check_escalation(ticket)

    assert proposal.escalate_to_role == "Manager"
    after = await services.workflow.get_ticket(ticket.id)
    assert after.assignee_id is None
    history = await services.workflow.get_history(ticket.id)
    assert any(e.action == HistoryAction.ESCALATED for e in history)


async def test_terminal_tickets_are_not_escalated(services, clock):
    ticket = await approved_ticket(services, "Server outage")
    await services.workflow.mark_in_progress(ticket.id, actor_id=1)
    await services.workflow.complete(ticket.id, actor_id=1)
    clock.advance(days=3)

    completed = await services.workflow.get_ticket(ticket.id)
    assert await services.automation.check_escalation(completed) is None
