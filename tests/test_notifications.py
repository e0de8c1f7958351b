import asyncio
import json

import httpx
import pytest

from helpdesk.config import settings
from helpdesk.shared.domain import DomainEvent, EventType
from helpdesk.shared.infrastructure.events import EventBus
from helpdesk.sla.infrastructure import SlackClient, SlackNotifier, SLAScheduler
from helpdesk.sla.infrastructure.external import CircuitBreaker, CircuitState, SlackMessage

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXX"


class FakeMonotonic:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def slack_settings():
    return settings.model_copy(update={"slack_webhook_url": WEBHOOK, "slack_channel": "#sla-alerts"})


def message():
    return SlackMessage(
        ticket_number="TKT-000001",
        title="ResponseTime target exceeded by 5 min",
        kind="breach",
        fields={"Actual": "65 min", "Target": "60 min"},
        timestamp="2024-01-15T10:05:00+00:00",
    )


def test_circuit_opens_and_half_opens():
    clock = FakeMonotonic()
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=30, clock=clock)

    breaker.record_failure()
    assert breaker.allow_request()
    breaker.record_failure()
    assert breaker.state == CircuitState.OPEN
    assert not breaker.allow_request()

    clock.now = 30
    assert breaker.state == CircuitState.HALF_OPEN
    breaker.record_success()
    assert breaker.state == CircuitState.CLOSED


async def test_send_alert_posts_block_kit_message():
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200)

    client = SlackClient(slack_settings(), httpx.AsyncClient(transport=httpx.MockTransport(handler)))

    assert await client.send_alert(message()) is True
    (payload,) = sent
    assert payload["channel"] == "#sla-alerts"
    assert payload["blocks"][0]["text"]["text"] == ":rotating_light: SLA Breach: TKT-000001"
    await client.close()


async def test_send_alert_retries_then_gives_up():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    client = SlackClient(
        slack_settings(), httpx.AsyncClient(transport=httpx.MockTransport(handler)), retry_base_delay=0
    )

    assert await client.send_alert(message(), max_retries=3) is False
    assert len(calls) == 3
    await client.close()


async def test_disabled_client_sends_nothing():
    client = SlackClient(settings.model_copy(update={"slack_webhook_url": None}))

    assert not client.enabled
    assert await client.send_alert(message()) is False


async def test_notifier_forwards_breach_events():
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200)

    bus = EventBus()
    client = SlackClient(slack_settings(), httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    SlackNotifier(client).register(bus)

    await bus.publish(DomainEvent(EventType.SLA_BREACH, {
        "ticket_id": 1,
        "ticket_number": "TKT-000001",
        "breach_type": "ResponseTime",
        "actual_mins": 65,
        "target_mins": 60,
        "overage_mins": 5,
        "priority": "High",
    }))
    await bus.publish(DomainEvent(EventType.TICKET_CREATED, {"ticket_id": 1}))
    await bus.drain(timeout=5)

    assert len(sent) == 1
    assert sent[0]["blocks"][1]["text"]["text"] == "*ResponseTime target exceeded by 5 min*"
    await client.close()


async def test_scheduler_runs_one_sweep_at_a_time():
    release = asyncio.Event()
    runs = []

    async def sweep():
        runs.append(1)
        await release.wait()
        return "done"

    scheduler = SLAScheduler(interval_seconds=3600, shutdown_timeout=1)
    await scheduler.start(sweep)
    assert scheduler.is_running

    first = asyncio.create_task(scheduler.run_once())
    await asyncio.sleep(0)
    assert not scheduler.is_idle
    assert await scheduler.run_once() is None

    release.set()
    assert await first == "done"
    assert runs == [1]

    await scheduler.stop()
    assert not scheduler.is_running
    assert scheduler.is_idle


async def test_scheduler_logs_and_survives_failed_sweep():
    async def sweep():
        raise RuntimeError("database unavailable")

    scheduler = SLAScheduler(interval_seconds=3600)
    await scheduler.start(sweep)

    assert await scheduler.run_once() is None
    assert scheduler.is_idle
    await scheduler.stop()


@pytest.mark.parametrize("payload, expected", [
    ({"ticket_number": "TKT-000007"}, "TKT-000007"),
    ({"ticket_id": 7}, "ticket 7"),
])
async def test_escalation_alert_label(payload, expected):
    sent = []

    def handler(request):
        sent.append(json.loads(request.content))
        return httpx.Response(200)

    client = SlackClient(slack_settings(), httpx.AsyncClient(transport=httpx.MockTransport(handler)))
    await SlackNotifier(client).on_escalation(DomainEvent(EventType.ESCALATION_TRIGGERED, {
        **payload,
        "rule_names": ["Critical Approved Escalation"],
        "escalate_to_role": "Manager",
        "old_priority": "Critical",
        "new_priority": "Critical",
    }))

    assert sent[0]["blocks"][0]["text"]["text"].endswith(expected)
    await client.close()
