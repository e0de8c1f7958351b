"""
SLA External Service Integrations
==================================

External services for SLA monitoring:
- Slack webhook notifications for breaches, warnings and escalations
- APScheduler for the periodic SLA sweep
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from helpdesk.config import Settings, settings as default_settings
from helpdesk.shared.domain import DomainEvent, EventType
from helpdesk.shared.infrastructure.events import EventBus
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class CircuitState:
    """Circuit breaker states."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """
    Circuit breaker for preventing cascade failures.

    States:
    - CLOSED: Normal operation, requests pass through
    - OPEN: After N failures, reject all requests for M seconds
    - HALF_OPEN: After timeout, allow one test request
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

    @property
    def state(self) -> str:
        if self._state == CircuitState.OPEN and self._last_failure_time is not None:
            if self._clock() - self._last_failure_time >= self.recovery_timeout:
                self._state = CircuitState.HALF_OPEN
        return self._state

    def allow_request(self) -> bool:
        return self.state in (CircuitState.CLOSED, CircuitState.HALF_OPEN)

    def record_success(self) -> None:
        self._failure_count = 0
        self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._failure_count >= self.failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker opened",
                extra={
                    "failure_count": self._failure_count,
                    "recovery_timeout": self.recovery_timeout
                }
            )


@dataclass
class SlackMessage:
    """Slack notification message."""
    ticket_number: str
    title: str
    kind: str
    fields: Dict[str, str]
    timestamp: str


class SlackClient:
    """
    Slack webhook client with circuit breaker and retry logic.

    Handles sending structured alerts to Slack with:
    - Circuit breaker to prevent cascade failures
    - Exponential backoff retry
    - Timeout handling
    """

    _HEADERS = {
        "breach": ":rotating_light: SLA Breach",
        "warning": ":warning: SLA Warning",
        "escalation": ":arrow_double_up: Ticket Escalated",
    }

    def __init__(
        self,
        config: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        retry_base_delay: float = 1.0
    ):
        self._settings = config or default_settings
        self._circuit_breaker = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        self._http_client = http_client
        self._retry_base_delay = retry_base_delay

    @property
    def enabled(self) -> bool:
        return bool(self._settings.slack_webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self._settings.slack_timeout_seconds)
        return self._http_client

    def _build_message(self, data: SlackMessage) -> Dict[str, Any]:
        """Build Slack Block Kit message."""
        header = self._HEADERS.get(data.kind, data.kind.title())
        return {
            "channel": self._settings.slack_channel,
            "blocks": [
                {
                    "type": "header",
                    "text": {"type": "plain_text", "text": f"{header}: {data.ticket_number}", "emoji": True}
                },
                {
                    "type": "section",
                    "text": {"type": "mrkdwn", "text": f"*{data.title}*"},
                    "fields": [
                        {"type": "mrkdwn", "text": f"*{name}:*\n{value}"}
                        for name, value in data.fields.items()
                    ]
                },
                {
                    "type": "context",
                    "elements": [{"type": "mrkdwn", "text": data.timestamp}]
                }
            ]
        }

    async def send_alert(self, data: SlackMessage, max_retries: int = 3) -> bool:
        """
        Send alert to Slack webhook.

        Returns:
            True if sent successfully, False otherwise
        """
        if not self.enabled:
            logger.debug("Slack webhook URL not configured, skipping notification")
            return False

        if not self._circuit_breaker.allow_request():
            logger.warning(
                "Circuit breaker open, skipping Slack notification",
                extra={"ticket_number": data.ticket_number}
            )
            return False

        message = self._build_message(data)

        for attempt in range(max_retries):
            try:
                client = await self._get_client()
                response = await client.post(self._settings.slack_webhook_url, json=message)

                if response.status_code == 200:
                    self._circuit_breaker.record_success()
                    logger.info(
                        "Slack notification sent",
                        extra={"ticket_number": data.ticket_number, "kind": data.kind}
                    )
                    return True
                logger.warning(
                    "Slack webhook returned non-200",
                    extra={"status_code": response.status_code, "attempt": attempt + 1}
                )
            except httpx.HTTPError as e:
                logger.error(
                    "Slack notification failed",
                    extra={"error": str(e), "attempt": attempt + 1, "ticket_number": data.ticket_number}
                )

            if attempt < max_retries - 1:
                await asyncio.sleep(self._retry_base_delay * 2 ** attempt)

        self._circuit_breaker.record_failure()
        return False

    async def close(self) -> None:
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None


class SlackNotifier:
    """
    Event bus subscriber that forwards SLA and escalation events to Slack.

    Runs on the bus's background tasks, so Slack latency never delays a
    sweep or a request.
    """

    def __init__(self, client: SlackClient):
        self._client = client

    def register(self, bus: EventBus) -> None:
        bus.subscribe(EventType.SLA_BREACH, self.on_breach)
        bus.subscribe(EventType.SLA_WARNING, self.on_warning)
        bus.subscribe(EventType.ESCALATION_TRIGGERED, self.on_escalation)

    async def on_breach(self, event: DomainEvent) -> None:
        data = event.data
        await self._client.send_alert(SlackMessage(
            ticket_number=_ticket_label(data),
            title=f"{data['breach_type']} target exceeded by {data['overage_mins']} min",
            kind="breach",
            fields={
                "Actual": f"{data['actual_mins']} min",
                "Target": f"{data['target_mins']} min",
                "Priority": str(data.get("priority", "-")),
            },
            timestamp=event.occurred_at.isoformat(),
        ))

    async def on_warning(self, event: DomainEvent) -> None:
        data = event.data
        await self._client.send_alert(SlackMessage(
            ticket_number=_ticket_label(data),
            title=f"{data['breach_type']} at {data['warning_threshold']}% of target",
            kind="warning",
            fields={
                "Elapsed": f"{data['elapsed_mins']} min",
                "Target": f"{data['target_mins']} min",
            },
            timestamp=event.occurred_at.isoformat(),
        ))

    async def on_escalation(self, event: DomainEvent) -> None:
        data = event.data
        await self._client.send_alert(SlackMessage(
            ticket_number=_ticket_label(data),
            title=", ".join(data.get("rule_names", [])),
            kind="escalation",
            fields={
                "Escalated to": str(data.get("escalate_to_role")),
                "Priority": f"{data.get('old_priority')} -> {data.get('new_priority')}",
            },
            timestamp=event.occurred_at.isoformat(),
        ))


def _ticket_label(data: Dict[str, Any]) -> str:
    return data.get("ticket_number") or f"ticket {data.get('ticket_id')}"


class SLAScheduler:
    """
    Wrapper for APScheduler running the periodic SLA sweep.

    At most one sweep runs at a time. ``stop`` stops scheduling new runs
    and waits, up to a timeout, for an in-flight sweep to finish.
    """

    JOB_ID = "sla_sweep"

    def __init__(self, interval_seconds: int = 300, shutdown_timeout: float = 30.0):
        self.interval_seconds = interval_seconds
        self.shutdown_timeout = shutdown_timeout
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._job_func: Optional[Callable[[], Awaitable[Any]]] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._running = False

    async def start(self, job_func: Callable[[], Awaitable[Any]]) -> None:
        """Start the scheduler with the given coroutine function."""
        if self._running:
            logger.warning("SLA scheduler already running")
            return

        self._job_func = job_func
        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_once,
            "interval",
            seconds=self.interval_seconds,
            id=self.JOB_ID,
            name="SLA Sweep",
            misfire_grace_time=self.interval_seconds,
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self._scheduler.start()
        self._running = True

        logger.info("SLA scheduler started", extra={"interval_seconds": self.interval_seconds})

    async def run_once(self) -> Any:
        """Run one sweep now; a sweep already in flight makes this a no-op."""
        if self._job_func is None or not self._idle.is_set():
            return None

        self._idle.clear()
        try:
            return await self._job_func()
        except Exception as e:
            logger.error("SLA sweep failed", extra={"error": str(e)}, exc_info=True)
            return None
        finally:
            self._idle.set()

    async def stop(self) -> None:
        """Stop the scheduler and drain the in-flight sweep."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        self._running = False

        try:
            await asyncio.wait_for(self._idle.wait(), timeout=self.shutdown_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "SLA sweep still running at shutdown",
                extra={"timeout_seconds": self.shutdown_timeout}
            )
        logger.info("SLA scheduler stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_idle(self) -> bool:
        return self._idle.is_set()
