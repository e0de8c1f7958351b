"""
SLA Sweep
=========

Periodic evaluation of every open SLA metric.

One sweep:
1. Lists metrics that are not finalized and forgets backoff entries of
   metrics that were finalized since
2. Skips metrics whose previous failure is still backing off
3. Processes the rest with bounded parallelism, each in its own session
   and under the ticket lock: finalize when the ticket is terminal,
   otherwise recompute status, record breaches and run escalation rules
4. Logs a summary

A failing metric never aborts the sweep; it is retried on a later sweep
after an exponential backoff.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, AsyncContextManager, Callable, Dict, List, Optional, Set

from sqlalchemy.ext.asyncio import AsyncSession

from helpdesk.shared.infrastructure.locks import KeyedLock, ticket_locks
from helpdesk.shared.infrastructure.logging import get_logger, log_latency
from helpdesk.sla.domain import SLAMetric
from helpdesk.workflow.application import utcnow

logger = get_logger(__name__)


@dataclass
class SweepSummary:
    evaluated: int = 0
    skipped: int = 0
    failed: int = 0
    finalized: int = 0
    warnings: int = 0
    breaches: int = 0
    escalations: int = 0
    duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class _Backoff:
    failures: int
    retry_at: datetime


class SLASweeper:
    """
    Runs SLA sweeps.

    Args:
        session_factory: Returns an async context manager yielding a session
            that commits on success and rolls back on error
        build_services: Builds the service container for a session
        concurrency: Metrics processed in parallel
        base_backoff_seconds: Delay after the first failure of a metric
        max_backoff_seconds: Upper bound for the delay
    """

    def __init__(
        self,
        session_factory: Callable[[], AsyncContextManager[AsyncSession]],
        build_services: Callable[[AsyncSession], Any],
        clock: Callable[[], datetime] = utcnow,
        concurrency: int = 8,
        base_backoff_seconds: float = 60.0,
        max_backoff_seconds: float = 3600.0,
        locks: KeyedLock = ticket_locks,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._session_factory = session_factory
        self._build_services = build_services
        self._clock = clock
        self._concurrency = concurrency
        self._base_backoff = base_backoff_seconds
        self._max_backoff = max_backoff_seconds
        self._locks = locks
        self._backoff: Dict[int, _Backoff] = {}

    async def sweep(self, now: Optional[datetime] = None) -> SweepSummary:
        now = now or self._clock()
        started = time.perf_counter()
        summary = SweepSummary()

        async with self._session_factory() as session:
            metrics = await self._build_services(session).sla_tracker.list_active_metrics()

        self._prune_backoff({m.id for m in metrics})

        due: List[SLAMetric] = []
        for metric in metrics:
            backoff = self._backoff.get(metric.id)
            if backoff is not None and now < backoff.retry_at:
                summary.skipped += 1
            else:
                due.append(metric)

        semaphore = asyncio.Semaphore(self._concurrency)

        async def run(metric: SLAMetric) -> None:
            async with semaphore:
                await self._process_isolated(metric, now, summary)

        with log_latency(logger, "sla_sweep", metrics=len(metrics), due=len(due)):
            await asyncio.gather(*(run(m) for m in due))

        summary.duration_ms = round((time.perf_counter() - started) * 1000, 2)
        logger.info("SLA sweep summary", extra=summary.to_dict())
        return summary

    def backoff_for(self, metric_id: int) -> Optional[datetime]:
        """When a failing metric will be retried, or None when it is not backing off."""
        backoff = self._backoff.get(metric_id)
        return backoff.retry_at if backoff else None

    def _prune_backoff(self, active_ids: Set[int]) -> None:
        # Metrics finalized outside the sweep never come back to clear their entry
        for metric_id in [i for i in self._backoff if i not in active_ids]:
            del self._backoff[metric_id]

    def _delay(self, failures: int) -> float:
        return min(self._base_backoff * 2 ** (failures - 1), self._max_backoff)

    async def _process_isolated(self, metric: SLAMetric, now: datetime, summary: SweepSummary) -> None:
        try:
            await self._process(metric, now, summary)
        except Exception as e:
            failures = self._backoff[metric.id].failures + 1 if metric.id in self._backoff else 1
            retry_at = now + timedelta(seconds=self._delay(failures))
            self._backoff[metric.id] = _Backoff(failures=failures, retry_at=retry_at)
            summary.failed += 1
            logger.error(
                "SLA metric processing failed",
                extra={
                    "metric_id": metric.id,
                    "ticket_id": metric.ticket_id,
                    "failures": failures,
                    "retry_at": retry_at.isoformat(),
                    "error": str(e),
                },
                exc_info=True,
            )
        else:
            self._backoff.pop(metric.id, None)

    async def _process(self, metric: SLAMetric, now: datetime, summary: SweepSummary) -> None:
        async with self._locks.hold(metric.ticket_id):
            async with self._session_factory() as session:
                services = self._build_services(session)
                ticket = await services.workflow.get_ticket(metric.ticket_id, for_update=True)

                if ticket.is_terminal:
                    await services.sla_tracker.finalize(ticket, now)
                    summary.finalized += 1
                    return

                evaluation = await services.sla_tracker.on_tick(ticket, now)
                if evaluation is not None:
                    summary.evaluated += 1
                    summary.warnings += len(evaluation.warnings)
                    summary.breaches += len(evaluation.breaches)

                if await services.automation.check_escalation(ticket, now) is not None:
                    summary.escalations += 1
