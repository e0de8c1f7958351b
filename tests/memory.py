"""
In-memory repositories for concurrency tests.

Every call yields to the event loop before touching state, so coroutines
gathered in a test interleave at each repository call. Updates are
compare-and-set on ``version`` like the SQLAlchemy repositories.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from helpdesk.automation.application import (
    AutomationService,
    IRoundRobinCursorRepository,
    IRuleProvider,
    IUserRepository,
)
from helpdesk.automation.domain import RoundRobinCursor, User
from helpdesk.bootstrap import ServiceContainer
from helpdesk.config import SLABreachStatus, SLABreachType, SLAStatus
from helpdesk.core import ConflictException
from helpdesk.shared.domain import IEventPublisher
from helpdesk.shared.infrastructure.locks import KeyedLock
from helpdesk.sla.application import (
    BreachDetector,
    ISLABreachRepository,
    ISLAMetricRepository,
    ISLAPolicyRepository,
    SLAMetricTracker,
    SLAPolicyService,
    SLAReportService,
)
from helpdesk.sla.domain import SLABreach, SLAMetric, SLAPolicy
from helpdesk.workflow.application import (
    ITicketHistoryRepository,
    ITicketRepository,
    IWorkflowRepository,
    WorkflowService,
)
from helpdesk.workflow.domain import HistoryEntry, Ticket, Workflow


async def _yield() -> None:
    await asyncio.sleep(0)


class MemoryTicketRepository(ITicketRepository):
    def __init__(self):
        self.rows: Dict[int, Ticket] = {}
        self.locking_reads: List[int] = []

    async def get_by_id(self, ticket_id: int, for_update: bool = False) -> Optional[Ticket]:
        await _yield()
        if for_update:
            self.locking_reads.append(ticket_id)
        return self.rows.get(ticket_id)

    async def create(self, ticket: Ticket) -> Ticket:
        await _yield()
        ticket_id = len(self.rows) + 1
        saved = ticket.copy(id=ticket_id, ticket_number=f"TKT-{ticket_id:06d}", version=1)
        self.rows[ticket_id] = saved
        return saved

    async def update(self, ticket: Ticket) -> Ticket:
        await _yield()
        stored = self.rows[ticket.id]
        if stored.version != ticket.version:
            raise ConflictException("Ticket was modified concurrently", {"ticket_id": ticket.id})
        saved = ticket.copy(version=stored.version + 1)
        self.rows[ticket.id] = saved
        return saved


class MemoryWorkflowRepository(IWorkflowRepository):
    def __init__(self):
        self.rows: Dict[int, Workflow] = {}

    async def get_by_id(self, workflow_id: int) -> Optional[Workflow]:
        await _yield()
        return self.rows.get(workflow_id)

    async def create(self, workflow: Workflow) -> Workflow:
        await _yield()
        saved = replace(workflow, id=len(self.rows) + 1)
        self.rows[saved.id] = saved
        return saved


class MemoryHistoryRepository(ITicketHistoryRepository):
    def __init__(self):
        self.entries: List[HistoryEntry] = []

    async def append(self, entry: HistoryEntry) -> HistoryEntry:
        await _yield()
        saved = replace(entry, id=len(self.entries) + 1)
        self.entries.append(saved)
        return saved

    async def list_for_ticket(self, ticket_id: int) -> List[HistoryEntry]:
        await _yield()
        return [e for e in self.entries if e.ticket_id == ticket_id]


class MemoryUserRepository(IUserRepository):
    def __init__(self):
        self.rows: Dict[int, User] = {}

    async def create(self, user: User) -> User:
        await _yield()
        saved = replace(user, id=len(self.rows) + 1)
        self.rows[saved.id] = saved
        return saved

    async def get_by_id(self, user_id: int) -> Optional[User]:
        await _yield()
        return self.rows.get(user_id)

    async def list_by_role(self, role: str) -> List[User]:
        await _yield()
        return [u for _, u in sorted(self.rows.items()) if u.role == role and u.is_active]

    async def list_all(self) -> List[User]:
        await _yield()
        return [u for _, u in sorted(self.rows.items())]


class MemoryCursorRepository(IRoundRobinCursorRepository):
    def __init__(self):
        self.rows: Dict[str, RoundRobinCursor] = {}
        self.locking_reads: List[str] = []

    async def get(self, role: str, for_update: bool = False) -> RoundRobinCursor:
        await _yield()
        if for_update:
            self.locking_reads.append(role)
        return self.rows.get(role, RoundRobinCursor(role=role))

    async def advance(self, role: str, expected_version: int, new_index: int) -> RoundRobinCursor:
        await _yield()
        stored = self.rows.get(role, RoundRobinCursor(role=role))
        if stored.version != expected_version:
            raise ConflictException("Round-robin cursor was advanced concurrently", {"role": role})
        saved = RoundRobinCursor(role=role, last_index=new_index, version=stored.version + 1)
        self.rows[role] = saved
        return saved

    async def list_all(self) -> List[RoundRobinCursor]:
        await _yield()
        return [c for _, c in sorted(self.rows.items())]


class MemoryPolicyRepository(ISLAPolicyRepository):
    def __init__(self):
        self.rows: Dict[int, SLAPolicy] = {}

    async def get_by_id(self, policy_id: int) -> Optional[SLAPolicy]:
        await _yield()
        return self.rows.get(policy_id)

    async def list(self, is_active: Optional[bool] = None) -> List[SLAPolicy]:
        await _yield()
        return [p for p in self.rows.values() if is_active is None or p.is_active == is_active]

    async def create(self, policy: SLAPolicy) -> SLAPolicy:
        await _yield()
        saved = replace(policy, id=len(self.rows) + 1)
        self.rows[saved.id] = saved
        return saved

    async def update(self, policy: SLAPolicy) -> SLAPolicy:
        await _yield()
        self.rows[policy.id] = policy
        return policy

    async def delete(self, policy_id: int) -> None:
        await _yield()
        self.rows.pop(policy_id, None)


class MemoryMetricRepository(ISLAMetricRepository):
    def __init__(self):
        self.rows: Dict[int, SLAMetric] = {}

    async def get_by_id(self, metric_id: int) -> Optional[SLAMetric]:
        await _yield()
        return self.rows.get(metric_id)

    async def get_by_ticket(self, ticket_id: int) -> Optional[SLAMetric]:
        await _yield()
        return next((m for m in self.rows.values() if m.ticket_id == ticket_id), None)

    async def get_or_create(self, metric: SLAMetric) -> SLAMetric:
        await _yield()
        existing = next((m for m in self.rows.values() if m.ticket_id == metric.ticket_id), None)
        if existing is not None:
            return existing
        saved = metric.copy(id=len(self.rows) + 1, version=1)
        self.rows[saved.id] = saved
        return saved

    async def update(self, metric: SLAMetric) -> SLAMetric:
        await _yield()
        stored = self.rows[metric.id]
        if stored.version != metric.version:
            raise ConflictException("SLA metric was modified concurrently", {"metric_id": metric.id})
        if stored.is_finalized:
            raise ConflictException("SLA metric is finalized", {"metric_id": metric.id})
        saved = metric.copy(version=stored.version + 1)
        self.rows[metric.id] = saved
        return saved

    async def list_active(self) -> List[SLAMetric]:
        await _yield()
        return [m for m in self.rows.values() if not m.is_finalized]

    async def list(
        self,
        status: Optional[SLAStatus] = None,
        policy_id: Optional[int] = None,
        created_from: Optional[datetime] = None,
        created_to: Optional[datetime] = None,
    ) -> List[SLAMetric]:
        await _yield()
        return [
            m for m in self.rows.values()
            if (status is None or m.status == status)
            and (policy_id is None or m.policy_id == policy_id)
            and (created_from is None or m.ticket_created_at >= created_from)
            and (created_to is None or m.ticket_created_at <= created_to)
        ]


class MemoryBreachRepository(ISLABreachRepository):
    def __init__(self):
        self.rows: Dict[int, SLABreach] = {}

    async def get_by_id(self, breach_id: int) -> Optional[SLABreach]:
        await _yield()
        return self.rows.get(breach_id)

    async def find(self, metric_id: int, breach_type: SLABreachType) -> Optional[SLABreach]:
        await _yield()
        return next(
            (b for b in self.rows.values() if b.metric_id == metric_id and b.breach_type == breach_type),
            None,
        )

    async def create(self, breach: SLABreach) -> SLABreach:
        await _yield()
        for existing in self.rows.values():
            if existing.metric_id == breach.metric_id and existing.breach_type == breach.breach_type:
                raise ConflictException("SLA breach already recorded", {"metric_id": breach.metric_id})
        saved = breach.copy(id=len(self.rows) + 1)
        self.rows[saved.id] = saved
        return saved

    async def update(self, breach: SLABreach) -> SLABreach:
        await _yield()
        self.rows[breach.id] = breach
        return breach

    async def list(
        self,
        status: Optional[SLABreachStatus] = None,
        ticket_id: Optional[int] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[SLABreach]:
        await _yield()
        found = [
            b for b in sorted(self.rows.values(), key=lambda b: b.id, reverse=True)
            if (status is None or b.status == status)
            and (ticket_id is None or b.ticket_id == ticket_id)
        ]
        return found[offset:offset + limit if limit is not None else None]


class MemoryStore:
    """One shared "database" plus the process-wide locks of one worker."""

    def __init__(self):
        self.tickets = MemoryTicketRepository()
        self.workflows = MemoryWorkflowRepository()
        self.history = MemoryHistoryRepository()
        self.users = MemoryUserRepository()
        self.cursors = MemoryCursorRepository()
        self.policies = MemoryPolicyRepository()
        self.metrics = MemoryMetricRepository()
        self.breaches = MemoryBreachRepository()
        self.ticket_locks = KeyedLock("ticket")
        self.role_locks = KeyedLock("round_robin_role")

    def services(self, clock, events: IEventPublisher, rules: IRuleProvider) -> ServiceContainer:
        automation = AutomationService(
            ticket_repository=self.tickets,
            history_repository=self.history,
            user_repository=self.users,
            cursor_repository=self.cursors,
            rule_provider=rules,
            event_publisher=events,
            clock=clock,
            locks=self.role_locks,
        )
        detector = BreachDetector(self.breaches, events, clock=clock)
        tracker = SLAMetricTracker(self.policies, self.metrics, detector, events, clock=clock)
        workflow = WorkflowService(
            ticket_repository=self.tickets,
            workflow_repository=self.workflows,
            history_repository=self.history,
            event_publisher=events,
            observers=(automation, tracker),
            clock=clock,
            locks=self.ticket_locks,
        )
        return ServiceContainer(
            workflow=workflow,
            automation=automation,
            sla_policies=SLAPolicyService(self.policies, self.metrics, clock=clock),
            sla_tracker=tracker,
            breaches=detector,
            reports=SLAReportService(self.policies, self.metrics, self.breaches, self.tickets, clock=clock),
        )


@asynccontextmanager
async def no_session():
    yield None
