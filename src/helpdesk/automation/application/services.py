"""
Automation Application Services
===============================

Applies rule proposals to tickets.

The evaluator computes a complete proposal before anything is written; a
failed write therefore leaves the ticket unchanged.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Callable, List, Optional

from helpdesk.automation.domain import (
    AssignmentProposal,
    EscalationProposal,
    RoundRobinCursor,
    RuleSet,
    User,
    evaluate_escalation,
    evaluate_prioritization,
    match_assignment_rule,
    next_round_robin_index,
    propose_assignment,
)
from helpdesk.core import ResourceNotFoundException, ValidationException
from helpdesk.shared.domain import DomainEvent, EventType, IEventPublisher
from helpdesk.shared.infrastructure.locks import KeyedLock, role_locks
from helpdesk.shared.infrastructure.logging import get_logger
from helpdesk.workflow.application import (
    ITicketHistoryRepository,
    ITicketLifecycleObserver,
    ITicketRepository,
    utcnow,
)
from helpdesk.workflow.domain import (
    SYSTEM_ACTOR_ID,
    HistoryAction,
    HistoryEntry,
    Ticket,
    TransitionResult,
)

logger = get_logger(__name__)


# ========== Interfaces ==========

class IRuleProvider(ABC):
    """Source of the current automation rule set."""

    @abstractmethod
    def get_rules(self) -> RuleSet:
        """Return the current rules snapshot."""


class IUserRepository(ABC):
    """Interface for user data access."""

    @abstractmethod
    async def create(self, user: User) -> User:
        """Create a user."""

    @abstractmethod
    async def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""

    @abstractmethod
    async def list_by_role(self, role: str) -> List[User]:
        """Active users of a role ordered by id."""

    @abstractmethod
    async def list_all(self) -> List[User]:
        """All users ordered by id."""


class IRoundRobinCursorRepository(ABC):
    """Persisted round-robin position per role."""

    @abstractmethod
    async def get(self, role: str, for_update: bool = False) -> RoundRobinCursor:
        """
        Current cursor; a fresh cursor when the role was never used.

        ``for_update`` locks the stored row until the unit of work ends.
        """

    @abstractmethod
    async def advance(self, role: str, expected_version: int, new_index: int) -> RoundRobinCursor:
        """
        Compare-and-set the cursor.

        Raises ConflictException when the stored version differs.
        """

    @abstractmethod
    async def list_all(self) -> List[RoundRobinCursor]:
        """All cursors."""


# ========== Services ==========

class RoundRobinAssigner:
    """
    Picks users for a role in round-robin order.

    Selection and cursor advance happen under a per-role lock. The cursor
    row is read for update, so it stays locked until the unit of work
    commits and the next assigner, in this process or another, continues
    from the committed position. The version check catches anything else.
    """

    def __init__(
        self,
        user_repository: IUserRepository,
        cursor_repository: IRoundRobinCursorRepository,
        locks: KeyedLock = role_locks,
    ):
        self._users = user_repository
        self._cursors = cursor_repository
        self._locks = locks

    async def next_user_id(self, role: str) -> Optional[int]:
        """Advance the role's cursor and return the picked user id."""
        async with self._locks.hold(role):
            user_ids = [u.id for u in await self._users.list_by_role(role)]
            if not user_ids:
                return None
            cursor = await self._cursors.get(role, for_update=True)
            index = next_round_robin_index(cursor, len(user_ids))
            await self._cursors.advance(role, cursor.version, index)
            return user_ids[index]

    async def assign(self, ticket: Ticket, rule_set: RuleSet) -> Optional[AssignmentProposal]:
        """
        Build an assignment proposal and commit the cursor for it.

        The cursor only moves when a proposal is produced.
        """
        rule = match_assignment_rule(ticket, rule_set.assignment)
        if rule is None:
            return None

        async with self._locks.hold(rule.role):
            users = await self._users.list_by_role(rule.role)
            if not users:
                logger.warning(
                    "No users available for assignment role",
                    extra={"ticket_id": ticket.id, "role": rule.role, "rule": rule.name}
                )
                return None

            cursor = await self._cursors.get(rule.role, for_update=True)
            proposal = propose_assignment(ticket, rule, [u.id for u in users], cursor)
            if proposal is not None:
                await self._cursors.advance(rule.role, cursor.version, proposal.next_index)
            return proposal


class AutomationService(ITicketLifecycleObserver):
    """
    Runs prioritization, assignment and escalation rules.

    Registered as a lifecycle observer of the workflow service: new tickets
    get prioritization then assignment, status changes get an escalation
    check. The scheduler sweep calls ``check_escalation`` directly.

    Callers hold the ticket lock; this service never takes it.
    """

    def __init__(
        self,
        ticket_repository: ITicketRepository,
        history_repository: ITicketHistoryRepository,
        user_repository: IUserRepository,
        cursor_repository: IRoundRobinCursorRepository,
        rule_provider: IRuleProvider,
        event_publisher: IEventPublisher,
        clock: Callable[[], datetime] = utcnow,
        locks: KeyedLock = role_locks,
    ):
        self._tickets = ticket_repository
        self._history = history_repository
        self._users = user_repository
        self._cursors = cursor_repository
        self._rules = rule_provider
        self._events = event_publisher
        self._clock = clock
        self._assigner = RoundRobinAssigner(user_repository, cursor_repository, locks)

    # ----- lifecycle observer -----

    async def on_ticket_created(self, ticket: Ticket) -> None:
        ticket = await self.apply_prioritization(ticket)
        await self.apply_assignment(ticket)

    async def on_transition(self, ticket: Ticket, result: TransitionResult) -> None:
        if result.status_changed:
            await self.check_escalation(ticket)

    # ----- rules -----

    def get_rules(self) -> RuleSet:
        return self._rules.get_rules()

    async def apply_prioritization(self, ticket: Ticket) -> Ticket:
        proposal = evaluate_prioritization(ticket, self._rules.get_rules().prioritization)
        if proposal is None:
            return ticket

        now = self._clock()
        saved = await self._tickets.update(ticket.copy(priority=proposal.new_priority, updated_at=now))
        await self._history.append(HistoryEntry(
            ticket_id=saved.id,
            action=HistoryAction.AUTOMATED,
            actor_id=SYSTEM_ACTOR_ID,
            timestamp=now,
            details=f"Priority set to {proposal.new_priority.value} by rule: \"{proposal.rule_name}\"",
            metadata={
                "rule": proposal.rule_name,
                "field": "priority",
                "old_value": proposal.old_priority.value,
                "new_value": proposal.new_priority.value,
            },
        ))
        await self._events.publish(DomainEvent(EventType.PRIORITIZATION_APPLIED, {
            "ticket_id": saved.id,
            "ticket_number": saved.ticket_number,
            "rule_name": proposal.rule_name,
            "old_priority": proposal.old_priority.value,
            "new_priority": proposal.new_priority.value,
        }))
        logger.info(
            "Prioritization rule applied",
            extra={"ticket_id": saved.id, "rule": proposal.rule_name, "priority": proposal.new_priority.value}
        )
        return saved

    async def apply_assignment(self, ticket: Ticket) -> Ticket:
        proposal = await self._assigner.assign(ticket, self._rules.get_rules())
        if proposal is None:
            return ticket

        now = self._clock()
        saved = await self._tickets.update(ticket.copy(assignee_id=proposal.assignee_id, updated_at=now))
        await self._history.append(HistoryEntry(
            ticket_id=saved.id,
            action=HistoryAction.AUTOMATED,
            actor_id=SYSTEM_ACTOR_ID,
            timestamp=now,
            details=f"Assigned to user {proposal.assignee_id} by rule: \"{proposal.rule_name}\"",
            metadata={
                "rule": proposal.rule_name,
                "field": "assignee_id",
                "role": proposal.role,
                "old_value": proposal.old_assignee_id,
                "new_value": proposal.assignee_id,
            },
        ))
        await self._events.publish(DomainEvent(EventType.ASSIGNMENT_APPLIED, {
            "ticket_id": saved.id,
            "ticket_number": saved.ticket_number,
            "rule_name": proposal.rule_name,
            "role": proposal.role,
            "assignee_id": proposal.assignee_id,
            "previous_assignee_id": proposal.old_assignee_id,
        }))
        logger.info(
            "Assignment rule applied",
            extra={"ticket_id": saved.id, "rule": proposal.rule_name, "assignee_id": proposal.assignee_id}
        )
        return saved

    async def check_escalation(
        self,
        ticket: Ticket,
        now: Optional[datetime] = None
    ) -> Optional[EscalationProposal]:
        """
        Apply every escalation rule the ticket currently meets.

        Rules that already escalated this ticket are skipped, so repeated
        sweeps escalate once per rule. Returns the applied proposal.
        """
        if ticket.is_terminal:
            return None

        now = now or self._clock()
        history = await self._history.list_for_ticket(ticket.id)
        applied = {
            e.metadata.get("rule") for e in history
            if e.action == HistoryAction.ESCALATED
        }
        proposal = evaluate_escalation(ticket, self._rules.get_rules().escalation, now, applied)
        if proposal is not None:
            await self._apply_escalation(ticket, proposal, now)
        return proposal

    async def _apply_escalation(self, ticket: Ticket, proposal: EscalationProposal, now: datetime) -> Ticket:
        assignee_id = await self._assigner.next_user_id(proposal.escalate_to_role)
        if assignee_id is None:
            logger.warning(
                "No users available for escalation role",
                extra={"ticket_id": ticket.id, "role": proposal.escalate_to_role}
            )

        changes = {"updated_at": now}
        if assignee_id is not None:
            changes["assignee_id"] = assignee_id
        if proposal.changes_priority:
            changes["priority"] = proposal.new_priority

        saved = await self._tickets.update(ticket.copy(**changes))

        # One entry per rule so each rule is recorded as applied
        for rule_name in proposal.rule_names:
            await self._history.append(HistoryEntry(
                ticket_id=saved.id,
                action=HistoryAction.ESCALATED,
                actor_id=SYSTEM_ACTOR_ID,
                timestamp=now,
                details=f"Escalated to {proposal.escalate_to_role} based on rule: \"{rule_name}\"",
                metadata={
                    "rule": rule_name,
                    "role": proposal.escalate_to_role,
                    "assignee_id": saved.assignee_id,
                    "old_priority": proposal.old_priority.value,
                    "new_priority": saved.priority.value,
                },
            ))

        await self._events.publish(DomainEvent(EventType.ESCALATION_TRIGGERED, {
            "ticket_id": saved.id,
            "ticket_number": saved.ticket_number,
            "rule_name": proposal.rule_names[-1],
            "rule_names": list(proposal.rule_names),
            "escalate_to_role": proposal.escalate_to_role,
            "escalated_to": assignee_id,
            "escalated_from": ticket.assignee_id,
            "old_priority": proposal.old_priority.value,
            "new_priority": saved.priority.value,
        }))
        logger.info(
            "Escalation triggered",
            extra={
                "ticket_id": saved.id,
                "rules": list(proposal.rule_names),
                "role": proposal.escalate_to_role,
                "assignee_id": assignee_id,
            }
        )
        return saved

    # ----- users -----

    async def create_user(self, name: str, email: str, role: str) -> User:
        if not name.strip() or not role.strip():
            raise ValidationException("User name and role are required")
        return await self._users.create(User(id=None, name=name, email=email, role=role))

    async def get_user(self, user_id: int) -> User:
        user = await self._users.get_by_id(user_id)
        if user is None:
            raise ResourceNotFoundException("User", user_id)
        return user

    async def list_users(self, role: Optional[str] = None) -> List[User]:
        if role:
            return await self._users.list_by_role(role)
        return await self._users.list_all()

    async def list_cursors(self) -> List[RoundRobinCursor]:
        return await self._cursors.list_all()
