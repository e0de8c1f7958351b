"""
Automation Domain Entities
==========================

Rules, users, round-robin cursors and the proposals produced by rule
evaluation.

Rules are stateless condition -> action pairs. They are evaluated against a
ticket snapshot and never mutated by the evaluator.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

from helpdesk.config import Category, Priority, TicketStatus


ROUND_ROBIN = "round_robin"


@dataclass(frozen=True)
class AssignmentRule:
    """Category -> role assignment rule."""
    name: str
    category: Category
    role: str
    method: str = ROUND_ROBIN
    is_active: bool = True


@dataclass(frozen=True)
class PrioritizationRule:
    """Keyword -> priority rule. Keywords match case-insensitively."""
    name: str
    keyword: str
    priority: Priority
    is_active: bool = True


@dataclass(frozen=True)
class EscalationRule:
    """
    Time-based escalation rule.

    Fires when a ticket has stayed ``hours`` in ``status`` at ``priority``.
    """
    name: str
    priority: Priority
    status: TicketStatus
    hours: float
    escalate_to_role: str
    new_priority: Optional[Priority] = None
    is_active: bool = True


@dataclass(frozen=True)
class RuleSet:
    """
    Immutable snapshot of all automation rules.

    List order is evaluation order.
    """
    assignment: Tuple[AssignmentRule, ...] = ()
    prioritization: Tuple[PrioritizationRule, ...] = ()
    escalation: Tuple[EscalationRule, ...] = ()


@dataclass(frozen=True)
class User:
    """A user who can be assigned tickets."""
    id: Optional[int]
    name: str
    email: str
    role: str
    is_active: bool = True


@dataclass(frozen=True)
class RoundRobinCursor:
    """
    Last assigned position for a role.

    ``last_index`` is -1 before the first assignment; ``version`` guards
    compare-and-set updates.
    """
    role: str
    last_index: int = -1
    version: int = 0


# ========== Proposals ==========

@dataclass(frozen=True)
class PrioritizationProposal:
    rule_name: str
    old_priority: Priority
    new_priority: Priority


@dataclass(frozen=True)
class AssignmentProposal:
    rule_name: str
    role: str
    old_assignee_id: Optional[int]
    assignee_id: int
    next_index: int


@dataclass(frozen=True)
class EscalationProposal:
    """
    Folded result of every escalation rule matching one ticket.

    ``rule_names`` keeps rule-list order; role and priority come from the
    last rule that sets them.
    """
    rule_names: Tuple[str, ...]
    escalate_to_role: str
    old_priority: Priority
    new_priority: Optional[Priority] = None

    @property
    def changes_priority(self) -> bool:
        return self.new_priority is not None and self.new_priority != self.old_priority
