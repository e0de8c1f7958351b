"""
Rule Evaluator
==============

Pure functions evaluating automation rules against a ticket snapshot.

Nothing here reads or writes storage; every function returns a proposal
(or None) and the caller decides whether to apply it.
"""

from datetime import datetime
from typing import AbstractSet, Iterable, Optional, Sequence

from helpdesk.automation.domain.entities import (
    AssignmentProposal,
    AssignmentRule,
    EscalationProposal,
    EscalationRule,
    PrioritizationProposal,
    PrioritizationRule,
    RoundRobinCursor,
)
from helpdesk.workflow.domain import Ticket


def evaluate_prioritization(
    ticket: Ticket,
    rules: Iterable[PrioritizationRule]
) -> Optional[PrioritizationProposal]:
    """
    First active rule whose keyword occurs in title or description wins.

    Returns None when nothing matches or the match would not change the
    priority.
    """
    text = ticket.full_text.lower()
    for rule in rules:
        if not rule.is_active or not rule.keyword:
            continue
        if rule.keyword.lower() in text:
            if rule.priority == ticket.priority:
                return None
            return PrioritizationProposal(
                rule_name=rule.name,
                old_priority=ticket.priority,
                new_priority=rule.priority,
            )
    return None


def match_assignment_rule(
    ticket: Ticket,
    rules: Iterable[AssignmentRule]
) -> Optional[AssignmentRule]:
    """First active rule for the ticket's category. Rules are never combined."""
    for rule in rules:
        if rule.is_active and rule.category == ticket.category:
            return rule
    return None


def next_round_robin_index(cursor: RoundRobinCursor, user_count: int) -> int:
    """Position after the cursor, wrapping over ``user_count`` users."""
    if user_count <= 0:
        raise ValueError("round-robin needs at least one user")
    return (cursor.last_index + 1) % user_count


def propose_assignment(
    ticket: Ticket,
    rule: AssignmentRule,
    user_ids: Sequence[int],
    cursor: RoundRobinCursor,
) -> Optional[AssignmentProposal]:
    """
    Pick the next user of ``rule.role`` in round-robin order.

    ``user_ids`` must be in a stable order (by id). Returns None when the
    role has no users or the pick is already the assignee.
    """
    if not user_ids:
        return None
    index = next_round_robin_index(cursor, len(user_ids))
    assignee_id = user_ids[index]
    if assignee_id == ticket.assignee_id:
        return None
    return AssignmentProposal(
        rule_name=rule.name,
        role=rule.role,
        old_assignee_id=ticket.assignee_id,
        assignee_id=assignee_id,
        next_index=index,
    )


def hours_in_status(ticket: Ticket, now: datetime) -> float:
    return (now - ticket.status_changed_at).total_seconds() / 3600


def escalation_rule_matches(rule: EscalationRule, ticket: Ticket, now: datetime) -> bool:
    return (
        rule.is_active
        and ticket.priority == rule.priority
        and ticket.status == rule.status
        and hours_in_status(ticket, now) >= rule.hours
    )


def evaluate_escalation(
    ticket: Ticket,
    rules: Iterable[EscalationRule],
    now: datetime,
    already_applied: AbstractSet[str] = frozenset(),
) -> Optional[EscalationProposal]:
    """
    Fold all matching escalation rules in rule-list order.

    Every rule is tested against the same snapshot, so a priority change
    proposed by one rule does not make later rules match or stop matching
    within the same evaluation. Later rules override earlier ones on the
    role and on the new priority. Rules named in ``already_applied`` are
    skipped.
    """
    matched = [
        rule for rule in rules
        if rule.name not in already_applied and escalation_rule_matches(rule, ticket, now)
    ]
    if not matched:
        return None

    role = matched[0].escalate_to_role
    new_priority = None
    for rule in matched:
        role = rule.escalate_to_role
        if rule.new_priority is not None:
            new_priority = rule.new_priority

    return EscalationProposal(
        rule_names=tuple(rule.name for rule in matched),
        escalate_to_role=role,
        old_priority=ticket.priority,
        new_priority=new_priority,
    )
