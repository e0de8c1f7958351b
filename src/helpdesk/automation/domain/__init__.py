"""
Automation Domain Layer
=======================

Rules, proposals and the pure rule evaluator.
"""

from helpdesk.automation.domain.entities import (
    ROUND_ROBIN,
    AssignmentRule,
    PrioritizationRule,
    EscalationRule,
    RuleSet,
    User,
    RoundRobinCursor,
    PrioritizationProposal,
    AssignmentProposal,
    EscalationProposal,
)
from helpdesk.automation.domain.evaluator import (
    evaluate_prioritization,
    match_assignment_rule,
    next_round_robin_index,
    propose_assignment,
    hours_in_status,
    escalation_rule_matches,
    evaluate_escalation,
)

__all__ = [
    "ROUND_ROBIN",
    "AssignmentRule",
    "PrioritizationRule",
    "EscalationRule",
    "RuleSet",
    "User",
    "RoundRobinCursor",
    "PrioritizationProposal",
    "AssignmentProposal",
    "EscalationProposal",
    "evaluate_prioritization",
    "match_assignment_rule",
    "next_round_robin_index",
    "propose_assignment",
    "hours_in_status",
    "escalation_rule_matches",
    "evaluate_escalation",
]
