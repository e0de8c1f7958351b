"""
Automation Application DTOs
===========================

Pydantic models for the automation API.
"""

from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from helpdesk.automation.domain import (
    AssignmentRule,
    EscalationRule,
    PrioritizationRule,
    RoundRobinCursor,
    RuleSet,
    User,
)
from helpdesk.config import Category, Priority, TicketStatus


class UserCreateRequest(BaseModel):
    """Request model for creating a user."""
    name: str = Field(..., min_length=1, max_length=255)
    email: str = Field(..., min_length=3, max_length=255, pattern=r"^[^@\s]+@[^@\s]+$")
    role: str = Field(..., min_length=1, max_length=100)


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_active: bool

    @classmethod
    def from_domain(cls, user: User) -> "UserResponse":
        return cls(id=user.id, name=user.name, email=user.email, role=user.role, is_active=user.is_active)


class RoundRobinCursorResponse(BaseModel):
    role: str
    last_index: int
    version: int

    @classmethod
    def from_domain(cls, cursor: RoundRobinCursor) -> "RoundRobinCursorResponse":
        return cls(role=cursor.role, last_index=cursor.last_index, version=cursor.version)


# ========== Rule schemas (shared by the YAML loader and the API) ==========

class AssignmentRuleSchema(BaseModel):
    name: str = Field(..., min_length=1)
    category: Category
    role: str = Field(..., min_length=1)
    method: str = Field(default="round_robin", pattern="^round_robin$")
    is_active: bool = True

    def to_domain(self) -> AssignmentRule:
        return AssignmentRule(
            name=self.name,
            category=self.category,
            role=self.role,
            method=self.method,
            is_active=self.is_active,
        )

    @classmethod
    def from_domain(cls, rule: AssignmentRule) -> "AssignmentRuleSchema":
        return cls(name=rule.name, category=rule.category, role=rule.role, method=rule.method, is_active=rule.is_active)


class PrioritizationRuleSchema(BaseModel):
    name: str = Field(..., min_length=1)
    keyword: str = Field(..., min_length=1)
    priority: Priority
    is_active: bool = True

    def to_domain(self) -> PrioritizationRule:
        return PrioritizationRule(
            name=self.name,
            keyword=self.keyword,
            priority=self.priority,
            is_active=self.is_active,
        )

    @classmethod
    def from_domain(cls, rule: PrioritizationRule) -> "PrioritizationRuleSchema":
        return cls(name=rule.name, keyword=rule.keyword, priority=rule.priority, is_active=rule.is_active)


class EscalationRuleSchema(BaseModel):
    name: str = Field(..., min_length=1)
    priority: Priority
    status: TicketStatus
    hours: float = Field(..., ge=0)
    escalate_to_role: str = Field(..., min_length=1)
    new_priority: Optional[Priority] = None
    is_active: bool = True

    def to_domain(self) -> EscalationRule:
        return EscalationRule(
            name=self.name,
            priority=self.priority,
            status=self.status,
            hours=self.hours,
            escalate_to_role=self.escalate_to_role,
            new_priority=self.new_priority,
            is_active=self.is_active,
        )

    @classmethod
    def from_domain(cls, rule: EscalationRule) -> "EscalationRuleSchema":
        return cls(
            name=rule.name,
            priority=rule.priority,
            status=rule.status,
            hours=rule.hours,
            escalate_to_role=rule.escalate_to_role,
            new_priority=rule.new_priority,
            is_active=rule.is_active,
        )


class RuleSetSchema(BaseModel):
    """
    Automation rules as stored in YAML.

    Rule names must be unique within each list; escalation history is keyed
    by rule name.
    """
    prioritization_rules: List[PrioritizationRuleSchema] = Field(default_factory=list)
    assignment_rules: List[AssignmentRuleSchema] = Field(default_factory=list)
    escalation_rules: List[EscalationRuleSchema] = Field(default_factory=list)

    @model_validator(mode="after")
    def check_unique_names(self) -> "RuleSetSchema":
        for rules in (self.prioritization_rules, self.assignment_rules, self.escalation_rules):
            names = [r.name for r in rules]
            duplicates = sorted({n for n in names if names.count(n) > 1})
            if duplicates:
                raise ValueError(f"Duplicate rule names: {', '.join(duplicates)}")
        return self

    def to_domain(self) -> RuleSet:
        return RuleSet(
            assignment=tuple(r.to_domain() for r in self.assignment_rules),
            prioritization=tuple(r.to_domain() for r in self.prioritization_rules),
            escalation=tuple(r.to_domain() for r in self.escalation_rules),
        )

    @classmethod
    def from_domain(cls, rule_set: RuleSet) -> "RuleSetSchema":
        return cls(
            prioritization_rules=[PrioritizationRuleSchema.from_domain(r) for r in rule_set.prioritization],
            assignment_rules=[AssignmentRuleSchema.from_domain(r) for r in rule_set.assignment],
            escalation_rules=[EscalationRuleSchema.from_domain(r) for r in rule_set.escalation],
        )
