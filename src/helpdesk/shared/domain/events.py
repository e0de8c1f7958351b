"""
Domain Events
=============

Events emitted by the core and consumed by the notification/transport layer.

Events are immutable value objects: an event type, the time it happened
and a flat payload carrying the ticket id/number plus the fields relevant
to that event.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4


class EventType(str, Enum):
    """Event names published by the core."""
    TICKET_CREATED = "ticket.created"
    TICKET_STATUS_CHANGED = "ticket.status_changed"
    TICKET_APPROVED = "ticket.approved"
    TICKET_REJECTED = "ticket.rejected"
    PRIORITIZATION_APPLIED = "automation.prioritization_applied"
    ASSIGNMENT_APPLIED = "automation.assignment_applied"
    ESCALATION_TRIGGERED = "automation.escalation_triggered"
    SLA_METRIC_CREATED = "sla.metric_created"
    SLA_WARNING = "sla.warning"
    SLA_BREACH = "sla.breach"
    SLA_BREACH_ACKNOWLEDGED = "sla.breach_acknowledged"


@dataclass(frozen=True)
class DomainEvent:
    """Immutable domain event."""
    event_type: EventType
    data: Dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    event_id: str = field(default_factory=lambda: str(uuid4()))
    correlation_id: Optional[str] = None

    @property
    def ticket_id(self) -> Optional[int]:
        return self.data.get("ticket_id")

    def to_dict(self) -> dict:
        """Convert to dictionary for transport."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "occurred_at": self.occurred_at.isoformat(),
            "correlation_id": self.correlation_id,
            "data": self.data,
        }


class IEventPublisher(ABC):
    """Interface for publishing domain events."""

    @abstractmethod
    async def publish(self, event: DomainEvent) -> None:
        """Publish an event. Must not raise on delivery failure."""

