"""
Shared Domain Layer
===================

Domain event contract shared by all bounded contexts.
"""

from helpdesk.shared.domain.events import (
    EventType,
    DomainEvent,
    IEventPublisher,
)

__all__ = [
    "EventType",
    "DomainEvent",
    "IEventPublisher",
]
