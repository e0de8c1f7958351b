"""
In-Process Event Bus
====================

Fire-and-forget domain event dispatch.

Handlers run as background tasks so a slow or failing subscriber (e.g. a
Slack webhook) never blocks or fails the operation that emitted the event.
Handler failures are logged, never re-raised and never retried.
"""

import asyncio
from collections import defaultdict, deque
from functools import lru_cache
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Set

from helpdesk.shared.domain.events import DomainEvent, EventType, IEventPublisher
from helpdesk.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

EventHandler = Callable[[DomainEvent], Awaitable[None]]


class EventBus(IEventPublisher):
    """
    Async publish/subscribe bus.

    Subscribers register per event type, or for every event with
    ``subscribe_all``. The most recent events are kept in memory for
    inspection (``recent``).
    """

    def __init__(self, history_size: int = 1000):
        self._handlers: Dict[EventType, List[EventHandler]] = defaultdict(list)
        self._catch_all: List[EventHandler] = []
        self._history: Deque[DomainEvent] = deque(maxlen=history_size)
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, event_type: EventType, handler: EventHandler) -> None:
        self._handlers[event_type].append(handler)

    def subscribe_all(self, handler: EventHandler) -> None:
        self._catch_all.append(handler)

    def clear_subscribers(self) -> None:
        self._handlers.clear()
        self._catch_all.clear()

    async def publish(self, event: DomainEvent) -> None:
        """Record the event and schedule every matching handler."""
        self._history.append(event)
        logger.info(
            "Domain event published",
            extra={
                "event_type": event.event_type.value,
                "event_id": event.event_id,
                "ticket_id": event.ticket_id,
            }
        )

        for handler in [*self._handlers.get(event.event_type, []), *self._catch_all]:
            task = asyncio.create_task(self._dispatch(handler, event))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _dispatch(self, handler: EventHandler, event: DomainEvent) -> None:
        try:
            await handler(event)
        except Exception as e:
            logger.error(
                "Event handler failed",
                extra={
                    "event_type": event.event_type.value,
                    "event_id": event.event_id,
                    "handler": getattr(handler, "__qualname__", repr(handler)),
                    "error": str(e),
                }
            )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight handlers (used on shutdown)."""
        if self._pending:
            await asyncio.wait(set(self._pending), timeout=timeout)

    def recent(self, event_type: Optional[EventType] = None) -> List[DomainEvent]:
        """Recently published events, oldest first."""
        if event_type is None:
            return list(self._history)
        return [e for e in self._history if e.event_type == event_type]


@lru_cache()
def get_event_bus() -> EventBus:
    """Returns the process-wide event bus."""
    return EventBus()
