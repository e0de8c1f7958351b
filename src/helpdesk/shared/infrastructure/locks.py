"""
Keyed Locks
===========

Per-entity asyncio locks used to serialize read-validate-write sequences
on a single ticket, metric or round-robin role within one process.

The locks are released when the guarded block ends, which can be before
the unit of work commits. Rows that must stay serialized until commit are
also read with ``select_for_update``; the optimistic version checks in the
repositories catch whatever gets past both.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable


class KeyedLock:
    """A registry of asyncio locks keyed by entity id."""

    def __init__(self, name: str):
        self.name = name
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._waiters: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# Process-wide registries
ticket_locks = KeyedLock("ticket")
role_locks = KeyedLock("round_robin_role")
