"""Entity Locks - per-entity async mutual exclusion for check-submit-commit spans.

Invariants:
    - At most one holder per key at a time within the process
    - A key's lock is dropped once it has no holders or waiters

Design Decisions:
    - asyncio.Lock per key: orchestrators run on one event loop
    - Keys are tuples like ("listing", id): different entity kinds never collide
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class EntityLocks:
    def __init__(self):
        self._locks: dict[tuple, asyncio.Lock] = {}
        self._users: dict[tuple, int] = {}

    @asynccontextmanager
    async def hold(self, *key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def is_held(self, *key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
