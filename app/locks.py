import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class EventLocks:
    """
    Registry of asyncio locks keyed by event id.

    Mutations of the same event queue up on one lock while different events
    never wait on each other. A lock is discarded once nobody holds or awaits it.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    @asynccontextmanager
    async def hold(self, event_id: int):
        lock = self._locks.setdefault(event_id, asyncio.Lock())
        self._users[event_id] = self._users.get(event_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[event_id] -= 1
            if not self._users[event_id]:
                del self._users[event_id]
                del self._locks[event_id]

    def locked(self, event_id: int) -> bool:
        lock = self._locks.get(event_id)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
