"""
Per-key mutual exclusion

Mutations on the same incident are serialized through a lock keyed by the
incident id; different incidents proceed concurrently. Locks are reference
counted and discarded once nobody holds or waits on them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class KeyedLock:
    """Lazily created asyncio.Lock per key"""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._waiters: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        key = str(key)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if self._waiters[key] == 0:
                del self._waiters[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(str(key))
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
