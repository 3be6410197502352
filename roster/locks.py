from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager


class KeyedLocks:
    """One asyncio.Lock per key, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str):
        k = str(key)
        lock = self._locks.get(k)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[k] = lock
        self._users[k] = self._users.get(k, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[k] -= 1
            if self._users[k] <= 0:
                self._users.pop(k, None)
                self._locks.pop(k, None)

    def active_keys(self) -> set[str]:
        return set(self._locks)
