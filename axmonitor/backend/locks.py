"""
backend/locks.py

KeyedLock — one asyncio.Lock per key (rule id, alert id, incident id, ...).

Unrelated keys never block each other. Locks are created on first use and
dropped again once no coroutine holds or waits on them, so the table does
not grow with every alert ever seen.

Usage:
    locks = KeyedLock("remediation")
    async with locks.hold(rule_id):
        ...

Thread safety: asyncio only — all callers must share one event loop.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    def __init__(self, name: str = "") -> None:
        self.name = name
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)

    def __repr__(self) -> str:
        return f"KeyedLock({self.name!r} keys={len(self._locks)})"
