"""Keyed Locks — in-process asyncio.Lock per resource key.

Invariants:
    - Multi-key acquisition always happens in sorted key order (no lock-order deadlock)
    - Duplicate keys in one request are acquired once
    - Locks are released in reverse order even when the body raises

Design Decisions:
    - WeakValueDictionary: a lock lives only while someone holds or waits on it
    - In-process only: cross-process safety comes from the store's conditional writes
"""

import asyncio
import weakref
from collections.abc import Iterable
from contextlib import asynccontextmanager
from typing import AsyncIterator


class KeyedLocks:
    """Registry of asyncio locks addressed by string key."""

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, keys: Iterable[str]) -> AsyncIterator[None]:
        """Acquire every key's lock in sorted order for the duration of the block."""
        locks = [self._lock_for(key) for key in sorted(set(keys))]
        acquired: list[asyncio.Lock] = []
        try:
            for lock in locks:
                await lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
