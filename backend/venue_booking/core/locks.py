"""
In-process keyed locks.

Serializes mutations that target the same resource inside one process.
The database row lock taken in the same transaction covers the
multi-process case; this keeps concurrent coroutines from even reaching
the database at the same time.
"""

import asyncio
import weakref
from typing import Hashable


class KeyedLocks:
    """One ``asyncio.Lock`` per key, dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: "weakref.WeakValueDictionary[Hashable, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
