"""In-process mutual exclusion for ledger commits"""

import asyncio
from typing import Hashable
from weakref import WeakValueDictionary


class LockRegistry:
    """One asyncio.Lock per key, created on demand.

    Locks are held weakly, so an idle key drops out once nobody holds or waits
    on its lock. Cross-process safety comes from the version columns, not from
    this registry.
    """

    def __init__(self):
        self._locks: "WeakValueDictionary[Hashable, asyncio.Lock]" = WeakValueDictionary()

    def lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock
