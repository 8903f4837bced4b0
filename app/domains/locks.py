"""
Keyed asyncio locks serializing work per tenant and per domain.
"""

import asyncio
import weakref
from contextlib import AsyncExitStack, asynccontextmanager
from typing import AsyncIterator, Optional


class KeyedLocks:
    """
    One asyncio.Lock per key, created on demand.

    Locks for different keys are independent. hold() acquires several keys
    in sorted order so two callers can never deadlock on the same pair.
    Unused locks are dropped automatically.
    """

    def __init__(self):
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def get(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, *keys: Optional[str]) -> AsyncIterator[None]:
        unique = sorted({k for k in keys if k})
        # Keep strong references for the duration of the critical section
        locks = [self.get(k) for k in unique]
        async with AsyncExitStack() as stack:
            for lock in locks:
                await stack.enter_async_context(lock)
            yield


def tenant_key(tenant_id: str) -> str:
    return f"tenant:{tenant_id}"


def domain_key(domain: Optional[str]) -> Optional[str]:
    return f"domain:{domain}" if domain else None
