"""
Async coordination helpers for shared OAuth state.

Token and client maps are shared by every in-flight request of the process.
Mutations of one key (an authorization code, a refresh-token family) must run
one at a time while unrelated keys proceed concurrently.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class KeyedLock:
    """Registry of per-key asyncio locks.

    A lock exists only while some coroutine holds or waits on its key, so the
    registry does not grow with the number of tokens ever seen.

    Example:
        ```python
        locks = KeyedLock()

        async with locks.hold(refresh_token):
            record = store.get(refresh_token)
            ...
        ```
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        """Acquire the lock for ``key`` for the duration of the block."""
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._waiters[key] = self._waiters.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._waiters[key] -= 1
            if not self._waiters[key]:
                del self._waiters[key]
                del self._locks[key]

    def locked(self, key: str) -> bool:
        """Return True if some coroutine currently holds ``key``."""
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)
