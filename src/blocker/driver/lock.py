"""Per-volume locks for lifecycle operations."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class VolumeLocks:
    """Get or create a per-volume lock.

    Prevents interleaved lifecycle transitions (e.g. Mount racing
    Unmount) by ensuring only one operation per volume name at a time.
    Operations on different names never wait on each other.

    A lock lives only while someone holds or waits for it, so there is
    never more than one lock alive for a given name.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, name: str) -> AsyncIterator[None]:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        self._users[name] = self._users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[name] -= 1
            if self._users[name] == 0:
                del self._users[name]
                del self._locks[name]

    def __contains__(self, name: str) -> bool:
        return name in self._locks

    def __len__(self) -> int:
        return len(self._locks)
