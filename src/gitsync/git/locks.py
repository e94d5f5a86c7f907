"""Per-repository operation locks.

Mutating sequences (branch preparation, push/pull flows) are serialized per
repository identity while different repositories proceed in parallel. A lock
entry lives only while someone holds or waits for it.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Hashable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import TypeVar

from gitsync.logging import get_logger

__all__ = ["RepositoryLocks", "default_locks", "with_lock"]

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class RepositoryLocks:
    """Registry of asyncio locks keyed by repository identity.

    Acquisition order among waiters for the same key is FIFO (asyncio.Lock
    semantics).

    Example:
        ```python
        locks = RepositoryLocks()
        async with locks.acquire(app_id):
            await engine.pull(path)
            await engine.push(path)
        ```
    """

    def __init__(self) -> None:
        self._entries: dict[Hashable, _LockEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def is_locked(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()

    @asynccontextmanager
    async def acquire(self, key: Hashable) -> AsyncIterator[None]:
        """Hold the lock for *key* for the duration of the block."""
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _LockEntry()
        entry.users += 1
        try:
            if entry.lock.locked():
                logger.debug("repository_lock_waiting", key=str(key))
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]


#: Process-wide registry used when callers do not pass their own.
default_locks = RepositoryLocks()


async def with_lock(
    key: Hashable,
    fn: Callable[[], Awaitable[T]],
    locks: RepositoryLocks | None = None,
) -> T:
    """Run ``await fn()`` while holding the lock for *key*."""
    registry = locks if locks is not None else default_locks
    async with registry.acquire(key):
        return await fn()
