"""Serialize compaction work that shares one archive file."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")


class CompactionCoordinator:
    """Tracks in-flight compactions and hands out per-key locks.

    Keys are whatever identifies a shared archive target, usually the
    workspace path, so two compactions never interleave appends to the same
    daily memory file.
    """

    def __init__(self) -> None:
        self.locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @property
    def in_progress(self) -> set[str]:
        return set(self._users)

    def get_lock(self, key: str) -> asyncio.Lock:
        lock = self.locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self.locks[key] = lock
        return lock

    def is_running(self, key: str) -> bool:
        return key in self._users

    async def run_exclusive(
        self,
        key: str,
        work: Callable[[], Awaitable[T]],
    ) -> T:
        """Run work under the per-key lock; the lock is dropped once nobody holds or waits on it."""
        lock = self.get_lock(key)
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                return await work()
        finally:
            remaining = self._users[key] - 1
            if remaining:
                self._users[key] = remaining
            else:
                del self._users[key]
                self.locks.pop(key, None)
