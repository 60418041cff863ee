"""
backend/app/utils/locks.py

Purpose:
    Process-local keyed asyncio locks. One lock per key, created on demand
    under a guard lock and discarded once no task holds or waits for it.

Dependencies:
    - asyncio
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Hashable


@dataclass
class _LockState:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class KeyedLock:
    """Serializes work per key; different keys never contend."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, _LockState] = {}
        self._global_lock = asyncio.Lock()

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        async with self._global_lock:
            state = self._locks.get(key)
            if state is None:
                state = _LockState()
                self._locks[key] = state
            state.users += 1
        try:
            async with state.lock:
                yield
        finally:
            async with self._global_lock:
                state.users -= 1
                if state.users <= 0:
                    self._locks.pop(key, None)

    def locked(self, key: Hashable) -> bool:
        state = self._locks.get(key)
        return bool(state and state.lock.locked())

    def __len__(self) -> int:
        return len(self._locks)
