"""
Per-user mutual exclusion.

Webhook activation и lifecycle job могут одновременно работать с записью
одного пользователя: оба пути ждут сетевые вызовы (Telegram, CloudPayments)
между чтением и записью. Блокировка по user_id гарантирует, что в каждый
момент с записью пользователя работает только одна задача.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class UserLockRegistry:
    """Keyed asyncio locks; a lock is dropped once nobody holds or waits for it."""

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._waiters: Dict[int, int] = {}

    @asynccontextmanager
    async def lock(self, user_id: int) -> AsyncIterator[None]:
        user_lock = self._locks.get(user_id)
        if user_lock is None:
            user_lock = asyncio.Lock()
            self._locks[user_id] = user_lock
        self._waiters[user_id] = self._waiters.get(user_id, 0) + 1

        try:
            if user_lock.locked():
                logging.debug(f"UserLockRegistry: waiting for lock of user {user_id}")
            async with user_lock:
                yield
        finally:
            self._waiters[user_id] -= 1
            if self._waiters[user_id] == 0:
                del self._waiters[user_id]
                del self._locks[user_id]

    def is_locked(self, user_id: int) -> bool:
        user_lock = self._locks.get(user_id)
        return bool(user_lock and user_lock.locked())

    def __len__(self) -> int:
        return len(self._locks)
