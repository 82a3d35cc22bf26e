# src/utils/locks.py
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable
from utils.logger import setup_logger

logger = setup_logger("ENTITY_LOCKS")


class EntityLockRegistry:
    """Per-entity mutual exclusion for mutations inside one worker process.

    One asyncio.Lock per key, created on first use and discarded once no
    coroutine holds or awaits it. Unrelated keys never contend. Readers do
    not use this registry.
    """

    def __init__(self, name: str):
        self.name = name
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1

        try:
            if lock.locked():
                logger.debug(f"Waiting for {self.name} lock on {key}")
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# A record lock and a share request lock are never held at the same time
record_locks = EntityLockRegistry("record")
share_request_locks = EntityLockRegistry("share_request")
principal_locks = EntityLockRegistry("principal")
