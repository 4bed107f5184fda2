import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class MessageLocks:
    """One asyncio.Lock per message id.

    Orchestration calls and firing handlers for the same message run one at a
    time; different messages never wait on each other.
    """

    def __init__(self) -> None:
        self._locks: Dict[int, asyncio.Lock] = {}

    def lock_for(self, message_id: int) -> asyncio.Lock:
        lock = self._locks.get(message_id)
        if lock is None:
            lock = self._locks[message_id] = asyncio.Lock()
        return lock

    @asynccontextmanager
    async def hold(self, message_id: int) -> AsyncIterator[None]:
        async with self.lock_for(message_id):
            yield

    def discard(self, message_id: int) -> None:
        lock = self._locks.get(message_id)
        if lock is not None and not lock.locked():
            del self._locks[message_id]

    def __len__(self) -> int:
        return len(self._locks)
