"""Per-conversation mutual exclusion for turns."""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from chronicler.utils.logging import get_logger

logger = get_logger(__name__)


class ConversationBusyError(RuntimeError):
    """Another turn is already running for this conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation {conversation_id} is busy with another turn")
        self.conversation_id = conversation_id


class ConversationLocks:
    """One lock per active conversation. Contention fails fast rather than queueing."""

    def __init__(self):
        self._locks: dict[str, asyncio.Lock] = {}

    def is_locked(self, conversation_id: str) -> bool:
        lock = self._locks.get(conversation_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, conversation_id: str) -> AsyncIterator[None]:
        if self.is_locked(conversation_id):
            logger.warning(f"Rejecting concurrent turn for conversation {conversation_id}")
            raise ConversationBusyError(conversation_id)

        lock = self._locks.setdefault(conversation_id, asyncio.Lock())
        await lock.acquire()
        try:
            yield
        finally:
            lock.release()
            if self._locks.get(conversation_id) is lock:
                del self._locks[conversation_id]
