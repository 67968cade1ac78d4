"""In-memory conversation transcripts keyed by conversation id.

Runs start from a snapshot (a copy) of the stored transcript and only append
their new messages back when they complete. Aborted or cancelled runs commit
nothing.

Callers hold ``lock(conversation_id)`` from snapshot to commit. Without it two
concurrent runs on one conversation would start from the same snapshot and
the later commit would land after messages its run never saw.
"""

import asyncio
import logging
import uuid
import weakref
from collections import OrderedDict

from agentstream.loop.messages import Message

logger = logging.getLogger(__name__)


class ConversationStore:
    """Bounded LRU map of conversation id -> transcript."""

    def __init__(self, max_conversations: int = 1000) -> None:
        self._max_conversations = max_conversations
        self._conversations: OrderedDict[str, list[Message]] = OrderedDict()
        # Entries disappear once no run holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def __len__(self) -> int:
        return len(self._conversations)

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    @staticmethod
    def new_id() -> str:
        return uuid.uuid4().hex

    def lock(self, conversation_id: str) -> asyncio.Lock:
        """Return the lock serializing runs on *conversation_id*."""
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def snapshot(self, conversation_id: str) -> list[Message]:
        """Return a copy of the transcript (empty for unknown ids)."""
        return list(self._conversations.get(conversation_id, []))

    def append(self, conversation_id: str, messages: list[Message]) -> None:
        """Append the messages a completed run produced."""
        transcript = self._conversations.setdefault(conversation_id, [])
        transcript.extend(messages)
        self._conversations.move_to_end(conversation_id)

        while len(self._conversations) > self._max_conversations:
            evicted, _ = self._conversations.popitem(last=False)
            logger.debug("Evicted conversation %s", evicted)
