"""Per-conversation mutual exclusion.

Turns for the same conversation must not interleave between appending the
user message and appending the reply, otherwise two turns can read a stale
message count and summarize twice or build an overlapping tail window.
Different conversations never wait on each other.
"""

import asyncio
import weakref


class ConversationLocks:
    """Registry of one asyncio.Lock per conversation ID.

    Locks are held weakly: a lock lives as long as some turn holds or waits
    on it, then drops out of the registry.
    """

    def __init__(self) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def get(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
