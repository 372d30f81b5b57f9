"""Collaborator contracts consumed by the memory core.

The core never imports a storage engine or model SDK directly. Anything that
satisfies these protocols can be injected into the orchestrator.
"""

from collections.abc import AsyncIterator
from typing import Protocol

from support_chat.core.message import Conversation, Message, Sender


class MessageStore(Protocol):
    """Append-only storage of conversation turns, ordered oldest → newest."""

    def append(self, conversation_id: str, sender: Sender, text: str) -> Message: ...

    def count(self, conversation_id: str) -> int: ...

    def tail(self, conversation_id: str, n: int) -> list[Message]: ...

    def all(self, conversation_id: str) -> list[Message]: ...

    def range(self, conversation_id: str, first: int, last: int) -> list[Message]: ...


class ConversationStore(Protocol):
    """One record per session holding the summary and its boundary."""

    def find_or_create(self, conversation_id: str | None = None) -> Conversation: ...

    def find_by_id(self, conversation_id: str) -> Conversation | None: ...

    def update_summary(self, conversation_id: str, summary: str, summary_until: int) -> Conversation: ...


class LanguageModelGateway(Protocol):
    """Turns a prompt into a reply. Both calls raise GenerationFailure on failure."""

    async def complete(self, prompt: str) -> str: ...

    def complete_stream(self, prompt: str) -> AsyncIterator[str]: ...
