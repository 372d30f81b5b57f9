"""Turn orchestration with deterministic memory management.

One turn, in order:
1. Resolve or create the conversation
2. Store the customer message (before any model call, so input is never lost)
3. Re-read the message count and run the summarization check
4. Re-read the conversation for the latest summary
5. Read the tail window (last raw_window_size messages)
6. Build the canonical prompt and call the model gateway
7. Store the reply

Steps 2-7 run under a per-conversation lock. Summarization completes before
the tail window is read, so the tail never includes messages that a
just-written summary already covers.

Model failures never abort a turn: the fixed fallback reply is returned and
stored as the assistant message. Store failures propagate.
"""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Literal

from loguru import logger

from support_chat.core.conversation_locks import ConversationLocks
from support_chat.core.conversation_summary import SummarizationEngine
from support_chat.core.errors import GenerationFailure, StateInconsistency, StoreFailure
from support_chat.core.interfaces import ConversationStore, LanguageModelGateway, MessageStore
from support_chat.core.memory_config import DEFAULT_MEMORY_CONFIG, MemoryConfig
from support_chat.core.memory_metrics import MemoryMetrics, increment_memory_counter, log_memory_metrics
from support_chat.core.message import Conversation, Message
from support_chat.core.prompt_builder import build_prompt
from support_chat.core.prompts import FALLBACK_REPLY, SYSTEM_PROMPT


@dataclass(frozen=True)
class TurnResult:
    reply: str
    session_id: str


@dataclass(frozen=True)
class StreamEvent:
    """One item of a streamed turn.

    A stream is zero or more "delta" events carrying reply fragments, then
    exactly one "done" event whose text is the full stored reply.
    """

    kind: Literal["delta", "done"]
    text: str
    session_id: str


class TurnOrchestrator:
    """Coordinates one chat turn end to end."""

    def __init__(
        self,
        conversation_store: ConversationStore,
        message_store: MessageStore,
        gateway: LanguageModelGateway,
        *,
        config: MemoryConfig = DEFAULT_MEMORY_CONFIG,
        summarizer: SummarizationEngine | None = None,
        locks: ConversationLocks | None = None,
        system_prompt: str = SYSTEM_PROMPT,
        fallback_reply: str = FALLBACK_REPLY,
    ) -> None:
        self._conversation_store = conversation_store
        self._message_store = message_store
        self._gateway = gateway
        self._config = config
        self._summarizer = summarizer or SummarizationEngine(conversation_store, message_store, gateway, config)
        self._locks = locks or ConversationLocks()
        self._system_prompt = system_prompt
        self._fallback_reply = fallback_reply

    async def handle_turn(self, text: str, session_id: str | None = None) -> TurnResult:
        """Run one turn and return the reply.

        Args:
            text: Customer message (already validated and trimmed)
            session_id: Existing conversation ID; None or unknown starts a new conversation

        Returns:
            TurnResult with the reply and the conversation ID to use for the next turn

        Raises:
            StoreFailure: If storage is unavailable
            StateInconsistency: If memory invariants are violated
        """
        conversation = self._resolve_conversation(session_id)

        async with self._locks.get(conversation.id):
            prompt = await self._prepare_turn(conversation.id, text)
            try:
                reply = (await self._gateway.complete(prompt)).strip()
                if not reply:
                    raise GenerationFailure("Empty reply from language model")
            except GenerationFailure as e:
                reply = self._fallback(conversation.id, e)

            self._message_store.append(conversation.id, "assistant", reply)

        increment_memory_counter("turns_handled")
        logger.info("turn_completed", conversation_id=conversation.id, reply_chars=len(reply))
        return TurnResult(reply=reply, session_id=conversation.id)

    async def stream_turn(self, text: str, session_id: str | None = None) -> AsyncIterator[StreamEvent]:
        """Run one turn, yielding the reply as it is generated.

        Every call starts a new turn. Closing the iterator early stops the
        model stream; the customer message stays stored, and whatever reply
        text was already delivered is stored as the assistant message.

        Yields:
            "delta" events with reply fragments, then one "done" event

        Raises:
            StoreFailure: If storage is unavailable
            StateInconsistency: If memory invariants are violated
        """
        conversation = self._resolve_conversation(session_id)
        conversation_id = conversation.id
        delivered: list[str] = []

        async with self._locks.get(conversation_id):
            prompt = await self._prepare_turn(conversation_id, text)
            stream = self._gateway.complete_stream(prompt)
            completed = False
            try:
                try:
                    async for fragment in stream:
                        if not fragment:
                            continue
                        delivered.append(fragment)
                        yield StreamEvent(kind="delta", text=fragment, session_id=conversation_id)
                    if not "".join(delivered).strip():
                        raise GenerationFailure("Empty streamed reply from language model")
                except GenerationFailure as e:
                    fallback = self._fallback(conversation_id, e)
                    delivered.append(fallback)
                    yield StreamEvent(kind="delta", text=fallback, session_id=conversation_id)
                completed = True
            finally:
                reply = "".join(delivered)
                if not completed:
                    logger.info(
                        "stream_cancelled",
                        conversation_id=conversation_id,
                        delivered_chars=len(reply),
                    )
                try:
                    if reply:
                        self._message_store.append(conversation_id, "assistant", reply)
                finally:
                    # The model stream is closed even when storing the reply fails
                    aclose = getattr(stream, "aclose", None)
                    if aclose is not None:
                        await aclose()

        increment_memory_counter("turns_handled")
        logger.info("turn_completed", conversation_id=conversation_id, reply_chars=len(reply), streamed=True)
        yield StreamEvent(kind="done", text=reply, session_id=conversation_id)

    def get_history(self, session_id: str) -> list[Message]:
        """Return every stored message of a conversation, oldest first."""
        return self._message_store.all(session_id)

    def _resolve_conversation(self, session_id: str | None) -> Conversation:
        conversation = self._conversation_store.find_or_create(session_id)
        if session_id and conversation.id != session_id:
            logger.info(
                "Unknown session id, started a new conversation",
                requested_session_id=session_id,
                conversation_id=conversation.id,
            )
        return conversation

    def _require_conversation(self, conversation_id: str) -> Conversation:
        conversation = self._conversation_store.find_by_id(conversation_id)
        if conversation is None:
            raise StoreFailure("find_by_id", f"Conversation {conversation_id} not found")
        return conversation

    async def _prepare_turn(self, conversation_id: str, text: str) -> str:
        # Caller holds the conversation lock.
        conversation = self._require_conversation(conversation_id)
        self._message_store.append(conversation_id, "user", text)

        total_message_count = self._message_store.count(conversation_id)
        await self._summarizer.check_and_summarize(conversation, total_message_count)

        conversation = self._require_conversation(conversation_id)
        tail = self._message_store.tail(conversation_id, self._config.raw_window_size)
        self._verify_split(conversation, tail, total_message_count)

        prompt = build_prompt(self._system_prompt, conversation.summary, tail, text)

        log_memory_metrics(
            event="prompt_built",
            metrics=MemoryMetrics(
                conversation_id=conversation_id,
                total_message_count=total_message_count,
                tail_message_count=len(tail),
                summary_until=conversation.summary_until,
                summary_present=conversation.has_summary,
                prompt_chars=len(prompt),
            ),
        )
        return prompt

    def _verify_split(self, conversation: Conversation, tail: list[Message], total_message_count: int) -> None:
        if not conversation.has_summary:
            return
        summary_until = conversation.summary_until or 0
        if summary_until > total_message_count - self._config.raw_window_size:
            raise StateInconsistency(
                conversation.id,
                f"summary_until={summary_until} reaches into the tail window of {total_message_count} messages",
            )
        if tail and tail[0].position <= summary_until:
            raise StateInconsistency(
                conversation.id,
                f"tail window starts at message {tail[0].position}, already covered by summary_until={summary_until}",
            )

    def _fallback(self, conversation_id: str, error: GenerationFailure) -> str:
        increment_memory_counter("generation_failures")
        logger.warning(
            "Language model generation failed, using fallback reply",
            conversation_id=conversation_id,
            error=str(error),
        )
        return self._fallback_reply
