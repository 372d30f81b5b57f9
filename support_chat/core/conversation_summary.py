"""Conversation summarization engine.

This module keeps the compressed/raw split of a conversation within the
configured bounds. Older messages are folded into a single running summary;
the last raw_window_size messages always stay verbatim.

Core invariants:
1. Exactly one summary per conversation - compression replaces, never appends
2. summary_until only moves forward
3. The summary never overlaps the tail window
4. A failed model call never leaves the summary stale relative to summary_until

Failure policy: when the gateway fails, the engine stores a minimal factual
placeholder ("N messages exchanged") and still advances summary_until. The
bounds stay satisfied at the cost of summary precision.
"""

from collections.abc import Sequence

from loguru import logger

from support_chat.core.errors import GenerationFailure, StateInconsistency
from support_chat.core.interfaces import ConversationStore, LanguageModelGateway, MessageStore
from support_chat.core.memory_config import DEFAULT_MEMORY_CONFIG, MemoryConfig
from support_chat.core.memory_metrics import increment_memory_counter
from support_chat.core.message import Conversation, Message
from support_chat.core.prompt_builder import render_transcript
from support_chat.core.prompts import (
    INITIAL_SUMMARY_PLACEHOLDER,
    INITIAL_SUMMARY_PROMPT,
    MERGE_SUMMARY_PLACEHOLDER,
    MERGE_SUMMARY_PROMPT,
)
from support_chat.core.summarization_trigger import SummaryPlan, plan_summarization


def build_initial_summary_prompt(messages: Sequence[Message]) -> str:
    """Build the prompt that compresses a raw message range into prose."""
    return INITIAL_SUMMARY_PROMPT.format(conversation=render_transcript(messages))


def build_merge_summary_prompt(existing_summary: str, messages: Sequence[Message]) -> str:
    """Build the prompt that merges an existing summary with newly eligible messages."""
    return MERGE_SUMMARY_PROMPT.format(
        existing_summary=existing_summary,
        conversation=render_transcript(messages),
    )


class SummarizationEngine:
    """Decides when to compress and produces the replacement summary."""

    def __init__(
        self,
        conversation_store: ConversationStore,
        message_store: MessageStore,
        gateway: LanguageModelGateway,
        config: MemoryConfig = DEFAULT_MEMORY_CONFIG,
    ) -> None:
        self._conversation_store = conversation_store
        self._message_store = message_store
        self._gateway = gateway
        self._config = config

    @property
    def config(self) -> MemoryConfig:
        return self._config

    async def check_and_summarize(self, conversation: Conversation, total_message_count: int) -> Conversation:
        """Compress older history if the conversation has outgrown its bounds.

        Args:
            conversation: Conversation as last read from the store
            total_message_count: Stored message count, including the newest message

        Returns:
            The updated conversation, or the same conversation when nothing was due

        Raises:
            StateInconsistency: If stored state contradicts the memory invariants
            StoreFailure: If reading messages or writing the summary fails
        """
        plan = plan_summarization(conversation, total_message_count, self._config)
        if plan is None:
            logger.debug(
                "summarization_not_due",
                conversation_id=conversation.id,
                total_message_count=total_message_count,
                summary_until=conversation.summary_until,
            )
            return conversation

        messages = self._message_store.range(conversation.id, plan.first_position, plan.last_position)
        if len(messages) != plan.message_count:
            raise StateInconsistency(
                conversation.id,
                f"expected {plan.message_count} messages in [{plan.first_position}, {plan.last_position}], "
                f"store returned {len(messages)}",
            )

        logger.info(
            "summarization_triggered",
            conversation_id=conversation.id,
            kind=plan.kind,
            first_position=plan.first_position,
            last_position=plan.last_position,
            total_message_count=total_message_count,
        )

        summary_text = await self._produce_summary(conversation, plan, messages)
        updated = self._conversation_store.update_summary(conversation.id, summary_text, plan.last_position)

        increment_memory_counter("summaries_created" if plan.kind == "initial" else "summaries_recompressed")
        logger.info(
            "summary_persisted",
            conversation_id=conversation.id,
            kind=plan.kind,
            summary_until=plan.last_position,
            summary_chars=len(summary_text),
        )
        return updated

    async def _produce_summary(
        self,
        conversation: Conversation,
        plan: SummaryPlan,
        messages: list[Message],
    ) -> str:
        if plan.kind == "initial":
            prompt = build_initial_summary_prompt(messages)
        else:
            prompt = build_merge_summary_prompt(conversation.summary or "", messages)

        try:
            summary = (await self._gateway.complete(prompt)).strip()
            if not summary:
                raise GenerationFailure("Empty summary response")
        except GenerationFailure as e:
            increment_memory_counter("summary_fallbacks")
            logger.warning(
                "Summary generation failed, storing placeholder summary",
                conversation_id=conversation.id,
                kind=plan.kind,
                error=str(e),
            )
            return self._placeholder_summary(conversation, plan)

        return summary

    @staticmethod
    def _placeholder_summary(conversation: Conversation, plan: SummaryPlan) -> str:
        if plan.kind == "initial":
            return INITIAL_SUMMARY_PLACEHOLDER.format(count=plan.message_count)
        return MERGE_SUMMARY_PLACEHOLDER.format(
            existing_summary=conversation.summary or "",
            count=plan.message_count,
        )
