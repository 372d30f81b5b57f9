"""Summarization trigger logic.

This module provides a pure, deterministic function to decide whether a
conversation needs compression, and over which message range.

Rules (config values in parentheses are the defaults):
1. No summary yet and total > summary_threshold (20):
   initial compression of [1, total - raw_window_size].
2. Summary exists and total - summary_until > re_summary_threshold (10):
   recompression of [summary_until + 1, total - raw_window_size], merged
   into the existing summary.
3. Otherwise nothing to do.

No LLM calls. No store reads or writes. Pure function.
"""

from dataclasses import dataclass
from typing import Literal

from support_chat.core.errors import StateInconsistency
from support_chat.core.memory_config import MemoryConfig
from support_chat.core.message import Conversation

SummaryKind = Literal["initial", "recompress"]


@dataclass(frozen=True)
class SummaryPlan:
    """Compression to perform.

    Attributes:
        kind: "initial" for the first summary, "recompress" to merge into an existing one
        first_position: First message position to fold in (1-based, inclusive)
        last_position: Last message position to fold in; becomes the new summary_until
    """

    kind: SummaryKind
    first_position: int
    last_position: int

    @property
    def message_count(self) -> int:
        return self.last_position - self.first_position + 1


def plan_summarization(
    conversation: Conversation,
    total_message_count: int,
    config: MemoryConfig,
) -> SummaryPlan | None:
    """Decide whether the conversation needs compression.

    Args:
        conversation: Current conversation state
        total_message_count: Number of stored messages, including the newest one
        config: Memory thresholds

    Returns:
        SummaryPlan describing the range to compress, or None when the split is within bounds

    Raises:
        StateInconsistency: If the stored boundary already overlaps the tail window
    """
    new_boundary = total_message_count - config.raw_window_size

    if not conversation.has_summary:
        if total_message_count > config.summary_threshold:
            return SummaryPlan(kind="initial", first_position=1, last_position=new_boundary)
        return None

    summary_until = conversation.summary_until or 0
    if summary_until > new_boundary:
        raise StateInconsistency(
            conversation.id,
            f"summary_until={summary_until} overlaps the last {config.raw_window_size} of {total_message_count} messages",
        )

    raw_window_size = total_message_count - summary_until
    if raw_window_size <= config.re_summary_threshold:
        return None

    # re_summary_threshold >= raw_window_size, so the boundary always moves forward
    return SummaryPlan(kind="recompress", first_position=summary_until + 1, last_position=new_boundary)
