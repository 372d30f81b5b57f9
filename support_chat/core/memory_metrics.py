"""Conversation memory observability.

Structured logging plus lightweight in-process counters. Logging only, no
side effects on memory state.

Core principles:
1. Conversation-scoped observability (always log conversation_id)
2. Never log raw user content
"""

from dataclasses import dataclass

from loguru import logger


@dataclass
class MemoryMetrics:
    """Memory metrics for one prompt assembly."""

    conversation_id: str
    total_message_count: int = 0
    tail_message_count: int = 0
    summary_until: int | None = None
    summary_present: bool = False
    prompt_chars: int | None = None


def log_memory_metrics(
    *,
    event: str,
    metrics: MemoryMetrics,
    extra: dict[str, str | int | float | bool | None] | None = None,
) -> None:
    """Log memory metrics with structured format.

    Args:
        event: Event name (e.g., "prompt_built")
        metrics: MemoryMetrics dataclass with conversation metrics
        extra: Optional extra fields to include in log
    """
    log_data: dict[str, str | int | float | bool | None] = {
        "conversation_id": metrics.conversation_id,
        "total_message_count": metrics.total_message_count,
        "tail_message_count": metrics.tail_message_count,
        "summary_present": metrics.summary_present,
    }

    if metrics.summary_until is not None:
        log_data["summary_until"] = metrics.summary_until

    if metrics.prompt_chars is not None:
        log_data["prompt_chars"] = metrics.prompt_chars

    if extra:
        log_data.update(extra)

    logger.info(event, **log_data)


# In-process counters (reset on restart)
MEMORY_COUNTERS: dict[str, int] = {
    "turns_handled": 0,
    "summaries_created": 0,
    "summaries_recompressed": 0,
    "summary_fallbacks": 0,
    "generation_failures": 0,
}


def increment_memory_counter(counter_name: str) -> None:
    """Increment a memory counter.

    Args:
        counter_name: Counter name (must be in MEMORY_COUNTERS)
    """
    if counter_name in MEMORY_COUNTERS:
        MEMORY_COUNTERS[counter_name] += 1
    else:
        logger.warning(
            "Attempted to increment unknown memory counter",
            counter_name=counter_name,
            available_counters=list(MEMORY_COUNTERS.keys()),
        )


def reset_memory_counters() -> None:
    for name in MEMORY_COUNTERS:
        MEMORY_COUNTERS[name] = 0


def log_memory_counters_snapshot() -> None:
    """Log current memory counter values."""
    logger.info("memory_counters_snapshot", **MEMORY_COUNTERS)
