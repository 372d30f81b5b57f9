"""Conversation memory configuration.

Thresholds are fixed domain constants, not runtime settings. They are grouped
in an immutable MemoryConfig that is injected into the summarization engine
and the turn orchestrator.
"""

from dataclasses import dataclass

# Messages always kept verbatim at the end of the conversation (the tail window)
RAW_WINDOW_SIZE = 5

# Total message count that must be exceeded before the first summary is created
SUMMARY_THRESHOLD = 20

# Raw window size (messages after summary_until) that must be exceeded to recompress
RE_SUMMARY_THRESHOLD = 10


@dataclass(frozen=True)
class MemoryConfig:
    """Immutable memory thresholds.

    Attributes:
        raw_window_size: Messages always sent verbatim
        summary_threshold: Total messages required before first compression
        re_summary_threshold: Raw-window size that triggers recompression
    """

    raw_window_size: int = RAW_WINDOW_SIZE
    summary_threshold: int = SUMMARY_THRESHOLD
    re_summary_threshold: int = RE_SUMMARY_THRESHOLD

    def __post_init__(self) -> None:
        if self.raw_window_size < 1:
            raise ValueError(f"raw_window_size must be >= 1, got {self.raw_window_size}")
        if self.summary_threshold < self.raw_window_size:
            raise ValueError("summary_threshold must be >= raw_window_size")
        if self.re_summary_threshold < self.raw_window_size:
            raise ValueError("re_summary_threshold must be >= raw_window_size")


DEFAULT_MEMORY_CONFIG = MemoryConfig()
