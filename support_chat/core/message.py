"""Canonical conversation and message schemas.

These are the only shapes the memory core works with. Store implementations
convert their rows into these models before returning them.

Core invariant: a Message is immutable once created, and its position is its
1-based index in the conversation (strictly increasing in insertion order).
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Sender = Literal["user", "assistant"]


class Message(BaseModel):
    """Stored conversation turn.

    Fields:
        id: Message ID (UUID string)
        conversation_id: Owning conversation ID
        sender: "user" or "assistant"
        text: Message text
        created_at: Server-side creation timestamp (UTC)
        position: 1-based index within the conversation
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Message ID")
    conversation_id: str = Field(..., description="Owning conversation ID")
    sender: Sender = Field(..., description="Message sender")
    text: str = Field(..., description="Message text")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    position: int = Field(..., ge=1, description="1-based position within the conversation")


class Conversation(BaseModel):
    """One chat session and its compressed history.

    ``summary_until`` is the number of oldest messages folded into ``summary``.
    Both are None until the first compression.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Conversation (session) ID")
    created_at: datetime = Field(..., description="Creation timestamp (UTC)")
    summary: str | None = Field(default=None, description="Running summary of older messages")
    summary_until: int | None = Field(default=None, ge=0, description="Messages covered by the summary")

    @model_validator(mode="after")
    def validate_summary_pair(self) -> "Conversation":
        """Summary text and boundary are set together or not at all."""
        if (self.summary is None) != (self.summary_until is None):
            raise ValueError("summary and summary_until must both be set or both be None")
        return self

    @property
    def has_summary(self) -> bool:
        return self.summary is not None
