from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""


class ConversationRow(Base):
    """One chat session.

    Stores:
    - id: Conversation ID (string UUID format), also the public session ID
    - created_at: Timestamp when the conversation was created
    - summary: Running summary of the oldest messages (nullable until first compression)
    - summary_until: Number of oldest messages folded into the summary
    """

    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary_until: Mapped[int | None] = mapped_column(Integer, nullable=True)


class ConversationMessageRow(Base):
    """Append-only conversation turn.

    position is the 1-based index of the message within its conversation.
    """

    __tablename__ = "conversation_messages"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    conversation_id: Mapped[str] = mapped_column(
        String, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False
    )
    sender: Mapped[str] = mapped_column(String, nullable=False)  # "user" | "assistant"
    text: Mapped[str] = mapped_column(Text, nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        UniqueConstraint("conversation_id", "position", name="uq_conversation_messages_position"),
    )
