"""SQL-backed conversation store.

One row per session. The summary and its boundary are only ever replaced
together, and the boundary never moves backwards.
"""

import uuid

from loguru import logger
from sqlalchemy.orm import Session, sessionmaker

from support_chat.core.errors import StateInconsistency, StoreFailure
from support_chat.core.message import Conversation
from support_chat.db.models import ConversationRow
from support_chat.db.session import session_scope


def _to_conversation(row: ConversationRow) -> Conversation:
    return Conversation(
        id=row.id,
        created_at=row.created_at,
        summary=row.summary,
        summary_until=row.summary_until,
    )


class SqlConversationStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def find_or_create(self, conversation_id: str | None = None) -> Conversation:
        """Return the conversation, or create one with a fresh ID.

        An unknown conversation_id is not reused: the new conversation always
        gets a server-generated ID.
        """
        with session_scope(self._session_factory, "find_or_create") as session:
            if conversation_id:
                row = session.get(ConversationRow, conversation_id)
                if row is not None:
                    return _to_conversation(row)

            row = ConversationRow(id=str(uuid.uuid4()))
            session.add(row)
            session.flush()
            logger.info("conversation_created", conversation_id=row.id)
            return _to_conversation(row)

    def find_by_id(self, conversation_id: str) -> Conversation | None:
        with session_scope(self._session_factory, "find_by_id") as session:
            row = session.get(ConversationRow, conversation_id)
            return _to_conversation(row) if row is not None else None

    def update_summary(self, conversation_id: str, summary: str, summary_until: int) -> Conversation:
        """Replace the summary and advance its boundary in one transaction.

        Raises:
            StoreFailure: If the conversation does not exist or the write fails
            StateInconsistency: If summary_until would move backwards
        """
        with session_scope(self._session_factory, "update_summary") as session:
            row = session.get(ConversationRow, conversation_id, with_for_update=True)
            if row is None:
                raise StoreFailure("update_summary", f"Conversation {conversation_id} not found")
            if row.summary_until is not None and summary_until < row.summary_until:
                raise StateInconsistency(
                    conversation_id,
                    f"summary_until cannot move backwards ({row.summary_until} -> {summary_until})",
                )
            row.summary = summary
            row.summary_until = summary_until
            session.flush()
            return _to_conversation(row)
