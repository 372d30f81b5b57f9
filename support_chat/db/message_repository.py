"""SQL-backed message store.

Messages are append-only. Each message gets the next 1-based position of its
conversation; the (conversation_id, position) unique constraint rejects a
racing append instead of producing duplicate positions.
"""

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from support_chat.core.message import Message, Sender
from support_chat.db.models import ConversationMessageRow
from support_chat.db.session import session_scope


def _to_message(row: ConversationMessageRow) -> Message:
    return Message(
        id=row.id,
        conversation_id=row.conversation_id,
        sender=row.sender,
        text=row.text,
        created_at=row.created_at,
        position=row.position,
    )


class SqlMessageStore:
    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def append(self, conversation_id: str, sender: Sender, text: str) -> Message:
        with session_scope(self._session_factory, "append") as session:
            last_position = session.scalar(
                select(func.max(ConversationMessageRow.position)).where(
                    ConversationMessageRow.conversation_id == conversation_id
                )
            )
            row = ConversationMessageRow(
                conversation_id=conversation_id,
                sender=sender,
                text=text,
                position=(last_position or 0) + 1,
            )
            session.add(row)
            session.flush()
            logger.debug(
                "message_appended",
                conversation_id=conversation_id,
                sender=sender,
                position=row.position,
            )
            return _to_message(row)

    def count(self, conversation_id: str) -> int:
        with session_scope(self._session_factory, "count") as session:
            total = session.scalar(
                select(func.count()).select_from(ConversationMessageRow).where(
                    ConversationMessageRow.conversation_id == conversation_id
                )
            )
            return total or 0

    def tail(self, conversation_id: str, n: int) -> list[Message]:
        """Return the last n messages, oldest first."""
        if n <= 0:
            return []
        with session_scope(self._session_factory, "tail") as session:
            rows = session.scalars(
                select(ConversationMessageRow)
                .where(ConversationMessageRow.conversation_id == conversation_id)
                .order_by(ConversationMessageRow.position.desc())
                .limit(n)
            ).all()
            return [_to_message(row) for row in reversed(rows)]

    def all(self, conversation_id: str) -> list[Message]:
        with session_scope(self._session_factory, "all") as session:
            rows = session.scalars(
                select(ConversationMessageRow)
                .where(ConversationMessageRow.conversation_id == conversation_id)
                .order_by(ConversationMessageRow.position.asc())
            ).all()
            return [_to_message(row) for row in rows]

    def range(self, conversation_id: str, first: int, last: int) -> list[Message]:
        """Return messages with first <= position <= last, oldest first."""
        with session_scope(self._session_factory, "range") as session:
            rows = session.scalars(
                select(ConversationMessageRow)
                .where(
                    ConversationMessageRow.conversation_id == conversation_id,
                    ConversationMessageRow.position >= first,
                    ConversationMessageRow.position <= last,
                )
                .order_by(ConversationMessageRow.position.asc())
            ).all()
            return [_to_message(row) for row in rows]
