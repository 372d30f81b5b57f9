"""Root conftest for all tests.

Shared fixtures: an in-memory SQLite database, the SQL stores bound to it,
and a scripted language model gateway.
"""

from collections.abc import AsyncIterator

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.pool import StaticPool

from support_chat.core.errors import GenerationFailure
from support_chat.core.memory_metrics import reset_memory_counters
from support_chat.db.conversation_repository import SqlConversationStore
from support_chat.db.message_repository import SqlMessageStore
from support_chat.db.models import Base
from support_chat.db.session import create_session_factory

SUMMARY_PROMPT_PREFIXES = (
    "You are summarizing a customer support conversation.",
    "You are updating a conversation summary.",
)


def is_summary_prompt(prompt: str) -> bool:
    return prompt.startswith(SUMMARY_PROMPT_PREFIXES)


class FakeGateway:
    """Scripted language model gateway.

    Reply prompts and summary prompts are recorded separately. Failures can be
    switched on per kind; streaming yields the configured chunks and can fail
    after a given number of them.
    """

    def __init__(
        self,
        reply: str = "Happy to help with that.",
        summary: str = "Customer asked about shipping and returns.",
        stream_chunks: list[str] | None = None,
    ) -> None:
        self.reply = reply
        self.summary = summary
        self.stream_chunks = stream_chunks if stream_chunks is not None else ["Happy ", "to ", "help."]
        self.fail_replies = False
        self.fail_summaries = False
        self.fail_stream_after: int | None = None
        self.reply_prompts: list[str] = []
        self.summary_prompts: list[str] = []
        self.stream_closed = False

    async def complete(self, prompt: str) -> str:
        if is_summary_prompt(prompt):
            self.summary_prompts.append(prompt)
            if self.fail_summaries:
                raise GenerationFailure("summary model unavailable")
            return self.summary

        self.reply_prompts.append(prompt)
        if self.fail_replies:
            raise GenerationFailure("reply model unavailable")
        return self.reply

    async def complete_stream(self, prompt: str) -> AsyncIterator[str]:
        self.reply_prompts.append(prompt)
        try:
            if self.fail_replies:
                raise GenerationFailure("reply model unavailable")
            for index, chunk in enumerate(self.stream_chunks):
                if self.fail_stream_after is not None and index >= self.fail_stream_after:
                    raise GenerationFailure("stream interrupted")
                yield chunk
        finally:
            self.stream_closed = True


@pytest.fixture(autouse=True)
def clean_memory_counters():
    reset_memory_counters()
    yield
    reset_memory_counters()


@pytest.fixture
def engine():
    """In-memory SQLite engine shared across sessions of one test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def conversation_store(session_factory) -> SqlConversationStore:
    return SqlConversationStore(session_factory)


@pytest.fixture
def message_store(session_factory) -> SqlMessageStore:
    return SqlMessageStore(session_factory)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


def seed_messages(message_store: SqlMessageStore, conversation_id: str, count: int) -> None:
    """Append count alternating customer/agent messages numbered from 1."""
    for position in range(1, count + 1):
        sender = "user" if position % 2 == 1 else "assistant"
        message_store.append(conversation_id, sender, f"message {position}")


@pytest.fixture
def seed(message_store):
    def _seed(conversation_id: str, count: int) -> None:
        seed_messages(message_store, conversation_id, count)

    return _seed
