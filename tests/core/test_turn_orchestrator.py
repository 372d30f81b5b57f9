"""Tests for turn orchestration.

Tests cover:
- Basic turn (user and assistant messages stored, session ID returned)
- Summarization runs before the tail window is read
- Tail window never overlaps the summary across many turns
- Model failure falls back to the fixed reply (no exception to the caller)
- Store failure propagates
- Streaming: deltas then done, mid-stream failure, early cancellation
- Concurrent turns on one conversation are serialized
"""

import asyncio
from unittest.mock import MagicMock

import pytest

from support_chat.core.errors import StateInconsistency, StoreFailure
from support_chat.core.memory_metrics import MEMORY_COUNTERS
from support_chat.core.prompt_builder import parse_prompt
from support_chat.core.prompts import FALLBACK_REPLY
from support_chat.core.turn_orchestrator import TurnOrchestrator


@pytest.fixture
def orchestrator(conversation_store, message_store, gateway) -> TurnOrchestrator:
    return TurnOrchestrator(conversation_store, message_store, gateway)


async def _collect(events) -> list:
    return [event async for event in events]


@pytest.mark.asyncio
async def test_first_turn_creates_conversation(orchestrator, message_store, gateway) -> None:
    result = await orchestrator.handle_turn("Do you ship to Canada?")

    assert result.reply == gateway.reply
    assert result.session_id

    history = orchestrator.get_history(result.session_id)
    assert [(msg.sender, msg.text, msg.position) for msg in history] == [
        ("user", "Do you ship to Canada?", 1),
        ("assistant", gateway.reply, 2),
    ]
    assert MEMORY_COUNTERS["turns_handled"] == 1


@pytest.mark.asyncio
async def test_unknown_session_starts_new_conversation(orchestrator) -> None:
    result = await orchestrator.handle_turn("Hello", session_id="does-not-exist")

    assert result.session_id != "does-not-exist"
    assert len(orchestrator.get_history(result.session_id)) == 2
    assert orchestrator.get_history("does-not-exist") == []


@pytest.mark.asyncio
async def test_existing_session_is_continued(orchestrator) -> None:
    first = await orchestrator.handle_turn("Hello")
    second = await orchestrator.handle_turn("Where is my order?", session_id=first.session_id)

    assert second.session_id == first.session_id
    assert len(orchestrator.get_history(first.session_id)) == 4


@pytest.mark.asyncio
async def test_summary_is_written_before_tail_is_read(orchestrator, conversation_store, gateway) -> None:
    """The 21st message triggers compression and the same turn's prompt uses it."""
    session_id = None
    for turn in range(1, 11):
        result = await orchestrator.handle_turn(f"question {turn}", session_id)
        session_id = result.session_id
    assert conversation_store.find_by_id(session_id).summary is None

    await orchestrator.handle_turn("question 11", session_id)

    conversation = conversation_store.find_by_id(session_id)
    assert conversation.summary_until == 16

    parsed = parse_prompt(gateway.reply_prompts[-1])
    assert parsed.summary == gateway.summary
    assert len(parsed.tail) == 5
    assert parsed.tail[0] == ("user", "question 9")
    assert parsed.tail[-1] == ("user", "question 11")
    assert parsed.current_input == "question 11"


@pytest.mark.asyncio
async def test_tail_never_overlaps_summary(orchestrator, conversation_store, message_store) -> None:
    observed: list[tuple[int | None, list[int]]] = []
    read_tail = message_store.tail

    def recording_tail(conversation_id: str, n: int):
        result = read_tail(conversation_id, n)
        conversation = conversation_store.find_by_id(conversation_id)
        observed.append((conversation.summary_until, [msg.position for msg in result]))
        return result

    message_store.tail = recording_tail

    session_id = None
    for turn in range(1, 31):
        result = await orchestrator.handle_turn(f"question {turn}", session_id)
        session_id = result.session_id

    assert len(observed) == 30
    for summary_until, positions in observed:
        assert len(positions) <= 5
        if summary_until is not None:
            assert min(positions) > summary_until
    assert conversation_store.find_by_id(session_id).summary_until is not None
    assert MEMORY_COUNTERS["summaries_created"] == 1
    assert MEMORY_COUNTERS["summaries_recompressed"] >= 1


@pytest.mark.asyncio
async def test_model_failure_returns_and_stores_fallback(orchestrator, gateway) -> None:
    gateway.fail_replies = True

    result = await orchestrator.handle_turn("Hi there")

    assert result.reply == FALLBACK_REPLY
    history = orchestrator.get_history(result.session_id)
    assert history[-1].sender == "assistant"
    assert history[-1].text == FALLBACK_REPLY
    assert MEMORY_COUNTERS["generation_failures"] == 1


@pytest.mark.asyncio
async def test_blank_model_reply_falls_back(orchestrator, gateway) -> None:
    gateway.reply = "  \n "

    result = await orchestrator.handle_turn("Hi there")

    assert result.reply == FALLBACK_REPLY


@pytest.mark.asyncio
async def test_store_failure_propagates(conversation_store, gateway) -> None:
    message_store = MagicMock()
    message_store.append.side_effect = StoreFailure("append", "database is down")
    orchestrator = TurnOrchestrator(conversation_store, message_store, gateway)

    with pytest.raises(StoreFailure):
        await orchestrator.handle_turn("Hello")

    assert gateway.reply_prompts == []


@pytest.mark.asyncio
async def test_stream_yields_deltas_then_done(orchestrator, gateway) -> None:
    events = await _collect(orchestrator.stream_turn("Can I return a lamp?"))

    assert [event.kind for event in events] == ["delta", "delta", "delta", "done"]
    assert "".join(event.text for event in events[:-1]) == "Happy to help."
    done = events[-1]
    assert done.text == "Happy to help."

    history = orchestrator.get_history(done.session_id)
    assert [(msg.sender, msg.text) for msg in history] == [
        ("user", "Can I return a lamp?"),
        ("assistant", "Happy to help."),
    ]
    assert gateway.stream_closed
    assert MEMORY_COUNTERS["turns_handled"] == 1


@pytest.mark.asyncio
async def test_stream_failure_mid_reply_appends_fallback(orchestrator, gateway) -> None:
    gateway.fail_stream_after = 1

    events = await _collect(orchestrator.stream_turn("Hello"))

    assert [event.text for event in events if event.kind == "delta"] == ["Happy ", FALLBACK_REPLY]
    done = events[-1]
    assert done.kind == "done"
    assert done.text == f"Happy {FALLBACK_REPLY}"
    assert orchestrator.get_history(done.session_id)[-1].text == f"Happy {FALLBACK_REPLY}"
    assert MEMORY_COUNTERS["generation_failures"] == 1


@pytest.mark.asyncio
async def test_stream_failure_before_any_fragment(orchestrator, gateway) -> None:
    gateway.fail_replies = True

    events = await _collect(orchestrator.stream_turn("Hello"))

    assert [(event.kind, event.text) for event in events] == [("delta", FALLBACK_REPLY), ("done", FALLBACK_REPLY)]


@pytest.mark.asyncio
async def test_cancelled_stream_stores_delivered_text(orchestrator, gateway) -> None:
    events = orchestrator.stream_turn("Hello")

    first = await anext(events)
    await events.aclose()

    assert first.kind == "delta"
    history = orchestrator.get_history(first.session_id)
    assert [(msg.sender, msg.text) for msg in history] == [("user", "Hello"), ("assistant", "Happy ")]
    assert gateway.stream_closed
    assert MEMORY_COUNTERS["turns_handled"] == 0


@pytest.mark.asyncio
async def test_new_turn_after_cancelled_stream(orchestrator) -> None:
    events = orchestrator.stream_turn("Hello")
    first = await anext(events)
    await events.aclose()

    result = await orchestrator.handle_turn("Are you there?", first.session_id)

    positions = [msg.position for msg in orchestrator.get_history(result.session_id)]
    assert positions == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_concurrent_turns_on_one_conversation_are_serialized(
    conversation_store, message_store, gateway
) -> None:
    complete = gateway.complete

    async def slow_complete(prompt: str) -> str:
        await asyncio.sleep(0.01)
        return await complete(prompt)

    gateway.complete = slow_complete
    orchestrator = TurnOrchestrator(conversation_store, message_store, gateway)
    conversation = conversation_store.find_or_create()

    await asyncio.gather(
        orchestrator.handle_turn("first", conversation.id),
        orchestrator.handle_turn("second", conversation.id),
    )

    senders = [msg.sender for msg in orchestrator.get_history(conversation.id)]
    assert senders == ["user", "assistant", "user", "assistant"]


@pytest.mark.asyncio
async def test_cancelled_stream_closes_model_stream_when_reply_store_fails(
    orchestrator, message_store, gateway
) -> None:
    append = message_store.append

    def append_failing_for_replies(conversation_id: str, sender: str, text: str):
        if sender == "assistant":
            raise StoreFailure("append", "database is down")
        return append(conversation_id, sender, text)

    message_store.append = append_failing_for_replies
    events = orchestrator.stream_turn("Hello")
    await anext(events)

    with pytest.raises(StoreFailure):
        await events.aclose()

    assert gateway.stream_closed


@pytest.mark.asyncio
async def test_tail_overlapping_summary_is_rejected_before_generation(
    orchestrator, conversation_store, message_store, gateway, seed
) -> None:
    conversation = conversation_store.find_or_create()
    seed(conversation.id, 20)
    conversation_store.update_summary(conversation.id, "Earlier questions about a refund.", 15)
    # A tail read that reaches back into summarized messages
    message_store.tail = lambda conversation_id, n: message_store.range(conversation_id, 15, 14 + n)

    with pytest.raises(StateInconsistency) as exc_info:
        await orchestrator.handle_turn("Any update?", conversation.id)

    assert exc_info.value.conversation_id == conversation.id
    assert gateway.reply_prompts == []


@pytest.mark.asyncio
async def test_summary_boundary_inside_tail_is_rejected_before_generation(
    conversation_store, message_store, gateway, seed
) -> None:
    conversation = conversation_store.find_or_create()
    seed(conversation.id, 10)
    reads = []
    find_by_id = conversation_store.find_by_id

    def find_with_corrupted_reread(conversation_id: str):
        reads.append(conversation_id)
        current = find_by_id(conversation_id)
        if len(reads) == 1:
            return current
        return current.model_copy(update={"summary": "stale", "summary_until": 10})

    conversation_store.find_by_id = find_with_corrupted_reread
    orchestrator = TurnOrchestrator(conversation_store, message_store, gateway)

    with pytest.raises(StateInconsistency):
        await orchestrator.handle_turn("Hello again", conversation.id)

    assert gateway.reply_prompts == []
