"""Unit tests for the conversation session manager.

Tests cover:
1. Session creation writes the sentinel record
2. A turn persists user + assistant records in strict timestamp order
3. Validation failures persist nothing
4. Knowledge base failures keep the user turn and raise UpstreamError
5. Ownership and sentinel lookup
6. Concurrent submits on one session both land, in distinct ordered slots
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from backend.app.db.inmemory import InMemorySessionStore
from backend.app.errors import (
    SessionNotFoundError,
    TurnConflictError,
    UpstreamError,
    ValidationError,
)
from backend.app.models.sessions import SESSION_INIT_SENTINEL, Citation, RagAnswer, Turn
from backend.app.sessions.manager import ConversationSessionManager

FROZEN = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock that always returns the same instant, forcing timestamp ties."""

    def __init__(self, now: datetime = FROZEN) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class ScriptedKnowledgeBase:
    def __init__(self, answer: RagAnswer | None = None, error: Exception | None = None) -> None:
        self.answer = answer or RagAnswer(answer="42", citations=[Citation(text="total row")])
        self.error = error
        self.calls: list[tuple[str, str, str | None]] = []

    async def ask(
        self, knowledge_base_id: str, question: str, session_id: str | None = None
    ) -> RagAnswer:
        self.calls.append((knowledge_base_id, question, session_id))
        if self.error is not None:
            raise self.error
        return self.answer

    async def start_ingestion(self, knowledge_base_id: str, source_id: str) -> str:
        return "job-1"


def _manager(
    store: InMemorySessionStore, kb: ScriptedKnowledgeBase, clock: FixedClock | None = None
) -> ConversationSessionManager:
    return ConversationSessionManager(
        turns=store,
        knowledge_base=kb,
        knowledge_base_id="kb-1",
        clock=clock or FixedClock(),
    )


@pytest.mark.asyncio
async def test_create_session_writes_sentinel(session_store: InMemorySessionStore) -> None:
    manager = _manager(session_store, ScriptedKnowledgeBase())

    session_id = await manager.create_session("u1", "d1")

    turns = await session_store.list_turns(session_id)
    assert len(turns) == 1
    sentinel = turns[0]
    assert sentinel.sequence == 0
    assert sentinel.role == "user"
    assert sentinel.content == SESSION_INIT_SENTINEL
    assert sentinel.owner_id == "u1"
    assert sentinel.document_id == "d1"


@pytest.mark.asyncio
@pytest.mark.parametrize("document_id", [None, "", "  "])
async def test_create_session_requires_document(
    session_store: InMemorySessionStore, document_id: str | None
) -> None:
    manager = _manager(session_store, ScriptedKnowledgeBase())

    with pytest.raises(ValidationError):
        await manager.create_session("u1", document_id)

    assert await session_store.list_sentinels("u1") == []


@pytest.mark.asyncio
async def test_submit_turn_logs_three_records_in_order(
    session_store: InMemorySessionStore,
) -> None:
    kb = ScriptedKnowledgeBase()
    manager = _manager(session_store, kb)
    session_id = await manager.create_session("u1", "d1")

    reply = await manager.submit_turn(session_id, "u1", "What is the total?")

    assert reply.answer == "42"
    assert len(reply.citations) == 1
    assert kb.calls == [("kb-1", "What is the total?", session_id)]

    turns = await session_store.list_turns(session_id)
    assert [t.content for t in turns] == [SESSION_INIT_SENTINEL, "What is the total?", "42"]
    assert [t.role for t in turns] == ["user", "user", "assistant"]
    assert len(turns[2].citations) == 1
    assert turns[2].document_id == "d1"


@pytest.mark.asyncio
async def test_timestamps_strictly_increase_under_frozen_clock(
    session_store: InMemorySessionStore,
) -> None:
    manager = _manager(session_store, ScriptedKnowledgeBase(), FixedClock())
    session_id = await manager.create_session("u1", "d1")

    for question in ("q1", "q2", "q3"):
        await manager.submit_turn(session_id, "u1", question)

    turns = await session_store.list_turns(session_id)
    assert [t.sequence for t in turns] == list(range(7))
    for earlier, later in zip(turns, turns[1:]):
        assert earlier.timestamp < later.timestamp
    assert turns[-1].timestamp == FROZEN + timedelta(microseconds=6)


@pytest.mark.asyncio
async def test_clock_moving_backwards_still_orders_turns(
    session_store: InMemorySessionStore,
) -> None:
    clock = FixedClock()
    manager = _manager(session_store, ScriptedKnowledgeBase(), clock)
    session_id = await manager.create_session("u1", "d1")

    clock.now = FROZEN - timedelta(seconds=5)
    await manager.submit_turn(session_id, "u1", "q1")

    turns = await session_store.list_turns(session_id)
    assert turns[0].timestamp < turns[1].timestamp < turns[2].timestamp


@pytest.mark.asyncio
@pytest.mark.parametrize("question", [None, "", "   "])
async def test_empty_question_persists_nothing(
    session_store: InMemorySessionStore, question: str | None
) -> None:
    kb = ScriptedKnowledgeBase()
    manager = _manager(session_store, kb)
    session_id = await manager.create_session("u1", "d1")

    with pytest.raises(ValidationError):
        await manager.submit_turn(session_id, "u1", question)

    assert len(await session_store.list_turns(session_id)) == 1
    assert kb.calls == []


@pytest.mark.asyncio
async def test_upstream_failure_keeps_user_turn(session_store: InMemorySessionStore) -> None:
    kb = ScriptedKnowledgeBase(error=UpstreamError("RetrieveAndGenerate failed: throttled"))
    manager = _manager(session_store, kb)
    session_id = await manager.create_session("u1", "d1")

    with pytest.raises(UpstreamError):
        await manager.submit_turn(session_id, "u1", "What is the total?")

    turns = await session_store.list_turns(session_id)
    assert [t.content for t in turns] == [SESSION_INIT_SENTINEL, "What is the total?"]


@pytest.mark.asyncio
async def test_unexpected_error_is_wrapped(session_store: InMemorySessionStore) -> None:
    kb = ScriptedKnowledgeBase(error=RuntimeError("boom"))
    manager = _manager(session_store, kb)
    session_id = await manager.create_session("u1", "d1")

    with pytest.raises(UpstreamError, match="boom"):
        await manager.submit_turn(session_id, "u1", "q")


@pytest.mark.asyncio
async def test_unknown_or_foreign_session_not_found(session_store: InMemorySessionStore) -> None:
    manager = _manager(session_store, ScriptedKnowledgeBase())
    session_id = await manager.create_session("u1", "d1")

    with pytest.raises(SessionNotFoundError):
        await manager.submit_turn("no-such-session", "u1", "q")
    with pytest.raises(SessionNotFoundError):
        await manager.submit_turn(session_id, "u2", "q")

    assert len(await session_store.list_turns(session_id)) == 1


@pytest.mark.asyncio
async def test_document_recovered_from_sentinel_unless_given(
    session_store: InMemorySessionStore,
) -> None:
    manager = _manager(session_store, ScriptedKnowledgeBase())
    session_id = await manager.create_session("u1", "d1")

    await manager.submit_turn(session_id, "u1", "q1")
    await manager.submit_turn(session_id, "u1", "q2", document_id="d9")

    turns = await session_store.list_turns(session_id)
    assert [t.document_id for t in turns] == ["d1", "d1", "d1", "d9", "d9"]


@pytest.mark.asyncio
async def test_list_turns_hides_sentinel_by_default(session_store: InMemorySessionStore) -> None:
    manager = _manager(session_store, ScriptedKnowledgeBase())
    session_id = await manager.create_session("u1", "d1")
    await manager.submit_turn(session_id, "u1", "q1")

    visible = await manager.list_turns(session_id, "u1")
    everything = await manager.list_turns(session_id, "u1", include_sentinel=True)

    assert [t.content for t in visible] == ["q1", "42"]
    assert len(everything) == 3


@pytest.mark.asyncio
async def test_list_sessions_newest_first(session_store: InMemorySessionStore) -> None:
    clock = FixedClock()
    manager = _manager(session_store, ScriptedKnowledgeBase(), clock)

    first = await manager.create_session("u1", "d1")
    clock.now = FROZEN + timedelta(minutes=1)
    second = await manager.create_session("u1", "d2")
    await manager.create_session("u2", "d3")

    sessions = await manager.list_sessions("u1")

    assert [(s.session_id, s.document_id) for s in sessions] == [(second, "d2"), (first, "d1")]
    assert sessions[0].created_at == FROZEN + timedelta(minutes=1)


class YieldingSessionStore(InMemorySessionStore):
    """Suspends before each write, the way a database driver does."""

    async def append(self, turn: Turn) -> None:
        await asyncio.sleep(0)
        await super().append(turn)


class EchoKnowledgeBase(ScriptedKnowledgeBase):
    async def ask(
        self, knowledge_base_id: str, question: str, session_id: str | None = None
    ) -> RagAnswer:
        self.calls.append((knowledge_base_id, question, session_id))
        await asyncio.sleep(0)
        return RagAnswer(answer=f"a:{question}")


@pytest.mark.asyncio
async def test_concurrent_submits_on_one_session_both_succeed() -> None:
    store = YieldingSessionStore()
    manager = _manager(store, EchoKnowledgeBase())
    session_id = await manager.create_session("u1", "d1")

    replies = await asyncio.gather(
        manager.submit_turn(session_id, "u1", "q1"),
        manager.submit_turn(session_id, "u1", "q2"),
    )

    assert [r.answer for r in replies] == ["a:q1", "a:q2"]
    turns = await store.list_turns(session_id)
    assert [t.sequence for t in turns] == [0, 1, 2, 3, 4]
    assert all(a.timestamp < b.timestamp for a, b in zip(turns, turns[1:]))
    contents = [t.content for t in turns[1:]]
    assert sorted(contents) == ["a:q1", "a:q2", "q1", "q2"]
    assert contents.index("q1") < contents.index("a:q1")
    assert contents.index("q2") < contents.index("a:q2")


class AlwaysTakenSessionStore(InMemorySessionStore):
    """Reports every append after the sentinel as already taken."""

    async def append(self, turn: Turn) -> None:
        if turn.sequence > 0:
            raise TurnConflictError(turn.session_id, turn.sequence)
        await super().append(turn)


@pytest.mark.asyncio
async def test_append_gives_up_after_repeated_conflicts() -> None:
    store = AlwaysTakenSessionStore()
    kb = ScriptedKnowledgeBase()
    manager = _manager(store, kb)
    session_id = await manager.create_session("u1", "d1")

    with pytest.raises(TurnConflictError):
        await manager.submit_turn(session_id, "u1", "q1")

    assert kb.calls == []
    assert len(await store.list_turns(session_id)) == 1
