"""Conversation sessions over a document's knowledge base.

A session is an append-only turn log keyed by (session_id, sequence). The
first record is a sentinel carrying the owner and target document, so any
later operation that only has a session id can recover the linkage.
"""

import logging
import time
import uuid
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from backend.app.adapters.bedrock import KnowledgeBase
from backend.app.db.repositories import SessionStore
from backend.app.errors import (
    SessionNotFoundError,
    TurnConflictError,
    UpstreamError,
    ValidationError,
)
from backend.app.models.sessions import (
    SESSION_INIT_SENTINEL,
    Citation,
    Role,
    SessionSummary,
    Turn,
    TurnReply,
)
from backend.app.utils.metrics import PipelineMetrics

logger = logging.getLogger(__name__)

# Smallest datetime increment; breaks timestamp ties between consecutive turns
_TICK = timedelta(microseconds=1)

# Retries when a concurrent submit on the same session took the next sequence
_MAX_APPEND_ATTEMPTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ConversationSessionManager:
    """Creates sessions and runs question/answer turns against the knowledge base."""

    def __init__(
        self,
        *,
        turns: SessionStore,
        knowledge_base: KnowledgeBase,
        knowledge_base_id: str,
        clock: Callable[[], datetime] | None = None,
        metrics: PipelineMetrics | None = None,
    ) -> None:
        self._turns = turns
        self._kb = knowledge_base
        self._knowledge_base_id = knowledge_base_id
        self._clock = clock or _utcnow
        self._metrics = metrics or PipelineMetrics()

    async def create_session(self, owner_id: str, document_id: str | None) -> str:
        """Start a session bound to one document.

        Args:
            owner_id: Owning user
            document_id: Target document

        Returns:
            New session id

        Raises:
            ValidationError: If document_id is missing
        """
        if not document_id or not document_id.strip():
            raise ValidationError("documentId is required")

        session_id = str(uuid.uuid4())
        sentinel = Turn(
            session_id=session_id,
            sequence=0,
            timestamp=self._clock(),
            owner_id=owner_id,
            document_id=document_id,
            role="user",
            content=SESSION_INIT_SENTINEL,
        )
        await self._turns.append(sentinel)

        logger.info(
            f"Created session {session_id} for document {document_id}",
            extra={"structured": {"owner_id": owner_id, "session_id": session_id}},
        )
        return session_id

    async def submit_turn(
        self,
        session_id: str,
        owner_id: str,
        question: str | None,
        document_id: str | None = None,
    ) -> TurnReply:
        """Ask a question inside a session.

        The user turn is persisted before the knowledge base is called; if the
        call fails, that turn stays in the log unanswered.

        Raises:
            ValidationError: If session_id or question is missing
            SessionNotFoundError: If the session does not exist for this owner
            UpstreamError: If the knowledge base call fails
        """
        if not session_id:
            raise ValidationError("sessionId is required")
        if not question or not question.strip():
            raise ValidationError("question is required")

        sentinel = await self._get_sentinel(session_id, owner_id)
        document_id = document_id or sentinel.document_id

        await self._append(session_id, owner_id, document_id, "user", question)

        start = time.monotonic()
        try:
            answer = await self._kb.ask(self._knowledge_base_id, question, session_id)
        except UpstreamError:
            self._metrics.record_query_latency("error", (time.monotonic() - start) * 1000)
            logger.exception(f"Knowledge base query failed for session {session_id}")
            raise
        except Exception as e:
            self._metrics.record_query_latency("error", (time.monotonic() - start) * 1000)
            logger.exception(f"Knowledge base query failed for session {session_id}")
            raise UpstreamError(f"Query failed: {e}") from e
        self._metrics.record_query_latency("success", (time.monotonic() - start) * 1000)

        await self._append(
            session_id,
            owner_id,
            document_id,
            "assistant",
            answer.answer,
            citations=answer.citations,
        )

        return TurnReply(session_id=session_id, answer=answer.answer, citations=answer.citations)

    async def list_turns(
        self, session_id: str, owner_id: str, *, include_sentinel: bool = False
    ) -> list[Turn]:
        """Return the session log in key order."""
        await self._get_sentinel(session_id, owner_id)
        turns = await self._turns.list_turns(session_id)
        if include_sentinel:
            return turns
        return [t for t in turns if not t.is_sentinel]

    async def list_sessions(self, owner_id: str) -> list[SessionSummary]:
        """Sessions created by an owner, newest first."""
        sentinels = await self._turns.list_sentinels(owner_id)
        sentinels.sort(key=lambda t: t.timestamp, reverse=True)
        return [
            SessionSummary(
                session_id=t.session_id,
                document_id=t.document_id,
                created_at=t.timestamp,
            )
            for t in sentinels
        ]

    async def _get_sentinel(self, session_id: str, owner_id: str) -> Turn:
        turns = await self._turns.list_turns(session_id)
        sentinel = turns[0] if turns else None
        if sentinel is None or not sentinel.is_sentinel or sentinel.owner_id != owner_id:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return sentinel

    async def _append(
        self,
        session_id: str,
        owner_id: str,
        document_id: str,
        role: Role,
        content: str,
        *,
        citations: list[Citation] | None = None,
    ) -> Turn:
        """Append a turn using the logical clock.

        sequence = last.sequence + 1; timestamp = max(now, last.timestamp + 1us).
        Concurrent submits on one session race for the same key; the loser
        re-reads the log and takes the next slot.

        Raises:
            TurnConflictError: If every attempt lost the race
        """
        attempt = 0
        while True:
            attempt += 1
            last = await self._turns.latest(session_id)
            now = self._clock()
            if last is None:
                sequence = 0
                timestamp = now
            else:
                sequence = last.sequence + 1
                timestamp = max(now, last.timestamp + _TICK)

            turn = Turn(
                session_id=session_id,
                sequence=sequence,
                timestamp=timestamp,
                owner_id=owner_id,
                document_id=document_id,
                role=role,
                content=content,
                citations=citations or [],
            )
            try:
                await self._turns.append(turn)
            except TurnConflictError:
                if attempt >= _MAX_APPEND_ATTEMPTS:
                    raise
                logger.info(
                    f"Sequence {sequence} of session {session_id} taken, retrying "
                    f"({attempt}/{_MAX_APPEND_ATTEMPTS})"
                )
                continue
            self._metrics.inc_turn(role)
            return turn
