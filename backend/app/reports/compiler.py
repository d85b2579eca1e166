"""Compile a session's turn log into a stored Markdown report."""

import logging
from datetime import datetime, timezone

from backend.app.db.repositories import ObjectStore, SessionStore
from backend.app.errors import (
    ObjectNotFoundError,
    ReportNotFoundError,
    SessionNotFoundError,
    ValidationError,
)
from backend.app.llm.client import ReportWriter
from backend.app.models.reports import QAPair, Report
from backend.app.models.sessions import Turn

logger = logging.getLogger(__name__)

REPORT_CONTENT_TYPE = "text/markdown; charset=utf-8"


def pair_turns(turns: list[Turn]) -> list[QAPair]:
    """Pair each user question with the assistant turn that follows it.

    Turns must already be in timestamp order. The sentinel is skipped; a
    question followed by another question (or nothing) stays unanswered.
    """
    pairs: list[QAPair] = []
    for turn in turns:
        if turn.is_sentinel:
            continue
        if turn.role == "user":
            pairs.append(QAPair(question=turn.content, asked_at=turn.timestamp))
        elif pairs and pairs[-1].answer is None:
            pairs[-1] = pairs[-1].model_copy(
                update={"answer": turn.content, "citations": list(turn.citations)}
            )
    return pairs


class ReportCompiler:
    """Reads a session log (never writes to it) and stores the resulting report."""

    def __init__(
        self,
        *,
        turns: SessionStore,
        writer: ReportWriter,
        object_store: ObjectStore,
        reports_prefix: str = "reports/",
    ) -> None:
        self._turns = turns
        self._writer = writer
        self._objects = object_store
        self._reports_prefix = reports_prefix

    def report_location(self, owner_id: str, session_id: str) -> str:
        return f"{self._reports_prefix}{owner_id}/{session_id}.md"

    async def compile_report(self, session_id: str, owner_id: str) -> Report:
        """Build, store and return the report for one session.

        Raises:
            SessionNotFoundError: If the session does not exist for this owner
            ValidationError: If the session has no questions yet
        """
        turns = await self._session_turns(session_id, owner_id)
        document_id = turns[0].document_id

        pairs = pair_turns(sorted(turns, key=lambda t: (t.timestamp, t.sequence)))
        if not pairs:
            raise ValidationError(f"Session {session_id} has no questions to report on")

        draft = await self._writer.write_report(document_id=document_id, pairs=pairs)

        location = self.report_location(owner_id, session_id)
        await self._objects.put(location, draft.markdown.encode("utf-8"), REPORT_CONTENT_TYPE)

        logger.info(
            f"Compiled report for session {session_id}: {location}",
            extra={
                "structured": {
                    "session_id": session_id,
                    "owner_id": owner_id,
                    "questions": len(pairs),
                    "synthesis_source": draft.synthesis_source,
                }
            },
        )

        return Report(
            session_id=session_id,
            owner_id=owner_id,
            document_id=document_id,
            markdown=draft.markdown,
            location=location,
            generated_at=datetime.now(timezone.utc),
            synthesis_source=draft.synthesis_source,
        )

    async def get_report(self, session_id: str, owner_id: str) -> Report:
        """Load a previously compiled report.

        Raises:
            SessionNotFoundError: If the session does not exist for this owner
            ReportNotFoundError: If no report has been compiled yet
        """
        turns = await self._session_turns(session_id, owner_id)
        location = self.report_location(owner_id, session_id)
        try:
            data = await self._objects.get(location)
        except ObjectNotFoundError as e:
            raise ReportNotFoundError(f"No report for session {session_id}") from e

        return Report(
            session_id=session_id,
            owner_id=owner_id,
            document_id=turns[0].document_id,
            markdown=data.decode("utf-8"),
            location=location,
        )

    async def _session_turns(self, session_id: str, owner_id: str) -> list[Turn]:
        turns = await self._turns.list_turns(session_id)
        if not turns or not turns[0].is_sentinel or turns[0].owner_id != owner_id:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return turns
