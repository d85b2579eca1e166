"""SQL implementations of repository interfaces."""

from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import DocumentRow, SessionTurnRow
from backend.app.errors import (
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    TurnConflictError,
)
from backend.app.models.documents import Document, DocumentStatus
from backend.app.models.sessions import SESSION_INIT_SENTINEL, Citation, Turn


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _document_from_row(row: DocumentRow) -> Document:
    return Document(
        owner_id=row.owner_id,
        document_id=row.document_id,
        file_name=row.file_name,
        storage_key=row.storage_key,
        file_type=row.file_type,
        content_type=row.content_type,
        status=DocumentStatus(row.status),
        knowledge_base_id=row.knowledge_base_id,
        ingestion_job_id=row.ingestion_job_id,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _turn_from_row(row: SessionTurnRow) -> Turn:
    return Turn(
        session_id=row.session_id,
        sequence=row.sequence,
        timestamp=_as_utc(row.timestamp),
        owner_id=row.owner_id,
        document_id=row.document_id,
        role=row.role,  # type: ignore[arg-type]
        content=row.content,
        citations=[Citation.model_validate(c) for c in row.citations or []],
    )


class SqlDocumentStore:
    """SQL implementation of DocumentStore."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def put(self, document: Document) -> None:
        """Insert or replace a document record."""
        row = DocumentRow(
            owner_id=document.owner_id,
            document_id=document.document_id,
            file_name=document.file_name,
            storage_key=document.storage_key,
            file_type=document.file_type,
            content_type=document.content_type,
            status=document.status.value,
            knowledge_base_id=document.knowledge_base_id,
            ingestion_job_id=document.ingestion_job_id,
            created_at=document.created_at,
            updated_at=document.updated_at,
        )
        await self._session.merge(row)
        await self._session.commit()

    async def get(self, owner_id: str, document_id: str) -> Document | None:
        """Get a document by composite key."""
        row = await self._session.get(DocumentRow, (owner_id, document_id))
        if row is None:
            return None
        return _document_from_row(row)

    async def list_by_owner(self, owner_id: str) -> list[Document]:
        """List an owner's documents, newest first."""
        result = await self._session.execute(
            select(DocumentRow)
            .where(DocumentRow.owner_id == owner_id)
            .order_by(DocumentRow.created_at.desc(), DocumentRow.document_id.desc())
        )
        return [_document_from_row(row) for row in result.scalars().all()]

    async def update_status(
        self,
        owner_id: str,
        document_id: str,
        status: DocumentStatus,
        *,
        ingestion_job_id: str | None = None,
    ) -> Document:
        """Move a document to a new status, enforcing monotonic transitions."""
        result = await self._session.execute(
            select(DocumentRow)
            .where(DocumentRow.owner_id == owner_id, DocumentRow.document_id == document_id)
            .with_for_update()
        )
        row = result.scalar_one_or_none()
        if row is None:
            raise DocumentNotFoundError(f"Document {owner_id}/{document_id} not found")

        current = DocumentStatus(row.status)
        if not current.can_transition_to(status):
            await self._session.rollback()
            raise InvalidStatusTransitionError(document_id, current.value, status.value)

        row.status = status.value
        row.updated_at = datetime.now(timezone.utc)
        if ingestion_job_id is not None:
            row.ingestion_job_id = ingestion_job_id

        await self._session.commit()
        await self._session.refresh(row)
        return _document_from_row(row)


class SqlSessionStore:
    """SQL implementation of SessionStore."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, turn: Turn) -> None:
        """Append a turn.

        Raises:
            TurnConflictError: If (session_id, sequence) already exists
        """
        row = SessionTurnRow(
            session_id=turn.session_id,
            sequence=turn.sequence,
            timestamp=turn.timestamp,
            owner_id=turn.owner_id,
            document_id=turn.document_id,
            role=turn.role,
            content=turn.content,
            citations=[c.model_dump(mode="json") for c in turn.citations],
        )
        self._session.add(row)
        try:
            await self._session.commit()
        except IntegrityError as e:
            await self._session.rollback()
            raise TurnConflictError(turn.session_id, turn.sequence) from e
        except Exception:
            await self._session.rollback()
            raise

    async def list_turns(self, session_id: str) -> list[Turn]:
        """All turns of a session in key order."""
        result = await self._session.execute(
            select(SessionTurnRow)
            .where(SessionTurnRow.session_id == session_id)
            .order_by(SessionTurnRow.sequence)
        )
        return [_turn_from_row(row) for row in result.scalars().all()]

    async def latest(self, session_id: str) -> Turn | None:
        """Most recent turn of a session."""
        result = await self._session.execute(
            select(SessionTurnRow)
            .where(SessionTurnRow.session_id == session_id)
            .order_by(SessionTurnRow.sequence.desc())
            .limit(1)
        )
        row = result.scalar_one_or_none()
        return _turn_from_row(row) if row is not None else None

    async def list_sentinels(self, owner_id: str) -> list[Turn]:
        """Session markers for an owner."""
        result = await self._session.execute(
            select(SessionTurnRow).where(
                SessionTurnRow.owner_id == owner_id,
                SessionTurnRow.sequence == 0,
                SessionTurnRow.content == SESSION_INIT_SENTINEL,
            )
        )
        return [_turn_from_row(row) for row in result.scalars().all()]
