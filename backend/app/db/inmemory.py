"""In-memory implementations of repository interfaces."""

from datetime import datetime, timezone

from backend.app.errors import (
    DocumentNotFoundError,
    InvalidStatusTransitionError,
    ObjectNotFoundError,
    TurnConflictError,
)
from backend.app.models.documents import Document, DocumentStatus
from backend.app.models.sessions import Turn


class InMemoryObjectStore:
    """In-memory implementation of ObjectStore."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}

    async def get(self, location: str) -> bytes:
        """Read an object."""
        if location not in self.objects:
            raise ObjectNotFoundError(f"No object at {location}")
        return self.objects[location][0]

    async def put(self, location: str, data: bytes, content_type: str) -> None:
        """Write an object."""
        self.objects[location] = (data, content_type)

    async def presign_upload(self, location: str, content_type: str, expires_in: int) -> str:
        """Return a fake upload URL."""
        return f"memory://{location}?expires_in={expires_in}"

    def content_type(self, location: str) -> str:
        """Stored content type of an object (test helper)."""
        return self.objects[location][1]


class InMemoryDocumentStore:
    """In-memory implementation of DocumentStore.

    Records every status write per document so tests can assert the
    sequence of transitions.
    """

    def __init__(self) -> None:
        self._documents: dict[tuple[str, str], Document] = {}
        self.status_history: dict[str, list[DocumentStatus]] = {}

    async def put(self, document: Document) -> None:
        """Insert or replace a document record."""
        self._documents[(document.owner_id, document.document_id)] = document
        self.status_history.setdefault(document.document_id, []).append(document.status)

    async def get(self, owner_id: str, document_id: str) -> Document | None:
        """Get a document by composite key."""
        return self._documents.get((owner_id, document_id))

    async def list_by_owner(self, owner_id: str) -> list[Document]:
        """List an owner's documents, newest first."""
        docs = [doc for (owner, _), doc in self._documents.items() if owner == owner_id]
        docs.sort(key=lambda d: (d.created_at, d.document_id), reverse=True)
        return docs

    async def update_status(
        self,
        owner_id: str,
        document_id: str,
        status: DocumentStatus,
        *,
        ingestion_job_id: str | None = None,
    ) -> Document:
        """Move a document to a new status, enforcing monotonic transitions."""
        current = self._documents.get((owner_id, document_id))
        if current is None:
            raise DocumentNotFoundError(f"Document {owner_id}/{document_id} not found")

        if not current.status.can_transition_to(status):
            raise InvalidStatusTransitionError(document_id, current.status.value, status.value)

        updates: dict[str, object] = {
            "status": status,
            "updated_at": datetime.now(timezone.utc),
        }
        if ingestion_job_id is not None:
            updates["ingestion_job_id"] = ingestion_job_id

        updated = current.model_copy(update=updates)
        self._documents[(owner_id, document_id)] = updated
        self.status_history.setdefault(document_id, []).append(status)
        return updated


class InMemorySessionStore:
    """In-memory implementation of SessionStore."""

    def __init__(self) -> None:
        self._turns: dict[str, dict[int, Turn]] = {}

    async def append(self, turn: Turn) -> None:
        """Append a turn; an existing (session_id, sequence) key is rejected."""
        log = self._turns.setdefault(turn.session_id, {})
        if turn.sequence in log:
            raise TurnConflictError(turn.session_id, turn.sequence)
        log[turn.sequence] = turn

    async def list_turns(self, session_id: str) -> list[Turn]:
        """All turns of a session in key order."""
        log = self._turns.get(session_id, {})
        return [log[seq] for seq in sorted(log)]

    async def latest(self, session_id: str) -> Turn | None:
        """Most recent turn of a session."""
        log = self._turns.get(session_id)
        if not log:
            return None
        return log[max(log)]

    async def list_sentinels(self, owner_id: str) -> list[Turn]:
        """Session markers for an owner."""
        return [
            log[0]
            for log in self._turns.values()
            if 0 in log and log[0].is_sentinel and log[0].owner_id == owner_id
        ]
