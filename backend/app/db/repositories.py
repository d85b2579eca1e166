"""Repository protocol interfaces for data access."""

from typing import Protocol

from backend.app.models.documents import Document, DocumentStatus
from backend.app.models.sessions import Turn


class ObjectStore(Protocol):
    """Blob storage holding uploads, processed text and reports."""

    async def get(self, location: str) -> bytes:
        """Read an object.

        Args:
            location: Object key

        Returns:
            Raw bytes

        Raises:
            ObjectNotFoundError: If no object exists at location
        """
        ...

    async def put(self, location: str, data: bytes, content_type: str) -> None:
        """Write (or overwrite) an object.

        Args:
            location: Object key
            data: Raw bytes
            content_type: MIME type stored with the object
        """
        ...

    async def presign_upload(self, location: str, content_type: str, expires_in: int) -> str:
        """Return a URL the client can PUT the object bytes to directly."""
        ...


class DocumentStore(Protocol):
    """Document records, queried by owner only."""

    async def put(self, document: Document) -> None:
        """Insert or replace a document record."""
        ...

    async def get(self, owner_id: str, document_id: str) -> Document | None:
        """Get a document by its composite key.

        Returns:
            Document or None if not found
        """
        ...

    async def list_by_owner(self, owner_id: str) -> list[Document]:
        """List an owner's documents, newest first."""
        ...

    async def update_status(
        self,
        owner_id: str,
        document_id: str,
        status: DocumentStatus,
        *,
        ingestion_job_id: str | None = None,
    ) -> Document:
        """Move a document to a new status.

        Args:
            owner_id: Owner ID
            document_id: Document ID
            status: Target status
            ingestion_job_id: Job handle to store alongside the record

        Returns:
            Updated document

        Raises:
            DocumentNotFoundError: If the record does not exist
            InvalidStatusTransitionError: If the move is not monotonic
        """
        ...


class SessionStore(Protocol):
    """Append-only turn log keyed by (session_id, sequence)."""

    async def append(self, turn: Turn) -> None:
        """Append a turn. Never overwrites an existing (session_id, sequence).

        Raises:
            TurnConflictError: If the key is already taken
        """
        ...

    async def list_turns(self, session_id: str) -> list[Turn]:
        """All turns of a session in key order."""
        ...

    async def latest(self, session_id: str) -> Turn | None:
        """Most recent turn of a session, or None if the session is unknown."""
        ...

    async def list_sentinels(self, owner_id: str) -> list[Turn]:
        """Session-initialized markers for every session an owner created."""
        ...
