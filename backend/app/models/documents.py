"""Document domain models and the status state machine."""

from datetime import datetime
from enum import Enum
from typing import Literal
from urllib.parse import unquote_plus

from pydantic import BaseModel, Field

WORKBOOK_TYPES = frozenset({"xlsx", "xlsm", "xls"})
DELIMITED_TYPES = frozenset({"csv", "tsv"})
TABULAR_TYPES = WORKBOOK_TYPES | DELIMITED_TYPES


class DocumentStatus(str, Enum):
    """Lifecycle status of an uploaded document."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.READY, DocumentStatus.FAILED)

    def can_transition_to(self, target: "DocumentStatus") -> bool:
        """Check whether moving to target keeps the status sequence monotonic.

        PROCESSING -> PROCESSING is accepted as a no-op so that a duplicate
        notification racing an in-flight one does not fail.
        """
        return target in _ALLOWED_TRANSITIONS[self]


_ALLOWED_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset(
        {DocumentStatus.PROCESSING, DocumentStatus.READY, DocumentStatus.FAILED}
    ),
    DocumentStatus.PROCESSING: frozenset(
        {DocumentStatus.PROCESSING, DocumentStatus.READY, DocumentStatus.FAILED}
    ),
    DocumentStatus.READY: frozenset(),
    DocumentStatus.FAILED: frozenset(),
}


def is_tabular(file_type: str) -> bool:
    """Return True if the declared file type is normalized before ingestion."""
    return file_type.lower() in TABULAR_TYPES


class Document(BaseModel):
    """One uploaded artifact, keyed by (owner_id, document_id)."""

    owner_id: str
    document_id: str
    file_name: str
    storage_key: str
    file_type: str
    content_type: str
    status: DocumentStatus = DocumentStatus.PENDING
    knowledge_base_id: str
    ingestion_job_id: str | None = None
    created_at: datetime
    updated_at: datetime


class UploadSlot(BaseModel):
    """Registered upload: the PENDING document plus where to PUT the bytes."""

    document: Document
    upload_url: str


class StorageNotification(BaseModel):
    """One "object created" notification from the object store."""

    bucket: str
    key: str

    @classmethod
    def from_s3_event(cls, event: dict) -> list["StorageNotification"]:
        """Flatten an S3 event payload into notifications.

        Object keys arrive URL-encoded with '+' for spaces.
        """
        notifications: list[StorageNotification] = []
        for record in event.get("Records", []):
            s3 = record.get("s3", {})
            bucket = s3.get("bucket", {}).get("name", "")
            key = s3.get("object", {}).get("key", "")
            notifications.append(cls(bucket=bucket, key=unquote_plus(key)))
        return notifications


class NotificationOutcome(BaseModel):
    """Result of processing one storage notification."""

    location: str
    outcome: Literal["ignored", "not_found", "duplicate", "ready", "failed"]
    document_id: str | None = None
    processed_key: str | None = None
    ingestion_job_id: str | None = None
    error: str | None = Field(default=None, description="Failure reason when outcome is failed")
