"""Document lifecycle - upload registration and storage-notification processing.

Status moves PENDING -> PROCESSING -> READY | FAILED and never backwards.
Each notification in a batch is processed in isolation: a failure marks that
document FAILED and the batch continues.
"""

import logging
import posixpath
import time
import uuid
from collections.abc import Iterable
from datetime import datetime, timezone

from backend.app.adapters.bedrock import KnowledgeBase
from backend.app.db.repositories import DocumentStore, ObjectStore
from backend.app.docs.normalizer import normalize_tabular
from backend.app.errors import AnalystError, ValidationError
from backend.app.models.documents import (
    Document,
    DocumentStatus,
    NotificationOutcome,
    StorageNotification,
    UploadSlot,
    is_tabular,
)
from backend.app.utils.logging import PipelineLogger
from backend.app.utils.metrics import PipelineMetrics

logger = logging.getLogger(__name__)

PROCESSED_CONTENT_TYPE = "text/plain; charset=utf-8"


def build_incoming_key(prefix: str, owner_id: str, document_id: str, file_name: str) -> str:
    """incoming/{owner}/{document_id}/{file_name}"""
    return f"{prefix}{owner_id}/{document_id}/{file_name}"


def parse_incoming_key(prefix: str, location: str) -> tuple[str, str] | None:
    """Extract (owner_id, document_id) from an incoming key, or None if it does not match."""
    if not location.startswith(prefix):
        return None
    parts = location[len(prefix):].split("/")
    if len(parts) < 3 or not parts[0] or not parts[1] or not parts[-1]:
        return None
    return parts[0], parts[1]


def derive_processed_key(incoming_prefix: str, processed_prefix: str, location: str) -> str:
    """Same logical name under the processed namespace, with a .txt extension."""
    relative = location[len(incoming_prefix):]
    stem, _ext = posixpath.splitext(relative)
    return f"{processed_prefix}{stem}.txt"


class DocumentLifecycleManager:
    """Owns the state machine of uploaded documents."""

    def __init__(
        self,
        *,
        object_store: ObjectStore,
        documents: DocumentStore,
        knowledge_base: KnowledgeBase,
        knowledge_base_id: str,
        data_source_id: str,
        incoming_prefix: str = "incoming/",
        processed_prefix: str = "processed/",
        upload_url_ttl_seconds: int = 900,
        metrics: PipelineMetrics | None = None,
        pipeline_logger: PipelineLogger | None = None,
    ) -> None:
        self._objects = object_store
        self._documents = documents
        self._kb = knowledge_base
        self._knowledge_base_id = knowledge_base_id
        self._data_source_id = data_source_id
        self._incoming_prefix = incoming_prefix
        self._processed_prefix = processed_prefix
        self._upload_url_ttl = upload_url_ttl_seconds
        self._metrics = metrics or PipelineMetrics()
        self._log = pipeline_logger or PipelineLogger()

    async def register_upload(
        self,
        *,
        owner_id: str,
        file_name: str,
        content_type: str,
        file_type: str | None = None,
    ) -> UploadSlot:
        """Create a PENDING document and a presigned URL to upload its bytes.

        Args:
            owner_id: Owning user
            file_name: Original file name (becomes the last key segment)
            content_type: MIME type the client will upload with
            file_type: Declared type; defaults to the file extension

        Returns:
            UploadSlot with the stored document and upload URL

        Raises:
            ValidationError: If file_name or content_type is missing
        """
        if not file_name or not file_name.strip():
            raise ValidationError("fileName is required")
        if not content_type or not content_type.strip():
            raise ValidationError("contentType is required")
        if "/" in file_name:
            raise ValidationError("fileName must not contain '/'")

        document_id = str(uuid.uuid4())
        extension = posixpath.splitext(file_name)[1].lstrip(".").lower()
        storage_key = build_incoming_key(self._incoming_prefix, owner_id, document_id, file_name)
        now = datetime.now(timezone.utc)

        document = Document(
            owner_id=owner_id,
            document_id=document_id,
            file_name=file_name,
            storage_key=storage_key,
            file_type=(file_type or extension).lower(),
            content_type=content_type,
            status=DocumentStatus.PENDING,
            knowledge_base_id=self._knowledge_base_id,
            created_at=now,
            updated_at=now,
        )

        upload_url = await self._objects.presign_upload(
            storage_key, content_type, self._upload_url_ttl
        )
        await self._documents.put(document)

        logger.info(f"Registered upload {storage_key} for owner {owner_id}")
        return UploadSlot(document=document, upload_url=upload_url)

    async def list_documents(self, owner_id: str) -> list[Document]:
        """List an owner's documents, newest first."""
        return await self._documents.list_by_owner(owner_id)

    async def handle_notifications(
        self, notifications: Iterable[StorageNotification]
    ) -> list[NotificationOutcome]:
        """Process a batch of storage notifications sequentially.

        Never raises for a single bad notification; each one gets an outcome.
        """
        outcomes: list[NotificationOutcome] = []
        for notification in notifications:
            outcome = await self.process_location(notification.key)
            self._metrics.inc_notification(outcome.outcome)
            outcomes.append(outcome)
        return outcomes

    async def process_location(self, location: str) -> NotificationOutcome:
        """Drive one stored object through normalization and ingestion."""
        parsed = parse_incoming_key(self._incoming_prefix, location)
        if parsed is None:
            self._log.log_skip(location=location, reason="outside incoming namespace")
            return NotificationOutcome(location=location, outcome="ignored")

        owner_id, document_id = parsed
        try:
            document = await self._documents.get(owner_id, document_id)
        except Exception as e:
            # Nothing can be marked FAILED without the record; report and move on
            logger.exception(f"Document lookup failed for key: {location}")
            return NotificationOutcome(
                location=location,
                outcome="failed",
                document_id=document_id,
                error=f"{type(e).__name__}: {e}",
            )
        if document is None or document.storage_key != location:
            logger.error(f"Document record not found for key: {location}")
            return NotificationOutcome(
                location=location, outcome="not_found", document_id=document_id
            )

        if document.status.is_terminal:
            self._log.log_skip(
                location=location, reason=f"document already {document.status.value}"
            )
            return NotificationOutcome(
                location=location,
                outcome="duplicate",
                document_id=document_id,
                ingestion_job_id=document.ingestion_job_id,
            )

        try:
            return await self._ingest(document)
        except Exception as e:
            logger.exception(f"Failed to process document {document_id}")
            await self._mark_failed(document, e)
            return NotificationOutcome(
                location=location,
                outcome="failed",
                document_id=document_id,
                error=f"{type(e).__name__}: {e}",
            )

    async def _ingest(self, document: Document) -> NotificationOutcome:
        location = document.storage_key

        await self._documents.update_status(
            document.owner_id, document.document_id, DocumentStatus.PROCESSING
        )
        self._log.log_transition(
            owner_id=document.owner_id,
            document_id=document.document_id,
            status=DocumentStatus.PROCESSING.value,
            location=location,
        )

        processed_key: str | None = None
        if is_tabular(document.file_type):
            processed_key = await self._normalize(document)

        # Fire-and-forget: the job is not awaited before READY
        stage_start = time.monotonic()
        job_id = await self._kb.start_ingestion(self._knowledge_base_id, self._data_source_id)
        self._metrics.record_stage_latency(
            "ingestion_trigger", "success", (time.monotonic() - stage_start) * 1000
        )
        logger.info(f"Started ingestion job: {job_id}")

        await self._documents.update_status(
            document.owner_id,
            document.document_id,
            DocumentStatus.READY,
            ingestion_job_id=job_id,
        )
        self._log.log_transition(
            owner_id=document.owner_id,
            document_id=document.document_id,
            status=DocumentStatus.READY.value,
            location=location,
            extra_fields={"ingestion_job_id": job_id, "processed_key": processed_key},
        )

        return NotificationOutcome(
            location=location,
            outcome="ready",
            document_id=document.document_id,
            processed_key=processed_key,
            ingestion_job_id=job_id,
        )

    async def _normalize(self, document: Document) -> str:
        """Convert a tabular upload to Markdown and store it under the processed namespace."""
        stage_start = time.monotonic()
        raw = await self._objects.get(document.storage_key)
        markdown = normalize_tabular(raw, document.file_type)

        processed_key = derive_processed_key(
            self._incoming_prefix, self._processed_prefix, document.storage_key
        )
        await self._objects.put(processed_key, markdown.encode("utf-8"), PROCESSED_CONTENT_TYPE)

        self._metrics.record_stage_latency(
            "normalize", "success", (time.monotonic() - stage_start) * 1000
        )
        logger.info(f"Converted {document.file_type} to markdown: {processed_key}")
        return processed_key

    async def _mark_failed(self, document: Document, error: Exception) -> None:
        reason = f"{type(error).__name__}: {error}"
        try:
            await self._documents.update_status(
                document.owner_id, document.document_id, DocumentStatus.FAILED
            )
        except AnalystError as e:
            # Record store rejected FAILED (e.g. another invocation already finished)
            logger.error(f"Could not mark document {document.document_id} FAILED: {e}")
            return
        except Exception:
            logger.exception(f"Could not mark document {document.document_id} FAILED")
            return

        self._log.log_transition(
            owner_id=document.owner_id,
            document_id=document.document_id,
            status=DocumentStatus.FAILED.value,
            location=document.storage_key,
            error_reason=reason,
        )
