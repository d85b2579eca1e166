"""Document endpoints - GET /documents, POST /documents/upload, POST /documents/events."""

from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, ConfigDict, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_lifecycle_manager
from backend.app.db.context import RequestContext
from backend.app.docs.lifecycle import DocumentLifecycleManager
from backend.app.models.documents import Document, NotificationOutcome, StorageNotification

router = APIRouter(prefix="/documents", tags=["documents"])


class UploadRequest(BaseModel):
    """Request body for POST /documents/upload."""

    model_config = ConfigDict(populate_by_name=True)

    file_name: str | None = Field(None, alias="fileName", description="Original file name")
    content_type: str | None = Field(
        None, alias="contentType", description="MIME type of the upload"
    )
    file_type: str | None = Field(
        None, alias="fileType", description="Declared type; defaults to the extension"
    )


class UploadResponse(BaseModel):
    """Response for POST /documents/upload."""

    document_id: str
    upload_url: str
    storage_key: str
    status: str
    created_at: datetime


class DocumentListResponse(BaseModel):
    """Response for GET /documents."""

    documents: list[Document]


class EventBatchResponse(BaseModel):
    """Response for POST /documents/events."""

    outcomes: list[NotificationOutcome]


@router.post("/upload", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def request_upload(
    request: UploadRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    manager: Annotated[DocumentLifecycleManager, Depends(get_lifecycle_manager)],
) -> UploadResponse:
    """Register a PENDING document and return a presigned upload URL."""
    slot = await manager.register_upload(
        owner_id=ctx.owner_id,
        file_name=request.file_name or "",
        content_type=request.content_type or "",
        file_type=request.file_type,
    )
    return UploadResponse(
        document_id=slot.document.document_id,
        upload_url=slot.upload_url,
        storage_key=slot.document.storage_key,
        status=slot.document.status.value,
        created_at=slot.document.created_at,
    )


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    manager: Annotated[DocumentLifecycleManager, Depends(get_lifecycle_manager)],
) -> DocumentListResponse:
    """List the caller's documents, newest first."""
    documents = await manager.list_documents(ctx.owner_id)
    return DocumentListResponse(documents=documents)


@router.post("/events", response_model=EventBatchResponse)
async def handle_storage_events(
    event: dict[str, Any],
    manager: Annotated[DocumentLifecycleManager, Depends(get_lifecycle_manager)],
) -> EventBatchResponse:
    """Process an object-created event batch from the object store.

    Always 200: per-notification failures are reported in the outcomes.
    """
    notifications = StorageNotification.from_s3_event(event)
    outcomes = await manager.handle_notifications(notifications)
    return EventBatchResponse(outcomes=outcomes)
