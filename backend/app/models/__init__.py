"""Models package - re-exports for convenience."""

from backend.app.models.documents import (
    Document,
    DocumentStatus,
    NotificationOutcome,
    StorageNotification,
    UploadSlot,
)
from backend.app.models.reports import QAPair, Report, ReportDraft
from backend.app.models.sessions import (
    SESSION_INIT_SENTINEL,
    Citation,
    RagAnswer,
    SessionSummary,
    Turn,
    TurnReply,
)

__all__ = [
    "Citation",
    "Document",
    "DocumentStatus",
    "NotificationOutcome",
    "QAPair",
    "RagAnswer",
    "Report",
    "ReportDraft",
    "SESSION_INIT_SENTINEL",
    "SessionSummary",
    "StorageNotification",
    "Turn",
    "TurnReply",
    "UploadSlot",
]
