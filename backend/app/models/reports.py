"""Report domain models."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from backend.app.models.sessions import Citation

SynthesisSource = Literal["stub", "openai"]


class QAPair(BaseModel):
    """One question from a session and the answer it received, if any."""

    question: str
    answer: str | None = None
    citations: list[Citation] = Field(default_factory=list)
    asked_at: datetime


class ReportDraft(BaseModel):
    """Markdown produced by a report writer."""

    markdown: str
    synthesis_source: SynthesisSource = "stub"


class Report(BaseModel):
    """Markdown report compiled from a session's turns.

    generated_at and synthesis_source are only known when the report was
    compiled in this call; a report loaded back from storage carries the
    Markdown alone.
    """

    session_id: str
    owner_id: str
    document_id: str
    markdown: str
    location: str
    generated_at: datetime | None = None
    synthesis_source: SynthesisSource | None = None
