"""Conversation session models: turns, citations and the knowledge store answer."""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SESSION_INIT_SENTINEL = "__session_init__"

Role = Literal["user", "assistant"]


class Citation(BaseModel):
    """Excerpt of source material supporting an assistant turn."""

    model_config = ConfigDict(frozen=True)

    text: str
    location: dict[str, Any] | None = None

    @property
    def source_uri(self) -> str | None:
        """S3 URI of the cited source, when the location carries one."""
        if not self.location:
            return None
        s3_location = self.location.get("s3Location")
        if isinstance(s3_location, dict):
            uri = s3_location.get("uri")
            return uri if isinstance(uri, str) else None
        return None


class Turn(BaseModel):
    """One append-only record in a session log.

    Ordered by (session_id, sequence). Timestamps are strictly increasing
    within a session by construction.
    """

    model_config = ConfigDict(frozen=True)

    session_id: str
    sequence: int = Field(..., ge=0)
    timestamp: datetime
    owner_id: str
    document_id: str
    role: Role
    content: str
    citations: list[Citation] = Field(default_factory=list)

    @property
    def is_sentinel(self) -> bool:
        return self.sequence == 0 and self.content == SESSION_INIT_SENTINEL


class RagAnswer(BaseModel):
    """Answer returned by the retrieve-and-generate capability."""

    answer: str
    citations: list[Citation] = Field(default_factory=list)

    @classmethod
    def from_bedrock_response(cls, response: dict[str, Any]) -> "RagAnswer":
        """Coerce a RetrieveAndGenerate response into a RagAnswer.

        Every retrieved reference of every citation becomes one Citation.
        Missing text becomes an empty string; non-dict locations are dropped.
        """
        output = response.get("output") or {}
        answer = output.get("text") or ""

        citations: list[Citation] = []
        for citation in response.get("citations") or []:
            for ref in citation.get("retrievedReferences") or []:
                content = ref.get("content") or {}
                location = ref.get("location")
                citations.append(
                    Citation(
                        text=content.get("text") or "",
                        location=location if isinstance(location, dict) else None,
                    )
                )

        return cls(answer=str(answer), citations=citations)


class TurnReply(BaseModel):
    """Response to a submitted question."""

    session_id: str
    answer: str
    citations: list[Citation]


class SessionSummary(BaseModel):
    """Session listing entry recovered from the sentinel record."""

    session_id: str
    document_id: str
    created_at: datetime
