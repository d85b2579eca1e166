"""Session endpoints - conversation sessions, turns and reports."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, ConfigDict, Field

from backend.app.api.auth import get_current_context
from backend.app.api.deps import get_report_compiler, get_session_manager
from backend.app.db.context import RequestContext
from backend.app.models.reports import Report
from backend.app.models.sessions import SessionSummary, Turn, TurnReply
from backend.app.reports.compiler import ReportCompiler
from backend.app.sessions.manager import ConversationSessionManager

router = APIRouter(prefix="/sessions", tags=["sessions"])


class CreateSessionRequest(BaseModel):
    """Request body for POST /sessions."""

    model_config = ConfigDict(populate_by_name=True)

    document_id: str | None = Field(None, alias="documentId")


class CreateSessionResponse(BaseModel):
    session_id: str
    document_id: str


class QueryRequest(BaseModel):
    """Request body for POST /sessions/{session_id}/query."""

    model_config = ConfigDict(populate_by_name=True)

    question: str | None = None
    document_id: str | None = Field(None, alias="documentId")


class SessionListResponse(BaseModel):
    sessions: list[SessionSummary]


class TurnListResponse(BaseModel):
    session_id: str
    turns: list[Turn]


class ReportResponse(BaseModel):
    session_id: str
    document_id: str
    location: str
    markdown: str
    generated_at: datetime | None = None
    synthesis_source: str | None = None

    @classmethod
    def from_report(cls, report: Report) -> "ReportResponse":
        return cls(
            session_id=report.session_id,
            document_id=report.document_id,
            location=report.location,
            markdown=report.markdown,
            generated_at=report.generated_at,
            synthesis_source=report.synthesis_source,
        )


@router.post("", response_model=CreateSessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    request: CreateSessionRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    manager: Annotated[ConversationSessionManager, Depends(get_session_manager)],
) -> CreateSessionResponse:
    """Open a conversation session against one document."""
    session_id = await manager.create_session(ctx.owner_id, request.document_id)
    # create_session rejects a missing document_id, so it is set here
    return CreateSessionResponse(session_id=session_id, document_id=request.document_id or "")


@router.get("", response_model=SessionListResponse)
async def list_sessions(
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    manager: Annotated[ConversationSessionManager, Depends(get_session_manager)],
) -> SessionListResponse:
    """List the caller's sessions, newest first."""
    return SessionListResponse(sessions=await manager.list_sessions(ctx.owner_id))


@router.post("/{session_id}/query", response_model=TurnReply)
async def submit_query(
    session_id: str,
    request: QueryRequest,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    manager: Annotated[ConversationSessionManager, Depends(get_session_manager)],
) -> TurnReply:
    """Ask a question in a session."""
    return await manager.submit_turn(
        session_id,
        ctx.owner_id,
        request.question,
        document_id=request.document_id,
    )


@router.get("/{session_id}/turns", response_model=TurnListResponse)
async def list_turns(
    session_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    manager: Annotated[ConversationSessionManager, Depends(get_session_manager)],
    include_sentinel: Annotated[bool, Query()] = False,
) -> TurnListResponse:
    """Return the session's turns in order."""
    turns = await manager.list_turns(session_id, ctx.owner_id, include_sentinel=include_sentinel)
    return TurnListResponse(session_id=session_id, turns=turns)


@router.post("/{session_id}/report", response_model=ReportResponse)
async def compile_report(
    session_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    compiler: Annotated[ReportCompiler, Depends(get_report_compiler)],
) -> ReportResponse:
    """Compile the session into a Markdown report and store it."""
    report = await compiler.compile_report(session_id, ctx.owner_id)
    return ReportResponse.from_report(report)


@router.get("/{session_id}/report", response_model=ReportResponse)
async def get_report(
    session_id: str,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    compiler: Annotated[ReportCompiler, Depends(get_report_compiler)],
) -> ReportResponse:
    """Fetch a previously compiled report."""
    report = await compiler.get_report(session_id, ctx.owner_id)
    return ReportResponse.from_report(report)
