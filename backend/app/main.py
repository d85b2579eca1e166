"""FastAPI application."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from backend.app.api.routes.documents import router as documents_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.api.routes.sessions import router as sessions_router
from backend.app.config import get_settings
from backend.app.db.engine import get_async_engine, init_models
from backend.app.errors import (
    AnalystError,
    InvalidStatusTransitionError,
    NotFoundError,
    TurnConflictError,
    UpstreamError,
    ValidationError,
)
from backend.app.utils.logging import setup_logging

logger = logging.getLogger(__name__)

# Most specific first; the first isinstance match wins
_ERROR_STATUS: list[tuple[type[AnalystError], int]] = [
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
    (TurnConflictError, status.HTTP_409_CONFLICT),
    (UpstreamError, status.HTTP_502_BAD_GATEWAY),
]


def status_for_error(error: AnalystError) -> int:
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and create tables on startup."""
    settings = get_settings()
    setup_logging(settings.log_level)

    if settings.database_url:
        await init_models(get_async_engine())
    else:
        logger.warning("DATABASE_URL not set; document and session endpoints will fail")

    logger.info("Document analyst API ready")
    yield


app = FastAPI(title="Document Analyst API", version="0.1.0", lifespan=lifespan)


@app.exception_handler(AnalystError)
async def analyst_error_handler(request: Request, exc: AnalystError) -> JSONResponse:
    """Translate domain errors into HTTP responses."""
    status_code = status_for_error(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


# Register routes
app.include_router(health_router, tags=["health"])
app.include_router(metrics_router, tags=["metrics"])
app.include_router(documents_router)
app.include_router(sessions_router)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {"message": "Document Analyst API", "version": "0.1.0"}
