"""FastAPI dependency providers for stores and pipeline components.

Collaborators are built once per process from settings and injected into
the managers per request; tests replace any provider through
app.dependency_overrides.
"""

import logging
from functools import lru_cache
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.adapters.bedrock import KnowledgeBase, create_knowledge_base
from backend.app.adapters.s3 import S3ObjectStore, create_s3_client
from backend.app.config import get_settings
from backend.app.db.engine import get_session
from backend.app.db.inmemory import InMemoryObjectStore
from backend.app.db.repositories import DocumentStore, ObjectStore, SessionStore
from backend.app.db.sql_repositories import SqlDocumentStore, SqlSessionStore
from backend.app.docs.lifecycle import DocumentLifecycleManager
from backend.app.llm.client import ReportWriter, get_report_writer
from backend.app.reports.compiler import ReportCompiler
from backend.app.sessions.manager import ConversationSessionManager
from backend.app.utils.logging import PipelineLogger
from backend.app.utils.metrics import PipelineMetrics, PrometheusPipelineMetrics

logger = logging.getLogger(__name__)


def _object_store_for(bucket: str, purpose: str) -> ObjectStore:
    settings = get_settings()
    if bucket:
        return S3ObjectStore(create_s3_client(settings), bucket)
    logger.warning(f"No {purpose} bucket configured, using in-memory object store")
    return InMemoryObjectStore()


@lru_cache
def get_document_object_store() -> ObjectStore:
    return _object_store_for(get_settings().documents_bucket, "documents")


@lru_cache
def get_report_object_store() -> ObjectStore:
    return _object_store_for(get_settings().reports_bucket, "reports")


@lru_cache
def get_knowledge_base() -> KnowledgeBase:
    return create_knowledge_base(get_settings())


@lru_cache
def get_writer() -> ReportWriter:
    return get_report_writer(get_settings())


@lru_cache
def get_metrics() -> PipelineMetrics:
    return PrometheusPipelineMetrics()


def get_document_store(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentStore:
    return SqlDocumentStore(session)


def get_session_store(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SessionStore:
    return SqlSessionStore(session)


def get_lifecycle_manager(
    documents: Annotated[DocumentStore, Depends(get_document_store)],
    object_store: Annotated[ObjectStore, Depends(get_document_object_store)],
    knowledge_base: Annotated[KnowledgeBase, Depends(get_knowledge_base)],
    metrics: Annotated[PipelineMetrics, Depends(get_metrics)],
) -> DocumentLifecycleManager:
    settings = get_settings()
    return DocumentLifecycleManager(
        object_store=object_store,
        documents=documents,
        knowledge_base=knowledge_base,
        knowledge_base_id=settings.knowledge_base_id,
        data_source_id=settings.data_source_id,
        incoming_prefix=settings.incoming_prefix,
        processed_prefix=settings.processed_prefix,
        upload_url_ttl_seconds=settings.upload_url_ttl_seconds,
        metrics=metrics,
        pipeline_logger=PipelineLogger(),
    )


def get_session_manager(
    turns: Annotated[SessionStore, Depends(get_session_store)],
    knowledge_base: Annotated[KnowledgeBase, Depends(get_knowledge_base)],
    metrics: Annotated[PipelineMetrics, Depends(get_metrics)],
) -> ConversationSessionManager:
    return ConversationSessionManager(
        turns=turns,
        knowledge_base=knowledge_base,
        knowledge_base_id=get_settings().knowledge_base_id,
        metrics=metrics,
    )


def get_report_compiler(
    turns: Annotated[SessionStore, Depends(get_session_store)],
    writer: Annotated[ReportWriter, Depends(get_writer)],
    object_store: Annotated[ObjectStore, Depends(get_report_object_store)],
) -> ReportCompiler:
    return ReportCompiler(
        turns=turns,
        writer=writer,
        object_store=object_store,
        reports_prefix=get_settings().reports_prefix,
    )
