from __future__ import annotations

"""FastAPI application entrypoint for the retrieval-augmented generation service."""

import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse

from src.app.dependencies import get_engine
from src.app.metrics import (
    INDEX_REFRESHES,
    INDEXED_DOCUMENTS,
    RETRIEVAL_FALLBACKS,
    metrics_middleware,
    metrics_response,
)
from src.app.schemas import (
    AddDocumentRequest,
    AddDocumentResponse,
    ConfigUpdateRequest,
    ConfigUpdateResponse,
    DocumentItem,
    DocumentListResponse,
    QueryRequest,
    QueryResponse,
    RefreshResponse,
    SearchRequest,
    SearchResponse,
    SourceChunk,
    StatsResponse,
)
from src.app.settings import settings
from src.datasources.base import DataSourceError
from src.datasources.file_source import FileDataSource
from src.rag.engine import ConfigurationError, NotInitializedError, RAGEngine
from src.rag.llm import LLMError
from src.rag.types import SearchResult, SourcePreview

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


async def _refresh_on_change(event: str, path: str) -> None:
    """Rebuild the index after a debounced burst of file changes."""
    engine = get_engine()
    before = engine.document_count
    count = await engine.refresh()
    INDEX_REFRESHES.labels("watch").inc()
    INDEXED_DOCUMENTS.set(count)
    logger.info(
        "watch_index_rebuilt",
        extra={"event": event, "path": path, "before": before, "after": count},
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    engine = get_engine()
    await engine.initialize()
    INDEXED_DOCUMENTS.set(engine.document_count)
    source = engine.data_source
    if isinstance(source, FileDataSource) and source.watch:
        source.start_watching(_refresh_on_change)
    logger.info("service_started", extra=engine.get_stats())
    try:
        yield
    finally:
        await engine.close()
        logger.info("service_stopped")


app = FastAPI(title="RAG Datasource API", version="0.1.0", lifespan=lifespan)


@app.exception_handler(NotInitializedError)
async def not_initialized_handler(request: Request, exc: NotInitializedError) -> JSONResponse:
    return JSONResponse(status_code=503, content={"detail": str(exc)})


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError) -> JSONResponse:
    return JSONResponse(status_code=500, content={"detail": str(exc)})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(LLMError)
@app.exception_handler(DataSourceError)
async def upstream_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "upstream_failure",
        extra={"path": request.url.path, "error_type": type(exc).__name__},
    )
    return JSONResponse(status_code=502, content={"detail": str(exc)})


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


def _source_chunk(source: SourcePreview) -> SourceChunk:
    return SourceChunk(
        id=source.document_id,
        content=source.content,
        metadata=source.metadata,
        score=source.score,
    )


def _result_chunk(result: SearchResult) -> SourceChunk:
    return SourceChunk(
        id=result.document.doc_id,
        content=result.document.content,
        metadata=result.document.metadata,
        score=result.score,
    )


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/health")
async def health(engine: RAGEngine = Depends(get_engine)) -> dict[str, object]:
    """Simple health probe for uptime checks."""
    return {"status": "ok", "initialized": engine.initialized}


@app.get("/stats", response_model=StatsResponse)
async def stats(engine: RAGEngine = Depends(get_engine)) -> StatsResponse:
    return StatsResponse(**engine.get_stats())


@app.post("/query", response_model=QueryResponse)
async def query(
    request: QueryRequest,
    engine: RAGEngine = Depends(get_engine),
) -> QueryResponse:
    """Answer a question from retrieved context."""
    result = await engine.query(
        request.query,
        top_k=request.top_k,
        system_prompt=request.system_prompt,
        temperature=request.temperature,
        history=[message.model_dump() for message in request.history],
    )
    if result.low_confidence:
        RETRIEVAL_FALLBACKS.inc()
    logger.info(
        "query_completed",
        extra={
            "query_length": len(request.query),
            "answer_length": len(result.answer),
            "sources": len(result.sources),
            "low_confidence": result.low_confidence,
        },
    )
    return QueryResponse(
        answer=result.answer,
        sources=[_source_chunk(source) for source in result.sources],
        query=result.query,
        low_confidence=result.low_confidence,
    )


@app.post("/query/stream")
async def query_stream(
    request: QueryRequest,
    engine: RAGEngine = Depends(get_engine),
) -> StreamingResponse:
    """Stream sources, answer pieces and a final done event as server-sent events."""
    if not engine.initialized:
        raise NotInitializedError("RAG engine not initialized. Call initialize() first.")

    async def _events() -> AsyncIterator[str]:
        stream = engine.query_stream(
            request.query,
            top_k=request.top_k,
            system_prompt=request.system_prompt,
            temperature=request.temperature,
            history=[message.model_dump() for message in request.history],
        )
        try:
            async for event in stream:
                if event.type == "sources" and event.low_confidence:
                    RETRIEVAL_FALLBACKS.inc()
                yield f"data: {json.dumps(event.to_dict(), default=str)}\n\n"
        except (LLMError, DataSourceError) as exc:
            logger.error("stream_failed", extra={"error_type": type(exc).__name__})
            payload = {"type": "error", "message": str(exc)}
            yield f"data: {json.dumps(payload)}\n\n"
        finally:
            await stream.aclose()

    return StreamingResponse(
        _events(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@app.post("/search", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    engine: RAGEngine = Depends(get_engine),
) -> SearchResponse:
    """Retrieve documents without generating an answer."""
    results = await engine.retrieve(request.query, request.top_k)
    return SearchResponse(
        results=[_result_chunk(result) for result in results],
        query=request.query,
    )


@app.post("/documents", response_model=AddDocumentResponse, status_code=201)
async def add_document(
    request: AddDocumentRequest,
    engine: RAGEngine = Depends(get_engine),
) -> AddDocumentResponse:
    doc_id = await engine.add_document(request.content, request.metadata, request.id)
    INDEXED_DOCUMENTS.set(engine.document_count)
    return AddDocumentResponse(id=doc_id)


@app.get("/documents", response_model=DocumentListResponse)
async def list_documents(
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    engine: RAGEngine = Depends(get_engine),
) -> DocumentListResponse:
    if engine.data_source is None:
        raise ConfigurationError("Data source is required")
    documents = engine.data_source.get_documents()
    page = documents[offset : offset + limit]
    return DocumentListResponse(
        documents=[
            DocumentItem(id=doc.doc_id, content=doc.content, metadata=doc.metadata)
            for doc in page
        ],
        total=len(documents),
        limit=limit,
        offset=offset,
    )


@app.put("/config", response_model=ConfigUpdateResponse)
async def update_config(
    request: ConfigUpdateRequest,
    engine: RAGEngine = Depends(get_engine),
) -> ConfigUpdateResponse:
    engine.update_config(
        top_k=request.top_k,
        similarity_threshold=request.similarity_threshold,
    )
    logger.info("config_updated", extra=request.model_dump(exclude_none=True))
    return ConfigUpdateResponse(stats=StatsResponse(**engine.get_stats()))


@app.post("/refresh", response_model=RefreshResponse)
async def refresh(engine: RAGEngine = Depends(get_engine)) -> RefreshResponse:
    count = await engine.refresh()
    INDEX_REFRESHES.labels("api").inc()
    INDEXED_DOCUMENTS.set(count)
    return RefreshResponse(document_count=count)
