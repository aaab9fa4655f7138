from __future__ import annotations

"""Retrieval-augmented generation engine: index, retrieve, threshold, generate."""

import enum
import logging
from contextlib import aclosing
from dataclasses import dataclass, field
from typing import Any, AsyncIterator

from src.datasources.base import DataSource
from src.rag.embeddings import EmbeddingProvider
from src.rag.llm import GenerationOptions, GenerationProvider
from src.rag.types import Document, QueryResult, SearchResult, SourcePreview, StreamEvent
from src.vectorstore.inmemory import InMemoryVectorStore

logger = logging.getLogger(__name__)

PREVIEW_CHARS = 200


class ConfigurationError(RuntimeError):
    """Raised when a required collaborator is missing."""
    pass


class NotInitializedError(RuntimeError):
    """Raised when an operation runs before the engine is ready."""
    pass


class EngineState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    REFRESHING = "refreshing"
    CLOSED = "closed"


_SERVING_STATES = {EngineState.READY, EngineState.REFRESHING}


def _preview(result: SearchResult) -> SourcePreview:
    content = result.document.content
    if len(content) > PREVIEW_CHARS:
        content = content[:PREVIEW_CHARS] + "..."
    return SourcePreview(
        document_id=result.document.doc_id,
        content=content,
        metadata=result.document.metadata,
        score=result.score,
        low_confidence=result.low_confidence,
    )


@dataclass
class RAGEngine:
    """Compose a document source, a vector index and a generation provider.

    Without an embedder the engine delegates retrieval to the source's own
    search. The vector cache is owned by the engine and rebuilt from the
    source on ``refresh``.
    """
    data_source: DataSource | None
    llm: GenerationProvider | None
    embedder: EmbeddingProvider | None = None
    top_k: int = 5
    similarity_threshold: float = 0.3
    index: InMemoryVectorStore | None = field(default=None, init=False)
    state: EngineState = field(default=EngineState.UNINITIALIZED, init=False)

    def __post_init__(self) -> None:
        self._validate_top_k(self.top_k)
        self._validate_threshold(self.similarity_threshold)
        if self.embedder is not None:
            self.index = InMemoryVectorStore(embedder=self.embedder)

    @property
    def initialized(self) -> bool:
        return self.state in _SERVING_STATES

    def _require_ready(self) -> None:
        if not self.initialized:
            raise NotInitializedError("RAG engine not initialized. Call initialize() first.")

    async def initialize(self) -> None:
        """Initialize collaborators and build the vector index."""
        if self.data_source is None:
            raise ConfigurationError("Data source is required")
        if self.llm is None:
            raise ConfigurationError("LLM is required")
        if self.initialized:
            return
        self.state = EngineState.INITIALIZING
        try:
            if not self.data_source.initialized:
                await self.data_source.initialize()
            await self.llm.initialize()
            if self.index is not None:
                await self.index.rebuild(self.data_source.get_documents())
        except Exception:
            self.state = EngineState.UNINITIALIZED
            raise
        self.state = EngineState.READY
        logger.info(
            "engine_initialized",
            extra={
                "documents": self.data_source.get_document_count(),
                "vector_index": self.index is not None,
            },
        )

    async def add_document(
        self,
        content: str,
        metadata: dict[str, Any] | None = None,
        doc_id: str | None = None,
    ) -> str:
        """Persist through the source and embed with the current vocabulary."""
        self._require_ready()
        if not content or not content.strip():
            raise ValueError("Document content must not be empty")
        resolved_id = await self.data_source.add_document(content, metadata, doc_id)
        if self.index is not None:
            self.index.add_document(
                Document(doc_id=resolved_id, content=content, metadata=dict(metadata or {}))
            )
        logger.info("document_added", extra={"doc_id": resolved_id})
        return resolved_id

    async def retrieve(self, query: str, top_k: int | None = None) -> list[SearchResult]:
        """Retrieve relevant documents for a query."""
        self._require_ready()
        if top_k is not None:
            self._validate_top_k(top_k)
        limit = self.top_k if top_k is None else top_k
        if self.index is not None and len(self.index) > 0:
            results = self._retrieve_by_vector(query, limit)
        else:
            results = await self.data_source.search(query, limit)
        logger.info(
            "retrieval_complete",
            extra={"results": len(results), "query_length": len(query), "top_k": limit},
        )
        return results

    def _retrieve_by_vector(self, query: str, top_k: int) -> list[SearchResult]:
        candidates = self.index.search(query, top_k * 2)
        results = [
            result for result in candidates if result.score >= self.similarity_threshold
        ][:top_k]
        if results or not candidates:
            return results
        logger.warning(
            "retrieval_threshold_fallback",
            extra={
                "best_score": candidates[0].score,
                "similarity_threshold": self.similarity_threshold,
            },
        )
        return [
            SearchResult(document=result.document, score=result.score, low_confidence=True)
            for result in candidates[:top_k]
        ]

    async def query(
        self,
        query: str,
        *,
        top_k: int | None = None,
        system_prompt: str | None = None,
        temperature: float | None = None,
        history: list[dict[str, str]] | None = None,
    ) -> QueryResult:
        """Retrieve context and generate a grounded answer."""
        self._require_ready()
        results = await self.retrieve(query, top_k)
        options = GenerationOptions(
            system_prompt=system_prompt, temperature=temperature, history=history
        )
        answer = await self.llm.generate_response(
            query, [result.document for result in results], options
        )
        return QueryResult(
            answer=answer,
            sources=[_preview(result) for result in results],
            query=query,
            low_confidence=any(result.low_confidence for result in results),
        )

    async def query_stream(
        self,
        query: str,
        *,
        top_k: int | None = None,
        system_prompt: str | None = None,
        temperature: float | None = None,
        history: list[dict[str, str]] | None = None,
    ) -> AsyncIterator[StreamEvent]:
        """Yield a ``sources`` event, then ``content`` pieces, then ``done``."""
        self._require_ready()
        results = await self.retrieve(query, top_k)
        yield StreamEvent(
            type="sources",
            sources=[_preview(result) for result in results],
            low_confidence=any(result.low_confidence for result in results),
        )
        options = GenerationOptions(
            system_prompt=system_prompt, temperature=temperature, history=history
        )
        stream = self.llm.generate_streaming_response(
            query, [result.document for result in results], options
        )
        async with aclosing(stream):
            async for piece in stream:
                yield StreamEvent(type="content", content=piece)
        yield StreamEvent(type="done")

    async def refresh(self) -> int:
        """Reload documents from the source and rebuild the vector index."""
        self._require_ready()
        self.state = EngineState.REFRESHING
        try:
            await self.data_source.load_documents()
            if self.index is not None:
                await self.index.rebuild(self.data_source.get_documents())
        finally:
            self.state = EngineState.READY
        count = self.document_count
        logger.info("engine_refreshed", extra={"documents": count})
        return count

    @property
    def document_count(self) -> int:
        if self.index is not None and len(self.index) > 0:
            return len(self.index)
        if self.data_source is None:
            return 0
        return self.data_source.get_document_count()

    def get_stats(self) -> dict[str, Any]:
        """Return engine configuration and index size."""
        return {
            "initialized": self.initialized,
            "document_count": self.document_count,
            "top_k": self.top_k,
            "similarity_threshold": self.similarity_threshold,
            "data_source_type": type(self.data_source).__name__ if self.data_source else None,
            "llm_model": getattr(self.llm, "model", None),
            "embedding_dimension": (
                self.index.embedder.dimension if self.index is not None else None
            ),
        }

    def update_config(
        self,
        top_k: int | None = None,
        similarity_threshold: float | None = None,
    ) -> None:
        """Change retrieval settings of the running engine."""
        if top_k is not None:
            self._validate_top_k(top_k)
            self.top_k = top_k
        if similarity_threshold is not None:
            self._validate_threshold(similarity_threshold)
            self.similarity_threshold = similarity_threshold

    async def close(self) -> None:
        """Close the source and leave the engine unusable until re-initialized."""
        if self.data_source is not None:
            await self.data_source.close()
        if self.index is not None:
            self.index.clear()
        self.state = EngineState.CLOSED

    @staticmethod
    def _validate_top_k(top_k: int) -> None:
        if top_k < 1:
            raise ValueError("top_k must be at least 1")

    @staticmethod
    def _validate_threshold(threshold: float) -> None:
        if not -1.0 <= threshold <= 1.0:
            raise ValueError("similarity_threshold must be between -1 and 1")
