from __future__ import annotations

"""Core data types for documents, vectors and retrieval."""

from dataclasses import dataclass, field
from typing import Any, Literal


@dataclass(frozen=True)
class Document:
    """Document or chunk with metadata."""
    doc_id: str
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class VectorEntry:
    """Cached embedding for a stored document."""
    document: Document
    vector: list[float]

    @property
    def doc_id(self) -> str:
        return self.document.doc_id


@dataclass(frozen=True)
class SearchResult:
    """Search result with similarity score."""
    document: Document
    score: float
    low_confidence: bool = False


@dataclass(frozen=True)
class Chunk:
    """Segment of a longer text produced during ingestion."""
    content: str
    chunk_index: int
    total_chunks: int


@dataclass(frozen=True)
class SourcePreview:
    """Truncated source returned alongside an answer."""
    document_id: str
    content: str
    metadata: dict[str, Any]
    score: float
    low_confidence: bool = False


@dataclass(frozen=True)
class QueryResult:
    """Generated answer with the sources it was conditioned on."""
    answer: str
    sources: list[SourcePreview]
    query: str
    low_confidence: bool = False


@dataclass(frozen=True)
class StreamEvent:
    """Single event of a streaming query."""
    type: Literal["sources", "content", "done"]
    sources: list[SourcePreview] | None = None
    content: str | None = None
    low_confidence: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Serialize the event for transport."""
        if self.type == "sources":
            return {
                "type": "sources",
                "sources": [
                    {
                        "id": source.document_id,
                        "content": source.content,
                        "metadata": source.metadata,
                        "score": source.score,
                    }
                    for source in self.sources or []
                ],
                "low_confidence": self.low_confidence,
            }
        if self.type == "content":
            return {"type": "content", "content": self.content or ""}
        return {"type": "done"}
