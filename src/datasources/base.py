from __future__ import annotations

"""Document source contract and shared text search."""

import re
from typing import Any, Iterable, Protocol

from src.rag.types import Document, SearchResult


class DataSourceError(RuntimeError):
    """Raised when a document source fails to load, search or store."""
    pass


class DataSource(Protocol):
    """Capabilities every backing store provides to the engine."""
    initialized: bool

    async def initialize(self) -> None:
        ...

    async def load_documents(self) -> list[Document]:
        ...

    async def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        ...

    async def add_document(
        self,
        content: str,
        metadata: dict[str, Any] | None = None,
        doc_id: str | None = None,
    ) -> str:
        ...

    def get_documents(self) -> list[Document]:
        ...

    def get_document_count(self) -> int:
        ...

    async def close(self) -> None:
        ...


def keyword_search(
    documents: Iterable[Document], query: str, limit: int = 5
) -> list[SearchResult]:
    """Score documents by phrase and term occurrences, best first."""
    query_lower = query.lower().strip()
    if not query_lower or limit <= 0:
        return []
    terms = [term for term in query_lower.split() if len(term) > 2]
    patterns = [re.compile(re.escape(term)) for term in terms]
    scored: list[SearchResult] = []
    for document in documents:
        content_lower = document.content.lower()
        score = 0.0
        if query_lower in content_lower:
            score += 10
        for pattern in patterns:
            score += len(pattern.findall(content_lower))
        if score > 0:
            scored.append(SearchResult(document=document, score=score))
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored[:limit]


def unique_document_id(documents: Iterable[Document]) -> str:
    """Return the first free ``doc_<n>`` id, starting at the document count."""
    taken = {document.doc_id for document in documents}
    index = len(taken)
    while f"doc_{index}" in taken:
        index += 1
    return f"doc_{index}"


def replace_document(documents: list[Document], document: Document) -> list[Document]:
    """Drop any document with the same id and append ``document``."""
    kept = [existing for existing in documents if existing.doc_id != document.doc_id]
    kept.append(document)
    return kept
