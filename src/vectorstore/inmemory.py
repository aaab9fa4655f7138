from __future__ import annotations

"""In-memory vector index over documents owned by an external source."""

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from typing import Sequence

from src.rag.embeddings import EmbeddingProvider
from src.rag.ranking import find_similar
from src.rag.types import Document, SearchResult, VectorEntry

logger = logging.getLogger(__name__)

REBUILD_BATCH_SIZE = 64


@dataclass
class InMemoryVectorStore:
    """Vector cache keyed by document id with cosine similarity search."""
    embedder: EmbeddingProvider
    entries: dict[str, VectorEntry] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.entries)

    def add_document(self, document: Document) -> VectorEntry:
        """Embed a document with the current vocabulary and store it."""
        entry = VectorEntry(document=document, vector=self.embedder.embed(document.content))
        self.entries[document.doc_id] = entry
        return entry

    async def rebuild(self, documents: Sequence[Document]) -> int:
        """Rebuild vocabulary and re-embed every document from scratch.

        Vocabulary and vectors are built on a copy of the embedder and swapped
        in together at the end. If the rebuild fails or is cancelled the
        previous vocabulary and cache stay in place.
        """
        embedder = copy.copy(self.embedder)
        embedder.build_vocabulary(document.content for document in documents)
        entries: dict[str, VectorEntry] = {}
        for start in range(0, len(documents), REBUILD_BATCH_SIZE):
            batch = documents[start : start + REBUILD_BATCH_SIZE]
            vectors = embedder.embed_batch(document.content for document in batch)
            for document, vector in zip(batch, vectors):
                entries[document.doc_id] = VectorEntry(document=document, vector=vector)
            await asyncio.sleep(0)
        self.embedder = embedder
        self.entries = entries
        logger.info("index_rebuilt", extra={"document_count": len(entries)})
        return len(entries)

    def get(self, doc_id: str) -> VectorEntry | None:
        return self.entries.get(doc_id)

    def search_vector(self, query_vector: Sequence[float], top_k: int) -> list[SearchResult]:
        """Rank stored entries against an already embedded query."""
        if not self.entries:
            return []
        snapshot = self.entries
        return [
            SearchResult(document=snapshot[doc_id].document, score=score)
            for doc_id, score in find_similar(query_vector, snapshot.values(), top_k)
        ]

    def search(self, query: str, top_k: int = 4) -> list[SearchResult]:
        """Embed the query and return the best matching documents."""
        if not self.entries:
            return []
        return self.search_vector(self.embedder.embed(query), top_k)

    def clear(self) -> None:
        self.entries = {}

    def stats(self) -> dict[str, int | str]:
        """Return basic stats for the vector store."""
        return {
            "backend": "memory",
            "document_count": len(self.entries),
            "embedding_dimension": self.embedder.dimension,
        }
