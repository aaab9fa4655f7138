from __future__ import annotations

"""Similarity scoring and ranking over pre-normalized vectors."""

from typing import Iterable, Sequence

from src.rag.embeddings import EmbeddingError
from src.rag.types import VectorEntry


class DimensionMismatchError(EmbeddingError):
    """Raised when two vectors of different length are compared."""
    pass


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of unit vectors, i.e. their dot product."""
    if len(a) != len(b):
        raise DimensionMismatchError(
            f"Vectors must have the same dimension: {len(a)} != {len(b)}"
        )
    return sum(x * y for x, y in zip(a, b))


def find_similar(
    query_vector: Sequence[float],
    entries: Iterable[VectorEntry],
    top_k: int = 5,
) -> list[tuple[str, float]]:
    """Return ``(doc_id, score)`` pairs, best first, ties kept in input order."""
    if top_k <= 0:
        return []
    scored = [
        (entry.doc_id, cosine_similarity(query_vector, entry.vector)) for entry in entries
    ]
    scored.sort(key=lambda item: item[1], reverse=True)
    return scored[:top_k]
