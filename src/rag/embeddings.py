from __future__ import annotations

"""TF-IDF weighted hashing embeddings built from a corpus vocabulary."""

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Protocol

logger = logging.getLogger(__name__)

_NON_WORD_RE = re.compile(r"[^\w\s]")


class EmbeddingError(RuntimeError):
    """Raised when embeddings fail or are invalid."""
    pass


class EmbeddingProvider(Protocol):
    """Protocol for embedding providers."""
    dimension: int

    def build_vocabulary(self, documents: Iterable[str]) -> None:
        """Rebuild corpus statistics from document texts."""
        raise NotImplementedError

    def embed(self, text: str) -> list[float]:
        """Return an embedding vector for the provided text."""
        raise NotImplementedError

    def embed_batch(self, texts: Iterable[str]) -> list[list[float]]:
        """Return one embedding per text."""
        raise NotImplementedError


def validate_vector(vector: list[float], dimension: int) -> list[float]:
    """Validate embedding vectors."""
    if len(vector) != dimension:
        raise EmbeddingError(
            f"Embedding dimension mismatch: expected {dimension}, got {len(vector)}"
        )
    for value in vector:
        if not math.isfinite(value):
            raise EmbeddingError("Embedding contains a non-finite value")
    return vector


def tokenize(text: str) -> list[str]:
    """Lowercase, replace punctuation with spaces and drop 1-char tokens."""
    cleaned = _NON_WORD_RE.sub(" ", text.lower())
    return [token for token in cleaned.split() if len(token) > 1]


def hash_token(token: str) -> int:
    """Stable 32-bit signed string hash (h = h * 31 + unit over UTF-16 units)."""
    data = token.encode("utf-16-le")
    value = 0
    for idx in range(0, len(data), 2):
        unit = data[idx] | (data[idx + 1] << 8)
        value = (value * 31 + unit) & 0xFFFFFFFF
    if value >= 0x80000000:
        value -= 0x100000000
    return value


def l2_normalize(vector: list[float]) -> list[float]:
    """Normalize vector magnitude to 1.0, leaving zero vectors untouched."""
    norm = math.sqrt(sum(value * value for value in vector))
    if norm == 0.0:
        return vector
    return [value / norm for value in vector]


@dataclass
class TfidfHashEmbedder:
    """Local TF-IDF embedder projected into a fixed width with the hashing trick.

    The vocabulary is built once over the whole corpus; terms that were never
    seen fall back to an IDF of ``ln(N + 2)``. Hash collisions between terms
    are accepted as noise.
    """
    dimension: int = 384
    vocabulary: dict[str, int] = field(default_factory=dict)
    idf: dict[str, float] = field(default_factory=dict)
    document_count: int = 0

    def __post_init__(self) -> None:
        if self.dimension <= 0:
            raise EmbeddingError("Embedding dimension must be greater than zero")

    def build_vocabulary(self, documents: Iterable[str]) -> None:
        """Replace vocabulary and IDF weights with statistics of ``documents``."""
        doc_freq: Counter[str] = Counter()
        vocabulary: dict[str, int] = {}
        count = 0
        for text in documents:
            count += 1
            unique_tokens = dict.fromkeys(tokenize(text))
            for token in unique_tokens:
                doc_freq[token] += 1
                if token not in vocabulary:
                    vocabulary[token] = len(vocabulary)
        self.document_count = count
        self.vocabulary = vocabulary
        self.idf = {
            term: math.log((count + 1) / (df + 1)) + 1 for term, df in doc_freq.items()
        }
        logger.info(
            "vocabulary_built",
            extra={"documents": count, "terms": len(vocabulary)},
        )

    def term_weight(self, term: str) -> float:
        """Return the IDF weight of ``term``, falling back for unseen terms."""
        weight = self.idf.get(term)
        if weight is None:
            return math.log(self.document_count + 2)
        return weight

    def embed(self, text: str) -> list[float]:
        """Embed text as a normalized hashed TF-IDF vector."""
        term_freq = Counter(tokenize(text))
        vector = [0.0] * self.dimension
        if not term_freq:
            return vector
        max_freq = max(term_freq.values())
        for term, freq in term_freq.items():
            hashed = hash_token(term)
            idx = abs(hashed) % self.dimension
            sign = 1.0 if hashed >= 0 else -1.0
            vector[idx] += sign * (freq / max_freq) * self.term_weight(term)
        return validate_vector(l2_normalize(vector), self.dimension)

    def embed_batch(self, texts: Iterable[str]) -> list[list[float]]:
        """Embed each text independently."""
        return [self.embed(text) for text in texts]

    @property
    def vocabulary_size(self) -> int:
        return len(self.vocabulary)
