from __future__ import annotations

"""Offline answerer that extracts from the best retrieved document."""

import re
from dataclasses import dataclass
from typing import AsyncIterator, Sequence

from src.rag.llm import GenerationOptions
from src.rag.types import Document

DEFAULT_REFUSAL = "I don't know based on the provided context."

_PIECE_RE = re.compile(r"\S+\s*")


@dataclass
class ExtractiveAnswerer:
    """Return a short extract from the first (highest ranked) document."""
    max_chars: int = 480
    model: str = "extractive"

    async def initialize(self) -> None:
        return None

    def _answer(self, documents: Sequence[Document]) -> str:
        best = next((doc for doc in documents if doc.content.strip()), None)
        if best is None:
            return DEFAULT_REFUSAL
        snippet = self._truncate(best.content.strip())
        return f"Based on the provided context: {snippet}"

    async def generate_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> str:
        """Generate an extractive answer from context."""
        return self._answer(documents)

    async def generate_streaming_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        """Stream the extractive answer word by word."""
        for piece in _PIECE_RE.findall(self._answer(documents)):
            yield piece

    def _truncate(self, text: str) -> str:
        """Trim text to the max character limit without cutting words."""
        if len(text) <= self.max_chars:
            return text
        return text[: self.max_chars].rsplit(" ", 1)[0] + "..."
