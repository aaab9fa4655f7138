from __future__ import annotations

"""Plain text and markdown loader for ingestion."""

from pathlib import Path

from src.rag.types import Document


def load_text_file(path: Path, doc_id: str | None = None) -> Document:
    """Load a text file from disk into a Document."""
    content = path.read_text(encoding="utf-8", errors="ignore")
    return Document(
        doc_id=doc_id or path.name,
        content=content,
        metadata={"source": str(path), "file_name": path.name, "file_type": "text"},
    )

