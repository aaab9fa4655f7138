from __future__ import annotations

"""Boundary-aware character chunking for long texts."""

from src.rag.types import Chunk, Document

# Tried in order; the first one found in the back half of the window wins.
_BREAK_POINTS = ("\n\n", "\n", ". ", "! ", "? ")


def _validate(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than zero")
    if chunk_overlap < 0 or chunk_overlap >= chunk_size:
        raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")


def _find_break(text: str, start: int, end: int, chunk_size: int) -> int:
    """Return a new window end just after a boundary marker, or ``end``."""
    floor = start + chunk_size / 2
    for marker in _BREAK_POINTS:
        idx = text.rfind(marker, start, end)
        if idx > floor:
            return idx + len(marker)
    return end


def chunk_text(text: str, chunk_size: int = 1000, chunk_overlap: int = 200) -> list[str]:
    """Split text into overlapping chunks, preferring paragraph and sentence breaks."""
    _validate(chunk_size, chunk_overlap)
    length = len(text)
    if length <= chunk_size:
        stripped = text.strip()
        return [stripped] if stripped else []

    chunks: list[str] = []
    start = 0
    while start < length:
        end = start + chunk_size
        if end < length:
            end = _find_break(text, start, end, chunk_size)
        else:
            end = length
        chunk = text[start:end].strip()
        if chunk:
            chunks.append(chunk)
        if end >= length:
            break
        next_start = end - chunk_overlap
        start = next_start if next_start > start else end
    return chunks


def split_chunks(text: str, chunk_size: int = 1000, chunk_overlap: int = 200) -> list[Chunk]:
    """Chunk text and annotate every piece with its position."""
    pieces = chunk_text(text, chunk_size, chunk_overlap)
    total = len(pieces)
    return [
        Chunk(content=piece, chunk_index=idx, total_chunks=total)
        for idx, piece in enumerate(pieces)
    ]


def chunk_document(
    document: Document,
    chunk_size: int = 1000,
    chunk_overlap: int = 200,
) -> list[Document]:
    """Chunk a document into ``<doc_id>_chunk_<n>`` documents with metadata."""
    chunks = split_chunks(document.content, chunk_size, chunk_overlap)
    documents: list[Document] = []
    for chunk in chunks:
        metadata = dict(document.metadata)
        metadata.update(
            {"chunk_index": chunk.chunk_index, "total_chunks": chunk.total_chunks}
        )
        documents.append(
            Document(
                doc_id=f"{document.doc_id}_chunk_{chunk.chunk_index}",
                content=chunk.content,
                metadata=metadata,
            )
        )
    return documents
