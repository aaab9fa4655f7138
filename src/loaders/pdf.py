from __future__ import annotations

"""PDF text extraction and cleanup."""

import re
from pathlib import Path

from src.rag.types import Document


class PDFLoaderError(RuntimeError):
    """Raised when PDF loading fails."""
    pass


_SPACES_RE = re.compile(r"[ \t\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def _clean_pdf_text(text: str) -> str:
    """Join hyphenated line breaks and squeeze spaces, keeping paragraph breaks."""
    if not text:
        return ""
    cleaned = text.replace("\r\n", "\n")
    cleaned = re.sub(r"(\w)-\n(\w)", r"\1\2", cleaned)
    cleaned = _SPACES_RE.sub(" ", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n"))
    return _BLANK_LINES_RE.sub("\n\n", cleaned).strip()


def load_pdf_file(path: Path, doc_id: str | None = None) -> Document:
    """Load a PDF from disk and return a Document."""
    try:
        import fitz
    except ImportError as exc:
        raise PDFLoaderError("PyMuPDF is required to load PDF files") from exc

    try:
        reader = fitz.open(str(path))
    except Exception as exc:
        raise PDFLoaderError(f"Could not open PDF {path}: {exc}") from exc
    try:
        text_parts = [page.get_text() or "" for page in reader]
        pages = reader.page_count
    finally:
        reader.close()
    return Document(
        doc_id=doc_id or path.name,
        content=_clean_pdf_text("\n".join(text_parts)),
        metadata={
            "source": str(path),
            "file_name": path.name,
            "file_type": "pdf",
            "pages": pages,
        },
    )
