from __future__ import annotations

"""File and directory document source with chunking and change watching."""

import asyncio
import logging
from collections import Counter
from pathlib import Path
from typing import Any, Iterable

from src.datasources.base import (
    DataSourceError,
    keyword_search,
    replace_document,
    unique_document_id,
)
from src.datasources.watcher import ChangeCallback, DirectoryWatcher
from src.loaders.chunking import chunk_document
from src.loaders.csv_loader import CSVLoaderError, load_csv_rows
from src.loaders.json_loader import JSONLoaderError, load_json_file
from src.loaders.pdf import PDFLoaderError, load_pdf_file
from src.loaders.text import load_text_file
from src.loaders.xlsx import XlsxLoaderError, load_xlsx_file
from src.rag.types import Document, SearchResult

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".csv", ".txt", ".md", ".json", ".pdf", ".xlsx")

_LOADER_ERRORS = (
    CSVLoaderError,
    JSONLoaderError,
    PDFLoaderError,
    XlsxLoaderError,
    OSError,
    UnicodeDecodeError,
)


class FileDataSource:
    """Index a single file or every supported file in a directory."""
    def __init__(
        self,
        path: str | Path,
        recursive: bool = False,
        extensions: Iterable[str] = DEFAULT_EXTENSIONS,
        chunk_size: int = 1000,
        chunk_overlap: int = 200,
        watch: bool = False,
        watch_debounce: float = 2.0,
        poll_interval: float = 1.0,
    ) -> None:
        self.path = Path(path)
        self.recursive = recursive
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.watch = watch
        self.watch_debounce = watch_debounce
        self.poll_interval = poll_interval
        self.documents: list[Document] = []
        self.watcher: DirectoryWatcher | None = None
        self.initialized = False

    async def initialize(self) -> None:
        if not self.path.exists():
            raise DataSourceError(f"Path not found: {self.path}")
        await self.load_documents()
        self.initialized = True

    async def load_documents(self) -> list[Document]:
        """Reload every supported file; unreadable files are skipped."""
        if not self.path.exists():
            raise DataSourceError(f"Path not found: {self.path}")
        if self.path.is_dir():
            documents = await asyncio.to_thread(self._load_directory, self.path)
        else:
            try:
                documents = await asyncio.to_thread(self.load_file, self.path)
            except _LOADER_ERRORS as exc:
                raise DataSourceError(f"Could not load {self.path}: {exc}") from exc
        self.documents = documents
        logger.info(
            "file_source_loaded",
            extra={"path": str(self.path), "documents": len(documents)},
        )
        return self.documents

    def _iter_files(self, root: Path) -> list[Path]:
        pattern = root.rglob("*") if self.recursive else root.glob("*")
        return sorted(
            path for path in pattern if path.is_file() and path.suffix.lower() in self.extensions
        )

    def _load_directory(self, root: Path) -> list[Document]:
        documents: list[Document] = []
        for path in self._iter_files(root):
            try:
                documents.extend(self.load_file(path))
            except _LOADER_ERRORS as exc:
                logger.warning(
                    "source_file_skipped",
                    extra={"path": str(path), "error": str(exc)},
                )
        return documents

    def load_file(self, path: Path) -> list[Document]:
        """Load one file into documents according to its extension."""
        suffix = path.suffix.lower()
        if suffix == ".csv":
            return load_csv_rows(path)
        if suffix == ".json":
            return load_json_file(path)
        if suffix == ".xlsx":
            return load_xlsx_file(path)
        if suffix == ".pdf":
            return self._chunk(load_pdf_file(path))
        return self._chunk(load_text_file(path))

    def _chunk(self, document: Document) -> list[Document]:
        return chunk_document(document, self.chunk_size, self.chunk_overlap)

    async def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        return keyword_search(self.documents, query, limit)

    async def add_document(
        self,
        content: str,
        metadata: dict[str, Any] | None = None,
        doc_id: str | None = None,
    ) -> str:
        """Keep a new document in memory, replacing one with the same id.

        The document is dropped on the next reload.
        """
        resolved_id = doc_id or unique_document_id(self.documents)
        self.documents = replace_document(
            self.documents,
            Document(doc_id=resolved_id, content=content, metadata=dict(metadata or {})),
        )
        return resolved_id

    def get_documents(self) -> list[Document]:
        return list(self.documents)

    def get_document_count(self) -> int:
        return len(self.documents)

    def summary(self) -> dict[str, Any]:
        """Count loaded documents by file type and by file."""
        by_type = Counter(str(doc.metadata.get("file_type", "unknown")) for doc in self.documents)
        by_file = Counter(str(doc.metadata.get("file_name", "unknown")) for doc in self.documents)
        return {
            "total_documents": len(self.documents),
            "by_type": dict(by_type),
            "by_file": dict(by_file),
            "watching": self.watcher is not None and self.watcher.running,
        }

    def start_watching(self, on_change: ChangeCallback) -> DirectoryWatcher:
        """Start polling for file changes and call ``on_change`` after each burst."""
        if self.watcher is None:
            self.watcher = DirectoryWatcher(
                root=self.path,
                extensions=self.extensions,
                callback=on_change,
                recursive=self.recursive,
                debounce=self.watch_debounce,
                poll_interval=self.poll_interval,
            )
        self.watcher.start()
        return self.watcher

    async def stop_watching(self) -> None:
        if self.watcher is not None:
            await self.watcher.stop()
            self.watcher = None

    async def close(self) -> None:
        await self.stop_watching()
        self.initialized = False
