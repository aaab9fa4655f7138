from __future__ import annotations

"""CSV file document source, one document per row."""

import asyncio
import logging
from pathlib import Path
from typing import Any

from src.datasources.base import (
    DataSourceError,
    keyword_search,
    replace_document,
    unique_document_id,
)
from src.loaders.csv_loader import CSVLoaderError, load_csv_rows
from src.rag.types import Document, SearchResult

logger = logging.getLogger(__name__)


class CSVDataSource:
    """Load a CSV file and serve its rows as documents."""
    def __init__(
        self,
        path: str | Path,
        content_column: str | None = None,
        id_column: str | None = None,
        delimiter: str = ",",
    ) -> None:
        self.path = Path(path)
        self.content_column = content_column
        self.id_column = id_column
        self.delimiter = delimiter
        self.documents: list[Document] = []
        self.initialized = False

    async def initialize(self) -> None:
        if not self.path.is_file():
            raise DataSourceError(f"CSV file not found: {self.path}")
        await self.load_documents()
        self.initialized = True

    async def load_documents(self) -> list[Document]:
        """Reload every row of the CSV file."""
        try:
            documents = await asyncio.to_thread(
                load_csv_rows,
                self.path,
                content_column=self.content_column,
                id_column=self.id_column,
                delimiter=self.delimiter,
                id_prefix="doc",
            )
        except (CSVLoaderError, OSError) as exc:
            raise DataSourceError(str(exc)) from exc
        self.documents = documents
        logger.info(
            "csv_source_loaded",
            extra={"path": str(self.path), "documents": len(documents)},
        )
        return self.documents

    async def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        return keyword_search(self.documents, query, limit)

    async def add_document(
        self,
        content: str,
        metadata: dict[str, Any] | None = None,
        doc_id: str | None = None,
    ) -> str:
        """Keep a new document in memory alongside the file rows; same ids are replaced."""
        resolved_id = doc_id or unique_document_id(self.documents)
        payload = dict(metadata or {})
        payload["source"] = str(self.path)
        self.documents = replace_document(
            self.documents, Document(doc_id=resolved_id, content=content, metadata=payload)
        )
        return resolved_id

    def get_documents(self) -> list[Document]:
        return list(self.documents)

    def get_document_count(self) -> int:
        return len(self.documents)

    async def close(self) -> None:
        self.initialized = False
