from __future__ import annotations

"""SQL table document source (SQLite or Postgres through SQLAlchemy)."""

import asyncio
import json
import logging
import re
import uuid
from typing import Any

from sqlalchemy import Column, MetaData, String, Table, Text, create_engine, func, or_, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from src.datasources.base import DataSourceError, keyword_search
from src.rag.types import Document, SearchResult

logger = logging.getLogger(__name__)

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _validate_identifier(value: str) -> str:
    if not value or not _IDENTIFIER_RE.match(value):
        raise DataSourceError(f"Invalid SQL identifier: {value!r}")
    return value


class SQLDataSource:
    """Serve rows of a documents table; the table is created when missing."""
    def __init__(
        self,
        connection_uri: str,
        table_name: str = "documents",
        id_column: str = "id",
        content_column: str = "content",
        metadata_column: str = "metadata",
    ) -> None:
        self.connection_uri = connection_uri
        self.table_name = _validate_identifier(table_name)
        self.id_column = _validate_identifier(id_column)
        self.content_column = _validate_identifier(content_column)
        self.metadata_column = _validate_identifier(metadata_column)
        self.documents: list[Document] = []
        self.initialized = False
        self._engine: Engine | None = None
        self._metadata = MetaData()
        self._table = Table(
            self.table_name,
            self._metadata,
            Column(self.id_column, String(255), primary_key=True),
            Column(self.content_column, Text, nullable=False),
            Column(self.metadata_column, Text, nullable=True),
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise DataSourceError("SQL data source is not initialized")
        return self._engine

    async def initialize(self) -> None:
        try:
            self._engine = create_engine(self.connection_uri)
            await asyncio.to_thread(self._metadata.create_all, self._engine)
        except SQLAlchemyError as exc:
            raise DataSourceError(str(exc)) from exc
        await self.load_documents()
        self.initialized = True

    def _row_to_document(self, row: Any) -> Document:
        raw_metadata = row[self.metadata_column]
        metadata: dict[str, Any] = {}
        if raw_metadata:
            try:
                parsed = json.loads(raw_metadata)
            except json.JSONDecodeError:
                parsed = {"raw_metadata": raw_metadata}
            if isinstance(parsed, dict):
                metadata = parsed
        return Document(
            doc_id=str(row[self.id_column]),
            content=str(row[self.content_column] or ""),
            metadata=metadata,
        )

    def _fetch(self, statement: Any) -> list[Document]:
        with self.engine.connect() as connection:
            rows = connection.execute(statement).mappings()
            return [self._row_to_document(row) for row in rows]

    async def load_documents(self) -> list[Document]:
        """Reload every row of the documents table."""
        statement = select(self._table).order_by(self._table.c[self.id_column])
        try:
            self.documents = await asyncio.to_thread(self._fetch, statement)
        except SQLAlchemyError as exc:
            raise DataSourceError(str(exc)) from exc
        logger.info(
            "sql_source_loaded",
            extra={"table": self.table_name, "documents": len(self.documents)},
        )
        return self.documents

    async def search(self, query: str, limit: int = 5) -> list[SearchResult]:
        """Pre-filter rows with LIKE per term, then rank them by keyword score."""
        terms = [term for term in query.lower().split() if len(term) > 2] or [query.lower()]
        content = func.lower(self._table.c[self.content_column])
        statement = select(self._table).where(
            or_(*(content.like(f"%{term}%") for term in terms))
        )
        try:
            candidates = await asyncio.to_thread(self._fetch, statement)
        except SQLAlchemyError as exc:
            raise DataSourceError(str(exc)) from exc
        return keyword_search(candidates, query, limit)

    def _upsert(self, document: Document) -> None:
        payload = {
            self.id_column: document.doc_id,
            self.content_column: document.content,
            self.metadata_column: json.dumps(document.metadata, ensure_ascii=True, default=str),
        }
        id_column = self._table.c[self.id_column]
        with self.engine.begin() as connection:
            connection.execute(self._table.delete().where(id_column == document.doc_id))
            connection.execute(self._table.insert().values(**payload))

    async def add_document(
        self,
        content: str,
        metadata: dict[str, Any] | None = None,
        doc_id: str | None = None,
    ) -> str:
        """Insert or replace a row and mirror it in the loaded documents."""
        resolved_id = doc_id or f"doc_{uuid.uuid4().hex[:12]}"
        document = Document(doc_id=resolved_id, content=content, metadata=dict(metadata or {}))
        try:
            await asyncio.to_thread(self._upsert, document)
        except SQLAlchemyError as exc:
            raise DataSourceError(str(exc)) from exc
        self.documents = [doc for doc in self.documents if doc.doc_id != resolved_id]
        self.documents.append(document)
        return resolved_id

    def get_documents(self) -> list[Document]:
        return list(self.documents)

    def get_document_count(self) -> int:
        return len(self.documents)

    async def close(self) -> None:
        if self._engine is not None:
            await asyncio.to_thread(self._engine.dispose)
            self._engine = None
        self.initialized = False
