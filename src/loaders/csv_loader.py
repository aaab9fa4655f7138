from __future__ import annotations

"""CSV/TSV loader producing one document per row."""

import csv
from io import StringIO
from pathlib import Path

from src.rag.types import Document


class CSVLoaderError(RuntimeError):
    """Raised when CSV loading fails."""
    pass


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError:
        return data.decode("utf-8", errors="replace")


def rows_to_documents(
    text: str,
    source: str,
    id_prefix: str,
    content_column: str | None = None,
    id_column: str | None = None,
    delimiter: str = ",",
) -> list[Document]:
    """Turn CSV text into documents, combining columns when no content column is set."""
    try:
        reader = csv.DictReader(StringIO(text), delimiter=delimiter, skipinitialspace=True)
        records = [
            record
            for record in reader
            if any(isinstance(value, str) and value.strip() for value in record.values())
        ]
    except csv.Error as exc:
        raise CSVLoaderError(f"Invalid CSV in {source}: {exc}") from exc

    documents: list[Document] = []
    for index, record in enumerate(records):
        row = {
            str(key).strip(): (value or "").strip()
            for key, value in record.items()
            if key is not None
        }
        if id_column and row.get(id_column):
            doc_id = row[id_column]
        else:
            doc_id = f"{id_prefix}_{index}"
        if content_column and row.get(content_column):
            content = row[content_column]
        else:
            content = "\n".join(f"{key}: {value}" for key, value in row.items())
        metadata: dict[str, object] = dict(row)
        metadata.update(
            {
                "source": source,
                "file_name": Path(source).name,
                "file_type": "csv",
                "row_index": index,
            }
        )
        documents.append(Document(doc_id=doc_id, content=content, metadata=metadata))
    return documents


def load_csv_rows(
    path: Path,
    content_column: str | None = None,
    id_column: str | None = None,
    delimiter: str = ",",
    id_prefix: str | None = None,
) -> list[Document]:
    """Load a CSV file from disk into row documents."""
    return rows_to_documents(
        _decode(path.read_bytes()),
        source=str(path),
        id_prefix=id_prefix or f"{path.name}_row",
        content_column=content_column,
        id_column=id_column,
        delimiter=delimiter,
    )

