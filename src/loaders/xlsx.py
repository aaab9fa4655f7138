from __future__ import annotations

from pathlib import Path
from typing import Any

from src.rag.types import Document


class XlsxLoaderError(RuntimeError):
    pass


def load_xlsx_file(path: Path) -> list[Document]:
    """Load every sheet row (first row as header) as a document."""
    try:
        from openpyxl import load_workbook
    except ImportError as exc:
        raise XlsxLoaderError("openpyxl is required to load XLSX files") from exc

    try:
        workbook = load_workbook(path, data_only=True, read_only=True)
    except Exception as exc:
        raise XlsxLoaderError(f"Could not open workbook {path}: {exc}") from exc
    documents: list[Document] = []
    try:
        for sheet_name in workbook.sheetnames:
            rows = workbook[sheet_name].iter_rows(values_only=True)
            header = next(rows, None)
            if header is None:
                continue
            columns = [_format_cell(value) or f"column_{idx}" for idx, value in enumerate(header)]
            index = 0
            for row in rows:
                values = [_format_cell(value) for value in row]
                if not any(values):
                    continue
                record = {
                    column: value for column, value in zip(columns, values) if value
                }
                content = "\n".join(f"{key}: {value}" for key, value in record.items())
                metadata: dict[str, Any] = dict(record)
                metadata.update(
                    {
                        "source": str(path),
                        "file_name": path.name,
                        "file_type": "excel",
                        "sheet_name": sheet_name,
                        "row_index": index,
                    }
                )
                documents.append(
                    Document(
                        doc_id=f"{path.name}_{sheet_name}_row_{index}",
                        content=content,
                        metadata=metadata,
                    )
                )
                index += 1
    finally:
        workbook.close()
    return documents


def _format_cell(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()
