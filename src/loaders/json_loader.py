from __future__ import annotations

"""JSON loader: arrays become one document per item."""

import json
from pathlib import Path

from src.rag.types import Document


class JSONLoaderError(RuntimeError):
    """Raised when JSON loading fails."""
    pass


def load_json_file(path: Path) -> list[Document]:
    """Load a JSON file; each array item (or the whole object) is a document."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise JSONLoaderError(f"Invalid JSON in {path}: {exc}") from exc

    base_metadata = {"source": str(path), "file_name": path.name, "file_type": "json"}
    if not isinstance(data, list):
        return [
            Document(
                doc_id=path.name,
                content=json.dumps(data, indent=2, ensure_ascii=False, default=str),
                metadata=dict(base_metadata),
            )
        ]

    documents: list[Document] = []
    for index, item in enumerate(data):
        if isinstance(item, str):
            content = item
        else:
            content = json.dumps(item, indent=2, ensure_ascii=False, default=str)
        if not content.strip():
            continue
        metadata = dict(base_metadata)
        metadata["index"] = index
        documents.append(
            Document(doc_id=f"{path.name}_item_{index}", content=content, metadata=metadata)
        )
    return documents
