from __future__ import annotations

import logging

import pytest

from src.datasources.base import DataSourceError, keyword_search
from src.datasources.csv_source import CSVDataSource
from src.datasources.file_source import FileDataSource
from src.datasources.sql_source import SQLDataSource
from src.rag.types import Document

pytestmark = pytest.mark.anyio

CSV_TEXT = "id,content,topic\n1,Paris is the capital of France,geo\n2,Python is a language,tech\n"


def test_keyword_search_prefers_whole_phrase() -> None:
    documents = [
        Document(doc_id="terms", content="Capital city of France, a capital place"),
        Document(doc_id="phrase", content="The capital of France is Paris"),
        Document(doc_id="none", content="Nothing relevant"),
    ]

    results = keyword_search(documents, "capital of France", limit=5)

    assert [result.document.doc_id for result in results] == ["phrase", "terms"]
    assert results[0].score == 12
    assert results[1].score == 3


async def test_csv_source_rows_and_search(tmp_path) -> None:
    path = tmp_path / "facts.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    source = CSVDataSource(path, content_column="content")

    await source.initialize()
    results = await source.search("capital France")

    assert source.initialized is True
    assert source.get_document_count() == 2
    assert source.get_documents()[0].doc_id == "doc_0"
    assert source.get_documents()[0].metadata["topic"] == "geo"
    assert results[0].document.content == "Paris is the capital of France"


async def test_csv_source_id_column_and_add(tmp_path) -> None:
    path = tmp_path / "facts.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    source = CSVDataSource(path, content_column="content", id_column="id")
    await source.initialize()

    new_id = await source.add_document("Rust is fast", {"topic": "tech"})

    assert [doc.doc_id for doc in source.get_documents()] == ["1", "2", "doc_2"]
    assert new_id == "doc_2"
    assert source.get_documents()[-1].metadata["source"] == str(path)


async def test_csv_source_missing_file(tmp_path) -> None:
    source = CSVDataSource(tmp_path / "missing.csv")

    with pytest.raises(DataSourceError):
        await source.initialize()


async def test_file_source_loads_directory_and_skips_bad_files(tmp_path, caplog) -> None:
    (tmp_path / "notes.txt").write_text("Short note about Paris.", encoding="utf-8")
    (tmp_path / "data.csv").write_text(CSV_TEXT, encoding="utf-8")
    (tmp_path / "items.json").write_text('["first item", {"name": "second"}]', encoding="utf-8")
    (tmp_path / "bad.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "script.py").write_text("print('ignored')", encoding="utf-8")
    source = FileDataSource(tmp_path, chunk_size=100, chunk_overlap=10)

    with caplog.at_level(logging.WARNING, logger="src.datasources.file_source"):
        await source.initialize()

    ids = {doc.doc_id for doc in source.get_documents()}
    assert ids == {
        "notes.txt_chunk_0",
        "data.csv_row_0",
        "data.csv_row_1",
        "items.json_item_0",
        "items.json_item_1",
    }
    assert source.summary()["by_type"] == {"text": 1, "csv": 2, "json": 2}
    assert any(record.getMessage() == "source_file_skipped" for record in caplog.records)


async def test_file_source_chunks_long_text(tmp_path) -> None:
    path = tmp_path / "long.md"
    path.write_text("word " * 100, encoding="utf-8")
    source = FileDataSource(path, chunk_size=100, chunk_overlap=10)

    await source.initialize()

    documents = source.get_documents()
    assert len(documents) > 1
    assert documents[0].metadata["total_chunks"] == len(documents)
    assert documents[0].metadata["file_name"] == "long.md"


async def test_file_source_recursive_flag(tmp_path) -> None:
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "deep.txt").write_text("Deep file", encoding="utf-8")
    (tmp_path / "top.txt").write_text("Top file", encoding="utf-8")

    flat = FileDataSource(tmp_path)
    deep = FileDataSource(tmp_path, recursive=True)
    await flat.initialize()
    await deep.initialize()

    assert flat.get_document_count() == 1
    assert deep.get_document_count() == 2


async def test_file_source_single_bad_file_fails(tmp_path) -> None:
    path = tmp_path / "bad.json"
    path.write_text("{not json", encoding="utf-8")

    with pytest.raises(DataSourceError):
        await FileDataSource(path).initialize()


async def test_file_source_reload_reflects_changes(tmp_path) -> None:
    (tmp_path / "a.txt").write_text("Alpha", encoding="utf-8")
    source = FileDataSource(tmp_path)
    await source.initialize()

    (tmp_path / "b.txt").write_text("Beta", encoding="utf-8")
    await source.load_documents()

    assert source.get_document_count() == 2


async def test_sql_source_add_search_and_reload(tmp_path) -> None:
    uri = f"sqlite:///{tmp_path / 'docs.db'}"
    source = SQLDataSource(uri)
    await source.initialize()

    await source.add_document("Paris is the capital of France", {"topic": "geo"}, "p1")
    await source.add_document("Python is a language", None, "py")
    await source.add_document("Paris is the capital and largest city of France", {"v": 2}, "p1")
    results = await source.search("capital of france")
    await source.close()

    reopened = SQLDataSource(uri)
    await reopened.initialize()
    documents = {doc.doc_id: doc for doc in reopened.get_documents()}
    await reopened.close()

    assert [result.document.doc_id for result in results] == ["p1"]
    assert set(documents) == {"p1", "py"}
    assert documents["p1"].metadata == {"v": 2}
    assert "largest city" in documents["p1"].content


async def test_sql_source_generates_ids(tmp_path) -> None:
    source = SQLDataSource(f"sqlite:///{tmp_path / 'docs.db'}")
    await source.initialize()

    doc_id = await source.add_document("Generated id row")
    await source.close()

    assert doc_id.startswith("doc_")


def test_sql_source_rejects_bad_identifiers() -> None:
    with pytest.raises(DataSourceError):
        SQLDataSource("sqlite://", table_name="documents; DROP TABLE x")


async def test_file_source_add_document_keeps_ids_unique(tmp_path) -> None:
    (tmp_path / "a.txt").write_text("Alpha", encoding="utf-8")
    source = FileDataSource(tmp_path)
    await source.initialize()

    explicit = await source.add_document("First", doc_id="doc_2")
    generated = await source.add_document("Second")
    replaced = await source.add_document("First, revised", doc_id="doc_2")
    results = await source.search("first")

    ids = [doc.doc_id for doc in source.get_documents()]
    assert explicit == replaced == "doc_2"
    assert generated == "doc_3"
    assert sorted(ids) == ["a.txt_chunk_0", "doc_2", "doc_3"]
    assert len(ids) == len(set(ids))
    assert [result.document.content for result in results] == ["First, revised"]


async def test_csv_source_add_document_replaces_same_id(tmp_path) -> None:
    path = tmp_path / "facts.csv"
    path.write_text(CSV_TEXT, encoding="utf-8")
    source = CSVDataSource(path, content_column="content", id_column="id")
    await source.initialize()

    await source.add_document("Paris is large", doc_id="1")
    generated = await source.add_document("Another fact")

    documents = {doc.doc_id: doc for doc in source.get_documents()}
    assert source.get_document_count() == 3
    assert documents["1"].content == "Paris is large"
    assert generated == "doc_2"
