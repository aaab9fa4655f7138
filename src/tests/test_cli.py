from __future__ import annotations

import json

from src.datasources.csv_source import CSVDataSource
from src.rag.answerer import ExtractiveAnswerer
from src.rag.embeddings import TfidfHashEmbedder
from src.rag.engine import RAGEngine
from tools import rag_cli


def install_engine(monkeypatch, tmp_path) -> None:
    path = tmp_path / "facts.csv"
    path.write_text(
        "content\nParis is the capital of France\nPython is a language\n", encoding="utf-8"
    )

    def factory() -> RAGEngine:
        return RAGEngine(
            data_source=CSVDataSource(path, content_column="content"),
            llm=ExtractiveAnswerer(),
            embedder=TfidfHashEmbedder(dimension=128),
        )

    monkeypatch.setattr(rag_cli, "get_engine", factory)


def test_cli_search_prints_ranked_json(monkeypatch, tmp_path, capsys) -> None:
    install_engine(monkeypatch, tmp_path)

    exit_code = rag_cli.main(["search", "capital of France", "--top-k", "1"])

    payload = json.loads(capsys.readouterr().out)
    assert exit_code == 0
    assert payload[0]["id"] == "doc_0"


def test_cli_stats_and_query(monkeypatch, tmp_path, capsys) -> None:
    install_engine(monkeypatch, tmp_path)

    assert rag_cli.main(["stats"]) == 0
    stats = json.loads(capsys.readouterr().out)
    assert rag_cli.main(["query", "Python language"]) == 0
    answer = json.loads(capsys.readouterr().out)

    assert stats["document_count"] == 2
    assert stats["embedding_dimension"] == 128
    assert "Python is a language" in answer["answer"]


def test_cli_reports_errors(monkeypatch, tmp_path, capsys) -> None:
    def factory() -> RAGEngine:
        return RAGEngine(
            data_source=CSVDataSource(tmp_path / "missing.csv"),
            llm=ExtractiveAnswerer(),
        )

    monkeypatch.setattr(rag_cli, "get_engine", factory)

    assert rag_cli.main(["stats"]) == 1
    assert "CSV file not found" in capsys.readouterr().err
