from __future__ import annotations

import json
from pathlib import Path
from typing import AsyncIterator, Sequence

import httpx
import pytest

from src.app.dependencies import get_engine
from src.app.main import app
from src.datasources.file_source import FileDataSource
from src.rag.answerer import ExtractiveAnswerer
from src.rag.embeddings import TfidfHashEmbedder
from src.rag.engine import RAGEngine
from src.rag.llm import GenerationOptions, LLMError
from src.rag.types import Document

pytestmark = pytest.mark.anyio


class FailingLLM(ExtractiveAnswerer):
    async def generate_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> str:
        raise LLMError("upstream unavailable")

    async def generate_streaming_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        yield "partial"
        raise LLMError("upstream unavailable")


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


def build_engine(data_dir: Path, llm=None) -> RAGEngine:
    (data_dir / "ml.txt").write_text(
        "Machine learning is a subset of artificial intelligence", encoding="utf-8"
    )
    (data_dir / "paris.txt").write_text("Paris is the capital of France", encoding="utf-8")
    engine = RAGEngine(
        data_source=FileDataSource(data_dir),
        llm=llm or ExtractiveAnswerer(max_chars=200),
        embedder=TfidfHashEmbedder(),
        top_k=5,
        similarity_threshold=0.3,
    )
    app.dependency_overrides[get_engine] = lambda: engine
    return engine


def get_client() -> httpx.AsyncClient:
    transport = httpx.ASGITransport(app=app)
    return httpx.AsyncClient(transport=transport, base_url="http://test")


def parse_events(body: str) -> list[dict]:
    return [
        json.loads(line[len("data: "):])
        for line in body.splitlines()
        if line.startswith("data: ")
    ]


async def test_health_and_stats(tmp_path) -> None:
    engine = build_engine(tmp_path)
    await engine.initialize()

    async with get_client() as client:
        health = await client.get("/health")
        stats = await client.get("/stats")

    assert health.json() == {"status": "ok", "initialized": True}
    assert health.headers["x-request-id"]
    assert stats.json()["document_count"] == 2
    assert stats.json()["data_source_type"] == "FileDataSource"


async def test_query_returns_answer_and_sources(tmp_path) -> None:
    engine = build_engine(tmp_path)
    await engine.initialize()

    async with get_client() as client:
        response = await client.post(
            "/query", json={"query": "What is machine learning?", "top_k": 1}
        )

    assert response.status_code == 200
    payload = response.json()
    assert "Machine learning" in payload["answer"]
    assert payload["sources"][0]["id"] == "ml.txt_chunk_0"
    assert payload["query"] == "What is machine learning?"
    assert isinstance(payload["low_confidence"], bool)


async def test_query_before_initialize_is_unavailable(tmp_path) -> None:
    build_engine(tmp_path)

    async with get_client() as client:
        response = await client.post("/query", json={"query": "anything"})
        stream = await client.post("/query/stream", json={"query": "anything"})

    assert response.status_code == 503
    assert stream.status_code == 503


async def test_query_upstream_failure_is_bad_gateway(tmp_path) -> None:
    engine = build_engine(tmp_path, llm=FailingLLM())
    await engine.initialize()

    async with get_client() as client:
        response = await client.post("/query", json={"query": "Paris"})

    assert response.status_code == 502
    assert response.json()["detail"] == "upstream unavailable"


async def test_query_stream_emits_ordered_events(tmp_path) -> None:
    engine = build_engine(tmp_path)
    await engine.initialize()

    async with get_client() as client:
        response = await client.post(
            "/query/stream", json={"query": "capital of France", "top_k": 1}
        )

    events = parse_events(response.text)
    assert response.headers["content-type"].startswith("text/event-stream")
    assert events[0]["type"] == "sources"
    assert events[0]["sources"][0]["id"] == "paris.txt_chunk_0"
    assert events[-1] == {"type": "done"}
    answer = "".join(event["content"] for event in events if event["type"] == "content")
    assert "Paris is the capital of France" in answer


async def test_query_stream_reports_errors_as_events(tmp_path) -> None:
    engine = build_engine(tmp_path, llm=FailingLLM())
    await engine.initialize()

    async with get_client() as client:
        response = await client.post("/query/stream", json={"query": "Paris"})

    events = parse_events(response.text)
    assert [event["type"] for event in events] == ["sources", "content", "error"]
    assert events[-1]["message"] == "upstream unavailable"


async def test_search_documents_and_paging(tmp_path) -> None:
    engine = build_engine(tmp_path)
    await engine.initialize()

    async with get_client() as client:
        created = await client.post(
            "/documents",
            json={"id": "k8s", "content": "Kubernetes orchestrates containers"},
        )
        search = await client.post("/search", json={"query": "kubernetes", "top_k": 1})
        page = await client.get("/documents", params={"limit": 2, "offset": 1})

    assert created.status_code == 201
    assert created.json()["id"] == "k8s"
    assert search.json()["results"][0]["id"] == "k8s"
    assert page.json()["total"] == 3
    assert len(page.json()["documents"]) == 2


async def test_add_document_rejects_blank_content(tmp_path) -> None:
    engine = build_engine(tmp_path)
    await engine.initialize()

    async with get_client() as client:
        blank = await client.post("/documents", json={"content": "   "})
        empty = await client.post("/documents", json={"content": ""})

    assert blank.status_code == 400
    assert empty.status_code == 422


async def test_update_config_and_refresh(tmp_path) -> None:
    engine = build_engine(tmp_path)
    await engine.initialize()
    (tmp_path / "python.txt").write_text("Python is a language", encoding="utf-8")

    async with get_client() as client:
        config = await client.put("/config", json={"top_k": 2, "similarity_threshold": 0.1})
        invalid = await client.put("/config", json={"top_k": 0})
        refreshed = await client.post("/refresh")

    assert config.json()["stats"]["top_k"] == 2
    assert config.json()["stats"]["similarity_threshold"] == 0.1
    assert invalid.status_code == 422
    assert refreshed.json()["document_count"] == 3


async def test_metrics_endpoint(tmp_path) -> None:
    engine = build_engine(tmp_path)
    await engine.initialize()

    async with get_client() as client:
        await client.get("/health")
        response = await client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text
