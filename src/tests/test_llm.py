from __future__ import annotations

import json

import httpx
import pytest

from src.rag.answerer import DEFAULT_REFUSAL, ExtractiveAnswerer
from src.rag.llm import (
    GenerationOptions,
    LLMError,
    OllamaAnswerer,
    OpenAICompatibleAnswerer,
    build_llm_answerer,
    build_messages,
)
from src.rag.types import Document

pytestmark = pytest.mark.anyio

DOCS = [Document(doc_id="2", content="Paris is the capital of France", metadata={"source": "geo"})]


def test_build_messages_layout() -> None:
    messages = build_messages(
        "Capital?",
        DOCS,
        "system text",
        [{"role": "assistant", "content": "Hi"}, {"role": "user", "content": "  "}],
    )

    assert messages[0] == {"role": "system", "content": "system text"}
    assert messages[1] == {"role": "assistant", "content": "Hi"}
    assert messages[-1]["content"] == (
        "Context:\n[geo]\nParis is the capital of France\n\nQuestion: Capital?"
    )
    assert len(messages) == 3


def test_build_messages_without_documents() -> None:
    messages = build_messages("Capital?", [], "system text", None)

    assert messages[-1] == {"role": "user", "content": "Question: Capital?"}


async def test_openai_compatible_generate_response() -> None:
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["auth"] = request.headers.get("authorization")
        captured["payload"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": "Paris."}}]})

    answerer = OpenAICompatibleAnswerer(
        api_key="secret",
        model="llama-test",
        base_url="https://llm.test/v1",
        transport=httpx.MockTransport(handler),
    )

    answer = await answerer.generate_response(
        "Capital?", DOCS, GenerationOptions(temperature=0.2, max_tokens=64)
    )

    payload = captured["payload"]
    assert answer == "Paris."
    assert captured["url"] == "https://llm.test/v1/chat/completions"
    assert captured["auth"] == "Bearer secret"
    assert payload["model"] == "llama-test"
    assert payload["temperature"] == 0.2
    assert payload["max_tokens"] == 64
    assert payload["stream"] is False


async def test_openai_compatible_streaming_reads_sse() -> None:
    body = "".join(
        f"data: {json.dumps({'choices': [{'delta': {'content': piece}}]})}\n\n"
        for piece in ("Par", "is")
    )
    body += 'data: {"choices": [{"delta": {}}]}\n\n: keep-alive\n\ndata: [DONE]\n\n'

    def handler(request: httpx.Request) -> httpx.Response:
        assert json.loads(request.content)["stream"] is True
        return httpx.Response(
            200, content=body.encode(), headers={"content-type": "text/event-stream"}
        )

    answerer = OpenAICompatibleAnswerer(
        api_key="secret", transport=httpx.MockTransport(handler)
    )

    pieces = [piece async for piece in answerer.generate_streaming_response("Capital?", DOCS)]

    assert pieces == ["Par", "is"]


async def test_openai_compatible_http_error_becomes_llm_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": "boom"})

    answerer = OpenAICompatibleAnswerer(api_key="secret", transport=httpx.MockTransport(handler))

    with pytest.raises(LLMError):
        await answerer.generate_response("Capital?", DOCS)
    with pytest.raises(LLMError):
        [piece async for piece in answerer.generate_streaming_response("Capital?", DOCS)]


async def test_openai_compatible_requires_api_key() -> None:
    with pytest.raises(LLMError):
        await OpenAICompatibleAnswerer(api_key=None).initialize()


async def test_ollama_streaming_reads_ndjson() -> None:
    lines = [
        {"message": {"content": "Par"}, "done": False},
        {"message": {"content": "is"}, "done": False},
        {"message": {"content": ""}, "done": True},
    ]
    body = "\n".join(json.dumps(line) for line in lines) + "\n"

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/chat"
        return httpx.Response(200, content=body.encode())

    answerer = OllamaAnswerer(
        base_url="http://ollama.test", model="llama3.1", transport=httpx.MockTransport(handler)
    )

    pieces = [piece async for piece in answerer.generate_streaming_response("Capital?", DOCS)]

    assert pieces == ["Par", "is"]


async def test_ollama_generate_response() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        assert payload["options"]["temperature"] == 0.7
        return httpx.Response(200, json={"message": {"content": "Paris."}})

    answerer = OllamaAnswerer(
        base_url="http://ollama.test", model="llama3.1", transport=httpx.MockTransport(handler)
    )

    assert await answerer.generate_response("Capital?", DOCS) == "Paris."


def test_build_llm_answerer_selects_provider() -> None:
    kwargs = dict(
        groq_api_key="g",
        groq_model="groq-model",
        groq_base_url="https://groq.test/v1",
        openai_api_key="o",
        openai_model="gpt-test",
        openai_base_url="https://openai.test/v1",
        ollama_base_url="http://ollama.test",
        ollama_model="llama3.1",
        temperature=0.5,
        max_tokens=128,
        timeout=5.0,
    )

    groq = build_llm_answerer("groq", **kwargs)
    openai = build_llm_answerer("OpenAI", **kwargs)
    ollama = build_llm_answerer("ollama", **kwargs)

    assert groq.model == "groq-model"
    assert openai.provider == "openai"
    assert isinstance(ollama, OllamaAnswerer)
    with pytest.raises(LLMError):
        build_llm_answerer("unknown", **kwargs)


async def test_extractive_answerer_streams_same_text() -> None:
    answerer = ExtractiveAnswerer(max_chars=200)

    answer = await answerer.generate_response("Capital?", DOCS)
    pieces = [piece async for piece in answerer.generate_streaming_response("Capital?", DOCS)]

    assert answer == "Based on the provided context: Paris is the capital of France"
    assert "".join(pieces) == answer
    assert await answerer.generate_response("Capital?", []) == DEFAULT_REFUSAL
