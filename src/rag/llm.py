from __future__ import annotations

"""LLM answerers for grounded generation, blocking and streaming."""

from dataclasses import dataclass, field
import json
import logging
from typing import Any, AsyncIterator, Protocol, Sequence

import httpx

from src.rag.types import Document


class LLMError(RuntimeError):
    """Raised when LLM requests fail or responses are invalid."""
    pass


logger = logging.getLogger(__name__)


_SYSTEM_PROMPT = (
    "You are a helpful AI assistant that answers questions based on the provided context.\n\n"
    "Instructions:\n"
    "- Answer questions accurately based ONLY on the context provided\n"
    "- If the context doesn't contain enough information to answer, say so clearly\n"
    "- Be concise but thorough in your responses\n"
    "- If asked about something not in the context, acknowledge the limitation\n"
    "- Cite specific parts of the context when relevant\n"
    "- Format your response clearly with proper structure when appropriate"
)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
GROQ_DEFAULT_MODEL = "llama-3.3-70b-versatile"


@dataclass(frozen=True)
class GenerationOptions:
    """Per-call overrides for a generation request."""
    system_prompt: str | None = None
    temperature: float | None = None
    history: list[dict[str, str]] | None = None
    max_tokens: int | None = None


class GenerationProvider(Protocol):
    """Text-completion provider consumed by the engine."""
    model: str

    async def initialize(self) -> None:
        ...

    async def generate_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> str:
        ...

    def generate_streaming_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        ...


def build_context_block(documents: Sequence[Document]) -> str:
    """Format retrieved documents as labelled context sections."""
    sections: list[str] = []
    for idx, document in enumerate(documents, start=1):
        source = document.metadata.get("source") or f"Document {idx}"
        sections.append(f"[{source}]\n{document.content}")
    return "\n\n---\n\n".join(sections)


def build_messages(
    query: str,
    documents: Sequence[Document],
    system_prompt: str,
    history: list[dict[str, str]] | None,
) -> list[dict[str, str]]:
    """Build chat messages: system prompt, history, then the grounded question."""
    context_block = build_context_block(documents)
    if context_block:
        user_message = f"Context:\n{context_block}\n\nQuestion: {query}"
    else:
        user_message = f"Question: {query}"
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend(_normalize_history(history))
    messages.append({"role": "user", "content": user_message})
    return messages


def _normalize_history(history: list[dict[str, str]] | None) -> list[dict[str, str]]:
    """Keep well-formed history turns with a known role."""
    if not history:
        return []
    turns: list[dict[str, str]] = []
    for item in history:
        role = str(item.get("role", "user")).strip().lower()
        content = str(item.get("content", "")).strip()
        if not content:
            continue
        if role not in {"user", "assistant", "system"}:
            role = "user"
        turns.append({"role": role, "content": content})
    return turns


@dataclass(frozen=True)
class OpenAICompatibleAnswerer:
    """LLM answerer backed by an OpenAI-compatible chat completions API (Groq by default)."""
    api_key: str | None
    model: str = GROQ_DEFAULT_MODEL
    base_url: str = GROQ_BASE_URL
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout: float = 60.0
    system_prompt: str = _SYSTEM_PROMPT
    provider: str = "groq"
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def initialize(self) -> None:
        """Validate provider configuration."""
        if not self.api_key:
            raise LLMError(f"API key is required for the {self.provider} provider")
        if not self.model:
            raise LLMError(f"A chat model is required for the {self.provider} provider")

    def _payload(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None,
        stream: bool,
    ) -> dict[str, Any]:
        options = options or GenerationOptions()
        temperature = self.temperature if options.temperature is None else options.temperature
        return {
            "model": self.model,
            "messages": build_messages(
                query,
                documents,
                options.system_prompt or self.system_prompt,
                options.history,
            ),
            "temperature": temperature,
            "max_tokens": options.max_tokens or self.max_tokens,
            "stream": stream,
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url.rstrip("/"),
            timeout=self.timeout,
            transport=self.transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def generate_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> str:
        """Generate a grounded answer with a single completion request."""
        payload = self._payload(query, documents, options, stream=False)
        try:
            async with self._client() as client:
                response = await client.post("/chat/completions", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise LLMError(str(exc)) from exc

        choices = data.get("choices") or []
        if not choices:
            raise LLMError(f"Invalid {self.provider} response")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if content is None:
            return ""
        if not isinstance(content, str):
            raise LLMError(f"Invalid {self.provider} response content")
        return content

    async def generate_streaming_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        """Yield answer pieces from a server-sent events completion stream."""
        payload = self._payload(query, documents, options, stream=True)
        try:
            async with self._client() as client:
                async with client.stream("POST", "/chat/completions", json=payload) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.startswith("data:"):
                            continue
                        data = line[len("data:"):].strip()
                        if data == "[DONE]":
                            break
                        piece = _parse_stream_delta(data)
                        if piece:
                            yield piece
        except httpx.HTTPError as exc:
            raise LLMError(str(exc)) from exc


def _parse_stream_delta(data: str) -> str:
    """Extract ``choices[0].delta.content`` from an SSE data payload."""
    try:
        chunk = json.loads(data)
    except json.JSONDecodeError as exc:
        raise LLMError("Invalid streaming chunk") from exc
    choices = chunk.get("choices") or []
    if not choices:
        return ""
    delta = choices[0].get("delta") or {}
    content = delta.get("content")
    return content if isinstance(content, str) else ""


@dataclass(frozen=True)
class OllamaAnswerer:
    """LLM answerer backed by Ollama chat API."""
    base_url: str
    model: str
    temperature: float = 0.7
    max_tokens: int = 2048
    timeout: float = 60.0
    system_prompt: str = _SYSTEM_PROMPT
    transport: httpx.AsyncBaseTransport | None = field(default=None, repr=False)

    async def initialize(self) -> None:
        """Validate provider configuration."""
        if not self.model:
            raise LLMError("OLLAMA_MODEL is required for the ollama provider")

    def _payload(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None,
        stream: bool,
    ) -> dict[str, Any]:
        options = options or GenerationOptions()
        temperature = self.temperature if options.temperature is None else options.temperature
        return {
            "model": self.model,
            "messages": build_messages(
                query,
                documents,
                options.system_prompt or self.system_prompt,
                options.history,
            ),
            "stream": stream,
            "options": {
                "temperature": temperature,
                "num_predict": options.max_tokens or self.max_tokens,
            },
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url.rstrip("/"),
            timeout=self.timeout,
            transport=self.transport,
        )

    async def generate_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> str:
        """Generate a grounded answer using Ollama."""
        payload = self._payload(query, documents, options, stream=False)
        try:
            async with self._client() as client:
                response = await client.post("/api/chat", json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPError as exc:
            raise LLMError(str(exc)) from exc
        message = data.get("message") or {}
        content = message.get("content")
        if not isinstance(content, str):
            raise LLMError("Invalid LLM response")
        return content

    async def generate_streaming_response(
        self,
        query: str,
        documents: Sequence[Document],
        options: GenerationOptions | None = None,
    ) -> AsyncIterator[str]:
        """Yield answer pieces from Ollama's newline-delimited JSON stream."""
        payload = self._payload(query, documents, options, stream=True)
        try:
            async with self._client() as client:
                async with client.stream("POST", "/api/chat", json=payload) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        if not line.strip():
                            continue
                        try:
                            chunk = json.loads(line)
                        except json.JSONDecodeError as exc:
                            raise LLMError("Invalid streaming chunk") from exc
                        content = (chunk.get("message") or {}).get("content")
                        if isinstance(content, str) and content:
                            yield content
                        if chunk.get("done"):
                            break
        except httpx.HTTPError as exc:
            raise LLMError(str(exc)) from exc


def build_llm_answerer(
    provider: str,
    *,
    groq_api_key: str | None,
    groq_model: str,
    groq_base_url: str,
    openai_api_key: str | None,
    openai_model: str | None,
    openai_base_url: str,
    ollama_base_url: str,
    ollama_model: str,
    temperature: float,
    max_tokens: int,
    timeout: float,
    system_prompt: str | None = None,
) -> GenerationProvider:
    """Factory for LLM answerers based on provider."""
    resolved_prompt = system_prompt or _SYSTEM_PROMPT
    normalized = provider.strip().lower()
    if normalized == "groq":
        return OpenAICompatibleAnswerer(
            api_key=groq_api_key,
            model=groq_model,
            base_url=groq_base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            system_prompt=resolved_prompt,
            provider="groq",
        )
    if normalized == "openai":
        return OpenAICompatibleAnswerer(
            api_key=openai_api_key,
            model=openai_model or "",
            base_url=openai_base_url,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            system_prompt=resolved_prompt,
            provider="openai",
        )
    if normalized == "ollama":
        return OllamaAnswerer(
            base_url=ollama_base_url,
            model=ollama_model,
            temperature=temperature,
            max_tokens=max_tokens,
            timeout=timeout,
            system_prompt=resolved_prompt,
        )
    raise LLMError(f"Unsupported LLM provider: {provider}")
