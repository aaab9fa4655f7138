from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str = Field(min_length=1)


class QueryRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int | None = Field(default=None, ge=1, le=50)
    system_prompt: str | None = None
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    history: list[ChatMessage] = Field(default_factory=list)


class SourceChunk(BaseModel):
    id: str
    content: str
    metadata: dict[str, Any]
    score: float


class QueryResponse(BaseModel):
    answer: str
    sources: list[SourceChunk]
    query: str
    low_confidence: bool = False


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    top_k: int = Field(default=5, ge=1, le=50)


class SearchResponse(BaseModel):
    results: list[SourceChunk]
    query: str


class AddDocumentRequest(BaseModel):
    id: str | None = None
    content: str = Field(min_length=1)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AddDocumentResponse(BaseModel):
    id: str
    message: str = "Document added successfully"


class DocumentItem(BaseModel):
    id: str
    content: str
    metadata: dict[str, Any]


class DocumentListResponse(BaseModel):
    documents: list[DocumentItem]
    total: int
    limit: int
    offset: int


class StatsResponse(BaseModel):
    initialized: bool
    document_count: int
    top_k: int
    similarity_threshold: float
    data_source_type: str | None = None
    llm_model: str | None = None
    embedding_dimension: int | None = None


class ConfigUpdateRequest(BaseModel):
    top_k: int | None = Field(default=None, ge=1, le=50)
    similarity_threshold: float | None = Field(default=None, ge=-1.0, le=1.0)


class ConfigUpdateResponse(BaseModel):
    message: str = "Configuration updated"
    stats: StatsResponse


class RefreshResponse(BaseModel):
    message: str = "Index refreshed"
    document_count: int
