from __future__ import annotations

import os
from dataclasses import dataclass

try:
    from dotenv import load_dotenv
except ImportError:  # pragma: no cover - optional in minimal setups
    load_dotenv = None

if load_dotenv is not None:
    load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    top_k: int = int(os.getenv("RAG_TOP_K", "5"))
    similarity_threshold: float = float(os.getenv("RAG_SIMILARITY_THRESHOLD", "0.3"))
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "384"))
    vector_index_enabled: bool = _env_bool("RAG_VECTOR_INDEX", "true")
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    chunk_overlap: int = int(os.getenv("RAG_CHUNK_OVERLAP", "200"))
    datasource: str = os.getenv("RAG_DATASOURCE", "file")
    data_path: str = os.getenv("RAG_DATA_PATH", "./data")
    recursive: bool = _env_bool("RAG_RECURSIVE", "false")
    file_extensions_raw: str = os.getenv("RAG_FILE_EXTENSIONS", "")
    watch: bool = _env_bool("RAG_WATCH", "true")
    watch_debounce: float = float(os.getenv("RAG_WATCH_DEBOUNCE", "2.0"))
    watch_poll_interval: float = float(os.getenv("RAG_WATCH_POLL_INTERVAL", "1.0"))
    csv_path: str | None = os.getenv("RAG_CSV_PATH")
    csv_content_column: str | None = os.getenv("RAG_CSV_CONTENT_COLUMN")
    csv_id_column: str | None = os.getenv("RAG_CSV_ID_COLUMN")
    csv_delimiter: str = os.getenv("RAG_CSV_DELIMITER", ",")
    sql_database_uri: str | None = os.getenv("RAG_SQL_DATABASE_URI")
    sql_table: str = os.getenv("RAG_SQL_TABLE", "documents")
    sql_id_column: str = os.getenv("RAG_SQL_ID_COLUMN", "id")
    sql_content_column: str = os.getenv("RAG_SQL_CONTENT_COLUMN", "content")
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "groq")
    groq_api_key: str | None = os.getenv("GROQ_API_KEY")
    groq_model: str = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
    groq_base_url: str = os.getenv("GROQ_BASE_URL", "https://api.groq.com/openai/v1")
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_chat_model: str | None = os.getenv("OPENAI_CHAT_MODEL")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.1")
    llm_temperature: float = float(os.getenv("RAG_LLM_TEMPERATURE", "0.7"))
    llm_max_tokens: int = int(os.getenv("RAG_LLM_MAX_TOKENS", "2048"))
    llm_timeout: float = float(os.getenv("RAG_LLM_TIMEOUT", "60"))
    system_prompt: str | None = os.getenv("RAG_SYSTEM_PROMPT")
    log_level: str = os.getenv("RAG_LOG_LEVEL", "INFO")
    metrics_enabled: bool = _env_bool("RAG_METRICS_ENABLED", "true")

    @property
    def file_extensions(self) -> tuple[str, ...]:
        raw = self.file_extensions_raw
        extensions = []
        for value in raw.split(","):
            value = value.strip().lower()
            if not value:
                continue
            extensions.append(value if value.startswith(".") else f".{value}")
        return tuple(extensions)


settings = Settings()
