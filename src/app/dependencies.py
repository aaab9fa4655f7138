from __future__ import annotations

from functools import lru_cache

from src.app.settings import Settings, settings
from src.datasources.base import DataSource
from src.datasources.csv_source import CSVDataSource
from src.datasources.file_source import DEFAULT_EXTENSIONS, FileDataSource
from src.datasources.sql_source import SQLDataSource
from src.rag.answerer import ExtractiveAnswerer
from src.rag.embeddings import TfidfHashEmbedder
from src.rag.engine import ConfigurationError, RAGEngine
from src.rag.llm import GenerationProvider, build_llm_answerer


@lru_cache
def get_engine() -> RAGEngine:
    return build_engine(settings)


def reset_engine_cache() -> None:
    get_engine.cache_clear()


def build_engine(config: Settings) -> RAGEngine:
    embedder = (
        TfidfHashEmbedder(dimension=config.embedding_dimension)
        if config.vector_index_enabled
        else None
    )
    return RAGEngine(
        data_source=build_data_source(config),
        llm=build_answerer(config),
        embedder=embedder,
        top_k=config.top_k,
        similarity_threshold=config.similarity_threshold,
    )


def build_data_source(config: Settings) -> DataSource:
    kind = config.datasource.lower().strip()
    if kind in {"file", "files", "directory", "folder"}:
        return FileDataSource(
            path=config.data_path,
            recursive=config.recursive,
            extensions=config.file_extensions or DEFAULT_EXTENSIONS,
            chunk_size=config.chunk_size,
            chunk_overlap=config.chunk_overlap,
            watch=config.watch,
            watch_debounce=config.watch_debounce,
            poll_interval=config.watch_poll_interval,
        )
    if kind == "csv":
        if not config.csv_path:
            raise ConfigurationError("RAG_CSV_PATH is required for the csv data source")
        return CSVDataSource(
            path=config.csv_path,
            content_column=config.csv_content_column,
            id_column=config.csv_id_column,
            delimiter=config.csv_delimiter,
        )
    if kind in {"sql", "sqlite", "postgres"}:
        uri = config.sql_database_uri
        if not uri and kind == "sqlite":
            uri = "sqlite:///./data/database.sqlite"
        if not uri:
            raise ConfigurationError(f"RAG_SQL_DATABASE_URI is required for the {kind} data source")
        return SQLDataSource(
            connection_uri=uri,
            table_name=config.sql_table,
            id_column=config.sql_id_column,
            content_column=config.sql_content_column,
        )
    raise ConfigurationError(f"Unknown data source type: {config.datasource}")


def build_answerer(config: Settings) -> GenerationProvider:
    if config.llm_provider.strip().lower() == "extractive":
        return ExtractiveAnswerer()
    return build_llm_answerer(
        config.llm_provider,
        groq_api_key=config.groq_api_key,
        groq_model=config.groq_model,
        groq_base_url=config.groq_base_url,
        openai_api_key=config.openai_api_key,
        openai_model=config.openai_chat_model,
        openai_base_url=config.openai_base_url,
        ollama_base_url=config.ollama_base_url,
        ollama_model=config.ollama_model,
        temperature=config.llm_temperature,
        max_tokens=config.llm_max_tokens,
        timeout=config.llm_timeout,
        system_prompt=config.system_prompt,
    )
