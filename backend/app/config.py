"""Typed settings configuration - single source of truth."""

from functools import lru_cache

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database (unset -> in-memory document store)
    database_url: str | None = None

    # Blob storage
    blob_storage_dir: str | None = None
    max_upload_bytes: int = 5 * 1024 * 1024

    # Auth (no Authorization header -> shared test user, only when enabled)
    allow_anonymous: bool = False

    # LLM provider ("openai" or "stub"; unset -> openai when a key is present)
    llm_provider: str | None = None
    openai_api_key: SecretStr | None = None
    openai_chat_model: str = "gpt-4o-mini"
    openai_embedding_model: str = "text-embedding-3-small"
    llm_temperature: float = 0.3
    llm_max_tokens: int = 1000

    # Vector store (unset key -> in-memory vector store)
    pinecone_api_key: SecretStr | None = None
    pinecone_index: str = "document-chunks"

    # Embeddings and batching
    embedding_dimensions: int = 768
    embedding_batch_size: int = 100
    vector_batch_size: int = 100
    vector_delete_batch_size: int = Field(default=1000, ge=1, le=1000)
    chunk_write_batch_size: int = 500

    # Retry (milliseconds)
    retry_max_attempts: int = 3
    retry_base_backoff_ms: int = 500
    retry_jitter_max_ms: int = 200

    # Chunking (characters)
    chunk_size: int = 1000
    chunk_overlap: int = 200

    # Retrieval
    retrieval_top_k: int = 3
    similarity_threshold: float = 0.7

    # Chat history
    chat_live_window: int = 100
    chat_archive_page_size: int = 100
    chat_append_max_attempts: int = 5

    # Input limits
    title_max_length: int = 100
    text_min_length: int = 10
    text_max_length: int = 50_000

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
