"""Configuration management for Archive Wisdom.

This module handles application configuration using Pydantic settings.
Configuration can be loaded from environment variables or .env files.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with
    the ARCHIVE_WISDOM_ prefix (e.g., ARCHIVE_WISDOM_OLLAMA_HOST).
    """

    model_config = SettingsConfigDict(
        env_prefix="ARCHIVE_WISDOM_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Storage
    database_path: Path = Field(
        default=Path("archive_wisdom.sqlite3"),
        description="Path to the SQLite database holding archives, messages and vectors",
    )
    uploads_dir: Path = Field(
        default=Path("uploads"),
        description="Directory where uploaded mbox files are kept",
    )

    # AI provider selection
    ai_provider: str = Field(
        default="openai",
        description="Embedding/chat provider: 'openai' or 'ollama'",
    )
    ai_timeout_seconds: int = Field(
        default=60,
        description="Timeout for embedding and chat requests in seconds",
    )
    embedding_max_chars: int = Field(
        default=8000,
        description="Input text is truncated to this many characters before embedding",
    )

    # OpenAI-compatible hosted API
    openai_api_key: str | None = Field(
        default=None,
        description="API key for the hosted provider; the provider is not ready without it",
    )
    openai_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the OpenAI-compatible REST API",
    )
    openai_embedding_model: str = Field(
        default="text-embedding-3-small",
        description="Embedding model used by the hosted provider",
    )
    openai_chat_model: str = Field(
        default="gpt-4o-mini",
        description="Chat model used by the hosted provider",
    )

    # Ollama Configuration
    ollama_host: str = Field(
        default="http://localhost:11434",
        description="Ollama API host URL",
    )
    ollama_embedding_model: str = Field(
        default="nomic-embed-text",
        description="Ollama model used for embeddings",
    )
    ollama_chat_model: str = Field(
        default="gpt-oss",
        description="Ollama model used for chat generation",
    )

    # Archive fetching
    fetch_timeout_seconds: int = Field(
        default=60,
        description="Timeout for archive index and monthly file downloads in seconds",
    )

    # Vector store
    min_vector_content_length: int = Field(
        default=25,
        description="Messages whose cleaned body is not longer than this are not embedded",
    )
    vector_text_max_chars: int = Field(
        default=2000,
        description="Maximum body characters included in the composed embedding text",
    )
    vector_cache_load_limit: int = Field(
        default=1000,
        description="Maximum number of vectors loaded into memory on first query",
    )
    vectorize_batch_size: int = Field(
        default=100,
        description="Messages embedded per batch by the catch-up vectorizer",
    )
    vectorize_batch_delay_seconds: float = Field(
        default=1.0,
        description="Pause between catch-up vectorizer batches",
    )

    # Application Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
