"""Configuration management using pydantic-settings."""

import logging

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "Notebook Knowledge Engine"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./knowledge_engine.db"

    # Embeddings
    EMBEDDING_PROVIDER: str = "openai"  # 'openai' or 'ollama'
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_EMBEDDING_MODEL: str = "text-embedding-3-small"
    EMBEDDING_DIMENSION: int = 1536
    EMBEDDING_MAX_CHARS: int = 8000  # Rough ceiling for text-embedding-3-small input
    EMBEDDING_TIMEOUT: float = 30.0
    EMBEDDING_CONCURRENCY: int = 5  # Parallel provider calls per embed_batch

    # Ollama (local development)
    OLLAMA_BASE_URL: str = "http://ollama:11434"
    OLLAMA_EMBEDDING_MODEL: str = "mxbai-embed-large"

    # Retrieval
    RAG_TOP_K: int = 5
    RAG_SIMILARITY_THRESHOLD: float = 0.7
    RAG_MAX_CONTEXT_TOKENS: int = 4000

    # Chunking of extracted document / transcript text
    CHUNK_MAX_CHARS: int = 1500
    CHUNK_OVERLAP_CHARS: int = 200

    # Airtable
    AIRTABLE_API_KEY: str = ""
    AIRTABLE_BASE_ID: str = ""
    AIRTABLE_API_URL: str = "https://api.airtable.com/v0"
    AIRTABLE_PAGE_SIZE: int = 100  # Airtable maximum
    AIRTABLE_REQUESTS_PER_SECOND: float = 5.0  # Airtable per-base limit
    AIRTABLE_PARTNER_ID: str = ""  # Tenant that owns synced rows
    SYNC_TABLE_CONCURRENCY: int = 2

    # n8n automation webhooks
    N8N_WEBHOOK_URL: str = ""
    N8N_API_KEY: str = ""
    WEBHOOK_TIMEOUT: float = 30.0  # seconds per attempt
    WEBHOOK_MAX_RETRIES: int = 3

    @property
    def airtable_configured(self) -> bool:
        """Check if Airtable credentials and base are set."""
        return bool(self.AIRTABLE_API_KEY and self.AIRTABLE_BASE_ID)

    @property
    def webhooks_configured(self) -> bool:
        """Check if an automation endpoint is set."""
        return bool(self.N8N_WEBHOOK_URL)

    @model_validator(mode="after")
    def check_integration_settings(self) -> "Settings":
        """Warn about half-configured integrations."""
        if self.AIRTABLE_BASE_ID and not self.AIRTABLE_API_KEY:
            logging.warning("AIRTABLE_BASE_ID is set but AIRTABLE_API_KEY is empty")
        if self.AIRTABLE_API_KEY and not self.AIRTABLE_PARTNER_ID:
            logging.warning(
                "AIRTABLE_PARTNER_ID is empty; synced records need a tenant to be retrievable"
            )
        if self.N8N_API_KEY and not self.N8N_WEBHOOK_URL:
            logging.warning("N8N_API_KEY is set but N8N_WEBHOOK_URL is empty")
        return self


settings = Settings()
