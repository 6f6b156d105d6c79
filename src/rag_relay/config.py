"""Configuration models for the RAG relay."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetrievalConfig(BaseModel):
    """Bounds and thresholds for the key-value similarity scan."""

    key_prefix: str = "doc:"
    max_pages: int = Field(default=20, ge=1)
    max_candidates: int = Field(default=1000, ge=1)
    top_k: int = Field(default=5, ge=1)
    min_score: float = Field(default=0.2, ge=-1.0, le=1.0)


class ChunkingConfig(BaseModel):
    """Configures character sliding-window chunking for ingestion."""

    max_chars: int = Field(default=1200, ge=1)
    overlap_chars: int = Field(default=200, ge=0)
    embed_batch_size: int = Field(default=64, ge=1)

    @model_validator(mode="after")
    def _overlap_below_window(self) -> "ChunkingConfig":
        if self.overlap_chars >= self.max_chars:
            raise ValueError("overlap_chars must be less than max_chars")
        return self


class GenerationConfig(BaseModel):
    """Configures the streaming call to the generation service."""

    base_url: str = "https://api.openai.com/v1"
    model: str = "gpt-4o-mini"
    timeout_seconds: float = Field(default=60.0, gt=0.0)
    connect_timeout_seconds: float = Field(default=10.0, gt=0.0)


class Settings(BaseSettings):
    """Process-level settings, read once at startup.

    Nested sections can be overridden with a double underscore, e.g.
    ``RAG_RELAY_RETRIEVAL__TOP_K=8``.
    """

    model_config = SettingsConfigDict(
        env_prefix="RAG_RELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        populate_by_name=True,
    )

    openai_api_key: SecretStr | None = Field(
        default=None, validation_alias="OPENAI_API_KEY"
    )
    embedding_model: str = "text-embedding-3-small"
    store_path: Path = Path("rag_relay.db")
    log_level: str = "INFO"

    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    generation: GenerationConfig = Field(default_factory=GenerationConfig)

    def api_key(self) -> str | None:
        if self.openai_api_key is None:
            return None
        value = self.openai_api_key.get_secret_value().strip()
        return value or None
