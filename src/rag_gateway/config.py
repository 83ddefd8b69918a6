"""Configuration models for the gateway and RAG pipeline."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ChunkStrategy = Literal["fixed", "sentence", "recursive"]


class ChunkingConfig(BaseModel):
    """Configures character-based chunking behavior.

    Non-positive sizes and negative overlaps are normalized by the chunker
    (size -> 1000, overlap -> 0) rather than rejected.
    """

    chunk_size: int = 1000
    chunk_overlap: int = 200
    strategy: ChunkStrategy = "recursive"


class EmbeddingConfig(BaseModel):
    """Configures the batched embedding service."""

    model: str = "text-embedding-3-small"
    provider: str | None = None
    batch_size: int = Field(default=100, ge=1)


class RetrievalConfig(BaseModel):
    """Configures retrieval defaults and the tool models used around it."""

    query_top_k: int = Field(default=5, ge=1)
    search_top_k: int = Field(default=10, ge=1)
    rerank_preview_chars: int = Field(default=500, ge=1)
    # Model for rewrite/HyDE/rerank calls; empty selects the gateway default.
    tool_model: str = ""
    tool_provider: str | None = None


class GatewayConfig(BaseModel):
    """Configures provider selection and the retry policy."""

    default_provider: str = "openai"
    fallback_provider: str | None = None
    fallback_model: str | None = None
    default_model: str = "gpt-4"
    max_retries: int = Field(default=3, ge=0)
    backoff_base_seconds: float = Field(default=0.5, ge=0.0)


class Settings(BaseSettings):
    """Process settings loaded from environment variables (or `.env`)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    openai_api_key: str = ""
    anthropic_api_key: str = ""
    ollama_url: str = ""

    llm_default_provider: str = "openai"
    llm_default_model: str = "gpt-4"
    llm_fallback_provider: str = ""
    llm_fallback_model: str = ""
    llm_max_retries: int = Field(default=3, ge=0)
    llm_backoff_base_seconds: float = Field(default=0.5, ge=0.0)

    embedding_model: str = "text-embedding-3-small"
    embedding_batch_size: int = Field(default=100, ge=1)

    request_timeout_seconds: float = Field(default=120.0, gt=0.0)
    log_level: str = "INFO"

    def gateway_config(self) -> GatewayConfig:
        return GatewayConfig(
            default_provider=self.llm_default_provider,
            fallback_provider=self.llm_fallback_provider or None,
            fallback_model=self.llm_fallback_model or None,
            default_model=self.llm_default_model,
            max_retries=self.llm_max_retries,
            backoff_base_seconds=self.llm_backoff_base_seconds,
        )

    def embedding_config(self) -> EmbeddingConfig:
        return EmbeddingConfig(
            model=self.embedding_model,
            batch_size=self.embedding_batch_size,
        )


def get_settings() -> Settings:
    return Settings()
