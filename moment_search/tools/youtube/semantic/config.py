"""Configuration for semantic video moment search.

Provides Pydantic settings for configuring:
- Embedding provider credentials and preference
- Provider models and endpoints (OpenAI, Hugging Face, Gemini)
- Deepgram audio transcription fallback
- Batch embedding pacing and search relevance thresholds
- Cache retention and persistence options

Environment Variables:
    MOMENT_SEARCH_OPENAI_API_KEY: OpenAI API key (provider A)
    MOMENT_SEARCH_HUGGINGFACE_API_KEY: Hugging Face API key (provider B)
    MOMENT_SEARCH_GEMINI_API_KEY: Google AI API key (provider C)
    MOMENT_SEARCH_DEEPGRAM_API_KEY: Deepgram API key for audio transcription
    MOMENT_SEARCH_PREFERRED_EMBEDDING_PROVIDER: openai, huggingface, or gemini
    MOMENT_SEARCH_BATCH_DELAY_SECONDS: Pause between embedding batches (default: 0.1)
    MOMENT_SEARCH_MAX_RESULTS: Maximum search results (default: 8)
    MOMENT_SEARCH_CACHE_TTL_SECONDS: Cache retention window (default: 7 days)
    MOMENT_SEARCH_PERSIST_PATH: JSON cache file (optional)
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SEVEN_DAYS_SECONDS = 7 * 24 * 60 * 60


def _get_default_persist_path() -> str | None:
    """Get XDG-compliant default cache file path.

    Returns:
        Path to the JSON cache file.
    """
    xdg_data_home = os.environ.get("XDG_DATA_HOME")
    if xdg_data_home:
        base_dir = Path(xdg_data_home)
    else:
        base_dir = Path.home() / ".local" / "share"

    return str(base_dir / "moment-search" / "cache.json")


class SemanticSearchConfig(BaseSettings):
    """Configuration for semantic video moment search.

    Configures provider credentials, embedding endpoints, transcription
    fallback, batching, relevance filtering and cache retention.
    """

    model_config = SettingsConfigDict(
        env_prefix="MOMENT_SEARCH_",
        case_sensitive=False,
        extra="ignore",
    )

    # Provider credentials
    openai_api_key: str | None = Field(default=None, description="OpenAI API key.")
    huggingface_api_key: str | None = Field(
        default=None, description="Hugging Face Inference API key."
    )
    gemini_api_key: str | None = Field(default=None, description="Google AI API key.")
    deepgram_api_key: str | None = Field(
        default=None, description="Deepgram API key for audio transcription."
    )
    preferred_embedding_provider: Literal["openai", "huggingface", "gemini"] | None = (
        Field(
            default=None,
            description="Provider to use when several keys are configured.",
        )
    )

    # Embedding provider endpoints
    openai_embedding_model: str = Field(default="text-embedding-3-small")
    openai_embedding_url: str = Field(default="https://api.openai.com/v1/embeddings")
    huggingface_embedding_url: str = Field(
        default="https://api-inference.huggingface.co/models/BAAI/bge-base-en-v1.5",
    )
    gemini_embedding_model: str = Field(default="models/embedding-001")
    gemini_embedding_url: str = Field(
        default=(
            "https://generativelanguage.googleapis.com/v1beta/"
            "models/embedding-001:embedContent"
        ),
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for provider HTTP calls.",
    )

    # Audio transcription fallback
    deepgram_url: str = Field(default="https://api.deepgram.com/v1/listen")
    deepgram_model: str = Field(default="nova-2")
    deepgram_language: str = Field(default="en-US")
    deepgram_timeout_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Transcribing a long video can take minutes.",
    )

    # Transcript acquisition
    transcript_languages: list[str] = Field(
        default_factory=lambda: ["en"],
        description="Preferred caption languages, in priority order.",
    )
    panel_poll_attempts: int = Field(
        default=10,
        ge=1,
        le=50,
        description="Polls for the transcript panel before giving up.",
    )
    panel_poll_base_delay: float = Field(default=1.0, ge=0)
    panel_poll_step: float = Field(default=0.5, ge=0)
    estimated_segment_seconds: int = Field(
        default=5,
        ge=1,
        description="Duration assigned to panel segments, which only carry a start time.",
    )

    # Batch embedding and search
    batch_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Pause between embedding batches to respect provider rate limits.",
    )
    max_results: int = Field(default=8, ge=1, le=100)
    min_similarity: float = Field(default=0.3, ge=-1.0, le=1.0)
    relative_similarity: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Fraction of the best match's similarity used as a cutoff.",
    )

    # Cache configuration
    cache_ttl_seconds: int = Field(default=SEVEN_DAYS_SECONDS, ge=60)
    sweep_interval_seconds: int = Field(default=3600, ge=1)
    persist_path: str | None = Field(
        default_factory=_get_default_persist_path,
        description="JSON file backing the cache. None for in-memory only.",
    )

    @field_validator("persist_path")
    @classmethod
    def expand_persist_path(cls, value: str | None) -> str | None:
        """Expand ~ in the persistence path."""
        if value is None:
            return None
        return str(Path(value).expanduser())

    @property
    def provider_keys(self) -> dict[str, str | None]:
        """Get configured embedding credentials keyed by provider id."""
        return {
            "openai": self.openai_api_key,
            "huggingface": self.huggingface_api_key,
            "gemini": self.gemini_api_key,
        }


@lru_cache
def get_semantic_config() -> SemanticSearchConfig:
    """Get cached semantic search configuration.

    Returns:
        Singleton SemanticSearchConfig instance loaded from environment.
    """
    return SemanticSearchConfig()
