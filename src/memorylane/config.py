"""Configuration management for memorylane."""

import logging
import os
import warnings
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)


class RankingWeights(BaseModel):
    """Configurable weights for composite retrieval ranking.

    The ranking formula combines five signals:
        base_score = (
            similarity * similarity_weight +
            recency_factor * recency_weight +
            confidence_score * confidence_weight +
            observation_factor * observation_weight +
            type_boost * type_boost_weight
        )

    Query keyword families add ``query_type_boost`` to matching memory types,
    and each net feedback vote adds ``feedback_increment`` to the final score.

    Weights should sum to 1.0 for normalized base scores.

    Attributes:
        similarity: Weight for vector similarity (0.60 default).
        recency: Weight for time decay since last observation (0.10 default).
        confidence: Weight for extraction confidence (0.15 default).
        observation: Weight for repeated observation (0.10 default).
        type_boost: Weight for high-priority memory types (0.05 default).
        recency_decay_days: Days for the recency factor to fall to 1/e (28 default).
        observation_saturation: Observations at which the factor saturates (10 default).
        query_type_boost: Increment when the query's language matches a type (0.15 default).
        feedback_increment: Score change per net feedback vote (0.05 default).
    """

    similarity: float = Field(
        default=0.60,
        ge=0.0,
        le=1.0,
        description="Weight for vector similarity score",
    )
    recency: float = Field(
        default=0.10,
        ge=0.0,
        le=1.0,
        description="Weight for recency since last observation",
    )
    confidence: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Weight for memory confidence score",
    )
    observation: float = Field(
        default=0.10,
        ge=0.0,
        le=1.0,
        description="Weight for how often a memory was observed",
    )
    type_boost: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Weight for high-priority memory types",
    )
    recency_decay_days: float = Field(
        default=28.0,
        gt=0.0,
        description="Days for the recency factor to decay to 1/e",
    )
    observation_saturation: int = Field(
        default=10,
        ge=1,
        description="Observation count at which the observation factor reaches 1.0",
    )
    query_type_boost: float = Field(
        default=0.15,
        ge=0.0,
        le=1.0,
        description="Score increment when query language matches the memory type",
    )
    feedback_increment: float = Field(
        default=0.05,
        ge=0.0,
        le=1.0,
        description="Score change per net feedback vote",
    )

    @model_validator(mode="after")
    def _warn_if_weights_not_normalized(self) -> "RankingWeights":
        """Warn if weights don't sum to approximately 1.0."""
        total = (
            self.similarity + self.recency + self.confidence + self.observation + self.type_boost
        )
        if abs(total - 1.0) > 0.01:
            warnings.warn(
                f"RankingWeights sum to {total:.3f}, expected ~1.0. "
                f"Base scores may be outside [0, 1]. "
                f"Weights: similarity={self.similarity}, recency={self.recency}, "
                f"confidence={self.confidence}, observation={self.observation}, "
                f"type_boost={self.type_boost}",
                UserWarning,
                stacklevel=2,
            )
            logger.warning(
                "RankingWeights sum to %.3f (expected ~1.0): "
                "similarity=%.2f, recency=%.2f, confidence=%.2f, observation=%.2f, type_boost=%.2f",
                total,
                self.similarity,
                self.recency,
                self.confidence,
                self.observation,
                self.type_boost,
            )
        return self


class Settings(BaseSettings):
    """memorylane configuration loaded from environment variables.

    All settings can be overridden via environment variables with
    the MEMORYLANE_ prefix. For example:
        MEMORYLANE_QDRANT_URL=http://localhost:6333
        MEMORYLANE_EMBEDDING_PROVIDER=openai
        MEMORYLANE_RANKING_WEIGHTS__SIMILARITY=0.7
    """

    # Environment
    env: Literal["development", "production", "test"] = Field(
        default="development",
        description="Environment: development, production, or test",
    )

    # Storage
    qdrant_url: str = Field(
        default="http://localhost:6333",
        description="Qdrant connection URL",
    )
    qdrant_api_key: str | None = Field(
        default=None,
        description="Qdrant API key (for cloud)",
    )
    qdrant_timeout_seconds: int = Field(
        default=10,
        ge=1,
        description="Timeout for individual Qdrant requests",
    )
    collection_prefix: str = Field(
        default="memorylane",
        description="Prefix for Qdrant collection names",
    )

    # Embeddings
    embedding_provider: Literal["openai", "ollama"] = Field(
        default="ollama",
        description="Embedding provider to use",
    )
    embedding_model: str = Field(
        default="mxbai-embed-large",
        description="Embedding model name",
    )
    embedding_dimensions: int = Field(
        default=1024,
        ge=1,
        description="Dimensionality of embedding vectors (must match the model)",
    )
    ollama_url: str = Field(
        default="http://localhost:11434",
        description="Base URL of the Ollama server",
    )
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    anthropic_api_key: str | None = Field(
        default=None,
        description="Anthropic API key",
    )
    embedding_timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Timeout for a single embedding request",
    )
    embedding_cache_enabled: bool = Field(
        default=True,
        description="Enable LRU cache for embeddings to prevent redundant computation",
    )
    embedding_cache_size: int = Field(
        default=1000,
        ge=0,
        le=100000,
        description="Maximum number of embeddings to cache (0 to disable cache)",
    )

    # LLM for extraction
    extraction_model: str = Field(
        default="anthropic:claude-3-5-haiku-latest",
        description="Full model spec for Pydantic AI",
    )
    llm_timeout_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Timeout for a single extraction attempt",
    )
    llm_max_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries after the first extraction attempt (2 = 3 attempts)",
    )
    llm_initial_delay: float = Field(
        default=1.0,
        ge=0.0,
        description="Initial backoff delay between extraction retries",
    )
    llm_max_delay: float = Field(
        default=30.0,
        ge=0.0,
        description="Maximum backoff delay between extraction retries",
    )
    confidence_adjustment_enabled: bool = Field(
        default=True,
        description="Adjust extracted confidence by type priority and wording",
    )

    # Transcripts
    transcripts_dir: Path = Field(
        default_factory=lambda: Path.home() / ".claude" / "projects",
        description="Root directory that holds session transcript files",
    )
    transcript_glob: str = Field(
        default="**/*.jsonl",
        description="Glob pattern (relative to transcripts_dir) for transcript files",
    )
    chunk_min_messages: int = Field(
        default=10,
        ge=1,
        description="Preferred minimum messages per extraction chunk",
    )
    chunk_max_messages: int = Field(
        default=15,
        ge=1,
        description="Maximum messages per extraction chunk (a single long turn may exceed it)",
    )

    # Dedup and retrieval
    similarity_merge_threshold: float = Field(
        default=0.90,
        ge=0.5,
        le=1.0,
        description=(
            "Embedding similarity at or above which a candidate is merged into "
            "an existing memory instead of being stored as a new one"
        ),
    )
    semantic_threshold: float = Field(
        default=0.40,
        ge=0.0,
        le=1.0,
        description="Minimum cosine similarity for the semantic retrieval path",
    )
    retrieval_default_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="Default number of ranked results returned by retrieve()",
    )
    retrieval_candidate_limit: int = Field(
        default=50,
        ge=1,
        le=1000,
        description="Maximum candidates fetched per retrieval path before ranking",
    )
    ranking_weights: RankingWeights = Field(
        default_factory=RankingWeights,
        description="Weights for composite ranking signals",
    )

    # Scheduler
    extraction_enabled: bool = Field(
        default=True,
        description="Start the periodic extraction loop with the API",
    )
    extraction_interval_seconds: int = Field(
        default=900,
        ge=1,
        description="Seconds between scheduled extraction runs",
    )
    extraction_initial_delay_seconds: int = Field(
        default=0,
        ge=0,
        description="Seconds to wait before the first scheduled run",
    )
    max_concurrent_files: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Maximum transcript files processed concurrently within one run",
    )
    max_chunk_attempts: int = Field(
        default=3,
        ge=1,
        description="Failed attempts at the same position before a chunk is skipped",
    )
    event_queue_size: int = Field(
        default=100,
        ge=1,
        description="Capacity of each progress event subscriber queue",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format",
    )

    # HTTP server
    api_host: str = Field(
        default="127.0.0.1",
        description="Interface the API server binds to",
    )
    api_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port the API server listens on",
    )

    # CORS Configuration
    cors_enabled: bool = Field(
        default=True,
        description="Enable CORS middleware",
    )
    cors_allow_origins: list[str] = Field(
        default_factory=lambda: ["*"],
        description="List of allowed CORS origins",
    )

    model_config = {
        "env_prefix": "MEMORYLANE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",
    }

    @model_validator(mode="after")
    def validate_chunk_bounds(self) -> "Settings":
        """Validate chunk sizes are ordered correctly."""
        if self.chunk_min_messages > self.chunk_max_messages:
            raise ValueError(
                f"chunk_min_messages ({self.chunk_min_messages}) must not exceed "
                f"chunk_max_messages ({self.chunk_max_messages})."
            )
        return self

    @model_validator(mode="after")
    def validate_thresholds(self) -> "Settings":
        """Validate the semantic floor sits below the merge threshold.

        A semantic floor at or above the merge threshold would only ever
        surface memories that should already have been merged together.
        """
        if self.semantic_threshold >= self.similarity_merge_threshold:
            raise ValueError(
                f"semantic_threshold ({self.semantic_threshold}) must be less than "
                f"similarity_merge_threshold ({self.similarity_merge_threshold})."
            )
        return self

    @model_validator(mode="after")
    def sync_provider_api_keys(self) -> "Settings":
        """Sync MEMORYLANE_*_API_KEY with the variables provider SDKs read.

        Either name may be set. Pydantic AI and the OpenAI SDK read the
        unprefixed variables, so the prefixed values are forwarded there.
        """
        for field_name, env_name in (
            ("openai_api_key", "OPENAI_API_KEY"),
            ("anthropic_api_key", "ANTHROPIC_API_KEY"),
        ):
            if not getattr(self, field_name):
                fallback_key = os.environ.get(env_name)
                if fallback_key:
                    object.__setattr__(self, field_name, fallback_key)
                    logger.debug("Using %s as fallback for MEMORYLANE_%s", env_name, env_name)

            value = getattr(self, field_name)
            if value and not os.environ.get(env_name):
                os.environ[env_name] = value
                logger.debug("Synced MEMORYLANE_%s to %s", env_name, env_name)

        return self


# Global settings instance
settings = Settings()
