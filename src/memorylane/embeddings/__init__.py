"""Embedding providers for memorylane.

Supports Ollama (local, default) and OpenAI (cloud) providers.

Example:
    ```python
    from memorylane.config import Settings
    from memorylane.embeddings import get_embedder

    embedder = get_embedder(Settings(embedding_provider="ollama"))
    vector = await embedder.embed("We decided to use PostgreSQL")
    ```
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from memorylane.exceptions import ConfigurationError

from .base import Embedder
from .cached import CachedEmbedder
from .ollama import OllamaEmbedder
from .openai import OpenAIEmbedder

if TYPE_CHECKING:
    from memorylane.config import Settings


def get_embedder(settings: Settings | None = None) -> Embedder:
    """Create an embedder based on settings.

    Wraps the provider in a CachedEmbedder when caching is enabled.

    Args:
        settings: Optional settings. Uses default Settings() if None.

    Returns:
        Configured Embedder instance.

    Raises:
        ConfigurationError: If the embedding provider is unknown.
    """
    if settings is None:
        from memorylane.config import Settings

        settings = Settings()

    provider = settings.embedding_provider

    base_embedder: Embedder
    if provider == "ollama":
        base_embedder = OllamaEmbedder(
            model=settings.embedding_model,
            base_url=settings.ollama_url,
            timeout_seconds=settings.embedding_timeout_seconds,
            dimensions=settings.embedding_dimensions,
        )
    elif provider == "openai":
        base_embedder = OpenAIEmbedder(
            model=settings.embedding_model,
            api_key=settings.openai_api_key,
            timeout_seconds=settings.embedding_timeout_seconds,
            dimensions=settings.embedding_dimensions,
        )
    else:
        raise ConfigurationError(f"Unknown embedding provider: {provider}")

    if settings.embedding_cache_enabled and settings.embedding_cache_size > 0:
        return CachedEmbedder(
            embedder=base_embedder,
            cache_size=settings.embedding_cache_size,
        )

    return base_embedder


__all__ = [
    "CachedEmbedder",
    "Embedder",
    "OllamaEmbedder",
    "OpenAIEmbedder",
    "get_embedder",
]
