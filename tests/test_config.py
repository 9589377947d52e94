"""Unit tests for memorylane configuration."""

import os
import warnings
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from memorylane.config import RankingWeights, Settings


class TestRankingWeights:
    """Tests for RankingWeights model."""

    def test_default_weights(self):
        """Default weights should match the documented ranking formula."""
        weights = RankingWeights()
        assert weights.similarity == 0.60
        assert weights.recency == 0.10
        assert weights.confidence == 0.15
        assert weights.observation == 0.10
        assert weights.type_boost == 0.05
        assert weights.feedback_increment == 0.05
        assert weights.query_type_boost == 0.15

    def test_default_weights_sum_to_one(self):
        """Default weights should not trigger the normalization warning."""
        with warnings.catch_warnings():
            warnings.simplefilter("error")
            RankingWeights()

    def test_unnormalized_weights_warn(self):
        """Weights far from 1.0 should warn but still be accepted."""
        with pytest.warns(UserWarning, match="sum to"):
            weights = RankingWeights(similarity=0.9, recency=0.5)
        assert weights.similarity == 0.9

    def test_weight_bounds(self):
        """Weights must be between 0 and 1."""
        with pytest.raises(ValidationError):
            RankingWeights(similarity=1.5)
        with pytest.raises(ValidationError):
            RankingWeights(recency=-0.1)

    def test_recency_decay_must_be_positive(self):
        """recency_decay_days must be positive."""
        with pytest.raises(ValidationError):
            RankingWeights(recency_decay_days=0)


class TestSettings:
    """Tests for Settings model."""

    def test_default_settings(self):
        """Default settings should be reasonable."""
        # Use _env_file=None to prevent reading from .env file
        settings = Settings(_env_file=None)
        assert settings.qdrant_url == "http://localhost:6333"
        assert settings.embedding_provider == "ollama"
        assert settings.embedding_model == "mxbai-embed-large"
        assert settings.extraction_interval_seconds == 900
        assert settings.similarity_merge_threshold == 0.90
        assert settings.semantic_threshold == 0.40
        assert settings.log_level == "INFO"

    def test_default_chunk_bounds(self):
        """Chunks default to 10-15 messages."""
        settings = Settings(_env_file=None)
        assert settings.chunk_min_messages == 10
        assert settings.chunk_max_messages == 15

    def test_transcripts_dir_default(self):
        """Transcripts are read from ~/.claude/projects by default."""
        settings = Settings(_env_file=None)
        assert settings.transcripts_dir == Path.home() / ".claude" / "projects"

    def test_embedding_providers(self):
        """Only valid embedding providers should be accepted."""
        settings = Settings(embedding_provider="openai")
        assert settings.embedding_provider == "openai"

        with pytest.raises(ValidationError):
            Settings(embedding_provider="fastembed")

    def test_log_formats(self):
        """Only valid log formats should be accepted."""
        settings = Settings(log_format="json")
        assert settings.log_format == "json"

        settings = Settings(log_format="text")
        assert settings.log_format == "text"

        with pytest.raises(ValidationError):
            Settings(log_format="xml")

    def test_chunk_bounds_must_be_ordered(self):
        """chunk_min_messages may not exceed chunk_max_messages."""
        with pytest.raises(ValidationError, match="chunk_min_messages"):
            Settings(chunk_min_messages=20, chunk_max_messages=10)

    def test_semantic_threshold_below_merge_threshold(self):
        """The semantic floor must sit below the merge threshold."""
        with pytest.raises(ValidationError, match="semantic_threshold"):
            Settings(semantic_threshold=0.95, similarity_merge_threshold=0.9)

    def test_threshold_bounds(self):
        """Similarity thresholds must be valid cosine values."""
        with pytest.raises(ValidationError):
            Settings(similarity_merge_threshold=1.5)
        with pytest.raises(ValidationError):
            Settings(semantic_threshold=-0.1)

    def test_api_address(self):
        settings = Settings(_env_file=None)
        assert settings.api_host == "127.0.0.1"
        assert settings.api_port == 8000
        with pytest.raises(ValidationError):
            Settings(api_port=70000)

    def test_interval_must_be_positive(self):
        """The scheduler interval must be at least one second."""
        with pytest.raises(ValidationError):
            Settings(extraction_interval_seconds=0)

    def test_custom_ranking_weights(self):
        """Ranking weights can be overridden as a nested model."""
        settings = Settings(
            ranking_weights=RankingWeights(
                similarity=0.5,
                recency=0.2,
                confidence=0.15,
                observation=0.1,
                type_boost=0.05,
            )
        )
        assert settings.ranking_weights.similarity == 0.5
        assert settings.ranking_weights.recency == 0.2


class TestSettingsFromEnvironment:
    """Tests for environment variable loading."""

    def test_prefixed_env_vars(self):
        """MEMORYLANE_* variables should populate settings."""
        with patch.dict(
            os.environ,
            {
                "MEMORYLANE_QDRANT_URL": "http://qdrant:6333",
                "MEMORYLANE_EXTRACTION_INTERVAL_SECONDS": "60",
                "MEMORYLANE_LOG_FORMAT": "text",
            },
        ):
            settings = Settings(_env_file=None)
        assert settings.qdrant_url == "http://qdrant:6333"
        assert settings.extraction_interval_seconds == 60
        assert settings.log_format == "text"

    def test_nested_ranking_weight_env_var(self):
        """Nested weights use the __ delimiter."""
        with patch.dict(os.environ, {"MEMORYLANE_RANKING_WEIGHTS__FEEDBACK_INCREMENT": "0.1"}):
            settings = Settings(_env_file=None)
        assert settings.ranking_weights.feedback_increment == 0.1

    def test_unprefixed_api_key_fallback(self):
        """OPENAI_API_KEY should be used when the prefixed key is unset."""
        with patch.dict(os.environ, {"OPENAI_API_KEY": "sk-fallback"}, clear=False):
            os.environ.pop("MEMORYLANE_OPENAI_API_KEY", None)
            settings = Settings(_env_file=None)
        assert settings.openai_api_key == "sk-fallback"

    def test_prefixed_api_key_synced_to_provider_env(self):
        """A prefixed key should be exported for provider SDKs."""
        with patch.dict(os.environ, {"MEMORYLANE_ANTHROPIC_API_KEY": "sk-ant-test"}):
            os.environ.pop("ANTHROPIC_API_KEY", None)
            settings = Settings(_env_file=None)
            assert settings.anthropic_api_key == "sk-ant-test"
            assert os.environ["ANTHROPIC_API_KEY"] == "sk-ant-test"
