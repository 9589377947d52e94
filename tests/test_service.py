"""Tests for MemoryLaneService."""

from unittest.mock import AsyncMock

import pytest

from memorylane.config import Settings
from memorylane.embeddings import CachedEmbedder
from memorylane.exceptions import NotFoundError
from memorylane.extraction import ExtractionEngine
from memorylane.service import MemoryLaneService
from memorylane.storage import MemoryLaneStorage

from conftest import FakeAgent, FakeEmbedder, basis, candidate_json, llm_response, write_transcript

CONTENT = "We decided to use PostgreSQL over MySQL for the new service."


@pytest.fixture
def lane(storage: MemoryLaneStorage, settings: Settings) -> MemoryLaneService:
    embedder = FakeEmbedder({CONTENT: basis(0), "what did we decide about the database": basis(0)})
    agent = FakeAgent(llm_response(candidate_json(content=CONTENT)))
    return MemoryLaneService(
        storage=storage,
        embedder=embedder,
        settings=settings,
        extraction_engine=ExtractionEngine(settings, agent=agent),
    )


class TestMemoryLaneServiceCreate:
    """Tests for MemoryLaneService.create factory."""

    async def test_create_with_custom_settings(self, settings: Settings):
        """Should build storage and embedder from settings."""
        service = MemoryLaneService.create(settings)

        assert service.settings is settings
        assert isinstance(service.embedder, CachedEmbedder)
        assert service.storage._prefix == "test"
        assert service.storage._embedding_dim == 8
        assert service.memory_store.merge_threshold == settings.similarity_merge_threshold
        assert service.scheduler.events is service.events
        await service.embedder.close()

    def test_components_share_storage(self, storage: MemoryLaneStorage, settings: Settings):
        service = MemoryLaneService(storage=storage, embedder=FakeEmbedder(), settings=settings)

        assert service.resolver.storage is storage
        assert service.retrieval.storage is storage
        assert service.ledger.storage is storage
        assert service.scheduler.resolver is service.resolver
        assert service.source is not None
        assert service.source.root == settings.transcripts_dir


class TestMemoryLaneServiceFlow:
    """End-to-end extraction, retrieval, and feedback through the facade."""

    async def test_extract_then_retrieve(self, lane: MemoryLaneService, settings: Settings):
        write_transcript(
            settings.transcripts_dir / "proj" / "s1.jsonl",
            [("user", "Which database?"), ("assistant", CONTENT)],
        )

        report = await lane.run_extraction()
        results = await lane.retrieve(
            "what did we decide about the database", limit=5, session_id="ses_1"
        )

        assert report.created == 1
        assert len(results) == 1
        assert results[0].type == "decision"
        assert results[0].recall_method == "semantic"
        recalls = await lane.session_recalls("ses_1")
        assert [r.memory_id for r in recalls] == [results[0].memory_id]
        assert await lane.memory_recalls(results[0].memory_id) == recalls

    async def test_feedback_round_trip(self, lane: MemoryLaneService, settings: Settings):
        write_transcript(
            settings.transcripts_dir / "proj" / "s1.jsonl",
            [("user", "Which database?"), ("assistant", CONTENT)],
        )
        await lane.run_extraction()
        memory_id = (await lane.retrieve("what did we decide about the database"))[0].memory_id

        counts = await lane.feedback(memory_id, "positive", session_id="ses_1")

        assert counts.net == 1
        history = await lane.feedback_history(memory_id)
        assert [e.polarity for e in history] == ["positive"]
        memory = await lane.get_memory(memory_id)
        assert memory is not None
        assert memory.positive_feedback == 1
        assert memory.recall_count == 1

    async def test_embedder_healthy(self, lane: MemoryLaneService):
        assert await lane.embedder_healthy() is True

    async def test_feedback_unknown_memory(self, lane: MemoryLaneService):
        with pytest.raises(NotFoundError):
            await lane.feedback("mem_missing", "negative")

    async def test_stats(self, lane: MemoryLaneService, settings: Settings):
        write_transcript(
            settings.transcripts_dir / "proj" / "s1.jsonl",
            [("user", "Which database?"), ("assistant", CONTENT)],
        )
        await lane.run_extraction()

        stats = await lane.stats()

        assert stats.total_memories == 1
        assert stats.by_type == {"decision": 1}
        assert stats.entities == 2
        assert stats.tracked_files == 1

    async def test_close_stops_everything(self, lane: MemoryLaneService):
        lane.storage.close = AsyncMock()
        lane.start_scheduler()

        await lane.close()

        assert not lane.extraction_status().loop_active
        assert lane.embedder.closed
        lane.storage.close.assert_awaited_once()
