"""memorylane service layer.

MemoryLaneService wires storage, embeddings, extraction, entity resolution,
dedup-on-write, retrieval, feedback, and the extraction scheduler into one
object.

Example:
    ```python
    from memorylane.service import MemoryLaneService

    async with MemoryLaneService.create() as lane:
        report = await lane.run_extraction()
        print(f"Created {report.created} memories")

        results = await lane.retrieve("what did we decide about the database")
        for r in results:
            print(f"{r.title} (score: {r.score:.2f})")

        await lane.feedback(results[0].memory_id, "positive")
    ```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from memorylane.config import Settings
from memorylane.embeddings import Embedder, get_embedder
from memorylane.entities import EntityResolver
from memorylane.extraction import ExtractionEngine
from memorylane.feedback import FeedbackCounts, FeedbackLedger
from memorylane.memory_store import MemoryStore
from memorylane.retrieval import RankingEngine, RetrievalEngine, RetrievalResult
from memorylane.scheduler import (
    EventBroker,
    ExtractionScheduler,
    ExtractionStateStore,
    RunReport,
    RunTrigger,
    SchedulerStatus,
)
from memorylane.storage import MemoryLaneStorage, MemoryStats
from memorylane.transcripts import TranscriptSource

if TYPE_CHECKING:
    from memorylane.models import FeedbackEvent, FeedbackPolarity, Memory, SessionRecall


@dataclass
class MemoryLaneService:
    """High-level facade over the memory subsystem.

    This service provides:
    - retrieve(): Ranked dual-path retrieval with recall auditing
    - feedback(): Positive/negative votes that re-rank memories
    - run_extraction(): A single-flight extraction cycle
    - start_scheduler() / stop_scheduler(): Periodic extraction

    Components are built from ``settings`` in ``__post_init__``; pass an
    ``extraction_engine`` or ``source`` to replace the defaults (tests inject
    a fake agent this way).

    Attributes:
        storage: Qdrant storage backend.
        embedder: Embedding provider.
        settings: Configuration settings.
    """

    storage: MemoryLaneStorage
    embedder: Embedder
    settings: Settings
    extraction_engine: ExtractionEngine | None = None
    source: TranscriptSource | None = None

    resolver: EntityResolver = field(init=False, repr=False)
    memory_store: MemoryStore = field(init=False, repr=False)
    retrieval: RetrievalEngine = field(init=False, repr=False)
    ledger: FeedbackLedger = field(init=False, repr=False)
    events: EventBroker = field(init=False, repr=False)
    scheduler: ExtractionScheduler = field(init=False, repr=False)

    def __post_init__(self) -> None:
        settings = self.settings
        if self.extraction_engine is None:
            self.extraction_engine = ExtractionEngine(settings)
        if self.source is None:
            self.source = TranscriptSource(settings.transcripts_dir, settings.transcript_glob)

        self.resolver = EntityResolver(self.storage)
        self.memory_store = MemoryStore(
            self.storage,
            self.embedder,
            merge_threshold=settings.similarity_merge_threshold,
        )
        self.retrieval = RetrievalEngine(
            self.storage,
            self.embedder,
            self.resolver,
            settings,
            RankingEngine(settings.ranking_weights),
        )
        self.ledger = FeedbackLedger(self.storage)
        self.events = EventBroker(settings.event_queue_size)
        self.scheduler = ExtractionScheduler(
            settings,
            self.source,
            self.extraction_engine,
            self.resolver,
            self.memory_store,
            ExtractionStateStore(self.storage),
            self.events,
        )

    @classmethod
    def create(cls, settings: Settings | None = None) -> MemoryLaneService:
        """Create a service with default dependencies.

        Args:
            settings: Optional settings. Uses defaults if None.
        """
        if settings is None:
            settings = Settings()

        embedder = get_embedder(settings)
        return cls(
            storage=MemoryLaneStorage(
                url=settings.qdrant_url,
                api_key=settings.qdrant_api_key,
                prefix=settings.collection_prefix,
                embedding_dim=embedder.dimensions,
                timeout=settings.qdrant_timeout_seconds,
            ),
            embedder=embedder,
            settings=settings,
        )

    async def initialize(self) -> None:
        """Create storage collections if needed."""
        await self.storage.initialize()

    async def close(self) -> None:
        """Stop the scheduler and release network resources."""
        await self.scheduler.stop()
        await self.embedder.close()
        await self.storage.close()

    async def __aenter__(self) -> MemoryLaneService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def retrieve(
        self,
        query: str,
        limit: int | None = None,
        session_id: str | None = None,
    ) -> list[RetrievalResult]:
        """Ranked memories for a query. Never raises for backend failures."""
        return await self.retrieval.retrieve(query, k=limit, session_id=session_id)

    async def feedback(
        self,
        memory_id: str,
        polarity: FeedbackPolarity,
        session_id: str | None = None,
        query: str | None = None,
    ) -> FeedbackCounts:
        """Record a vote for a memory.

        Raises:
            NotFoundError: If the memory does not exist.
        """
        return await self.ledger.record_feedback(memory_id, polarity, session_id, query)

    async def get_memory(self, memory_id: str) -> Memory | None:
        return await self.storage.get_memory(memory_id)

    async def memory_recalls(self, memory_id: str) -> list[SessionRecall]:
        return await self.storage.get_session_recalls(memory_id=memory_id)

    async def session_recalls(self, session_id: str) -> list[SessionRecall]:
        return await self.storage.get_session_recalls(session_id=session_id)

    async def feedback_history(self, memory_id: str) -> list[FeedbackEvent]:
        return await self.ledger.history(memory_id)

    async def run_extraction(self, trigger: RunTrigger = "manual") -> RunReport:
        """Run one extraction cycle now (no-op if one is already running)."""
        return await self.scheduler.run_once(trigger)

    def start_scheduler(self) -> None:
        self.scheduler.start()

    async def stop_scheduler(self) -> None:
        await self.scheduler.stop()

    def extraction_status(self) -> SchedulerStatus:
        return self.scheduler.status()

    async def embedder_healthy(self) -> bool:
        return await self.embedder.health_check()

    async def stats(self) -> MemoryStats:
        return await self.storage.get_memory_stats()


__all__ = ["MemoryLaneService"]
