"""Periodic, single-flight extraction over transcript files.

A run discovers transcripts and processes files concurrently (bounded by
``max_concurrent_files``). Within a file, chunks go through extraction,
entity resolution, and dedup-on-write one at a time, and the file's cursor
is saved after each successful chunk. A cancelled run therefore keeps the
progress of every completed chunk.

Failures are isolated per chunk: a failed chunk stops its file for this
cycle and is retried next cycle, and after ``max_chunk_attempts`` failures
at the same position it is skipped. Only an unusable embedding service,
storage backend, or configuration aborts the whole run.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Literal

from pydantic import BaseModel, ConfigDict, Field

from memorylane.exceptions import (
    ConfigurationError,
    EmbeddingError,
    MemoryLaneError,
    StorageError,
)
from memorylane.logging import get_logger, log_context
from memorylane.models import ExtractionState, SourceChunk, generate_id, utc_now
from memorylane.transcripts import Chunk, TranscriptFile, chunk_records

from .events import EventBroker, EventKind, ExtractionEvent

if TYPE_CHECKING:
    from memorylane.config import Settings
    from memorylane.entities import EntityResolver
    from memorylane.extraction import ExtractionEngine
    from memorylane.memory_store import MemoryStore
    from memorylane.transcripts import TranscriptSource

    from .state import ExtractionStateStore

logger = get_logger(__name__)

# Errors that make every remaining chunk fail the same way
RUN_ABORTING_ERRORS = (EmbeddingError, ConfigurationError, StorageError)

RunTrigger = Literal["manual", "scheduled"]
RunStatus = Literal["running", "completed", "already_running", "aborted", "cancelled"]


class RunReport(BaseModel):
    """Summary of one extraction run."""

    model_config = ConfigDict(extra="forbid")

    run_id: str
    trigger: RunTrigger = "manual"
    status: RunStatus = "running"
    started_at: datetime = Field(default_factory=utc_now)
    finished_at: datetime | None = None
    files: int = Field(default=0, ge=0, description="Files with new data that were processed")
    chunks: int = Field(default=0, ge=0, description="Chunks extracted successfully")
    created: int = Field(default=0, ge=0, description="Memories created")
    merged: int = Field(default=0, ge=0, description="Observations merged into existing memories")
    failed: int = Field(default=0, ge=0, description="Chunks that failed this cycle")
    skipped: int = Field(default=0, ge=0, description="Chunks given up on after repeated failures")
    rejected: int = Field(default=0, ge=0, description="Candidates dropped by validation")
    error: str | None = None


class SchedulerStatus(BaseModel):
    """Point-in-time view of the scheduler."""

    model_config = ConfigDict(extra="forbid")

    running: bool = Field(description="Whether a run is in progress")
    loop_active: bool = Field(description="Whether periodic runs are scheduled")
    interval_seconds: float
    next_run_at: datetime | None = None
    runs_completed: int = 0
    current_run: RunReport | None = None
    last_run: RunReport | None = None


@dataclass
class FileResult:
    """Outcome of processing one transcript file."""

    file_path: str
    start_position: int
    end_position: int
    chunks: int = 0
    created: int = 0
    merged: int = 0
    failed: int = 0
    skipped: int = 0
    unchanged: bool = False


class ExtractionScheduler:
    """Drives transcripts through extraction, resolution, and storage.

    Example:
        ```python
        scheduler = ExtractionScheduler(
            settings, source, engine, resolver, store, state_store, events
        )
        report = await scheduler.run_once()
        scheduler.start()  # every extraction_interval_seconds
        ```
    """

    def __init__(
        self,
        settings: Settings,
        source: TranscriptSource,
        engine: ExtractionEngine,
        resolver: EntityResolver,
        store: MemoryStore,
        state_store: ExtractionStateStore,
        events: EventBroker | None = None,
    ) -> None:
        self.settings = settings
        self.source = source
        self.engine = engine
        self.resolver = resolver
        self.store = store
        self.state_store = state_store
        self.events = events or EventBroker(settings.event_queue_size)

        self._run_lock = asyncio.Lock()
        self._task: asyncio.Task[None] | None = None
        self._current: RunReport | None = None
        self._last_run: RunReport | None = None
        self._next_run_at: datetime | None = None
        self._runs_completed = 0

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def _publish(self, kind: EventKind, run_id: str, **fields: object) -> None:
        self.events.publish(ExtractionEvent(kind=kind, run_id=run_id, **fields))  # type: ignore[arg-type]

    async def run_once(self, trigger: RunTrigger = "manual") -> RunReport:
        """Run one extraction cycle over every discovered transcript.

        Returns immediately with status ``already_running`` if a run is in
        progress.
        """
        run_id = generate_id("run")
        if self._run_lock.locked():
            logger.info("extraction_run_skipped", run_id=run_id, trigger=trigger)
            self._publish("run_skipped", run_id)
            return RunReport(
                run_id=run_id,
                trigger=trigger,
                status="already_running",
                finished_at=utc_now(),
            )

        async with self._run_lock:
            with log_context(run_id=run_id):
                return await self._run(run_id, trigger)

    async def _run(self, run_id: str, trigger: RunTrigger) -> RunReport:
        report = RunReport(run_id=run_id, trigger=trigger)
        self._current = report
        rejected_before = self.engine.stats.rejected
        logger.info("extraction_run_started", trigger=trigger)
        self._publish("run_started", run_id)

        try:
            files = self.source.discover()
            semaphore = asyncio.Semaphore(self.settings.max_concurrent_files)
            async with asyncio.TaskGroup() as group:
                for transcript in files:
                    group.create_task(self._process_guarded(transcript, semaphore, report))
            report.status = "completed"
        except* RUN_ABORTING_ERRORS as group_error:
            error = group_error.exceptions[0]
            report.status = "aborted"
            report.error = str(error)
            logger.error("extraction_run_aborted", error=str(error))
            self._publish("run_aborted", run_id, error=str(error))
        except* Exception as group_error:
            error = group_error.exceptions[0]
            report.status = "aborted"
            report.error = f"{type(error).__name__}: {error}"
            logger.exception("extraction_run_failed", error=report.error)
            self._publish("run_aborted", run_id, error=report.error)
        finally:
            if report.status == "running":
                report.status = "cancelled"
            report.rejected = self.engine.stats.rejected - rejected_before
            report.finished_at = utc_now()
            self._current = None
            self._last_run = report
            self._runs_completed += 1

        if report.status == "completed":
            logger.info(
                "extraction_run_completed",
                files=report.files,
                chunks=report.chunks,
                created=report.created,
                merged=report.merged,
                failed=report.failed,
                skipped=report.skipped,
                rejected=report.rejected,
            )
            self._publish(
                "run_completed", run_id, created=report.created, merged=report.merged
            )
        return report

    async def _process_guarded(
        self,
        transcript: TranscriptFile,
        semaphore: asyncio.Semaphore,
        report: RunReport,
    ) -> None:
        async with semaphore:
            try:
                result = await self._process(transcript, None, report.run_id)
            except RUN_ABORTING_ERRORS:
                raise
            except (MemoryLaneError, OSError) as e:
                logger.error("file_failed", file_path=str(transcript.path), error=str(e))
                report.failed += 1
                return

        if result.unchanged:
            return
        report.files += 1
        report.chunks += result.chunks
        report.created += result.created
        report.merged += result.merged
        report.failed += result.failed
        report.skipped += result.skipped

    async def process_file(
        self,
        transcript: TranscriptFile,
        start_position: int | None = None,
    ) -> FileResult:
        """Process one file outside a scheduled run.

        Args:
            transcript: File to process.
            start_position: Re-ingest from this offset instead of the stored
                cursor. The stored cursor never moves backwards.
        """
        return await self._process(transcript, start_position, generate_id("run"))

    async def _process(
        self,
        transcript: TranscriptFile,
        start_position: int | None,
        run_id: str,
    ) -> FileResult:
        file_path = str(transcript.path)
        state = await self.state_store.load(file_path)
        position = state.last_position if start_position is None else start_position
        result = FileResult(file_path=file_path, start_position=position, end_position=position)

        if start_position is None and transcript.size <= position:
            result.unchanged = True
            return result

        batch = self.source.read_batch(transcript, position)
        chunks = chunk_records(
            batch.records,
            min_messages=self.settings.chunk_min_messages,
            max_messages=self.settings.chunk_max_messages,
        )
        if not chunks:
            if batch.end_position > state.last_position:
                await self.state_store.advance(state, batch.end_position)
            result.end_position = batch.end_position
            result.unchanged = batch.end_position == position
            return result

        self._publish("file_started", run_id, file_path=file_path, position=position)
        logger.debug("file_started", file_path=file_path, position=position, chunks=len(chunks))

        for index, chunk in enumerate(chunks):
            # The last chunk also covers trailing non-message lines
            end = batch.end_position if index == len(chunks) - 1 else chunk.end_position
            source_chunk = SourceChunk(
                file_path=file_path,
                start_position=chunk.start_position,
                end_position=end,
            )
            try:
                created, merged = await self._process_chunk(chunk, source_chunk)
            except RUN_ABORTING_ERRORS:
                raise
            except MemoryLaneError as e:
                state, skipped = await self._handle_chunk_failure(
                    state, source_chunk, e, result, run_id
                )
                if skipped:
                    continue
                break

            state = await self.state_store.advance(state, end)
            result.chunks += 1
            result.created += created
            result.merged += merged
            result.end_position = end
            self._publish(
                "chunk_processed",
                run_id,
                file_path=file_path,
                position=end,
                created=created,
                merged=merged,
            )

        self._publish(
            "file_completed",
            run_id,
            file_path=file_path,
            position=state.last_position,
            created=result.created,
            merged=result.merged,
        )
        return result

    async def _process_chunk(self, chunk: Chunk, source_chunk: SourceChunk) -> tuple[int, int]:
        candidates = await self.engine.extract(chunk.messages)
        if not candidates:
            return 0, 0
        resolved = [await self.resolver.resolve(c, source_chunk) for c in candidates]
        results = await self.store.upsert_batch(resolved)
        created = sum(1 for r in results if r.created)
        return created, len(results) - created

    async def _handle_chunk_failure(
        self,
        state: ExtractionState,
        source_chunk: SourceChunk,
        error: MemoryLaneError,
        result: FileResult,
        run_id: str,
    ) -> tuple[ExtractionState, bool]:
        """Record a chunk failure; returns the state and whether the chunk was skipped."""
        file_path = source_chunk.file_path
        state = await self.state_store.record_failure(
            state, source_chunk.start_position, error.message
        )
        if state.failed_attempts >= self.settings.max_chunk_attempts:
            state = await self.state_store.skip(state, source_chunk.end_position)
            result.skipped += 1
            result.end_position = source_chunk.end_position
            self._publish(
                "chunk_skipped",
                run_id,
                file_path=file_path,
                position=source_chunk.start_position,
                error=error.message,
            )
            return state, True

        result.failed += 1
        logger.warning(
            "chunk_failed",
            file_path=file_path,
            position=source_chunk.start_position,
            attempts=state.failed_attempts,
            error=error.message,
        )
        self._publish(
            "chunk_failed",
            run_id,
            file_path=file_path,
            position=source_chunk.start_position,
            error=error.message,
        )
        return state, False

    def start(self) -> None:
        """Begin periodic runs every ``extraction_interval_seconds``."""
        if self._task is not None and not self._task.done():
            return
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "extraction_scheduler_started",
            interval_seconds=self.settings.extraction_interval_seconds,
        )

    async def _loop(self) -> None:
        interval = self.settings.extraction_interval_seconds
        delay = self.settings.extraction_initial_delay_seconds
        self._next_run_at = utc_now() + timedelta(seconds=delay)
        if delay > 0:
            await asyncio.sleep(delay)
        while True:
            try:
                await self.run_once("scheduled")
            except Exception as e:
                logger.exception("extraction_run_error", error=str(e))
            self._next_run_at = utc_now() + timedelta(seconds=interval)
            await asyncio.sleep(interval)

    async def stop(self) -> None:
        """Cancel periodic runs and wait for the loop to exit.

        A run in progress is cancelled; cursors of completed chunks are kept.
        """
        if self._task is None:
            return
        self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._task = None
        self._next_run_at = None
        logger.info("extraction_scheduler_stopped")

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            running=self.is_running,
            loop_active=self._task is not None and not self._task.done(),
            interval_seconds=self.settings.extraction_interval_seconds,
            next_run_at=self._next_run_at,
            runs_completed=self._runs_completed,
            current_run=self._current.model_copy() if self._current else None,
            last_run=self._last_run,
        )
