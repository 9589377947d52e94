"""FastAPI router for memorylane API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, status

from memorylane import __version__
from memorylane.models import SessionRecall, generate_id
from memorylane.scheduler import RunReport, SchedulerStatus
from memorylane.service import MemoryLaneService
from memorylane.storage import MemoryStats

from .schemas import (
    FeedbackRequest,
    FeedbackResponse,
    HealthResponse,
    RecallRecordResponse,
    RecallsResponse,
    RetrieveRequest,
    RetrieveResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: MemoryLaneService | None = None


def set_service(service: MemoryLaneService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> MemoryLaneService:
    """Dependency to get the MemoryLaneService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[MemoryLaneService, Depends(get_service)]


def _recalls_response(recalls: list[SessionRecall]) -> RecallsResponse:
    return RecallsResponse(
        recalls=[RecallRecordResponse(**r.model_dump()) for r in recalls],
        count=len(recalls),
    )


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health.

    Reports ``degraded`` when the embedding provider is unreachable: retrieval
    still answers from the entity path but extraction runs will abort.
    """
    if _service is None:
        return HealthResponse(status="unhealthy", version=__version__, storage_connected=False)
    embedder_ok = await _service.embedder_healthy()
    return HealthResponse(
        status="healthy" if embedder_ok else "degraded",
        version=__version__,
        storage_connected=True,
        scheduler_running=_service.extraction_status().loop_active,
        embedder_available=embedder_ok,
    )


@router.post("/retrieve", response_model=RetrieveResponse, tags=["memory"])
async def retrieve(request: RetrieveRequest, service: ServiceDep) -> RetrieveResponse:
    """Retrieve ranked memories for a query.

    Combines entity matches and semantic neighbours, ranks them, and
    records a recall for each returned memory under ``session_id``
    (generated when omitted).
    """
    session_id = request.session_id or generate_id("ses")
    results = await service.retrieve(request.query, limit=request.limit, session_id=session_id)
    return RetrieveResponse(
        query=request.query,
        results=results,
        count=len(results),
        session_id=session_id,
    )


@router.post(
    "/memories/{memory_id}/feedback",
    response_model=FeedbackResponse,
    tags=["memory"],
)
async def submit_feedback(
    memory_id: str,
    request: FeedbackRequest,
    service: ServiceDep,
) -> FeedbackResponse:
    """Record a positive or negative vote for a memory.

    Returns 404 if the memory does not exist.
    """
    counts = await service.feedback(
        memory_id,
        request.polarity,
        session_id=request.session_id,
        query=request.query,
    )
    return FeedbackResponse(
        memory_id=counts.memory_id,
        positive=counts.positive,
        negative=counts.negative,
        net=counts.net,
    )


@router.get("/memories/{memory_id}/recalls", response_model=RecallsResponse, tags=["audit"])
async def memory_recalls(memory_id: str, service: ServiceDep) -> RecallsResponse:
    """Every time a memory was returned by retrieval, oldest first."""
    return _recalls_response(await service.memory_recalls(memory_id))


@router.get("/sessions/{session_id}/recalls", response_model=RecallsResponse, tags=["audit"])
async def session_recalls(session_id: str, service: ServiceDep) -> RecallsResponse:
    """Memories returned within a session, oldest first."""
    return _recalls_response(await service.session_recalls(session_id))


@router.post(
    "/extraction/run",
    response_model=RunReport,
    tags=["extraction"],
)
async def run_extraction(service: ServiceDep) -> RunReport:
    """Run an extraction cycle now and return its report.

    If a cycle is already in progress the report's status is
    ``already_running`` and nothing else happens.
    """
    report = await service.run_extraction("manual")
    logger.info("Manual extraction run %s finished with status %s", report.run_id, report.status)
    return report


@router.get("/extraction/status", response_model=SchedulerStatus, tags=["extraction"])
async def extraction_status(service: ServiceDep) -> SchedulerStatus:
    """Current scheduler state and the last run's report."""
    return service.extraction_status()


@router.get("/stats", response_model=MemoryStats, tags=["system"])
async def stats(service: ServiceDep) -> MemoryStats:
    """Memory counts, feedback totals, and leaderboards."""
    return await service.stats()
