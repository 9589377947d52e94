"""FastAPI application for memorylane."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from memorylane import __version__
from memorylane.config import Settings
from memorylane.exceptions import (
    ConflictError,
    MemoryLaneError,
    NotFoundError,
    SchemaValidationError,
    TransportError,
)
from memorylane.logging import configure_logging, get_logger
from memorylane.service import MemoryLaneService

from .router import router, set_service

logger = get_logger(__name__)

# Most specific class wins; anything else derived from MemoryLaneError is a 500
ERROR_STATUS: dict[type[MemoryLaneError], int] = {
    SchemaValidationError: 400,
    NotFoundError: 404,
    ConflictError: 409,
    TransportError: 502,
}


def status_for(exc: MemoryLaneError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 500


async def memorylane_error_handler(request: Request, exc: MemoryLaneError) -> JSONResponse:
    """Render any MemoryLaneError as ``{"error": {...}}`` with a mapped status."""
    status_code = status_for(exc)
    fields = {"code": exc.code, "error": exc.message, "path": request.url.path}
    if status_code >= 500:
        logger.error("request_failed", status_code=status_code, **fields)
    elif status_code == 404:
        logger.info("resource_not_found", **fields)
    else:
        logger.warning("request_rejected", status_code=status_code, **fields)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Own the service for the life of the process.

    The scheduler loop only starts when ``extraction_enabled`` is set; a
    manual ``POST /extraction/run`` works either way.
    """
    settings: Settings = app.state.settings

    configure_logging(level=settings.log_level, format=settings.log_format)
    logger.info(
        "api_starting",
        version=__version__,
        extraction_enabled=settings.extraction_enabled,
        transcripts_dir=str(settings.transcripts_dir),
    )

    service = MemoryLaneService.create(settings)
    await service.initialize()
    set_service(service)
    if settings.extraction_enabled:
        service.start_scheduler()

    try:
        yield
    finally:
        set_service(None)
        await service.close()
        logger.info("api_stopped")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build the FastAPI application.

    Example:
        ```python
        from memorylane.api import create_app
        from memorylane.config import Settings

        app = create_app(Settings(extraction_enabled=False))
        ```
    """
    if settings is None:
        settings = Settings()

    app = FastAPI(
        title="memorylane",
        description="Typed memories mined from conversation transcripts.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    if settings.cors_enabled:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_allow_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )

    app.add_exception_handler(MemoryLaneError, memorylane_error_handler)  # type: ignore[arg-type]
    app.include_router(router, prefix="/api/v1")
    return app


app = create_app()
