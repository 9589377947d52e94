"""Structured logging for memorylane.

Library modules log through ``logging.getLogger(__name__)``; the scheduler
and the API use structlog's ``get_logger()`` for key/value events. Both end
up on the same stdout handler once ``configure_logging()`` has run.

Per-run context (``run_id``) is carried in contextvars, so concurrent file
tasks spawned inside a run inherit it automatically.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from structlog.typing import EventDict, Processor, WrappedLogger

SERVICE_NAME = "memorylane"

# Chatty HTTP and vector-store clients, held at WARNING unless debugging
NOISY_LOGGERS = ("httpx", "httpcore", "qdrant_client", "openai", "anthropic")

_configured = False


def _add_service(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def _build_processors(format: str) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        _add_service,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]
    if format.lower() == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))
    return processors


def configure_logging(
    level: str = "INFO",
    format: str = "json",
    quiet_libraries: bool = True,
) -> None:
    """Configure structlog and the standard library root logger.

    Args:
        level: Log level name. Unknown names fall back to INFO.
        format: "json" for production, anything else for console output.
        quiet_libraries: Hold NOISY_LOGGERS at WARNING unless level is DEBUG.

    Example:
        ```python
        from memorylane.logging import configure_logging, get_logger

        configure_logging(level="DEBUG", format="text")
        get_logger(__name__).info("extraction_scheduler_started", interval_seconds=900)
        ```
    """
    global _configured

    log_level = logging.getLevelName(level.upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level, force=True)

    library_level = logging.WARNING if quiet_libraries and log_level > logging.DEBUG else log_level
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    structlog.configure(
        processors=_build_processors(format),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """A structlog logger, configuring defaults on first use."""
    if not _configured:
        configure_logging()
    return structlog.get_logger(name)  # type: ignore[no-any-return]


def bind_context(**kwargs: Any) -> None:
    """Bind key/value pairs to every later log event in this context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """Bind key/value pairs for the duration of a ``with`` block.

    Keys bound before the block are restored on exit.

    Example:
        ```python
        with log_context(run_id="run_a1b2c3d4e5f6"):
            logger.info("extraction_run_started")  # carries run_id
        ```
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
