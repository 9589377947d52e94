"""Retry utilities for storage operations.

Transient Qdrant failures (connection errors, timeouts, unexpected
responses) are retried with exponential backoff. Once the budget is spent
the failure surfaces as StorageError so callers see one error type.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import ParamSpec, TypeVar

import httpx
from qdrant_client.http.exceptions import UnexpectedResponse
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from memorylane.exceptions import StorageError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

TRANSIENT_ERRORS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    UnexpectedResponse,
)


def _log_retry(retry_state: RetryCallState) -> None:
    logger.warning(
        "Retrying Qdrant operation",
        extra={
            "attempt": retry_state.attempt_number,
            "fn_name": retry_state.fn.__name__ if retry_state.fn else "unknown",
            "exception": str(retry_state.outcome.exception()) if retry_state.outcome else None,
        },
    )


_retrying = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(TRANSIENT_ERRORS),
    before_sleep=_log_retry,
    reraise=True,
)


def qdrant_retry(fn: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
    """Retry transient Qdrant failures, then raise StorageError."""
    retrying = _retrying(fn)

    @functools.wraps(fn)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        try:
            return await retrying(*args, **kwargs)
        except TRANSIENT_ERRORS as e:
            raise StorageError(f"Qdrant operation {fn.__name__} failed: {e}") from e

    return wrapper
