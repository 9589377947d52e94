"""LLM agent utilities with retry and timeout support.

Runs a Pydantic AI agent with:
- A per-attempt timeout
- Exponential backoff retry for transient failures
- Fatal errors (auth, bad request, not found) recognized by message
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, TypeVar

from memorylane.exceptions import TransportError

if TYPE_CHECKING:
    from pydantic_ai import Agent

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_RETRIES = 2
DEFAULT_INITIAL_DELAY = 1.0
DEFAULT_MAX_DELAY = 30.0
DEFAULT_BACKOFF_FACTOR = 2.0

_FATAL_PATTERNS = (
    "401",
    "403",
    "400",
    "404",
    "authentication",
    "unauthorized",
    "forbidden",
    "invalid api key",
    "not found",
)


def is_retriable_error(error: BaseException) -> bool:
    """Guess whether another attempt could succeed.

    Authentication, bad-request, and not-found errors are fatal. Everything
    else (rate limits, 5xx, dropped connections, unknown errors) is retried.
    """
    error_str = str(error).lower()
    return not any(pattern in error_str for pattern in _FATAL_PATTERNS)


async def run_agent_with_retry(
    agent: Agent[Any, T],
    prompt: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
) -> T:
    """Run a Pydantic AI agent with timeout and retry logic.

    Args:
        agent: The agent to run.
        prompt: The user prompt.
        timeout_seconds: Maximum time for each attempt.
        max_retries: Retries after the first attempt (0 = single attempt).
        initial_delay: Delay before the first retry in seconds.
        max_delay: Cap on the delay between retries.
        backoff_factor: Multiplier applied to the delay after each retry.

    Returns:
        The agent's output.

    Raises:
        TransportError: If a fatal error occurs or every attempt fails.
    """
    last_error: BaseException | None = None
    delay = initial_delay
    attempts = max_retries + 1

    for attempt in range(1, attempts + 1):
        try:
            async with asyncio.timeout(timeout_seconds):
                result = await agent.run(prompt)
            output: T = result.output
            return output

        except TimeoutError as e:
            last_error = e
            logger.warning(
                "LLM call timed out after %ss (attempt %d/%d)",
                timeout_seconds,
                attempt,
                attempts,
            )

        except Exception as e:
            last_error = e
            if not is_retriable_error(e):
                logger.error("Non-retriable LLM error: %s", e)
                raise TransportError(str(e), retriable=False) from e
            logger.warning("Retriable LLM error (attempt %d/%d): %s", attempt, attempts, e)

        if attempt < attempts:
            await asyncio.sleep(delay)
            delay = min(delay * backoff_factor, max_delay)

    detail = "timed out" if isinstance(last_error, TimeoutError) else str(last_error)
    raise TransportError(
        f"LLM call failed after {attempts} attempts: {detail}",
        retriable=True,
    ) from last_error
