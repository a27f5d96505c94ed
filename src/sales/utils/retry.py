"""Bounded retry with exponential backoff for transient infrastructure failures."""

import time
from collections.abc import Callable
from typing import TypeVar

import structlog

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.05
DEFAULT_MAX_DELAY = 1.0


def retry_with_backoff(
    fn: Callable[[], T],
    retry_on: tuple[type[BaseException], ...] = (ConnectionError, TimeoutError),
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``fn`` until it succeeds, retrying only on ``retry_on`` exceptions.

    Waits ``base_delay * 2**n`` (capped at ``max_delay``) between attempts and
    re-raises the last error once ``attempts`` calls have failed.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except retry_on as exc:
            if attempt == attempts:
                logger.error("Giving up after retries", attempts=attempts, error=str(exc))
                raise
            delay = min(base_delay * (2 ** (attempt - 1)), max_delay)
            logger.warning(
                "Transient failure, retrying",
                attempt=attempt,
                delay=delay,
                error=str(exc),
            )
            sleep(delay)

    raise AssertionError("unreachable")
