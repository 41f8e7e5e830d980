"""Retry decorator with exponential backoff — stdlib only.

Used for network calls made on behalf of the pipeline (board APIs, LLM
summaries).  Queue-level retries are a separate, single-shot policy owned by
the orchestrator.
"""
from __future__ import annotations

import functools
import logging
import random
import time
from typing import Any, Callable, Tuple, Type

logger = logging.getLogger(__name__)


def backoff_delay(
    attempt: int,
    *,
    base_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: bool,
) -> float:
    """Seconds to wait after failed ``attempt`` (1-based)."""
    delay = min(base_delay * backoff_factor ** (attempt - 1), max_delay)
    return delay * (0.5 + random.random()) if jitter else delay


def retry(
    *,
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable: Tuple[Type[BaseException], ...] = (Exception,),
    giveup: Callable[[BaseException], bool] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> Callable:
    """Retry the wrapped call on ``retryable`` errors.

    ``giveup(exc)`` returning True re-raises at once, e.g. for a 4xx response
    that will not improve on a second try.  ``sleep`` is injectable for tests.
    """

    def decorator(fn: Callable) -> Callable:
        name = fn.__qualname__

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            attempt = 1
            while True:
                try:
                    return fn(*args, **kwargs)
                except retryable as exc:
                    if giveup is not None and giveup(exc):
                        logger.debug("%s: not retrying %s", name, exc)
                        raise
                    if attempt >= max_attempts:
                        logger.error("%s failed after %d attempts: %s", name, attempt, exc)
                        raise
                    delay = backoff_delay(
                        attempt, base_delay=base_delay, max_delay=max_delay,
                        backoff_factor=backoff_factor, jitter=jitter,
                    )
                    logger.warning(
                        "%s attempt %d/%d failed (%s), retrying in %.1fs",
                        name, attempt, max_attempts, exc, delay,
                    )
                    sleep(delay)
                    attempt += 1

        return wrapper

    return decorator
