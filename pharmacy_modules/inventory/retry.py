"""
Bounded caller-side retry for optimistic-concurrency conflicts.

The kernel never retries.  Callers that can safely re-run a whole
operation (the admin CLI, request handlers) wrap it here.  Only
ConcurrentModificationError is retried; every other error propagates on
the first attempt.
"""

import time
from collections.abc import Callable
from typing import TypeVar

from pharmacy_kernel.exceptions import ConcurrentModificationError
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("modules.inventory.retry")

T = TypeVar("T")


def run_with_conflict_retry(
    operation: Callable[[], T],
    max_attempts: int = 3,
    backoff_seconds: float = 0.05,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Run ``operation`` up to ``max_attempts`` times.

    Waits ``backoff_seconds * attempt`` between attempts (linear backoff).
    The last ConcurrentModificationError is re-raised once attempts run out.
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be >= 1, got {max_attempts}")

    for attempt in range(1, max_attempts + 1):
        try:
            return operation()
        except ConcurrentModificationError as exc:
            if attempt == max_attempts:
                logger.warning(
                    "conflict_retry_exhausted",
                    extra={"attempts": attempt, "entity_type": exc.entity_type,
                           "entity_id": exc.entity_id},
                )
                raise
            logger.info(
                "conflict_retry",
                extra={"attempt": attempt, "entity_type": exc.entity_type,
                       "entity_id": exc.entity_id},
            )
            sleep(backoff_seconds * attempt)
    raise AssertionError("unreachable")
