"""Retry helper for operations that may hit lock contention."""

import logging
import time
from typing import Callable, Optional, TypeVar

from django.conf import settings

from common.exceptions import TransientConflictError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_on_conflict(
    operation: Callable[[], T],
    attempts: Optional[int] = None,
    backoff: float = 0.05,
) -> T:
    """
    Run ``operation`` and retry it when it raises TransientConflictError.

    Any other exception propagates on the first attempt. The last conflict
    is re-raised once ``attempts`` are exhausted.
    """
    if attempts is None:
        attempts = getattr(settings, "RIDES_CONFLICT_RETRIES", 3)
    attempts = max(1, attempts)

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except TransientConflictError:
            if attempt == attempts:
                raise
            logger.warning("Transient conflict, retrying (%s/%s)", attempt, attempts)
            time.sleep(backoff * attempt)
