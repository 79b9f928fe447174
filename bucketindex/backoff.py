from __future__ import annotations

import logging
import random
import time
from typing import Callable, Optional, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackoffStrategy:
    """Exponential backoff with jitter between fetch retries.

    Sleep for attempt n is base * 2^(n-1), capped at max_seconds, plus up
    to ``jitter_ratio`` of that as random jitter."""

    def __init__(self, base_seconds: float = 0.5, max_seconds: float = 10.0, jitter_ratio: float = 0.1) -> None:
        self._base = base_seconds
        self._max = max_seconds
        self._jitter_ratio = jitter_ratio

    def get_sleep(self, attempt: int) -> float:
        """Seconds to wait after the given failed attempt (1-based)."""
        exp = min(self._max, self._base * (2 ** max(attempt - 1, 0)))
        return exp + random.uniform(0, exp * self._jitter_ratio)

    def call(
        self,
        fn: Callable[[], T],
        retries: int,
        retry_on: Tuple[Type[BaseException], ...],
        sleep: Optional[Callable[[float], None]] = None,
    ) -> T:
        """Run ``fn``, retrying up to ``retries`` extra times on ``retry_on`` errors.

        The last error propagates once the retries are used up.
        """
        sleep = sleep or time.sleep
        attempt = 0
        while True:
            attempt += 1
            try:
                return fn()
            except retry_on as exc:
                if attempt > retries:
                    raise
                delay = self.get_sleep(attempt)
                logger.debug("Attempt %d failed (%s), retrying in %.2fs", attempt, exc, delay)
                sleep(delay)
