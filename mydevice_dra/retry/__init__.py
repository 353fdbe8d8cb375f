"""
Retry Module - reload-modify-save on conflict

Runs a read-modify-write closure again when the API server rejects the
write with a resourceVersion conflict. Attempts are bounded; the last
conflict is re-raised once the budget is spent.
"""

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from ..config import RETRY_STEPS, RETRY_DURATION, RETRY_FACTOR, RETRY_JITTER
from ..errors import ConflictError
from ..metrics import CONFLICT_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Backoff:
    """Attempt budget and sleep schedule between attempts"""
    steps: int = RETRY_STEPS          # total attempts, always >= 1
    duration: float = RETRY_DURATION  # first sleep (seconds)
    factor: float = RETRY_FACTOR      # multiplier applied after each sleep
    jitter: float = RETRY_JITTER      # random extra fraction of each sleep
    cap: float = 1.0                  # upper bound for a single sleep

    def delays(self):
        """Yield the sleep before attempt 2, 3, ... steps"""
        delay = self.duration
        for _ in range(max(self.steps, 1) - 1):
            sleep = delay
            if self.jitter > 0:
                sleep += random.uniform(0, self.jitter * delay)
            yield min(sleep, self.cap)
            delay *= self.factor


DEFAULT_BACKOFF = Backoff()


def retry_on_conflict(fn: Callable[[], T], backoff: Backoff = DEFAULT_BACKOFF,
                      sleep: Callable[[float], None] = time.sleep) -> T:
    """
    Call fn until it returns without raising ConflictError.

    Args:
        fn: closure doing get -> modify -> update
        backoff: attempt budget and sleep schedule
        sleep: injectable for tests

    Returns:
        fn's return value

    Raises:
        ConflictError: the last conflict, after ``backoff.steps`` attempts
        Any other exception from fn, immediately
    """
    delays = backoff.delays()
    attempt = 1
    while True:
        try:
            return fn()
        except ConflictError as e:
            delay = next(delays, None)
            if delay is None:
                CONFLICT_RETRIES.labels(outcome="exhausted").inc()
                logger.error(f"Giving up after {attempt} conflicting attempt(s): {e}")
                raise
            CONFLICT_RETRIES.labels(outcome="retried").inc()
            logger.info(f"Conflict on attempt {attempt}, retrying in {delay:.3f}s: {e}")
            sleep(delay)
            attempt += 1


__all__ = ["Backoff", "DEFAULT_BACKOFF", "retry_on_conflict"]
