"""
Metrics Module - Prometheus counters for driver operations

Controller and kubelet plugin record the outcome of each allocation
lifecycle call here; the diagnostics server exposes them on /metrics.
Outcome is "success" or the name of the raised error class.
"""

from contextlib import contextmanager
from typing import Final

from prometheus_client import Counter

OUTCOME_SUCCESS = "success"

ALLOCATE_REQUESTS: Final[Counter] = Counter(
    "mydevice_allocate_requests_total",
    "Allocate calls, labeled by mode (immediate or pending) and outcome.",
    labelnames=("mode", "outcome"),
)

DEALLOCATE_REQUESTS: Final[Counter] = Counter(
    "mydevice_deallocate_requests_total",
    "Deallocate calls, labeled by outcome.",
    labelnames=("outcome",),
)

PREPARE_REQUESTS: Final[Counter] = Counter(
    "mydevice_prepare_requests_total",
    "NodePrepareResource calls, labeled by outcome.",
    labelnames=("outcome",),
)

UNPREPARE_REQUESTS: Final[Counter] = Counter(
    "mydevice_unprepare_requests_total",
    "NodeUnprepareResource calls, labeled by outcome.",
    labelnames=("outcome",),
)

# "retried" per extra attempt, "exhausted" when the attempt budget ran out
CONFLICT_RETRIES: Final[Counter] = Counter(
    "mydevice_conflict_retries_total",
    "resourceVersion conflicts on MydeviceAllocationState writes, labeled by outcome.",
    labelnames=("outcome",),
)


@contextmanager
def count_outcome(counter: Counter, **labels):
    """Increment counter once for the wrapped block, labeled with its outcome"""
    try:
        yield
    except Exception as e:
        counter.labels(outcome=type(e).__name__, **labels).inc()
        raise
    else:
        counter.labels(outcome=OUTCOME_SUCCESS, **labels).inc()


__all__ = [
    "OUTCOME_SUCCESS", "ALLOCATE_REQUESTS", "DEALLOCATE_REQUESTS",
    "PREPARE_REQUESTS", "UNPREPARE_REQUESTS", "CONFLICT_RETRIES", "count_outcome",
]
