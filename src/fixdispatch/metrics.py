"""Prometheus metrics definitions for FixDispatch."""

from prometheus_client import Counter, Gauge, Histogram

DISPATCH_ATTEMPTS_TOTAL = Counter(
    "fixdispatch_dispatch_attempts_total",
    "Total dispatch delivery attempts",
    ["outcome"],  # sent, failed, dead
)

DISPATCH_DURATION = Histogram(
    "fixdispatch_dispatch_duration_seconds",
    "Dispatch delivery duration in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 15.0, 30.0),
)

QUEUE_DEPTH = Gauge(
    "fixdispatch_queue_depth",
    "Number of dispatch items by status",
    ["status"],
)


def record_queue_depth(counts: dict[str, int]) -> None:
    """Publish per-status item counts."""
    for status, count in counts.items():
        QUEUE_DEPTH.labels(status=status).set(count)
