from .metrics import (
    Counter,
    Histogram,
    fscache_background_errors_total,
    fscache_evictions_total,
    fscache_requests_total,
    fscache_write_latency_seconds,
)

__all__ = [
    "Counter",
    "Histogram",
    "fscache_requests_total",
    "fscache_evictions_total",
    "fscache_background_errors_total",
    "fscache_write_latency_seconds",
]
