from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass
class Counter:
    name: str
    help: str
    values: Dict[Tuple, float] = field(default_factory=dict)

    def inc(self, value: float = 1.0, **labels: Any) -> None:
        key = tuple(sorted(labels.items()))
        self.values[key] = self.values.get(key, 0.0) + value

    def get(self, **labels: Any) -> float:
        return self.values.get(tuple(sorted(labels.items())), 0.0)

    def reset(self) -> None:
        self.values.clear()


@dataclass
class Histogram:
    name: str
    help: str
    buckets: List[float]
    counts: Dict[Tuple, List[int]] = field(default_factory=dict)

    def observe(self, val: float, **labels: Any) -> None:
        key = tuple(sorted(labels.items()))
        if key not in self.counts:
            # Trailing slot counts observations above the last bucket.
            self.counts[key] = [0 for _ in range(len(self.buckets) + 1)]
        for i, b in enumerate(self.buckets):
            if val <= b:
                self.counts[key][i] += 1
                break
        else:
            self.counts[key][-1] += 1

    def total(self, **labels: Any) -> int:
        return sum(self.counts.get(tuple(sorted(labels.items())), []))

    def reset(self) -> None:
        self.counts.clear()


# Predefined metrics
fscache_requests_total = Counter("fscache_requests_total", "Cache reads by result (hit, pending, miss, generated)")
fscache_evictions_total = Counter("fscache_evictions_total", "Evicted entries by reason (expired, removed, cleared)")
fscache_background_errors_total = Counter("fscache_background_errors_total", "Failures routed to the error handler")
fscache_write_latency_seconds = Histogram(
    "fscache_write_latency_seconds",
    "Cache file write latency",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0],
)
