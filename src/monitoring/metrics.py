"""
Metrics collection for ChapterIP.

Thread-safe counters, gauges, and millisecond histograms with labels,
exported as a dict or in Prometheus text format.

Engine metrics:
- derivative_registrations_total{outcome}
- derivative_registration_ms
- ledger_retries_total{operation}
- persistence_warnings_total
- royalty_claims_total{outcome}
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

# Default latency buckets in milliseconds
DEFAULT_BUCKETS = (5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000)


@dataclass
class Histogram:
    """Cumulative bucket counts plus sum and count."""

    bounds: tuple[float, ...] = DEFAULT_BUCKETS
    counts: list[int] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        if not self.counts:
            # Trailing slot is the +Inf bucket
            self.counts = [0] * (len(self.bounds) + 1)

    def observe(self, value: float) -> None:
        self.sum += value
        self.count += 1
        for i, bound in enumerate(self.bounds):
            if value <= bound:
                self.counts[i] += 1
        self.counts[-1] += 1

    def buckets(self) -> list[tuple[str, int]]:
        labels = [str(b) for b in self.bounds] + ["+Inf"]
        return list(zip(labels, self.counts))


def _labels_key(labels: dict[str, str] | None) -> str:
    if not labels:
        return ""
    return ",".join(f'{k}="{v}"' for k, v in sorted(labels.items()))


class MetricsCollector:
    """
    Thread-safe metrics collector.

    Usage:
        metrics = MetricsCollector()
        metrics.increment("derivative_registrations_total", labels={"outcome": "success"})
        with metrics.timer("derivative_registration_ms"):
            ...
    """

    def __init__(self, prefix: str = "chapterip"):
        self.prefix = prefix
        self._lock = threading.RLock()
        self._counters: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self._gauges: dict[str, dict[str, float]] = defaultdict(lambda: defaultdict(float))
        self._histograms: dict[str, dict[str, Histogram]] = defaultdict(dict)
        self._start_time = time.time()

    # Counters

    def increment(self, name: str, value: int = 1, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._counters[name][_labels_key(labels)] += value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> int:
        with self._lock:
            return self._counters[name].get(_labels_key(labels), 0)

    # Gauges

    def set_gauge(self, name: str, value: float, labels: dict[str, str] | None = None) -> None:
        with self._lock:
            self._gauges[name][_labels_key(labels)] = value

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._gauges[name].get(_labels_key(labels), 0.0)

    # Histograms

    def timing(self, name: str, value_ms: float, labels: dict[str, str] | None = None) -> None:
        """Record a timing observation in milliseconds."""
        with self._lock:
            key = _labels_key(labels)
            histogram = self._histograms[name].get(key)
            if histogram is None:
                histogram = self._histograms[name][key] = Histogram()
            histogram.observe(value_ms)

    @contextmanager
    def timer(self, name: str, labels: dict[str, str] | None = None):
        """Time a code block."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.timing(name, (time.perf_counter() - start) * 1000, labels)

    # Export

    def get_all(self) -> dict[str, Any]:
        """All metrics as a JSON-friendly dictionary."""

        def flatten(values: dict[str, Any]) -> Any:
            if len(values) == 1 and "" in values:
                return values[""]
            return dict(values)

        with self._lock:
            return {
                "uptime_seconds": time.time() - self._start_time,
                "counters": {name: flatten(values) for name, values in self._counters.items()},
                "gauges": {name: flatten(values) for name, values in self._gauges.items()},
                "histograms": {
                    name: {
                        (key or "_total"): {
                            "count": h.count,
                            "sum": h.sum,
                            "avg": h.sum / h.count if h.count else 0,
                        }
                        for key, h in series.items()
                    }
                    for name, series in self._histograms.items()
                },
            }

    def to_prometheus(self) -> str:
        """Export metrics in Prometheus text format."""
        lines = [
            f"# HELP {self.prefix}_uptime_seconds Time since application start",
            f"# TYPE {self.prefix}_uptime_seconds gauge",
            f"{self.prefix}_uptime_seconds {time.time() - self._start_time:.2f}",
            "",
        ]

        def series(metric: str, key: str, value: Any, extra: str = "") -> str:
            labels = ",".join(part for part in (key, extra) if part)
            return f"{metric}{{{labels}}} {value}" if labels else f"{metric} {value}"

        with self._lock:
            for kind, store in (("counter", self._counters), ("gauge", self._gauges)):
                for name, values in store.items():
                    metric = f"{self.prefix}_{name}"
                    lines.append(f"# TYPE {metric} {kind}")
                    lines.extend(series(metric, key, value) for key, value in values.items())
                    lines.append("")

            for name, histograms in self._histograms.items():
                metric = f"{self.prefix}_{name}"
                lines.append(f"# TYPE {metric} histogram")
                for key, hist in histograms.items():
                    for le, count in hist.buckets():
                        lines.append(series(f"{metric}_bucket", key, count, f'le="{le}"'))
                    lines.append(series(f"{metric}_sum", key, f"{hist.sum:.2f}"))
                    lines.append(series(f"{metric}_count", key, hist.count))
                lines.append("")

        return "\n".join(lines)

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._histograms.clear()
            self._start_time = time.time()


# Process-wide collector used by the HTTP server
metrics = MetricsCollector()
