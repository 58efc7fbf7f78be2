"""Metrics collection for client operations."""

import threading
import time
from typing import Dict, Any, List
from collections import defaultdict


class MetricsCollector:
    """
    Collects counters and recorded values for HTTP and polling activity.

    Safe to share between the polling thread and the caller's thread.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._start_time = time.monotonic()
        self._metrics: Dict[str, List[Any]] = defaultdict(list)
        self._counters: Dict[str, int] = defaultdict(int)

    def record_metric(self, name: str, value: Any) -> None:
        """Record a metric value."""
        with self._lock:
            self._metrics[name].append(value)

    def increment_counter(self, name: str, amount: int = 1) -> None:
        """Increment a counter."""
        with self._lock:
            self._counters[name] += amount

    def get_counter(self, name: str) -> int:
        """Get counter value."""
        with self._lock:
            return self._counters.get(name, 0)

    def get_metric(self, name: str) -> list:
        """Get all values for a metric."""
        with self._lock:
            return list(self._metrics.get(name, []))

    def elapsed_time(self) -> float:
        """Get total elapsed time since initialization."""
        return time.monotonic() - self._start_time

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of all counters and numeric metrics."""
        with self._lock:
            counters = dict(self._counters)
            metrics = {name: list(values) for name, values in self._metrics.items()}

        summary: Dict[str, Any] = {
            "total_elapsed": self.elapsed_time(),
            "counters": counters,
            "metrics": {},
        }
        for name, values in metrics.items():
            if not values:
                continue
            if all(isinstance(v, (int, float)) for v in values):
                summary["metrics"][name] = {
                    "count": len(values),
                    "sum": sum(values),
                    "avg": sum(values) / len(values),
                    "min": min(values),
                    "max": max(values),
                }
            else:
                summary["metrics"][name] = {"count": len(values), "values": values}
        return summary
