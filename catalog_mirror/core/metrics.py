from __future__ import annotations

from collections import Counter, deque
from functools import wraps
from threading import Lock
from time import perf_counter
from typing import Any, Callable

from catalog_mirror.core.observability import get_resource_key

TIMING_WINDOW = 500


def _summarize(samples: list[float]) -> dict[str, float]:
    if not samples:
        return {"count": 0, "last": 0.0, "avg": 0.0, "p95": 0.0, "max": 0.0}
    ordered = sorted(samples)
    p95_index = min(len(ordered) - 1, int(round(0.95 * (len(ordered) - 1))))
    return {
        "count": len(samples),
        "last": samples[-1],
        "avg": sum(samples) / len(samples),
        "p95": ordered[p95_index],
        "max": ordered[-1],
    }


class MetricsRegistry:
    """In-process sync metrics, totalled and broken down by resource key.

    Timings keep only the most recent ``window`` samples per metric so a
    long-running mirror does not grow without bound.
    """

    def __init__(self, window: int = TIMING_WINDOW) -> None:
        self._lock = Lock()
        self._window = max(1, window)
        self._counters: Counter[str] = Counter()
        self._by_resource: dict[str, Counter[str]] = {}
        self._timings: dict[str, deque[float]] = {}

    def counter(self, name: str, resource: str | None = None) -> int:
        with self._lock:
            if resource is None:
                return self._counters[name]
            return self._by_resource.get(name, Counter())[resource]

    def increment(self, name: str, value: int = 1, *, resource: str | None = None) -> None:
        with self._lock:
            self._counters[name] += value
            if resource:
                self._by_resource.setdefault(name, Counter())[resource] += value

    def record_timing(self, name: str, milliseconds: float) -> None:
        with self._lock:
            self._timings.setdefault(name, deque(maxlen=self._window)).append(milliseconds)

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            counters = dict(self._counters)
            by_resource = {name: dict(values) for name, values in self._by_resource.items()}
            timings = {name: list(values) for name, values in self._timings.items()}
        return {
            "counters": counters,
            "counters_by_resource": by_resource,
            "timings_ms": {name: _summarize(values) for name, values in timings.items()},
        }


metrics_registry = MetricsRegistry()


def timed(metric_name: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            started = perf_counter()
            try:
                return func(*args, **kwargs)
            finally:
                metrics_registry.record_timing(metric_name, (perf_counter() - started) * 1000)

        return wrapper

    return decorator


def resource_metric(name: str) -> None:
    """Counts one occurrence of ``name`` for the resource of the active sync job."""
    metrics_registry.increment(name, resource=get_resource_key())
