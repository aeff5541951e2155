"""Process-local counters, gauges and latency samples.

Nothing here is exported over HTTP; :meth:`MetricsRegistry.snapshot` is written
to the log on every full-clear tick.
"""

from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Deque, Dict, Iterator, MutableMapping


class MetricsRegistry:
    def __init__(self, *, max_samples: int = 512) -> None:
        self._lock = threading.RLock()
        self._max_samples = max_samples
        self._counters: MutableMapping[str, float] = defaultdict(float)
        self._gauges: Dict[str, float] = {}
        self._timings: MutableMapping[str, Deque[float]] = defaultdict(self._new_window)

    def _new_window(self) -> Deque[float]:
        return deque(maxlen=self._max_samples)

    def increment(self, name: str, amount: float = 1.0) -> None:
        with self._lock:
            self._counters[name] += amount

    def get(self, name: str) -> float:
        with self._lock:
            return self._counters.get(name, 0.0)

    def gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def get_gauge(self, name: str) -> float:
        with self._lock:
            return self._gauges.get(name, 0.0)

    def observe(self, name: str, seconds: float) -> None:
        with self._lock:
            self._timings[name].append(float(seconds))

    @contextmanager
    def timer(self, name: str) -> Iterator[None]:
        """Record the wall time of the block under *name*, even if it raises."""

        started = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, time.perf_counter() - started)

    def timing_stats(self, name: str) -> Dict[str, float]:
        with self._lock:
            samples = list(self._timings.get(name, ()))
        if not samples:
            return {"count": 0, "mean": 0.0, "max": 0.0}
        return {"count": len(samples), "mean": sum(samples) / len(samples), "max": max(samples)}

    def snapshot(self) -> Dict[str, Dict[str, object]]:
        with self._lock:
            counters = dict(self._counters)
            gauges = dict(self._gauges)
            names = list(self._timings)
        return {
            "counters": counters,
            "gauges": gauges,
            "timings": {name: self.timing_stats(name) for name in names},
        }

    def reset(self) -> None:
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._timings.clear()


METRICS = MetricsRegistry()


__all__ = ["METRICS", "MetricsRegistry"]
