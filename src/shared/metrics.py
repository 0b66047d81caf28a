"""Timers and counters for job and step durations."""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List

STEP_PREFIX = "step_"


class MetricsCollector:
    """
    Collects timers and counters.
    Implements IMetricsCollector protocol.

    The processor keeps one long-lived collector for outcome counters,
    shared by the worker threads of a batch, and a fresh one per job for
    the job and step timers.
    """

    def __init__(self):
        self._created = time.monotonic()
        self._running: Dict[str, float] = {}
        self._durations: Dict[str, List[float]] = defaultdict(list)
        self._counters: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def start_timer(self, name: str) -> None:
        self._running[name] = time.monotonic()

    def stop_timer(self, name: str) -> float:
        """
        Stop a named timer and return elapsed seconds.

        Raises:
            KeyError: If timer was not started
        """
        if name not in self._running:
            raise KeyError(f"Timer '{name}' was not started")

        elapsed = time.monotonic() - self._running.pop(name)
        self.record_metric(name, elapsed)
        return elapsed

    @contextmanager
    def timed(self, name: str) -> Iterator[None]:
        """Time a block; the duration is recorded even if the block raises."""
        self.start_timer(name)
        try:
            yield
        finally:
            self.stop_timer(name)

    def record_metric(self, name: str, value: float) -> None:
        self._durations[name].append(value)

    def get_metric(self, name: str) -> List[float]:
        return list(self._durations.get(name, []))

    def increment_counter(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def get_counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def step_timings(self) -> Dict[str, float]:
        """Seconds spent per step, in the order the steps ran."""
        return {
            name[len(STEP_PREFIX):]: round(sum(values), 3)
            for name, values in self._durations.items()
            if name.startswith(STEP_PREFIX)
        }

    def get_summary(self) -> Dict[str, Any]:
        """Elapsed time, step timings and any non-zero counters."""
        summary: Dict[str, Any] = {
            "elapsed": round(self.elapsed_time(), 3),
            "steps": self.step_timings(),
        }
        counters = {k: v for k, v in self._counters.items() if v}
        if counters:
            summary["counters"] = counters
        return summary

    def elapsed_time(self) -> float:
        return time.monotonic() - self._created
