"""Timing utilities for measuring latency."""

import time
from collections import deque
from collections.abc import Generator
from contextlib import contextmanager
from typing import Callable, Dict


class LatencyTracker:
    """Track latency statistics over multiple measurements."""

    def __init__(self, name: str, window: int = 1000) -> None:
        """
        Initialize latency tracker.

        Args:
            name: Name of the operation being tracked
            window: Number of most recent measurements kept
        """
        self.name = name
        self._measurements: deque[float] = deque(maxlen=window)

    def record(self, latency_ms: float) -> None:
        """
        Record a latency measurement.

        Args:
            latency_ms: Latency in milliseconds
        """
        self._measurements.append(latency_ms)

    @property
    def count(self) -> int:
        return len(self._measurements)

    def get_stats(self) -> Dict[str, float]:
        """
        Get latency statistics.

        Returns:
            Dictionary with count, min, max, mean, median and p95 latency
        """
        if not self._measurements:
            return {
                "count": 0,
                "min": 0.0,
                "max": 0.0,
                "mean": 0.0,
                "median": 0.0,
                "p95": 0.0,
            }

        sorted_measurements = sorted(self._measurements)
        n = len(sorted_measurements)

        return {
            "count": n,
            "min": sorted_measurements[0],
            "max": sorted_measurements[-1],
            "mean": sum(sorted_measurements) / n,
            "median": sorted_measurements[n // 2],
            "p95": sorted_measurements[int(0.95 * n)],
        }

    def reset(self) -> None:
        """Reset all measurements."""
        self._measurements.clear()


@contextmanager
def timer() -> Generator[Callable[[], float], None, None]:
    """A context manager to measure execution time."""
    start_time = time.perf_counter()
    # Yield a function that returns the elapsed time in milliseconds
    yield lambda: (time.perf_counter() - start_time) * 1000
