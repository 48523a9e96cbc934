"""Lightweight wall-clock timing for job performance payloads.

Provides:
    - timer(): Context manager for wall-clock timing with optional sink
    - TimerAccumulator: Repeated measurements (per-kind job statistics)

Every job result carries ``performance["total_ms"]``, measured with
``timer`` around the algorithm call inside the execution unit.
"""

import threading
import time
from contextlib import contextmanager
from typing import Callable, Optional


@contextmanager
def timer(name: str, sink: Optional[Callable[[str, float], None]] = None):
    """Context manager for wall-clock timing.

    Parameters
    ----------
    name : str
        Timer name (for logging/display)
    sink : Optional[Callable[[str, float], None]]
        Callback(name, elapsed_seconds); if None, nothing is reported

    Examples
    --------
    >>> elapsed = {}
    >>> with timer("solve", sink=elapsed.__setitem__):
    ...     solve_eikonal(gray, 0.1)
    """
    start = time.perf_counter()
    try:
        yield
    finally:
        if sink is not None:
            sink(name, time.perf_counter() - start)


class TimerAccumulator:
    """Accumulate multiple timing measurements for averaging.

    Thread-safe: execution units record into one shared accumulator per
    job kind.

    Examples
    --------
    >>> acc = TimerAccumulator("extractHatch")
    >>> acc.add(0.25)
    >>> acc.mean()
    0.25
    """

    def __init__(self, name: str):
        self.name = name
        self.total_time = 0.0
        self.count = 0
        self._lock = threading.Lock()

    def add(self, elapsed: float) -> None:
        """Record one measurement in seconds."""
        with self._lock:
            self.total_time += elapsed
            self.count += 1

    def mean(self) -> float:
        """Mean time in seconds, or 0.0 if no measurements."""
        with self._lock:
            return self.total_time / self.count if self.count > 0 else 0.0

    def reset(self) -> None:
        """Reset accumulated data."""
        with self._lock:
            self.total_time = 0.0
            self.count = 0

    def __repr__(self) -> str:
        return f"TimerAccumulator({self.name}, mean={self.mean():.4f}s, count={self.count})"
