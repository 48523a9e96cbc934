"""Reclamation policies attached to the task scheduler.

Two strategies decide which idle execution units to stop:

IdleReclaimPolicy
    Re-armed after every task completion, so a burst of completions
    collapses into one cleanup pass when the single-shot timer fires.
    Keeps ``min_idle_units`` plus one unit per busy unit; only units idle
    for longer than the timeout are eligible.

MemoryPressurePolicy
    Reads a usage ratio in [0, 1] from a probe (host virtual memory via
    psutil by default). Above the limit, every idle unit beyond
    ``min_idle_units`` is eligible regardless of how long it idled.

Both are pure selectors: the scheduler holds its lock while calling
``select`` and does the terminating itself.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Sequence

import psutil

from .unit import ExecutionUnit

logger = logging.getLogger(__name__)

MemoryProbe = Callable[[], float]


def host_memory_ratio() -> float:
    """Fraction of host memory in use (psutil)."""
    return psutil.virtual_memory().percent / 100.0


class IdleReclaimPolicy:
    """Timeout-based reclamation with a coalescing single-shot timer.

    Parameters
    ----------
    idle_timeout_s : float
        Idle time after which a unit may be stopped; also the timer delay
    min_idle_units : int
        Warm units kept on top of the busy ones
    """

    def __init__(self, idle_timeout_s: float = 60.0, min_idle_units: int = 1) -> None:
        self.idle_timeout_s = idle_timeout_s
        self.min_idle_units = min_idle_units
        self._timer: threading.Timer | None = None
        self._timer_lock = threading.Lock()

    def arm(self, callback: Callable[[], None]) -> None:
        """(Re)start the timer; a pending pass is replaced, not duplicated."""
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.idle_timeout_s, callback)
            self._timer.daemon = True
            self._timer.start()

    def disarm(self) -> None:
        with self._timer_lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    @property
    def armed(self) -> bool:
        with self._timer_lock:
            return self._timer is not None and self._timer.is_alive()

    def select(self, units: Sequence[ExecutionUnit], now: float | None = None) -> list[ExecutionUnit]:
        """Units to stop now; empty if the pool is at or below its floor."""
        now = time.monotonic() if now is None else now
        busy = sum(1 for u in units if u.active_task_count > 0)
        floor = self.min_idle_units + busy
        if len(units) <= floor:
            return []
        stale = [
            u for u in units
            if u.active_task_count == 0 and now - u.last_active_at > self.idle_timeout_s
        ]
        return stale[: len(units) - floor]


class MemoryPressurePolicy:
    """Force-reclaim idle units when memory usage crosses a ratio.

    Parameters
    ----------
    threshold : float
        Usage ratio above which reclamation triggers (default 0.8)
    min_idle_units : int
        Idle units kept even under pressure
    probe : callable, optional
        Returns usage in [0, 1]; ``host_memory_ratio`` if None
    """

    def __init__(
        self,
        threshold: float = 0.8,
        min_idle_units: int = 1,
        probe: MemoryProbe | None = None,
    ) -> None:
        self.threshold = threshold
        self.min_idle_units = min_idle_units
        self.probe = probe if probe is not None else host_memory_ratio

    def under_pressure(self) -> bool:
        ratio = self.probe()
        if ratio > self.threshold:
            logger.warning("Memory pressure detected (%.0f%% used)", ratio * 100.0)
            return True
        return False

    def select(self, units: Sequence[ExecutionUnit]) -> list[ExecutionUnit]:
        """Idle units beyond the floor, oldest first in pool order."""
        idle = [u for u in units if u.active_task_count == 0]
        excess = len(idle) - self.min_idle_units
        return idle[:excess] if excess > 0 else []
