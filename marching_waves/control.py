"""Cooperative task control: cancellation token, pause gate, checkpoints.

Every long-running loop in ``marching_waves.extraction`` receives a
``Checkpoint`` and calls it periodically. One call:
    1. raises ``Cancelled`` if the task's cancel flag is set,
    2. blocks while the task is paused (still honouring cancel),
    3. forwards a progress percentage if one is given,
    4. yields the interpreter to other execution units.

Flags live on a per-task ``TaskControl`` that the scheduler owns and the
algorithm only reads; nothing is held in module globals, so two tasks on
two units never see each other's state.

A paused task stays paused until resumed; there is no timeout.
"""

from __future__ import annotations

import threading
import time
from typing import Callable, Optional, Tuple

from .errors import Cancelled

ProgressCallback = Callable[[float, str], None]

# Poll interval while paused (seconds)
PAUSE_POLL_S = 0.05


class TaskControl:
    """Cancel flag plus resumable pause gate for one task."""

    def __init__(self) -> None:
        self._cancel_flag = threading.Event()
        self._run_gate = threading.Event()
        self._run_gate.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancel_flag.is_set()

    @property
    def is_paused(self) -> bool:
        return not self._run_gate.is_set()

    def cancel(self) -> None:
        """Request cancellation; also releases a paused task so it can abort."""
        self._cancel_flag.set()
        self._run_gate.set()

    def pause(self) -> None:
        """Close the gate; takes effect at the next checkpoint."""
        if not self._cancel_flag.is_set():
            self._run_gate.clear()

    def resume(self) -> None:
        """Open the gate."""
        self._run_gate.set()

    def raise_if_cancelled(self) -> None:
        if self._cancel_flag.is_set():
            raise Cancelled()

    def wait_while_paused(self) -> None:
        """Block until resumed; raises ``Cancelled`` if cancelled meanwhile."""
        while not self._run_gate.wait(timeout=PAUSE_POLL_S):
            self.raise_if_cancelled()
        self.raise_if_cancelled()


class Checkpoint:
    """Callable suspension point handed to every algorithm.

    Parameters
    ----------
    control : TaskControl, optional
        Flags for the owning task; a fresh (never cancelled) one if None
    on_progress : callable, optional
        ``fn(percent, message)``; receives non-decreasing percentages
    show_progress : bool
        If False, progress arguments are ignored (cancel/pause still apply)

    Examples
    --------
    >>> cp = Checkpoint.noop()
    >>> solve_eikonal(gray, 0.1, checkpoint=cp)

    Sub-phases report into a slice of the parent's range:

    >>> sampling = cp.scaled(0.0, 60.0)   # 0-100 here is 0-60 overall
    """

    def __init__(
        self,
        control: Optional[TaskControl] = None,
        on_progress: Optional[ProgressCallback] = None,
        show_progress: bool = True,
        *,
        _span: Tuple[float, float] = (0.0, 100.0),
        _root: Optional["Checkpoint"] = None,
    ) -> None:
        self.control = control if control is not None else TaskControl()
        self.show_progress = show_progress
        self._on_progress = on_progress
        self._span = _span
        self._root = _root if _root is not None else self
        self._last_percent = 0.0

    @classmethod
    def noop(cls) -> "Checkpoint":
        """Checkpoint for standalone (non-scheduled) calls."""
        return cls(show_progress=False)

    def __call__(self, percent: Optional[float] = None, message: str = "") -> None:
        self.control.raise_if_cancelled()
        self.control.wait_while_paused()
        if percent is not None and self.show_progress:
            lo, hi = self._span
            clamped = min(max(float(percent), 0.0), 100.0)
            self._root._emit(lo + (hi - lo) * clamped / 100.0, message)
        # Release the GIL so sibling units and the scheduler stay responsive
        time.sleep(0)

    def scaled(self, lo: float, hi: float, show_progress: Optional[bool] = None) -> "Checkpoint":
        """Child checkpoint mapping its 0-100 range onto ``[lo, hi]`` of this one."""
        plo, phi = self._span
        span = (plo + (phi - plo) * lo / 100.0, plo + (phi - plo) * hi / 100.0)
        return Checkpoint(
            self.control,
            show_progress=self.show_progress if show_progress is None else show_progress,
            _span=span,
            _root=self._root,
        )

    def _emit(self, percent: float, message: str) -> None:
        if self._on_progress is None:
            return
        percent = max(self._last_percent, min(percent, 100.0))
        self._last_percent = percent
        self._on_progress(percent, message)
