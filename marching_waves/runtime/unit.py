"""Execution unit -- one worker thread running tasks to completion.

Each unit owns a daemon thread and an inbox queue. Tasks placed on a
busy unit wait in its inbox; there is no migration between units.

Task boundary:
    - A task cancelled before it starts reports ``Cancelled`` at once.
    - Every exception raised by the job is caught here and reported as
      the task's outcome; the unit keeps serving its inbox.
    - Exactly one outcome per task reaches the scheduler's callback.

Termination sets the stop flag, cancels the running task (which aborts
at its next checkpoint) and posts a sentinel so the loop exits once the
inbox drains.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
import traceback
from typing import TYPE_CHECKING, Callable, Union

from ..control import Checkpoint
from ..errors import Cancelled, JobFailed, MarchingWavesError, PoolExhausted
from ..utils.logging_config import log_context, push_context
from .jobs import JobResult, parse_options, run_job

if TYPE_CHECKING:
    from .scheduler import Task

logger = logging.getLogger(__name__)

Outcome = Union[JobResult, MarchingWavesError]


class ExecutionUnit:
    """Worker thread with an inbox.

    Parameters
    ----------
    unit_id : str
        Name used in logs and the thread name
    on_finished : callable
        ``fn(unit, task, outcome)``, called on the unit thread once per task;
        ``outcome`` is a ``JobResult`` or the error to report
    """

    def __init__(
        self,
        unit_id: str,
        on_finished: Callable[[ExecutionUnit, Task, Outcome], None],
    ) -> None:
        self.unit_id = unit_id
        # Counters are owned by the scheduler and only touched under its lock
        self.active_task_count = 0
        self.last_active_at = time.monotonic()
        self.current_task: Task | None = None
        self.dead = False

        self._on_finished = on_finished
        self._inbox: queue.Queue[Task | None] = queue.Queue()
        self._stopping = threading.Event()
        self._thread = threading.Thread(
            target=self._loop, name=f"mw-{unit_id}", daemon=True,
        )

    def __repr__(self) -> str:
        return (
            f"ExecutionUnit({self.unit_id}, active={self.active_task_count}, "
            f"alive={self.is_alive})"
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive() and not self.dead and not self._stopping.is_set()

    def start(self) -> None:
        """Start the worker thread; raises ``PoolExhausted`` if the OS refuses."""
        try:
            self._thread.start()
        except RuntimeError as exc:
            self.dead = True
            raise PoolExhausted(f"Could not start execution unit {self.unit_id}: {exc}") from exc
        logger.debug("Started %s", self.unit_id)

    def assign(self, task: Task) -> None:
        """Queue a task; it runs after everything already in the inbox."""
        self._inbox.put(task)

    def terminate(self) -> None:
        """Stop after the current task; the running task is cancelled."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        current = self.current_task
        if current is not None:
            current.control.cancel()
        self._inbox.put(None)
        logger.debug("Terminating %s", self.unit_id)

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive() and threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def touch(self) -> None:
        """Refresh ``last_active_at``."""
        self.last_active_at = time.monotonic()

    # ------------------------------------------------------------------
    # Worker thread
    # ------------------------------------------------------------------

    def _loop(self) -> None:
        push_context(unit=self.unit_id)
        try:
            while True:
                task = self._inbox.get()
                if task is None:
                    break
                if self._stopping.is_set():
                    task.control.cancel()
                self._execute(task)
        except Exception:  # noqa: BLE001
            self.dead = True
            logger.exception("Execution unit %s crashed", self.unit_id)
        logger.debug("%s stopped", self.unit_id)

    def _execute(self, task: Task) -> None:
        self.current_task = task
        with log_context(task=task.id, kind=task.kind):
            outcome = self._run_task(task)
        self.current_task = None
        self.touch()
        self._on_finished(self, task, outcome)

    def _run_task(self, task: Task) -> Outcome:
        if task.control.is_cancelled:
            logger.info("Cancelled before start")
            return Cancelled()

        task.mark_started()
        try:
            opts = parse_options(task.options, task.defaults)
            checkpoint = Checkpoint(
                task.control,
                on_progress=lambda percent, message: self._progress(task, percent, message),
                show_progress=opts.show_progress,
            )
            return run_job(task.kind, task.params, opts, checkpoint)
        except Cancelled as exc:
            logger.info("Cancelled")
            return exc
        except MarchingWavesError as exc:
            logger.warning("Failed: %s", exc)
            return exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unexpected %s in task", type(exc).__name__)
            return JobFailed(str(exc), kind=type(exc).__name__, details=traceback.format_exc())

    def _progress(self, task: Task, percent: float, message: str) -> None:
        self.touch()
        task.report_progress(percent, message)
