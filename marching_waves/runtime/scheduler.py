"""Task scheduler -- a pool of execution units with least-loaded placement.

Placement (cap-aware greedy, not FIFO):
    1. Pick the live unit with the fewest active tasks.
    2. If that minimum exceeds 1 and the pool is below ``max_units``,
       start a new unit and place the task there instead.
A task placed on a busy unit waits in that unit's inbox.

Control:
    - cancel: signals the task's control token and frees its slot at once;
      the handle resolves to ``Cancelled`` when the unit reports.
    - pause / resume: toggles the task's gate; a paused task blocks its
      unit at the next checkpoint with no timeout.
    - Unknown task ids are ignored.

Events per task: zero or more ``ProgressEvent`` with non-decreasing
percent, then exactly one ``ResultEvent`` or ``ErrorEvent``.

Reclamation is delegated to ``IdleReclaimPolicy`` (timer re-armed after
every completion) and ``MemoryPressurePolicy`` (probed on submit and on
completion).

All mutations of the unit list and task table happen under one RLock.
Listener callbacks run on unit threads, outside that lock.
"""

from __future__ import annotations

import gc
import itertools
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Union

from ..control import ProgressCallback, TaskControl
from ..errors import Cancelled, JobFailed
from ..utils.profiler import TimerAccumulator
from ..utils.validators import EngineConfigV1, JobOptions, SchedulerConfig
from .jobs import JobKind, JobResult
from .policies import IdleReclaimPolicy, MemoryPressurePolicy, MemoryProbe
from .unit import ExecutionUnit, Outcome

logger = logging.getLogger(__name__)

# Seconds terminate_all waits for each unit thread to exit
JOIN_TIMEOUT_S = 2.0


# ---------------------------------------------------------------------------
# Status and events
# ---------------------------------------------------------------------------


class TaskStatus(Enum):
    """Lifecycle state of one task."""

    QUEUED = auto()
    RUNNING = auto()
    PAUSED = auto()
    CANCELLED = auto()
    COMPLETED = auto()
    FAILED = auto()


@dataclass(frozen=True)
class ProgressEvent:
    """Advisory progress update."""

    task_id: str
    percent: float
    message: str = ""


@dataclass(frozen=True)
class ResultEvent:
    """Successful terminal event."""

    task_id: str
    data: Any
    performance: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ErrorEvent:
    """Failed or cancelled terminal event; ``kind`` is the error class name."""

    task_id: str
    message: str
    kind: str


TaskEvent = Union[ProgressEvent, ResultEvent, ErrorEvent]
EventListener = Callable[[TaskEvent], None]


# ---------------------------------------------------------------------------
# Task
# ---------------------------------------------------------------------------


class Task:
    """One submitted job and its delivery state.

    Options stay unvalidated until the unit picks the task up, so a bad
    option bag fails the task rather than the submit call.

    Listeners run while the task's delivery lock is held and must not
    block; pausing or cancelling from inside a listener is fine.
    """

    def __init__(
        self,
        task_id: str,
        kind: str,
        params: Any,
        options: Any,
        defaults: JobOptions,
        on_progress: ProgressCallback | None = None,
        on_event: EventListener | None = None,
    ) -> None:
        self.id = task_id
        self.kind = kind
        self.params = params
        self.options = options
        self.defaults = defaults
        self.status = TaskStatus.QUEUED
        self.progress = 0.0
        self.control = TaskControl()
        self.future: Future = Future()
        self.unit: ExecutionUnit | None = None
        # Set under the scheduler lock once the slot has been given back
        self.released = False

        self._on_progress = on_progress
        self._on_event = on_event
        self._started = False
        self._finished = False
        self._delivery_lock = threading.RLock()

    def __repr__(self) -> str:
        return f"Task({self.id}, {self.kind}, {self.status.name}, {self.progress:.0f}%)"

    @property
    def started(self) -> bool:
        return self._started

    def mark_started(self) -> None:
        self._started = True
        if self.status is TaskStatus.QUEUED:
            self.status = TaskStatus.RUNNING

    def report_progress(self, percent: float, message: str) -> None:
        """Deliver a progress event; dropped once the task has finished."""
        with self._delivery_lock:
            if self._finished:
                return
            self.progress = percent
            if self._on_progress is not None:
                _safe_call(self._on_progress, percent, message)
            if self._on_event is not None:
                _safe_call(self._on_event, ProgressEvent(self.id, percent, message))

    def finish(self, outcome: Outcome) -> bool:
        """Deliver the terminal event and resolve the future (first call wins).

        A result arriving for a task that was already cancelled is dropped
        and the task resolves to ``Cancelled``.
        """
        with self._delivery_lock:
            if self._finished:
                return False
            self._finished = True

        if isinstance(outcome, JobResult) and self.status is TaskStatus.CANCELLED:
            outcome = Cancelled()

        if isinstance(outcome, JobResult):
            self.status = TaskStatus.COMPLETED
            event: TaskEvent = ResultEvent(self.id, outcome.data, outcome.performance)
        else:
            cancelled = isinstance(outcome, Cancelled)
            self.status = TaskStatus.CANCELLED if cancelled else TaskStatus.FAILED
            event = ErrorEvent(self.id, str(outcome), type(outcome).__name__)

        if self._on_event is not None:
            _safe_call(self._on_event, event)
        if isinstance(outcome, JobResult):
            self.future.set_result(outcome)
        else:
            self.future.set_exception(outcome)
        return True


def _safe_call(fn: Callable[..., None], *args: Any) -> None:
    try:
        fn(*args)
    except Exception as exc:  # noqa: BLE001
        logger.error("Task listener error: %s", exc)


class TaskHandle:
    """Caller-side view of a submitted task."""

    def __init__(self, task: Task, scheduler: TaskScheduler) -> None:
        self._task = task
        self._scheduler = scheduler

    def __repr__(self) -> str:
        return f"TaskHandle({self._task!r})"

    @property
    def id(self) -> str:
        return self._task.id

    @property
    def kind(self) -> str:
        return self._task.kind

    @property
    def status(self) -> TaskStatus:
        return self._task.status

    @property
    def progress(self) -> float:
        return self._task.progress

    def done(self) -> bool:
        return self._task.future.done()

    def result(self, timeout: float | None = None) -> JobResult:
        """Block for the outcome; raises the task's error if it failed.

        Raises
        ------
        Cancelled, InvalidInput, JobFailed
            The task's terminal error
        concurrent.futures.TimeoutError
            If ``timeout`` elapses first
        """
        return self._task.future.result(timeout)

    def exception(self, timeout: float | None = None) -> BaseException | None:
        return self._task.future.exception(timeout)

    def cancel(self) -> bool:
        return self._scheduler.cancel(self.id)

    def pause(self) -> bool:
        return self._scheduler.pause(self.id)

    def resume(self) -> bool:
        return self._scheduler.resume(self.id)


# ---------------------------------------------------------------------------
# Scheduler
# ---------------------------------------------------------------------------


class TaskScheduler:
    """Pool of execution units running extraction jobs.

    Parameters
    ----------
    config : SchedulerConfig, optional
        Pool cap and reclamation settings
    defaults : JobOptions, optional
        Options every task starts from before its own overrides
    memory_probe : callable, optional
        Usage ratio source for the memory-pressure policy

    Examples
    --------
    >>> with TaskScheduler(SchedulerConfig(max_units=2)) as pool:
    ...     handle = pool.submit("solveEikonalCPU", {"gray_data": gray, "threshold": 0.1})
    ...     field = handle.result().data
    """

    def __init__(
        self,
        config: SchedulerConfig | None = None,
        *,
        defaults: JobOptions | None = None,
        memory_probe: MemoryProbe | None = None,
    ) -> None:
        self.config = config or SchedulerConfig()
        self.max_units = self.config.resolved_max_units()
        self.defaults = defaults or JobOptions()
        self.idle_policy = IdleReclaimPolicy(self.config.idle_timeout_s, self.config.min_idle_units)
        self.memory_policy = MemoryPressurePolicy(
            self.config.memory_pressure_ratio,
            self.config.min_idle_units,
            probe=memory_probe,
        )

        self._lock = threading.RLock()
        self._units: List[ExecutionUnit] = []
        # Tasks holding a slot (cancel releases immediately)
        self._tasks: Dict[str, Task] = {}
        # Tasks whose handle has not resolved yet
        self._unresolved: Dict[str, Task] = {}
        self._task_ids = itertools.count(1)
        self._unit_ids = itertools.count(1)
        self._timings: Dict[str, TimerAccumulator] = {}

    @classmethod
    def from_config(cls, engine: EngineConfigV1, **kwargs: Any) -> TaskScheduler:
        """Scheduler using the ``scheduler`` and ``defaults`` sections."""
        return cls(engine.scheduler, defaults=engine.defaults, **kwargs)

    def __enter__(self) -> TaskScheduler:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.terminate_all()

    @property
    def units(self) -> List[ExecutionUnit]:
        """Snapshot of the current unit list."""
        with self._lock:
            return list(self._units)

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(
        self,
        kind: str | JobKind,
        params: Any = None,
        options: Mapping[str, Any] | JobOptions | None = None,
        *,
        on_event: EventListener | None = None,
    ) -> TaskHandle:
        """Place a job on a unit and return its handle.

        ``options`` may carry an ``on_progress`` (or ``onProgress``)
        callable; it is removed before validation and receives
        ``(percent, message)`` for every progress event.

        Raises
        ------
        PoolExhausted
            If a new unit was needed and could not be started
        """
        on_progress = None
        if isinstance(options, Mapping):
            options = dict(options)
            on_progress = options.pop('on_progress', None)
            camel = options.pop('onProgress', None)
            on_progress = on_progress or camel

        kind_name = kind.value if isinstance(kind, JobKind) else str(kind)
        orphans: List[Task] = []
        try:
            with self._lock:
                orphans = self._prune_dead_units()
                unit = self._select_unit()
                task = Task(
                    f"task_{next(self._task_ids)}",
                    kind_name,
                    params,
                    options,
                    self.defaults,
                    on_progress=on_progress,
                    on_event=on_event,
                )
                task.unit = unit
                self._tasks[task.id] = task
                self._unresolved[task.id] = task
                unit.active_task_count += 1
                unit.touch()
                unit.assign(task)
                logger.debug(
                    "Submitted %s (%s) to %s, active=%d",
                    task.id, kind_name, unit.unit_id, unit.active_task_count,
                )
        finally:
            # Tasks of pruned units fail even when no replacement could start
            self._fail_orphans(orphans)

        if self.config.memory_pressure_enabled:
            self.check_memory_pressure()
        return TaskHandle(task, self)

    def submit_many(
        self,
        requests: Iterable[Mapping[str, Any]],
        options: Mapping[str, Any] | None = None,
    ) -> List[TaskHandle]:
        """Submit a batch; handles come back in request order.

        Each request holds ``kind`` (or ``method``), ``params`` and optional
        ``options`` / ``on_progress``; shared ``options`` apply underneath.
        """
        handles = []
        for req in requests:
            merged = dict(options or {})
            merged.update(req.get('options') or {})
            if req.get('on_progress') is not None:
                merged['on_progress'] = req['on_progress']
            kind = req.get('kind', req.get('method'))
            handles.append(self.submit(kind, req.get('params'), merged, on_event=req.get('on_event')))
        return handles

    def process_queue(self) -> None:
        """Batching hook; tasks always start on placement, so nothing to do."""

    def warm_up(self, count: int | None = None) -> int:
        """Start units ahead of demand (up to ``max_units``); returns pool size."""
        target = self.max_units if count is None else min(count, self.max_units)
        with self._lock:
            while len(self._units) < target:
                self._spawn_unit()
            return len(self._units)

    def _select_unit(self) -> ExecutionUnit:
        unit = min(self._units, key=lambda u: u.active_task_count, default=None)
        if unit is None or (unit.active_task_count > 1 and len(self._units) < self.max_units):
            return self._spawn_unit()
        return unit

    def _spawn_unit(self) -> ExecutionUnit:
        unit = ExecutionUnit(f"unit-{next(self._unit_ids)}", self._on_unit_finished)
        unit.start()
        self._units.append(unit)
        logger.debug("Pool grew to %d/%d units", len(self._units), self.max_units)
        return unit

    def _prune_dead_units(self) -> List[Task]:
        """Drop crashed units; returns their tasks so they can be failed."""
        dead = [u for u in self._units if u.dead]
        orphans: List[Task] = []
        for unit in dead:
            logger.warning("Replacing dead unit %s", unit.unit_id)
            unit.terminate()
            self._units.remove(unit)
            for task in list(self._tasks.values()):
                if task.unit is unit:
                    self._release(task)
                    self._unresolved.pop(task.id, None)
                    orphans.append(task)
        return orphans

    @staticmethod
    def _fail_orphans(orphans: List[Task]) -> None:
        for task in orphans:
            task.finish(JobFailed("Execution unit died", kind="UnitDied"))

    # ------------------------------------------------------------------
    # Task control
    # ------------------------------------------------------------------

    def cancel(self, task_id: str) -> bool:
        """Cancel a task; its slot is freed before the unit acknowledges."""
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                logger.debug("cancel: unknown task %s", task_id)
                return False
            task.control.cancel()
            task.status = TaskStatus.CANCELLED
            self._release(task)
        logger.info("Cancel requested for %s", task_id)
        return True

    def pause(self, task_id: str) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                logger.debug("pause: unknown task %s", task_id)
                return False
            task.control.pause()
            task.status = TaskStatus.PAUSED
        logger.info("Paused %s", task_id)
        return True

    def resume(self, task_id: str) -> bool:
        with self._lock:
            task = self._tasks.get(task_id)
            if task is None:
                logger.debug("resume: unknown task %s", task_id)
                return False
            task.control.resume()
            task.status = TaskStatus.RUNNING if task.started else TaskStatus.QUEUED
        logger.info("Resumed %s", task_id)
        return True

    def _release(self, task: Task) -> None:
        if task.released:
            return
        task.released = True
        self._tasks.pop(task.id, None)
        if task.unit is not None and task.unit.active_task_count > 0:
            task.unit.active_task_count -= 1

    def _on_unit_finished(self, unit: ExecutionUnit, task: Task, outcome: Outcome) -> None:
        with self._lock:
            self._release(task)
            self._unresolved.pop(task.id, None)
            unit.touch()
            if isinstance(outcome, JobResult):
                acc = self._timings.setdefault(task.kind, TimerAccumulator(task.kind))
                acc.add(outcome.performance.get('total_ms', 0.0) / 1000.0)
            in_pool = unit in self._units

        if in_pool:
            self.idle_policy.arm(self.reclaim_idle_units)
        task.finish(outcome)
        if in_pool and self.config.memory_pressure_enabled:
            self.check_memory_pressure()

    # ------------------------------------------------------------------
    # Reclamation
    # ------------------------------------------------------------------

    def reclaim_idle_units(self) -> int:
        """Stop units idle past the timeout, down to the floor."""
        with self._lock:
            victims = self.idle_policy.select(self._units)
            self._remove_units(victims)
            total = len(self._units)
        if victims:
            logger.info("Terminated %d idle units (%d remain)", len(victims), total)
        else:
            logger.debug("No idle units to terminate")
        return len(victims)

    def terminate_idle_units(self) -> int:
        """Stop every idle unit beyond ``min_idle_units``, however recent."""
        with self._lock:
            victims = self.memory_policy.select(self._units)
            self._remove_units(victims)
        if victims:
            logger.info("Force terminated %d idle units", len(victims))
        return len(victims)

    def check_memory_pressure(self) -> bool:
        """Probe memory; under pressure, force-reclaim idle units."""
        if not self.memory_policy.under_pressure():
            return False
        self.terminate_idle_units()
        gc.collect()
        return True

    def _remove_units(self, victims: Iterable[ExecutionUnit]) -> None:
        for unit in victims:
            unit.terminate()
            self._units.remove(unit)

    def broadcast_visibility(self, visible: bool) -> None:
        """Host visibility changed; refresh activity so warm units survive."""
        with self._lock:
            for unit in self._units:
                unit.touch()
        logger.debug("Visibility -> %s, refreshed %d units", visible, len(self._units))

    def terminate_all(self) -> None:
        """Stop every unit and clear bookkeeping; pending handles resolve ``Cancelled``."""
        with self._lock:
            units = list(self._units)
            pending = list(self._unresolved.values())
            for task in pending:
                task.control.cancel()
                task.released = True
            self._units.clear()
            self._tasks.clear()
            self._unresolved.clear()
            for unit in units:
                unit.terminate()
        self.idle_policy.disarm()

        for task in pending:
            task.finish(Cancelled("Scheduler terminated"))
        for unit in units:
            unit.join(JOIN_TIMEOUT_S)
        if units or pending:
            logger.info("Terminated %d units, %d pending tasks cancelled", len(units), len(pending))

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                'total_units': len(self._units),
                'active_units': sum(1 for u in self._units if u.active_task_count > 0),
                'queued_tasks': sum(1 for t in self._tasks.values() if not t.started),
                'active_tasks': len(self._tasks),
            }

    def timings(self) -> Dict[str, float]:
        """Mean completed-job wall time per kind, in milliseconds."""
        with self._lock:
            return {kind: acc.mean() * 1000.0 for kind, acc in self._timings.items()}

    def get(self, task_id: str) -> Optional[Task]:
        """Task still holding a slot, or None."""
        with self._lock:
            return self._tasks.get(task_id)
