"""Background execution: scheduler, execution units, job dispatch.

Modules:
    - jobs: JobKind wire names, params coercion, run_job dispatch
    - unit: ExecutionUnit (one worker thread + inbox)
    - scheduler: TaskScheduler, TaskHandle, task events
    - policies: Idle and memory-pressure reclamation strategies

Invariants:
    - Pool never exceeds ``max_units`` live units
    - One task runs per unit at a time; no migration
    - Every task ends with exactly one terminal event
"""

from .jobs import JobKind, JobParams, JobResult, run_job
from .policies import IdleReclaimPolicy, MemoryPressurePolicy
from .scheduler import (
    ErrorEvent,
    ProgressEvent,
    ResultEvent,
    TaskHandle,
    TaskScheduler,
    TaskStatus,
)
from .unit import ExecutionUnit

__all__ = [
    "ErrorEvent",
    "ExecutionUnit",
    "IdleReclaimPolicy",
    "JobKind",
    "JobParams",
    "JobResult",
    "MemoryPressurePolicy",
    "ProgressEvent",
    "ResultEvent",
    "TaskHandle",
    "TaskScheduler",
    "TaskStatus",
    "run_job",
]
