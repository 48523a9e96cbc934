"""Error taxonomy for the Marching Waves engine.

Every failure a job or the pool can surface derives from
``MarchingWavesError`` so callers can catch the whole family at once:

    Cancelled       user-requested abort; a normal outcome, not a fault
    PoolExhausted   no execution unit could be created or found
    InvalidInput    degenerate dimensions, missing fields, empty seed set
    Unreachable     sentinel distance where a finite value was expected
    JobFailed       anything else raised inside a task

Per-task errors are reported on the task's own handle and never tear
down the pool.
"""

from __future__ import annotations


class MarchingWavesError(Exception):
    """Base exception for all engine errors."""

    pass


class Cancelled(MarchingWavesError):
    """Task aborted at a checkpoint after a cancel request."""

    def __init__(self, message: str = "Cancelled by user") -> None:
        super().__init__(message)


class PoolExhausted(MarchingWavesError):
    """Execution unit creation failed (out of threads / resources)."""

    pass


class InvalidInput(MarchingWavesError, ValueError):
    """Job parameters cannot produce a result."""

    pass


class Unreachable(MarchingWavesError):
    """A cell kept the unreached sentinel.

    Algorithms treat such cells as contributing nothing; this type exists
    so callers that need finite fields can opt into a hard failure with
    :func:`marching_waves.extraction.eikonal.require_reached`.
    """

    pass


class JobFailed(MarchingWavesError):
    """Unexpected exception inside a task.

    Attributes
    ----------
    kind : str
        Name of the original exception class
    details : str
        Formatted traceback from the execution unit
    """

    def __init__(self, message: str, kind: str = "", details: str = "") -> None:
        super().__init__(message)
        self.kind = kind
        self.details = details
