"""Job kinds, parameter coercion and per-kind dispatch.

A job is ``(kind, params, options)``:
    - kind: one of the wire names below (``JobKind``)
    - params: data arrays and dimensions (``JobParams``)
    - options: tuning knobs (``validators.JobOptions``)

``run_job`` runs one job to completion on the calling thread and returns
``JobResult(data, performance)``. Every ``performance`` dict carries
``total_ms``; the other keys depend on the kind:

    solveEikonalCPU          total_ms, method, cells_processed
    extractContoursAdaptive  total_ms, levels_processed, lines_extracted
    extractStreamlines       total_ms, paths_generated, seeds
    extractStipple           total_ms, dots_generated
    extractTSP               total_ms, points_connected
    extractHatch             total_ms, lines_generated

Progress layout (overall percent as seen by listeners): the solver reports
0-100; extractors report inside 60-90 (contours 60-80), and the TSP tour
reports 90-100 after a silent stipple pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from ..control import Checkpoint
from ..errors import InvalidInput
from ..extraction import (
    build_tour,
    edge_map,
    extract_contours,
    generate_hatching,
    sample_stipple,
    solve_eikonal,
    trace_streamlines,
)
from ..extraction.geometry import Geometry
from ..utils.profiler import timer
from ..utils.validators import JobOptions, merge_options

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.5


# ---------------------------------------------------------------------------
# Kinds and results
# ---------------------------------------------------------------------------


class JobKind(str, Enum):
    """Job kinds, valued by their wire names."""

    SOLVE_EIKONAL = "solveEikonalCPU"
    CONTOURS = "extractContoursAdaptive"
    STREAMLINES = "extractStreamlines"
    STIPPLE = "extractStipple"
    TSP = "extractTSP"
    HATCH = "extractHatch"

    @classmethod
    def parse(cls, name: str | JobKind) -> JobKind:
        """Look up a kind by wire name; raises ``InvalidInput`` if unknown."""
        try:
            return cls(name)
        except ValueError:
            raise InvalidInput(f"Unknown method: {name}") from None


@dataclass
class JobResult:
    """Terminal payload of a successful job."""

    data: Geometry
    performance: Dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Params
# ---------------------------------------------------------------------------


def as_field(
    data: Any,
    width: Optional[int],
    height: Optional[int],
    name: str,
    channels: bool = False,
) -> np.ndarray:
    """Coerce a flat or 2-D array into a contiguous float32 (H, W) field.

    With ``channels=True`` a flat array of ``W * H * C`` values (browser
    RGBA image data) or an (H, W, C) array is accepted as well.
    """
    arr = np.asarray(data, dtype=np.float32)
    if arr.ndim == 1:
        if not width or not height:
            raise InvalidInput(f"'{name}' is flat; width and height are required")
        plane = width * height
        if arr.size == plane:
            arr = arr.reshape(height, width)
        elif channels and arr.size % plane == 0:
            arr = arr.reshape(height, width, arr.size // plane)
        else:
            raise InvalidInput(f"'{name}' has {arr.size} values, expected {plane} for {width}x{height}")
    elif arr.ndim == 2 or (channels and arr.ndim == 3):
        if (width and arr.shape[1] != width) or (height and arr.shape[0] != height):
            raise InvalidInput(f"'{name}' shape {arr.shape[:2]} does not match {height}x{width}")
    else:
        raise InvalidInput(f"'{name}' must be flat or 2-D, got shape {arr.shape}")

    if arr.shape[0] < 1 or arr.shape[1] < 1:
        raise InvalidInput(f"'{name}' is empty")
    return np.ascontiguousarray(arr)


class JobParams(BaseModel):
    """Job input data; accepts ``gray_data`` or ``grayData`` style keys.

    ``interval`` and ``max_segments`` may also be given here (the browser
    front end put them in params); they override the options when set.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra='ignore',
        arbitrary_types_allowed=True,
    )

    gray_data: Optional[Any] = None
    width: Optional[int] = Field(None, ge=1)
    height: Optional[int] = Field(None, ge=1)
    threshold: Optional[float] = None
    solution: Optional[Any] = None
    image_data: Optional[Any] = None
    interval: Optional[float] = Field(None, gt=0.0)
    max_segments: Optional[int] = Field(None, ge=0)

    def gray(self) -> np.ndarray:
        if self.gray_data is None:
            raise InvalidInput("'gray_data' is required for this job")
        return as_field(self.gray_data, self.width, self.height, 'gray_data')

    def distance(self) -> np.ndarray:
        if self.solution is None:
            raise InvalidInput("'solution' (distance field) is required for this job")
        solution = getattr(self.solution, 'distance', self.solution)
        return as_field(solution, self.width, self.height, 'solution')

    def image(self) -> Optional[np.ndarray]:
        if self.image_data is None:
            return None
        return as_field(self.image_data, self.width, self.height, 'image_data', channels=True)


def parse_params(params: Any) -> JobParams:
    """Validate a params mapping (or pass a ``JobParams`` through)."""
    if isinstance(params, JobParams):
        return params
    try:
        return JobParams.model_validate(params or {})
    except ValidationError as e:
        raise InvalidInput(f"Invalid job params: {e}") from e


def parse_options(options: Any, defaults: Optional[JobOptions] = None) -> JobOptions:
    """Validate an options mapping over ``defaults``."""
    if isinstance(options, JobOptions):
        return options
    try:
        return merge_options(defaults or JobOptions(), options)
    except ValidationError as e:
        raise InvalidInput(f"Invalid job options: {e}") from e


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _extract_threshold(params: JobParams, opts: JobOptions) -> float:
    if opts.threshold is not None:
        return opts.threshold
    if params.threshold is not None:
        return params.threshold
    return DEFAULT_THRESHOLD


def _interval(params: JobParams, opts: JobOptions) -> float:
    return params.interval if params.interval is not None else opts.interval


def _segment_cap(params: JobParams, opts: JobOptions) -> Optional[int]:
    if params.max_segments is not None:
        return params.max_segments or None
    return opts.segment_cap


def _rng(opts: JobOptions) -> np.random.Generator:
    return np.random.default_rng(opts.seed)


def _solve(params: JobParams, opts: JobOptions, cp: Checkpoint) -> Tuple[Geometry, Dict[str, Any]]:
    gray = params.gray()
    threshold = params.threshold if params.threshold is not None else opts.threshold
    if threshold is None:
        threshold = DEFAULT_THRESHOLD
    result = solve_eikonal(gray, threshold, checkpoint=cp, batch_size=opts.batch_size)
    return result, {'method': 'CPU FMM', 'cells_processed': result.cells_processed}


def _contours(params: JobParams, opts: JobOptions, cp: Checkpoint) -> Tuple[Geometry, Dict[str, Any]]:
    distance = params.distance()
    edges = None
    if opts.edge_guidance:
        source = params.image()
        if source is None and params.gray_data is not None:
            source = params.gray()
        if source is None:
            raise InvalidInput("Edge guidance needs 'image_data' or 'gray_data'")
        if source.shape[:2] != distance.shape:
            raise InvalidInput(f"Image shape {source.shape[:2]} != field shape {distance.shape}")
        edges = edge_map(source)

    result = extract_contours(
        distance,
        _interval(params, opts),
        detail_level=opts.detail_level,
        edges=edges,
        edge_sensitivity=opts.edge_sensitivity,
        max_segments=_segment_cap(params, opts),
        checkpoint=cp.scaled(60.0, 80.0),
    )
    return result, {
        'levels_processed': result.levels_processed,
        'lines_extracted': result.segment_count,
        'contour_smoothness': opts.contour_smoothness,
    }


def _streamlines(params: JobParams, opts: JobOptions, cp: Checkpoint) -> Tuple[Geometry, Dict[str, Any]]:
    gray = params.gray()
    distance = params.distance()
    if distance.shape != gray.shape:
        raise InvalidInput(f"Field shape {distance.shape} != grayscale shape {gray.shape}")
    result, seeds = trace_streamlines(
        gray,
        distance,
        _extract_threshold(params, opts),
        _interval(params, opts),
        step_size=opts.step_size,
        max_steps=opts.max_steps,
        min_length=opts.min_length,
        max_paths=_segment_cap(params, opts),
        rng=_rng(opts),
        checkpoint=cp.scaled(60.0, 90.0),
    )
    return result, {'paths_generated': len(result.paths), 'seeds': seeds}


def _stipple(params: JobParams, opts: JobOptions, cp: Checkpoint) -> Tuple[Geometry, Dict[str, Any]]:
    result = sample_stipple(
        params.gray(),
        _extract_threshold(params, opts),
        _interval(params, opts),
        rng=_rng(opts),
        checkpoint=cp.scaled(60.0, 90.0),
    )
    return result, {'dots_generated': len(result)}


def _tsp(params: JobParams, opts: JobOptions, cp: Checkpoint) -> Tuple[Geometry, Dict[str, Any]]:
    gray = params.gray()
    dots = sample_stipple(
        gray,
        _extract_threshold(params, opts),
        _interval(params, opts),
        rng=_rng(opts),
        checkpoint=cp.scaled(0.0, 90.0, show_progress=False),
    )
    height, width = gray.shape
    result = build_tour(dots.points, width, height, checkpoint=cp.scaled(90.0, 100.0))
    return result, {'points_connected': result.point_count}


def _hatch(params: JobParams, opts: JobOptions, cp: Checkpoint) -> Tuple[Geometry, Dict[str, Any]]:
    result = generate_hatching(
        params.gray(),
        _extract_threshold(params, opts),
        _interval(params, opts),
        max_segments=_segment_cap(params, opts),
        checkpoint=cp.scaled(60.0, 90.0),
    )
    return result, {'lines_generated': len(result)}


Handler = Callable[[JobParams, JobOptions, Checkpoint], Tuple[Geometry, Dict[str, Any]]]

HANDLERS: Dict[JobKind, Handler] = {
    JobKind.SOLVE_EIKONAL: _solve,
    JobKind.CONTOURS: _contours,
    JobKind.STREAMLINES: _streamlines,
    JobKind.STIPPLE: _stipple,
    JobKind.TSP: _tsp,
    JobKind.HATCH: _hatch,
}


def run_job(
    kind: str | JobKind,
    params: Any,
    options: Any = None,
    checkpoint: Optional[Checkpoint] = None,
) -> JobResult:
    """Run one job synchronously.

    Parameters
    ----------
    kind : str or JobKind
        Wire name, e.g. ``"extractHatch"``
    params : mapping or JobParams
        Input arrays and dimensions
    options : mapping or JobOptions, optional
        Tuning knobs (either key spelling)
    checkpoint : Checkpoint, optional
        Cancel/pause/progress hook; ``Checkpoint.noop()`` if None

    Returns
    -------
    JobResult

    Raises
    ------
    InvalidInput
        Unknown kind, missing or malformed params
    Cancelled
        Cancelled at a checkpoint
    """
    job_kind = JobKind.parse(kind)
    job_params = parse_params(params)
    opts = parse_options(options)
    cp = checkpoint or Checkpoint.noop()

    elapsed: Dict[str, float] = {}
    with timer(job_kind.value, sink=elapsed.__setitem__):
        data, stats = HANDLERS[job_kind](job_params, opts, cp)

    performance = {'total_ms': elapsed[job_kind.value] * 1000.0}
    performance.update(stats)
    logger.info("%s finished in %.1f ms", job_kind.value, performance['total_ms'])
    return JobResult(data=data, performance=performance)
