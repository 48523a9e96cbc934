"""Geometry containers returned by extraction jobs.

Each job kind produces one container, fresh per run and never shared
afterwards:

    solveEikonalCPU          → DistanceField
    extractContoursAdaptive  → ContourSet  (level → unconnected segments)
    extractStreamlines       → PathSet     (ordered point sequences)
    extractStipple           → DotSet      (points)
    extractTSP               → PathSet     (one tour)
    extractHatch             → SegmentSet  (2-point segments)

All coordinates are continuous pixel coordinates (x = column, y = row).
``to_dict()`` emits plain floats/lists so results can be YAML-dumped.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Tuple, Union

import numpy as np

Point = Tuple[float, float]
Segment = Tuple[Point, Point]


def _pt(p: Point) -> List[float]:
    return [float(p[0]), float(p[1])]


@dataclass
class DistanceField:
    """Fast Marching output: travel time from the seed set per cell.

    ``distance`` is float32 of shape (height, width); unreached cells hold
    ``inf``.
    """

    distance: np.ndarray
    seed_count: int = 0
    cells_processed: int = 0

    @property
    def width(self) -> int:
        return int(self.distance.shape[1])

    @property
    def height(self) -> int:
        return int(self.distance.shape[0])

    @property
    def reached_fraction(self) -> float:
        if self.distance.size == 0:
            return 0.0
        return float(np.isfinite(self.distance).mean())

    def to_dict(self) -> dict:
        flat = self.distance.ravel()
        return {
            'kind': 'distance',
            'width': self.width,
            'height': self.height,
            # YAML has no inf in safe_dump output of lists; use None for unreached
            'solution': [float(v) if math.isfinite(v) else None for v in flat.tolist()],
        }


@dataclass
class ContourLevel:
    """Raw marching-squares segments for one iso-level."""

    level: float
    segments: List[Segment] = field(default_factory=list)


@dataclass
class ContourSet:
    """Iso-contours grouped by level; joining is left to the caller."""

    levels: List[ContourLevel] = field(default_factory=list)
    levels_processed: int = 0

    @property
    def segment_count(self) -> int:
        return sum(len(lv.segments) for lv in self.levels)

    def to_dict(self) -> dict:
        return {
            'kind': 'contours',
            'levels_processed': int(self.levels_processed),
            'levels': [
                {'level': float(lv.level), 'segments': [[_pt(a), _pt(b)] for a, b in lv.segments]}
                for lv in self.levels
            ],
        }


@dataclass
class PathSet:
    """Ordered polylines (streamlines, or a single TSP tour)."""

    paths: List[List[Point]] = field(default_factory=list)

    @property
    def point_count(self) -> int:
        return sum(len(p) for p in self.paths)

    def to_dict(self) -> dict:
        return {'kind': 'paths', 'paths': [[_pt(p) for p in path] for path in self.paths]}


@dataclass
class DotSet:
    """Stipple dot centres."""

    points: List[Point] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.points)

    def to_dict(self) -> dict:
        return {'kind': 'dots', 'points': [_pt(p) for p in self.points]}


@dataclass
class SegmentSet:
    """Disjoint straight segments (hatching)."""

    segments: List[Segment] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.segments)

    def to_dict(self) -> dict:
        return {'kind': 'segments', 'segments': [[_pt(a), _pt(b)] for a, b in self.segments]}


Geometry = Union[DistanceField, ContourSet, PathSet, DotSet, SegmentSet]
