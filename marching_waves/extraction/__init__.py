"""Numerical extraction algorithms (pure functions over numpy fields).

Provides the stages that turn a grayscale image into vector geometry:
    - eikonal: Fast Marching distance field from dark seed pixels
    - gradient: Forward-difference gradients and image edge maps
    - contours: Marching-squares iso-lines with optional edge snapping
    - streamlines: Gradient-following paths with occupancy spacing
    - stipple: Variable-radius Poisson-disk dots
    - tour: Greedy nearest-neighbour ordering of dots
    - hatching: Four-layer directional scan-line hatching

Shared primitives:
    - geometry: Result containers (DistanceField, ContourSet, PathSet, ...)
    - spatial_grid: Bucket index for neighbour queries

Invariants:
    - Inputs are (H, W) float arrays; x = column, y = row
    - Unreached distance cells hold ``inf`` and never fail a job
    - Every long loop calls its ``Checkpoint`` (cancel, pause, progress)

No module here knows about execution units or the scheduler.
"""

from .contours import extract_contours, generate_levels, snap_to_edge
from .eikonal import require_reached, solve_eikonal
from .geometry import ContourLevel, ContourSet, DistanceField, DotSet, PathSet, SegmentSet
from .gradient import edge_map, gradient_field
from .hatching import generate_hatching
from .spatial_grid import SpatialGrid
from .stipple import sample_stipple
from .streamlines import trace_streamlines
from .tour import build_tour

__all__ = [
    "ContourLevel",
    "ContourSet",
    "DistanceField",
    "DotSet",
    "PathSet",
    "SegmentSet",
    "SpatialGrid",
    "build_tour",
    "edge_map",
    "extract_contours",
    "generate_hatching",
    "generate_levels",
    "gradient_field",
    "require_reached",
    "sample_stipple",
    "snap_to_edge",
    "solve_eikonal",
    "trace_streamlines",
]
