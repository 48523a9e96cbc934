"""Greedy nearest-neighbour tour through stipple dots.

Starts at the first dot and repeatedly walks to the closest unvisited
one, found by expanding ring search over a ``SpatialGrid`` with 30 px
buckets. Rings grow until one holds an unvisited dot; the tour ends
early if the whole grid is exhausted. No 2-opt or other improvement pass.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from ..control import Checkpoint
from .geometry import PathSet, Point
from .spatial_grid import SpatialGrid

logger = logging.getLogger(__name__)

TOUR_CELL_SIZE = 30.0
REMAINING_BATCH = 1000


def build_tour(
    points: Sequence[Point],
    width: float,
    height: float,
    checkpoint: Optional[Checkpoint] = None,
) -> PathSet:
    """Order ``points`` into one greedy tour.

    Returns an empty ``PathSet`` for fewer than two points, otherwise a
    single path visiting every point at most once (exactly once unless
    the search exhausts the grid).
    """
    checkpoint = checkpoint or Checkpoint.noop()
    if len(points) < 2:
        return PathSet()

    grid = SpatialGrid(width, height, cell_size=TOUR_CELL_SIZE)
    for x, y in points:
        grid.insert(x, y)

    current = 0
    grid.discard(current)
    order = [current]
    remaining = len(points) - 1

    while remaining > 0:
        if remaining % REMAINING_BATCH == 0:
            done = 1.0 - remaining / len(points)
            checkpoint(done * 100.0, f"TSP: {remaining} left...")

        cx, cy = grid.points[current]
        nxt = grid.nearest(cx, cy)
        if nxt is None:
            logger.warning(f"Tour ended early with {remaining} unreachable points")
            break
        grid.discard(nxt)
        order.append(nxt)
        current = nxt
        remaining -= 1

    return PathSet(paths=[[tuple(points[i]) for i in order]])
