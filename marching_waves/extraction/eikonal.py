"""Fast Marching solver for the Eikonal equation on a pixel grid.

Travel time spreads outward from every seed cell (grayscale below the
threshold). Brighter pixels cost more to cross, so wavefronts run fast
through dark regions and slow down in highlights:

    |∇T(p)| = f(p),   f = grayscale luminance in [0, 1]
    T(p)    = 0       for seed cells

Local update (first-order upwind, 4-connected):
    a = min horizontal neighbour of the updated cell (finite only)
    b = min vertical neighbour of the updated cell (finite only)
    one axis finite   → T = a + f
    both finite, |a - b| >= f → T = min(a, b) + f
    otherwise          → T = (a + b + sqrt(2 f² - (a - b)²)) / 2

The heap is a plain ``heapq`` list with lazy deletion: an improved cell is
pushed again and stale entries are dropped when popped.

Cells the front never reaches keep ``inf``. Those cells never fail a job;
downstream extractors treat them as "no contribution".
"""

from __future__ import annotations

import heapq
import logging
import math
from typing import Optional

import numpy as np

from ..control import Checkpoint
from ..errors import InvalidInput, Unreachable
from .geometry import DistanceField

logger = logging.getLogger(__name__)

# Cells processed between checkpoints
DEFAULT_BATCH_SIZE = 1000


def _upwind(min_x: float, min_y: float, cost: float) -> float:
    """Upwind finite-difference update; at least one input must be finite."""
    if min_x == math.inf:
        return min_y + cost
    if min_y == math.inf:
        return min_x + cost
    lo, hi = (min_x, min_y) if min_x <= min_y else (min_y, min_x)
    gap = hi - lo
    if gap >= cost:
        return lo + cost
    disc = 2.0 * cost * cost - gap * gap
    if disc < 0.0:
        return lo + cost
    return (lo + hi + math.sqrt(disc)) / 2.0


def solve_eikonal(
    gray: np.ndarray,
    threshold: float,
    checkpoint: Optional[Checkpoint] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> DistanceField:
    """Solve the distance field from all cells below ``threshold``.

    Parameters
    ----------
    gray : np.ndarray
        Grayscale luminance, shape (H, W), values in [0, 1]
    threshold : float
        Cells with ``gray < threshold`` are seeds (distance 0)
    checkpoint : Checkpoint, optional
        Cancel/pause/progress hook, called every ``batch_size`` pops
    batch_size : int
        Cells processed between checkpoints

    Returns
    -------
    DistanceField
        float32 travel times, ``inf`` where unreached

    Raises
    ------
    InvalidInput
        If the field is not 2-D, is empty, or has no seed cells
    Cancelled
        If the task is cancelled at a checkpoint (no partial result)

    Notes
    -----
    Deterministic: two runs on the same input give identical fields.
    """
    checkpoint = checkpoint or Checkpoint.noop()
    gray = np.asarray(gray, dtype=np.float32)
    if gray.ndim != 2 or gray.shape[0] < 1 or gray.shape[1] < 1:
        raise InvalidInput(f"Expected a non-empty 2-D grayscale field, got shape {gray.shape}")
    if batch_size < 1:
        raise InvalidInput(f"batch_size must be >= 1, got {batch_size}")

    height, width = gray.shape
    size = width * height
    # Python lists index far faster than numpy scalars in the inner loop
    cost = gray.ravel().astype(np.float64).tolist()
    seeds = np.flatnonzero(gray.ravel() < threshold).tolist()
    if not seeds:
        raise InvalidInput(f"No seed cells below threshold {threshold}")

    inf = math.inf
    sol = [inf] * size
    visited = bytearray(size)
    heap = []
    for i in seeds:
        sol[i] = 0.0
        heap.append((0.0, i))
    heapq.heapify(heap)

    logger.debug(f"FMM start: {width}x{height}, {len(seeds)} seeds, threshold={threshold}")

    processed = 0
    while heap:
        value, i = heapq.heappop(heap)
        if visited[i] or value > sol[i]:
            continue
        visited[i] = 1
        processed += 1

        if processed % batch_size == 0:
            checkpoint(processed / size * 100.0, "Solving Eikonal equation...")

        y, x = divmod(i, width)
        for nx, ny in ((x - 1, y), (x + 1, y), (x, y - 1), (x, y + 1)):
            if nx < 0 or nx >= width or ny < 0 or ny >= height:
                continue
            n = ny * width + nx
            if visited[n]:
                continue

            min_x = inf
            if nx > 0:
                min_x = sol[n - 1]
            if nx < width - 1 and sol[n + 1] < min_x:
                min_x = sol[n + 1]
            min_y = inf
            if ny > 0:
                min_y = sol[n - width]
            if ny < height - 1 and sol[n + width] < min_y:
                min_y = sol[n + width]

            candidate = _upwind(min_x, min_y, cost[n])
            if candidate < sol[n]:
                sol[n] = candidate
                heapq.heappush(heap, (candidate, n))

    distance = np.asarray(sol, dtype=np.float32).reshape(height, width)
    logger.debug(f"FMM done: {processed}/{size} cells reached")
    return DistanceField(distance=distance, seed_count=len(seeds), cells_processed=processed)


def require_reached(field: DistanceField) -> DistanceField:
    """Return ``field`` unchanged, raising ``Unreachable`` if no cell is finite.

    Partially reached fields pass: unreached cells are a normal outcome.
    """
    if not np.isfinite(field.distance).any():
        raise Unreachable("Distance field has no reached cells")
    return field
