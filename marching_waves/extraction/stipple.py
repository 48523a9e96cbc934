"""Variable-radius Poisson-disk stippling.

Dots are placed on dark pixels (``gray < threshold``) with a spacing
that grows with brightness:

    r(p) = MIN_RADIUS + gray(p) * (max_radius - MIN_RADIUS)

Two dots p, q are compatible when ``|p - q| >= (r(p) + r(q)) / 2``.
Since that bound never exceeds ``max_radius``, scanning the spatial grid
out to ``max_radius`` sees every dot that could conflict, so the final
set has no violating pairs.

Algorithm (active-list dart throwing):
    1. Up to 10 seed dots by rejection sampling against the mask
       (field centre, or the first dark pixel, if none lands)
    2. Pick a random active dot, try k = 20 candidates in the annulus
       [r, 2r) around it, accept the first compatible one
    3. A dot whose k attempts all fail leaves the active list
    4. Stop when the active list empties or MAX_DOTS is reached
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional

import numpy as np

from ..control import Checkpoint
from .geometry import DotSet
from .spatial_grid import SpatialGrid

logger = logging.getLogger(__name__)

MIN_RADIUS = 1.5
MAX_DOTS = 150_000
CANDIDATES_PER_DOT = 20
MAX_SEEDS = 10
PIXELS_PER_SEED = 10_000
SEED_ATTEMPTS = 50
# Accepted dots between progress reports
PROGRESS_EVERY = 2000
# Dot count treated as 100% for progress purposes
PROGRESS_SCALE = 40_000


def sample_stipple(
    gray: np.ndarray,
    threshold: float,
    interval: float,
    *,
    rng: Optional[np.random.Generator] = None,
    checkpoint: Optional[Checkpoint] = None,
    max_dots: int = MAX_DOTS,
) -> DotSet:
    """Poisson-disk dots over the dark region of ``gray``.

    Parameters
    ----------
    gray : np.ndarray
        Grayscale (H, W) in [0, 1]
    threshold : float
        Mask is ``gray < threshold``
    interval : float
        Largest dot radius (used on the brightest masked pixels)
    rng : np.random.Generator, optional
        Sampling source; a fresh unseeded generator if None
    checkpoint : Checkpoint, optional
        Cancel/pause every iteration, progress every 2000 dots
    max_dots : int
        Hard cap on the dot count

    Returns
    -------
    DotSet
        Empty if no pixel is below the threshold
    """
    checkpoint = checkpoint or Checkpoint.noop()
    rng = rng if rng is not None else np.random.default_rng()
    gray = np.asarray(gray, dtype=np.float32)
    height, width = gray.shape

    mask = gray < threshold
    active_pixels = int(mask.sum())
    if active_pixels == 0:
        return DotSet()

    max_radius = max(float(interval), MIN_RADIUS)
    values = gray.tolist()
    inside = mask.tolist()

    def radius_at(x: float, y: float) -> float:
        return MIN_RADIUS + values[int(y)][int(x)] * (max_radius - MIN_RADIUS)

    grid = SpatialGrid(width, height, cell_size=max_radius / math.sqrt(2))
    points = grid.points
    radii: List[float] = []
    active: List[int] = []

    def fits(x: float, y: float, r: float) -> bool:
        for j in grid.within(x, y, max_radius):
            px, py = points[j]
            min_dist = (r + radii[j]) / 2.0
            if (px - x) ** 2 + (py - y) ** 2 < min_dist * min_dist:
                return False
        return True

    def add(x: float, y: float, r: float) -> None:
        active.append(grid.insert(x, y))
        radii.append(r)

    num_seeds = min(MAX_SEEDS, int(math.ceil(active_pixels / PIXELS_PER_SEED)))
    for _ in range(num_seeds):
        for _ in range(SEED_ATTEMPTS):
            rx = rng.random() * width
            ry = rng.random() * height
            if inside[int(ry)][int(rx)]:
                r = radius_at(rx, ry)
                if fits(rx, ry, r):
                    add(rx, ry, r)
                    break

    if not points:
        # Field centre if it is dark, else the first dark pixel
        cx, cy = width / 2.0, height / 2.0
        if not inside[int(cy)][int(cx)]:
            row, col = np.argwhere(mask)[0]
            cx, cy = col + 0.5, row + 0.5
        add(float(cx), float(cy), radius_at(cx, cy))

    two_pi = 2.0 * math.pi
    while active and len(points) < max_dots:
        checkpoint()

        slot = int(rng.integers(len(active)))
        px, py = points[active[slot]]
        r = radius_at(px, py)

        found = False
        for _ in range(CANDIDATES_PER_DOT):
            angle = rng.random() * two_pi
            dist = r + rng.random() * r
            nx = px + math.cos(angle) * dist
            ny = py + math.sin(angle) * dist
            if nx < 0 or nx >= width or ny < 0 or ny >= height:
                continue
            if not inside[int(ny)][int(nx)]:
                continue
            nr = radius_at(nx, ny)
            if fits(nx, ny, nr):
                add(nx, ny, nr)
                found = True
                break

        if not found:
            active[slot] = active[-1]
            active.pop()
        elif len(points) % PROGRESS_EVERY == 0:
            checkpoint(len(points) / PROGRESS_SCALE * 100.0, f"Stippling ({len(points)} dots)...")

    logger.debug(f"Stipple: {len(points)} dots over {active_pixels} active pixels")
    return DotSet(points=list(points))
