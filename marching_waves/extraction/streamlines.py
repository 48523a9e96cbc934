"""Streamline tracing along the distance-field gradient.

Seeds sit on a jittered grid (spacing = interval) restricted to dark
pixels and are visited in random order. Each unclaimed seed grows a path
in both directions with fixed-step Euler integration along the unit
gradient.

Spacing is enforced by a coarse occupancy grid (cell edge
``max(4, floor(0.8 * interval))``). A path claims each cell it emits a
point in; steps that stay inside the path's current cell move the tracer
without emitting, and a step into any other claimed cell ends that
direction. As a result no occupancy cell ever holds two emitted points.

A direction stops when:
    - the tracer leaves the field (1-pixel margin)
    - the gradient magnitude drops below 0.001
    - the next step lands in a claimed cell
    - ``max_steps`` steps have been taken

A path is kept when ``len(path) * step_size >= min_length``, counting
emitted points only. Dropped paths keep their claim.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from typing import List, Optional, Tuple

import numpy as np

from ..control import Checkpoint
from .geometry import PathSet, Point
from .gradient import gradient_field

logger = logging.getLogger(__name__)

SEED_BATCH = 500
MIN_GRADIENT = 1e-3
MIN_OCCUPANCY_CELL = 4


class OccupancyGrid:
    """Coarse claimed/free grid; everything outside the field reads as claimed."""

    def __init__(self, width: int, height: int, interval: float) -> None:
        self.cell = max(MIN_OCCUPANCY_CELL, int(math.floor(interval * 0.8)))
        self.cols = int(math.ceil(width / self.cell))
        self.rows = int(math.ceil(height / self.cell))
        self._claimed = bytearray(self.cols * self.rows)

    def cell_of(self, x: float, y: float) -> Optional[Tuple[int, int]]:
        gx = int(math.floor(x / self.cell))
        gy = int(math.floor(y / self.cell))
        if gx < 0 or gx >= self.cols or gy < 0 or gy >= self.rows:
            return None
        return gx, gy

    def is_claimed(self, cell: Optional[Tuple[int, int]]) -> bool:
        if cell is None:
            return True
        return self._claimed[cell[1] * self.cols + cell[0]] == 1

    def claim(self, cell: Optional[Tuple[int, int]]) -> None:
        if cell is not None:
            self._claimed[cell[1] * self.cols + cell[0]] = 1


def seed_points(
    gray: np.ndarray,
    threshold: float,
    interval: float,
    rng: np.random.Generator,
) -> List[Point]:
    """Jittered grid seeds over dark pixels, shuffled."""
    height, width = gray.shape
    seeds: List[Point] = []
    y = interval
    while y < height - interval:
        x = interval
        row = gray[int(y)]
        while x < width - interval:
            if row[int(x)] < threshold:
                jx = (rng.random() - 0.5) * interval * 0.5
                jy = (rng.random() - 0.5) * interval * 0.5
                seeds.append((x + jx, y + jy))
            x += interval
        y += interval
    order = rng.permutation(len(seeds))
    return [seeds[i] for i in order]


def trace_streamlines(
    gray: np.ndarray,
    field: np.ndarray,
    threshold: float,
    interval: float,
    *,
    step_size: float = 2.0,
    max_steps: int = 500,
    min_length: float = 10.0,
    max_paths: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
    checkpoint: Optional[Checkpoint] = None,
) -> Tuple[PathSet, int]:
    """Trace separated streamlines over a distance field.

    Parameters
    ----------
    gray : np.ndarray
        Grayscale (H, W); seeds only where ``gray < threshold``
    field : np.ndarray
        Distance field (H, W) whose gradient is followed
    threshold : float
        Seed intensity threshold
    interval : float
        Seed spacing; also sets the occupancy cell size
    step_size : float
        Euler step length (px)
    max_steps : int
        Step limit per direction
    min_length : float
        Paths with ``len(path) * step_size`` below this are dropped
    max_paths : int, optional
        Stop once this many paths are kept (None or 0: no cap)
    rng : np.random.Generator, optional
        Jitter and shuffle source; a fresh unseeded generator if None
    checkpoint : Checkpoint, optional
        Called every ``SEED_BATCH`` seeds

    Returns
    -------
    paths : PathSet
    seed_count : int
        Seeds generated before occupancy filtering
    """
    checkpoint = checkpoint or Checkpoint.noop()
    rng = rng if rng is not None else np.random.default_rng()
    gray = np.asarray(gray, dtype=np.float32)
    height, width = gray.shape
    if field.shape != gray.shape:
        raise ValueError(f"Field shape {field.shape} != grayscale shape {gray.shape}")

    gx, gy, _ = gradient_field(field)
    grad_x = gx.tolist()
    grad_y = gy.tolist()

    seeds = seed_points(gray, threshold, interval, rng)
    occupancy = OccupancyGrid(width, height, interval)
    cap = max_paths or None
    result = PathSet()

    for i, seed in enumerate(seeds):
        if i % SEED_BATCH == 0:
            checkpoint(i / max(len(seeds), 1) * 100.0, f"Tracing streamlines ({i}/{len(seeds)})...")

        seed_cell = occupancy.cell_of(*seed)
        if occupancy.is_claimed(seed_cell):
            continue
        occupancy.claim(seed_cell)

        path = deque([seed])
        for direction in (1.0, -1.0):
            cx, cy = seed
            cell = seed_cell
            for _ in range(max_steps):
                ix = int(math.floor(cx))
                iy = int(math.floor(cy))
                if ix < 1 or ix >= width - 1 or iy < 1 or iy >= height - 1:
                    break
                vx = grad_x[iy][ix]
                vy = grad_y[iy][ix]
                mag = math.sqrt(vx * vx + vy * vy)
                if mag < MIN_GRADIENT:
                    break

                nx = cx + vx / mag * step_size * direction
                ny = cy + vy / mag * step_size * direction
                next_cell = occupancy.cell_of(nx, ny)
                if next_cell != cell:
                    if occupancy.is_claimed(next_cell):
                        break
                    occupancy.claim(next_cell)
                    if direction > 0:
                        path.append((nx, ny))
                    else:
                        path.appendleft((nx, ny))
                    cell = next_cell
                cx, cy = nx, ny

        # Silent in-cell steps do not count toward the length
        if len(path) * step_size >= min_length:
            result.paths.append(list(path))
            if cap is not None and len(result.paths) >= cap:
                break

    logger.debug(f"Streamlines: {len(result.paths)} paths from {len(seeds)} seeds")
    return result, len(seeds)
