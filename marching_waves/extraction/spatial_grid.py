"""Uniform bucket grid over 2-D points for neighbour queries.

Used by:
    - stipple: Poisson-disk rejection (all points within a radius)
    - tour: nearest unvisited point by expanding ring search

Invariant: a point inserted at (x, y) lives in bucket ``cell_of(x, y)``,
so scanning that bucket and every ring out to ``ceil(r / cell_size)``
finds all points within distance ``r``.

Points outside ``[0, width) × [0, height)`` are clamped into the border
buckets, which keeps the invariant for the query side too.
"""

from __future__ import annotations

import math
from typing import Callable, Iterator, List, Optional, Tuple

from .geometry import Point


class SpatialGrid:
    """Bucket index with O(1) amortised insert and ring scans.

    Parameters
    ----------
    width, height : float
        Extent of the indexed area (pixels)
    cell_size : float
        Bucket edge length; must be positive

    Examples
    --------
    >>> grid = SpatialGrid(100, 100, cell_size=10)
    >>> i = grid.insert(12.0, 40.5)
    >>> list(grid.within(10.0, 40.0, 5.0))
    [0]
    """

    def __init__(self, width: float, height: float, cell_size: float) -> None:
        if cell_size <= 0:
            raise ValueError(f"cell_size must be positive, got {cell_size}")
        self.cell_size = float(cell_size)
        self.cols = max(1, int(math.ceil(width / self.cell_size)))
        self.rows = max(1, int(math.ceil(height / self.cell_size)))
        self._buckets: List[List[int]] = [[] for _ in range(self.cols * self.rows)]
        self._points: List[Point] = []

    def __len__(self) -> int:
        return len(self._points)

    @property
    def points(self) -> List[Point]:
        return self._points

    def cell_of(self, x: float, y: float) -> Tuple[int, int]:
        """Bucket coordinates of (x, y), clamped to the grid."""
        gx = min(max(int(x // self.cell_size), 0), self.cols - 1)
        gy = min(max(int(y // self.cell_size), 0), self.rows - 1)
        return gx, gy

    def insert(self, x: float, y: float) -> int:
        """Add a point; returns its index."""
        idx = len(self._points)
        self._points.append((x, y))
        gx, gy = self.cell_of(x, y)
        self._buckets[gy * self.cols + gx].append(idx)
        return idx

    def discard(self, idx: int) -> None:
        """Drop a point from its bucket (its index stays valid)."""
        x, y = self._points[idx]
        gx, gy = self.cell_of(x, y)
        bucket = self._buckets[gy * self.cols + gx]
        if idx in bucket:
            bucket.remove(idx)

    def ring(self, gx: int, gy: int, r: int) -> Iterator[int]:
        """Point indices in buckets at Chebyshev distance exactly ``r``."""
        if r == 0:
            if 0 <= gx < self.cols and 0 <= gy < self.rows:
                yield from self._buckets[gy * self.cols + gx]
            return
        for dy in range(-r, r + 1):
            ny = gy + dy
            if ny < 0 or ny >= self.rows:
                continue
            # Full rows on the top/bottom edge of the ring, two columns otherwise
            step = 1 if abs(dy) == r else 2 * r
            for dx in range(-r, r + 1, step):
                nx = gx + dx
                if 0 <= nx < self.cols:
                    yield from self._buckets[ny * self.cols + nx]

    def within(self, x: float, y: float, radius: float) -> Iterator[int]:
        """Candidate indices in all buckets that may hold points within ``radius``.

        Candidates are not distance-filtered; callers apply their own test.
        """
        gx, gy = self.cell_of(x, y)
        reach = int(math.ceil(radius / self.cell_size))
        for ny in range(max(0, gy - reach), min(self.rows, gy + reach + 1)):
            row = ny * self.cols
            for nx in range(max(0, gx - reach), min(self.cols, gx + reach + 1)):
                yield from self._buckets[row + nx]

    def nearest(
        self,
        x: float,
        y: float,
        accept: Optional[Callable[[int], bool]] = None,
    ) -> Optional[int]:
        """Nearest accepted point by expanding ring search.

        Rings grow one bucket at a time; the search stops at the first ring
        holding any accepted candidate, or when the whole grid has been
        scanned. Returns None if no point is accepted.
        """
        gx, gy = self.cell_of(x, y)
        best_idx: Optional[int] = None
        best_d2 = math.inf
        for r in range(max(self.cols, self.rows)):
            for idx in self.ring(gx, gy, r):
                if accept is not None and not accept(idx):
                    continue
                px, py = self._points[idx]
                d2 = (px - x) ** 2 + (py - y) ** 2
                if d2 < best_d2:
                    best_d2 = d2
                    best_idx = idx
            if best_idx is not None:
                return best_idx
        return None
