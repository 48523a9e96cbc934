"""Test the bucket grid used by stipple and tour.

Tests for marching_waves.extraction.spatial_grid:
    - within() returns every point inside the query radius
    - nearest() finds the closest point in the first non-empty ring
    - discard() hides points from later queries
    - Out-of-range points are clamped into border buckets

Test cases:
    - test_rejects_non_positive_cell()
    - test_insert_and_within()
    - test_within_finds_all_neighbours()
    - test_ring_enumeration()
    - test_nearest_prefers_closest()
    - test_nearest_accept_filter()
    - test_discard()
    - test_clamped_points()

Run:
    pytest tests/test_spatial_grid.py -v
"""

import math

import numpy as np
import pytest

from marching_waves.extraction.spatial_grid import SpatialGrid


def test_rejects_non_positive_cell():
    """Zero or negative bucket size is a programming error."""
    with pytest.raises(ValueError):
        SpatialGrid(10, 10, cell_size=0)
    with pytest.raises(ValueError):
        SpatialGrid(10, 10, cell_size=-1.0)


def test_insert_and_within():
    """Inserted index comes back from a nearby query."""
    grid = SpatialGrid(100, 100, cell_size=10)
    idx = grid.insert(12.0, 40.5)

    assert idx == 0
    assert len(grid) == 1
    assert list(grid.within(10.0, 40.0, 5.0)) == [0]
    assert grid.cols == 10 and grid.rows == 10


def test_within_finds_all_neighbours():
    """Brute-force check: no point inside the radius is ever missed."""
    rng = np.random.default_rng(42)
    grid = SpatialGrid(200, 150, cell_size=7.5)
    pts = rng.random((400, 2)) * [200, 150]
    for x, y in pts:
        grid.insert(float(x), float(y))

    for qx, qy, radius in [(100.0, 75.0, 12.0), (3.0, 3.0, 20.0), (199.0, 149.0, 8.0)]:
        candidates = set(grid.within(qx, qy, radius))
        for i, (x, y) in enumerate(pts):
            if math.hypot(x - qx, y - qy) <= radius:
                assert i in candidates, f"point {i} within {radius} of ({qx}, {qy}) was missed"


def test_ring_enumeration():
    """Ring 0 is the bucket itself; ring 1 is its 8 neighbours."""
    grid = SpatialGrid(30, 30, cell_size=10)
    for j in range(3):
        for i in range(3):
            grid.insert(5.0 + 10 * i, 5.0 + 10 * j)

    assert list(grid.ring(1, 1, 0)) == [4]
    assert sorted(grid.ring(1, 1, 1)) == [0, 1, 2, 3, 5, 6, 7, 8]
    # Corner bucket: three neighbours inside the grid
    assert sorted(grid.ring(0, 0, 1)) == [1, 3, 4]


def test_nearest_prefers_closest():
    """Closest point wins among candidates of the first ring hit."""
    grid = SpatialGrid(100, 100, cell_size=30)
    grid.insert(15.0, 15.0)
    grid.insert(35.0, 15.0)

    assert grid.nearest(20.0, 15.0) == 0
    assert grid.nearest(33.0, 15.0) == 1


def test_nearest_accept_filter():
    """Rejected indices are skipped; None when nothing is accepted."""
    grid = SpatialGrid(100, 100, cell_size=30)
    grid.insert(15.0, 15.0)
    grid.insert(80.0, 80.0)

    assert grid.nearest(15.0, 15.0, accept=lambda i: i != 0) == 1
    assert grid.nearest(15.0, 15.0, accept=lambda i: False) is None


def test_discard():
    """Discarded points are invisible to queries but keep their index."""
    grid = SpatialGrid(100, 100, cell_size=30)
    a = grid.insert(10.0, 10.0)
    b = grid.insert(90.0, 90.0)

    grid.discard(a)
    assert grid.nearest(10.0, 10.0) == b
    assert grid.points[a] == (10.0, 10.0)

    grid.discard(b)
    assert grid.nearest(10.0, 10.0) is None
    # Discarding twice is harmless
    grid.discard(b)


def test_clamped_points():
    """Points outside the extent land in border buckets."""
    grid = SpatialGrid(100, 100, cell_size=10)
    assert grid.cell_of(150.0, -5.0) == (9, 0)

    idx = grid.insert(150.0, -5.0)
    assert grid.nearest(95.0, 2.0) == idx
