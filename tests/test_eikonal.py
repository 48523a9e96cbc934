"""Test the Fast Marching distance-field solver.

Tests for marching_waves.extraction.eikonal:
    - Seeds are exactly 0, everything else positive
    - Known values on a uniform 4x4 field with one corner seed
    - Upwind causality (no cell below its smallest neighbour)
    - Determinism across runs
    - Input validation and cancellation at checkpoints

Test cases:
    - test_uniform_corner_seed()
    - test_single_cell()
    - test_seeds_are_zero()
    - test_causality()
    - test_deterministic()
    - test_no_seeds_rejected()
    - test_bad_shapes_rejected()
    - test_progress_reported()
    - test_cancelled_at_checkpoint()
    - test_require_reached()

Run:
    pytest tests/test_eikonal.py -v
"""

import math

import numpy as np
import pytest

from marching_waves.control import Checkpoint, TaskControl
from marching_waves.errors import Cancelled, InvalidInput, Unreachable
from marching_waves.extraction.eikonal import require_reached, solve_eikonal
from marching_waves.extraction.geometry import DistanceField


@pytest.fixture
def corner_field():
    """4x4 white field with a single black seed at (0, 0)."""
    gray = np.ones((4, 4), dtype=np.float32)
    gray[0, 0] = 0.0
    return gray


@pytest.fixture
def noisy_gray():
    """Random luminance with a few dark blobs."""
    rng = np.random.default_rng(7)
    gray = rng.uniform(0.2, 1.0, size=(24, 32)).astype(np.float32)
    gray[5:8, 4:7] = 0.0
    gray[18:20, 25:28] = 0.05
    return gray


def test_uniform_corner_seed(corner_field):
    """Axis neighbours cost 1, the diagonal uses the two-sided update.

    Minima are read around the cell being updated, so d[1, 1] sees both
    finite axis neighbours and solves the quadratic to (2 + sqrt(2)) / 2.
    The one-neighbour value of 1.0 (one axis neighbour plus unit cost) is
    deliberately not reproduced.
    """
    result = solve_eikonal(corner_field, threshold=0.1)
    d = result.distance

    assert d.dtype == np.float32
    assert result.seed_count == 1
    assert result.cells_processed == 16

    assert d[0, 0] == 0.0
    assert d[0, 1] == pytest.approx(1.0)
    assert d[1, 0] == pytest.approx(1.0)
    assert d[1, 1] == pytest.approx((2.0 + math.sqrt(2.0)) / 2.0, rel=1e-6)

    # First row and column are plain sums of unit costs
    np.testing.assert_allclose(d[0], [0.0, 1.0, 2.0, 3.0], rtol=1e-6)
    np.testing.assert_allclose(d[:, 0], [0.0, 1.0, 2.0, 3.0], rtol=1e-6)

    # Symmetric around the diagonal, increasing away from the seed
    np.testing.assert_allclose(d, d.T, rtol=1e-6)
    diag = [d[i, i] for i in range(4)]
    assert diag == sorted(diag)
    assert len(set(diag)) == 4


def test_single_cell():
    """1x1 seed field solves to a single zero."""
    result = solve_eikonal(np.zeros((1, 1), dtype=np.float32), threshold=0.5)
    assert result.distance.shape == (1, 1)
    assert result.distance[0, 0] == 0.0
    assert result.reached_fraction == 1.0


def test_seeds_are_zero(noisy_gray):
    """Exactly the below-threshold cells are 0; the rest are positive."""
    threshold = 0.1
    d = solve_eikonal(noisy_gray, threshold).distance

    seeds = noisy_gray < threshold
    assert np.all(d[seeds] == 0.0)
    assert np.all(d[~seeds] > 0.0)
    # 4-connected grid with finite costs: every cell is reached
    assert np.isfinite(d).all()


def test_causality(noisy_gray):
    """No non-seed cell is smaller than its smallest 4-neighbour."""
    d = solve_eikonal(noisy_gray, 0.1).distance.astype(np.float64)
    H, W = d.shape
    padded = np.pad(d, 1, constant_values=np.inf)
    neighbour_min = np.minimum.reduce([
        padded[:-2, 1:-1], padded[2:, 1:-1], padded[1:-1, :-2], padded[1:-1, 2:],
    ])
    non_seed = noisy_gray >= 0.1
    assert np.all(d[non_seed] >= neighbour_min[non_seed] - 1e-5)
    assert d.shape == (H, W)


def test_deterministic(noisy_gray):
    """Same input twice gives identical fields."""
    a = solve_eikonal(noisy_gray, 0.1).distance
    b = solve_eikonal(noisy_gray.copy(), 0.1).distance
    assert np.array_equal(a, b)


def test_no_seeds_rejected():
    """A field with nothing below the threshold is invalid input."""
    with pytest.raises(InvalidInput, match="No seed"):
        solve_eikonal(np.ones((5, 5), dtype=np.float32), threshold=0.5)


def test_bad_shapes_rejected():
    """1-D, 3-D and empty inputs are rejected before solving."""
    with pytest.raises(InvalidInput):
        solve_eikonal(np.zeros(10, dtype=np.float32), 0.5)
    with pytest.raises(InvalidInput):
        solve_eikonal(np.zeros((2, 2, 3), dtype=np.float32), 0.5)
    with pytest.raises(InvalidInput):
        solve_eikonal(np.zeros((0, 4), dtype=np.float32), 0.5)
    with pytest.raises(InvalidInput):
        solve_eikonal(np.zeros((2, 2), dtype=np.float32), 0.5, batch_size=0)


def test_progress_reported():
    """Every batch reports progress; the last report is 100%."""
    gray = np.ones((8, 8), dtype=np.float32)
    gray[4, 4] = 0.0
    events = []
    cp = Checkpoint(on_progress=lambda p, m: events.append((p, m)))

    solve_eikonal(gray, 0.5, checkpoint=cp, batch_size=8)

    percents = [p for p, _ in events]
    assert len(events) == 8
    assert percents == sorted(percents)
    assert percents[-1] == pytest.approx(100.0)
    assert all(m == "Solving Eikonal equation..." for _, m in events)


def test_cancelled_at_checkpoint():
    """A cancelled control aborts at the first checkpoint with no result."""
    gray = np.ones((8, 8), dtype=np.float32)
    gray[0, 0] = 0.0
    control = TaskControl()
    control.cancel()

    with pytest.raises(Cancelled):
        solve_eikonal(gray, 0.5, checkpoint=Checkpoint(control), batch_size=1)


def test_require_reached(corner_field):
    """Solved fields pass; an all-sentinel field raises Unreachable."""
    solved = solve_eikonal(corner_field, 0.1)
    assert require_reached(solved) is solved

    empty = DistanceField(distance=np.full((3, 3), np.inf, dtype=np.float32))
    with pytest.raises(Unreachable):
        require_reached(empty)
