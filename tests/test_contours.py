"""Test marching-squares contour extraction.

Tests for marching_waves.extraction.contours:
    - Level generation (spacing, detail level, degenerate ranges)
    - Case table: empty, single-segment and saddle blocks
    - Linear interpolation and sentinel midpoints
    - Edge snapping blend
    - Segment cap and progress on a solved distance field

Test cases:
    - test_levels_regular_spacing()
    - test_levels_detail_level()
    - test_levels_degenerate()
    - test_block_empty_codes()
    - test_block_horizontal_crossing()
    - test_block_single_segment_codes()
    - test_block_saddles()
    - test_block_interpolation()
    - test_block_sentinel_midpoint()
    - test_extract_two_by_two()
    - test_extract_solved_field()
    - test_segment_cap()
    - test_snap_to_edge()
    - test_extract_with_edge_snapping()

Run:
    pytest tests/test_contours.py -v
"""

import numpy as np
import pytest

from marching_waves.control import Checkpoint
from marching_waves.extraction.contours import (
    block_segments,
    extract_contours,
    generate_levels,
    snap_to_edge,
)
from marching_waves.extraction.eikonal import solve_eikonal


@pytest.fixture
def radial_field():
    """Distance field of a 40x40 image seeded at its centre."""
    gray = np.full((40, 40), 0.5, dtype=np.float32)
    gray[19:21, 19:21] = 0.0
    return solve_eikonal(gray, threshold=0.1).distance


# ============================================================================
# LEVELS
# ============================================================================

def test_levels_regular_spacing():
    """Levels start one step above the minimum and stay below the maximum."""
    field = np.array([[0.0, 10.0]], dtype=np.float32)
    assert generate_levels(field, interval=3.0) == pytest.approx([3.0, 6.0, 9.0])


def test_levels_detail_level():
    """detail_level=1 halves the step relative to the interval."""
    field = np.array([[0.0, 10.0]], dtype=np.float32)
    assert generate_levels(field, interval=4.0, detail_level=1.0) == pytest.approx([2.0, 4.0, 6.0, 8.0])
    # detail_level=0 widens the step to 1.5x the interval
    assert generate_levels(field, interval=4.0, detail_level=0.0) == pytest.approx([6.0])


def test_levels_degenerate():
    """Flat, narrow and empty fields."""
    # Range below 1e-3: single mid level
    assert generate_levels(np.full((3, 3), 5.0), 1.0) == pytest.approx([5.0])
    # Range narrower than one step: mid level
    assert generate_levels(np.array([[0.0, 1.0]]), 8.0) == pytest.approx([0.5])
    # Sentinels are ignored when picking min/max
    assert generate_levels(np.array([[0.0, np.inf, 10.0]]), 3.0) == pytest.approx([3.0, 6.0, 9.0])
    # No finite values at all: no levels
    assert generate_levels(np.full((2, 2), np.inf), 1.0) == []


# ============================================================================
# CASE TABLE
# ============================================================================

def test_block_empty_codes():
    """All corners below or all at/above the level emit nothing."""
    assert block_segments(0, 0, 0, 0, 0.5) == []
    assert block_segments(1, 1, 1, 1, 0.5) == []
    assert block_segments(0.5, 0.5, 0.5, 0.5, 0.5) == []


def test_block_horizontal_crossing():
    """Bottom row above the level: one segment across the middle."""
    segs = block_segments(0.0, 0.0, 1.0, 1.0, 0.5)
    assert len(segs) == 1
    (ax, ay), (bx, by) = segs[0]
    assert (ax, ay) == pytest.approx((0.0, 0.5))
    assert (bx, by) == pytest.approx((1.0, 0.5))


@pytest.mark.parametrize("code", [c for c in range(1, 15) if c not in (6, 9)])
def test_block_single_segment_codes(code):
    """Every non-saddle mixed block emits exactly one segment."""
    v00, v10, v01, v11 = [1.0 if code & bit else 0.0 for bit in (1, 2, 4, 8)]
    segs = block_segments(v00, v10, v01, v11, 0.5)
    assert len(segs) == 1
    for x, y in segs[0]:
        assert 0.0 <= x <= 1.0 and 0.0 <= y <= 1.0
        # Each endpoint sits on the block boundary
        assert x in (0.0, 1.0) or y in (0.0, 1.0)


def test_block_saddles():
    """Diagonal configurations emit two segments with a fixed split."""
    # v00 and v11 above: corners cut off separately
    segs = block_segments(1.0, 0.0, 0.0, 1.0, 0.5)
    assert len(segs) == 2
    assert segs[0] == ((0.5, 0.0), (0.0, 0.5))
    assert segs[1] == ((1.0, 0.5), (0.5, 1.0))

    segs = block_segments(0.0, 1.0, 1.0, 0.0, 0.5)
    assert len(segs) == 2
    assert segs[0] == ((0.5, 0.0), (1.0, 0.5))
    assert segs[1] == ((0.0, 0.5), (0.5, 1.0))


def test_block_interpolation():
    """Crossing position follows linear interpolation along the edge."""
    segs = block_segments(0.0, 4.0, 0.0, 4.0, 1.0)
    (ax, ay), (bx, by) = segs[0]
    assert ax == pytest.approx(0.25) and ay == 0.0
    assert bx == pytest.approx(0.25) and by == 1.0


def test_block_sentinel_midpoint():
    """Edges touching an unreached corner are crossed at their midpoint."""
    segs = block_segments(0.0, np.inf, 0.0, np.inf, 1.0)
    assert segs == [((0.5, 0.0), (0.5, 1.0))]


# ============================================================================
# EXTRACTION
# ============================================================================

def test_extract_two_by_two():
    """Single block field: one level, one segment in pixel coordinates."""
    field = np.array([[0.0, 0.0], [1.0, 1.0]], dtype=np.float32)
    result = extract_contours(field, interval=0.5)

    assert result.levels_processed == 1
    assert len(result.levels) == 1
    assert result.levels[0].level == pytest.approx(0.5)
    assert result.segment_count == 1
    a, b = result.levels[0].segments[0]
    assert a == pytest.approx((0.0, 0.5))
    assert b == pytest.approx((1.0, 0.5))


def test_extract_solved_field(radial_field):
    """Contours of a real distance field stay inside the image."""
    events = []
    cp = Checkpoint(on_progress=lambda p, m: events.append(p))
    result = extract_contours(radial_field, interval=2.0, checkpoint=cp)

    assert result.levels_processed >= 3
    assert result.segment_count > 0
    for level in result.levels:
        assert level.segments, "only levels with segments are listed"
        for (ax, ay), (bx, by) in level.segments:
            assert 0.0 <= ax <= 39.0 and 0.0 <= bx <= 39.0
            assert 0.0 <= ay <= 39.0 and 0.0 <= by <= 39.0

    assert events == sorted(events)
    d = result.to_dict()
    assert d['levels_processed'] == result.levels_processed


def test_segment_cap(radial_field):
    """max_segments stops emission exactly at the cap."""
    capped = extract_contours(radial_field, interval=2.0, max_segments=5)
    assert capped.segment_count == 5

    # 0 means no cap
    uncapped = extract_contours(radial_field, interval=2.0, max_segments=0)
    assert uncapped.segment_count > 5


def test_snap_to_edge():
    """Endpoints move toward the strongest nearby edge by the blend factor."""
    edges = np.zeros((10, 10), dtype=np.float32)
    edges[5, 5] = 1.0

    assert snap_to_edge(3.0, 4.0, edges, 1.0) == pytest.approx((5.0, 5.0))
    assert snap_to_edge(3.0, 4.0, edges, 0.5) == pytest.approx((4.0, 4.5))
    assert snap_to_edge(3.0, 4.0, edges, 0.0) == pytest.approx((3.0, 4.0))
    # Out of reach: unchanged
    assert snap_to_edge(0.0, 0.0, edges, 1.0) == pytest.approx((0.0, 0.0))


def test_extract_with_edge_snapping(radial_field):
    """Low sensitivity disables snapping; high sensitivity moves points."""
    edges = np.zeros_like(radial_field)
    edges[10, 10] = 1.0

    plain = extract_contours(radial_field, interval=4.0)
    weak = extract_contours(radial_field, interval=4.0, edges=edges, edge_sensitivity=0.05)
    strong = extract_contours(radial_field, interval=4.0, edges=edges, edge_sensitivity=1.0)

    assert weak.to_dict() == plain.to_dict()
    assert strong.segment_count == plain.segment_count
    assert strong.to_dict() != plain.to_dict()

    with pytest.raises(ValueError):
        extract_contours(radial_field, interval=4.0, edges=np.zeros((3, 3)), edge_sensitivity=1.0)
