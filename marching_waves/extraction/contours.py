"""Iso-contour extraction from a distance field (marching squares).

Pipeline:
    1. Level generation from the finite min/max of the field
    2. Per level, classify every 2x2 block into a 4-bit corner code
    3. Emit 0-2 raw segments per block from the case table
    4. Optionally snap endpoints toward strong image edges

Corner layout and code bits (a bit is set when corner value >= level)::

    v00 (x, y)   ---- top ----    v10 (x+1, y)       bit 1 ---- bit 2
       |                             |                 |           |
     left                          right               |           |
       |                             |                 |           |
    v01 (x, y+1) --- bottom ---   v11 (x+1, y+1)     bit 4 ---- bit 8

With this bit order the ambiguous (saddle) blocks are the diagonal
configurations, codes 6 and 9. Both always use the same split: the two
corners at or above the level are cut off separately. Codes 0 and 15 emit
nothing.

Sentinel (``inf``) corners count as above every level. An edge with a
sentinel corner, or with near-equal corners, is crossed at its midpoint.

Segments are not joined into polylines; that is left to the consumer.
"""

from __future__ import annotations

import logging
import math
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from ..control import Checkpoint
from .geometry import ContourLevel, ContourSet, Point, Segment

logger = logging.getLogger(__name__)

# Blocks processed between checkpoints
BLOCK_BATCH = 5000
# Ranges narrower than this collapse to one mid level
DEGENERATE_RANGE = 1e-3
# Corners closer than this interpolate at the edge midpoint
FLAT_EDGE_EPS = 1e-5
# Edge snapping search radius (cells) and minimum effective sensitivity
SNAP_RADIUS = 3
SNAP_MIN_SENSITIVITY = 0.1

# Edge ids
TOP, RIGHT, BOTTOM, LEFT = 0, 1, 2, 3

# code -> pairs of crossed edges
CASE_TABLE: Dict[int, Tuple[Tuple[int, int], ...]] = {
    0: (),
    1: ((TOP, LEFT),),
    2: ((TOP, RIGHT),),
    3: ((LEFT, RIGHT),),
    4: ((LEFT, BOTTOM),),
    5: ((TOP, BOTTOM),),
    6: ((TOP, RIGHT), (LEFT, BOTTOM)),
    7: ((RIGHT, BOTTOM),),
    8: ((RIGHT, BOTTOM),),
    9: ((TOP, LEFT), (RIGHT, BOTTOM)),
    10: ((TOP, BOTTOM),),
    11: ((LEFT, BOTTOM),),
    12: ((LEFT, RIGHT),),
    13: ((TOP, RIGHT),),
    14: ((TOP, LEFT),),
    15: (),
}


# ============================================================================
# LEVELS
# ============================================================================

def generate_levels(field: np.ndarray, interval: float, detail_level: float = 0.5) -> List[float]:
    """Iso-levels for a distance field.

    Parameters
    ----------
    field : np.ndarray
        Distance field; non-finite cells are ignored
    interval : float
        Base spacing between levels
    detail_level : float
        0 (sparse) to 1 (dense); spacing is ``interval * (1.5 - detail_level)``

    Returns
    -------
    List[float]
        ``[min + step, min + 2 step, ...]`` strictly below max. A range under
        1e-3, or one narrower than the step, gives the single mid level.
        No finite cells gives no levels.
    """
    values = np.asarray(field, dtype=np.float64)
    finite = values[np.isfinite(values)]
    if finite.size == 0:
        return []

    lo = float(finite.min())
    hi = float(finite.max())
    span = hi - lo
    if span < DEGENERATE_RANGE:
        return [lo + span / 2.0]

    step = interval * max(1.5 - detail_level, 0.05)
    if step <= 0:
        raise ValueError(f"interval must be positive, got {interval}")

    levels = []
    k = 1
    while lo + k * step < hi:
        levels.append(lo + k * step)
        k += 1
    if not levels:
        levels.append(lo + span / 2.0)
    return levels


# ============================================================================
# EDGE SNAPPING
# ============================================================================

def snap_to_edge(x: float, y: float, edges: np.ndarray, sensitivity: float) -> Point:
    """Pull (x, y) toward the strongest edge within ``SNAP_RADIUS`` cells.

    Candidates are the integer offsets of (x, y) inside the field; the first
    strictly strongest wins. ``sensitivity`` 1 moves fully, 0 not at all.
    """
    height, width = edges.shape
    best_x, best_y = x, y
    best_val = 0.0
    for dy in range(-SNAP_RADIUS, SNAP_RADIUS + 1):
        ny = y + dy
        if ny < 0 or ny >= height:
            continue
        row = int(ny)
        for dx in range(-SNAP_RADIUS, SNAP_RADIUS + 1):
            nx = x + dx
            if nx < 0 or nx >= width:
                continue
            val = float(edges[row, int(nx)])
            if val > best_val:
                best_val = val
                best_x, best_y = nx, ny
    return (x + (best_x - x) * sensitivity, y + (best_y - y) * sensitivity)


# ============================================================================
# MARCHING SQUARES
# ============================================================================

def _crossing(v1: float, v2: float, level: float) -> float:
    """Fraction along an edge where the level is crossed, in [0, 1]."""
    if not (math.isfinite(v1) and math.isfinite(v2)):
        return 0.5
    diff = v2 - v1
    if abs(diff) < FLAT_EDGE_EPS:
        return 0.5
    return min(max((level - v1) / diff, 0.0), 1.0)


def _edge_point(edge: int, v00: float, v10: float, v01: float, v11: float, level: float) -> Point:
    """Local (0..1) coordinates of the crossing on one block edge."""
    if edge == TOP:
        return (_crossing(v00, v10, level), 0.0)
    if edge == RIGHT:
        return (1.0, _crossing(v10, v11, level))
    if edge == BOTTOM:
        return (_crossing(v01, v11, level), 1.0)
    return (0.0, _crossing(v00, v01, level))


def block_segments(v00: float, v10: float, v01: float, v11: float, level: float) -> List[Segment]:
    """Segments for one 2x2 block in local block coordinates."""
    code = (
        (1 if v00 >= level else 0)
        | (2 if v10 >= level else 0)
        | (4 if v01 >= level else 0)
        | (8 if v11 >= level else 0)
    )
    return [
        (_edge_point(a, v00, v10, v01, v11, level), _edge_point(b, v00, v10, v01, v11, level))
        for a, b in CASE_TABLE[code]
    ]


def _block_codes(field: np.ndarray, level: float) -> np.ndarray:
    """Corner code of every block, shape (H-1, W-1)."""
    above = field >= level
    return (
        above[:-1, :-1].astype(np.uint8)
        | (above[:-1, 1:].astype(np.uint8) << 1)
        | (above[1:, :-1].astype(np.uint8) << 2)
        | (above[1:, 1:].astype(np.uint8) << 3)
    )


def extract_contours(
    field: np.ndarray,
    interval: float,
    *,
    detail_level: float = 0.5,
    edges: Optional[np.ndarray] = None,
    edge_sensitivity: float = 0.5,
    max_segments: Optional[int] = None,
    checkpoint: Optional[Checkpoint] = None,
) -> ContourSet:
    """Raw iso-contour segments for every generated level.

    Parameters
    ----------
    field : np.ndarray
        Distance field, shape (H, W)
    interval : float
        Base level spacing
    detail_level : float
        See ``generate_levels``
    edges : np.ndarray, optional
        Edge map (see ``gradient.edge_map``); enables snapping when given
        and ``edge_sensitivity`` exceeds 0.1
    edge_sensitivity : float
        Snap blend factor in [0, 1]
    max_segments : int, optional
        Stop after this many segments in total (None or 0: no cap)
    checkpoint : Checkpoint, optional
        Called every ``BLOCK_BATCH`` blocks with progress over all levels

    Returns
    -------
    ContourSet
        Only levels that produced at least one segment are listed;
        ``levels_processed`` counts every generated level.
    """
    checkpoint = checkpoint or Checkpoint.noop()
    values = np.asarray(field, dtype=np.float32)
    height, width = values.shape
    levels = generate_levels(values, interval, detail_level)
    result = ContourSet(levels_processed=len(levels))
    if width < 2 or height < 2 or not levels:
        return result

    snap: Optional[Callable[[float, float], Point]] = None
    if edges is not None and edge_sensitivity > SNAP_MIN_SENSITIVITY:
        if edges.shape != values.shape:
            raise ValueError(f"Edge map shape {edges.shape} != field shape {values.shape}")
        snap = partial(snap_to_edge, edges=edges, sensitivity=edge_sensitivity)

    cap = max_segments or None
    rows = values.astype(np.float64).tolist()
    blocks_per_level = (width - 1) * (height - 1)
    total_blocks = blocks_per_level * len(levels)
    processed = 0
    next_check = BLOCK_BATCH
    emitted = 0

    logger.debug(f"Contours: {len(levels)} levels over {width}x{height}, snap={snap is not None}")

    for level in levels:
        codes = _block_codes(values, level)
        segments: List[Segment] = []
        for y in range(height - 1):
            hot = np.flatnonzero((codes[y] != 0) & (codes[y] != 15))
            top, bottom = rows[y], rows[y + 1]
            for x in hot.tolist():
                v00, v10, v01, v11 = top[x], top[x + 1], bottom[x], bottom[x + 1]
                for (ax, ay), (bx, by) in block_segments(v00, v10, v01, v11, level):
                    a = (x + ax, y + ay)
                    b = (x + bx, y + by)
                    if snap is not None:
                        a = snap(*a)
                        b = snap(*b)
                    segments.append((a, b))
                    emitted += 1
                    if cap is not None and emitted >= cap:
                        break
                if cap is not None and emitted >= cap:
                    break

            processed += width - 1
            if processed >= next_check:
                next_check = (processed // BLOCK_BATCH + 1) * BLOCK_BATCH
                checkpoint(processed / total_blocks * 100.0, "Extracting contours...")
            if cap is not None and emitted >= cap:
                break

        if segments:
            result.levels.append(ContourLevel(level=level, segments=segments))
        if cap is not None and emitted >= cap:
            logger.debug(f"Contours: segment cap {cap} reached at level {level:.3f}")
            break

    return result
