"""Multi-layer cross-hatching.

Four layers, each darker-only than the last, scanned along parallel
lines ``interval`` apart:

    angle   threshold
    -45°    t + 0.2
    +45°    t
      0°    t - 0.2
     90°    t - 0.3        (each floored at 0.1)

Scan lines are offset from the field centre across ±diagonal and walked
in 2 px steps. A run of consecutive below-threshold samples becomes one
segment from its first to its last sample, kept only when it has more
than 5 samples.
"""

from __future__ import annotations

import logging
import math
from typing import List, Optional, Tuple

import numpy as np

from ..control import Checkpoint
from .geometry import Point, Segment, SegmentSet

logger = logging.getLogger(__name__)

LAYER_OFFSETS: Tuple[Tuple[float, float], ...] = (
    (-math.pi / 4, 0.2),
    (math.pi / 4, 0.0),
    (0.0, -0.2),
    (math.pi / 2, -0.3),
)
MIN_LAYER_THRESHOLD = 0.1
SCAN_STEP = 2.0
MIN_RUN_SAMPLES = 5


def hatch_layers(threshold: float) -> List[Tuple[float, float]]:
    """(angle, threshold) per layer for a base threshold."""
    return [(angle, max(MIN_LAYER_THRESHOLD, threshold + offset)) for angle, offset in LAYER_OFFSETS]


def _frange(start: float, stop: float, step: float):
    v = start
    while v < stop:
        yield v
        v += step


def generate_hatching(
    gray: np.ndarray,
    threshold: float,
    interval: float,
    *,
    max_segments: Optional[int] = None,
    checkpoint: Optional[Checkpoint] = None,
) -> SegmentSet:
    """Hatch segments for all four layers.

    Parameters
    ----------
    gray : np.ndarray
        Grayscale (H, W)
    threshold : float
        Base threshold, shifted per layer
    interval : float
        Scan line spacing (px)
    max_segments : int, optional
        Stop once this many segments exist (None or 0: no cap)
    checkpoint : Checkpoint, optional
        Called after every scan line; progress advances per layer

    Returns
    -------
    SegmentSet
        Segment endpoints are integer pixel coordinates
    """
    checkpoint = checkpoint or Checkpoint.noop()
    if interval <= 0:
        raise ValueError(f"interval must be positive, got {interval}")
    gray = np.asarray(gray, dtype=np.float32)
    height, width = gray.shape
    values = gray.tolist()
    cap = max_segments or None

    diagonal = math.sqrt(width * width + height * height)
    cx, cy = width / 2.0, height / 2.0
    segments: List[Segment] = []
    layers = hatch_layers(threshold)

    for layer_no, (angle, layer_threshold) in enumerate(layers):
        dir_x, dir_y = math.cos(angle), math.sin(angle)
        # Scan lines are offset along the layer normal
        norm_x, norm_y = math.cos(angle + math.pi / 2), math.sin(angle + math.pi / 2)

        for d in _frange(-diagonal, diagonal, interval):
            px = cx + d * norm_x
            py = cy + d * norm_y
            run: List[Point] = []

            for t in _frange(-diagonal, diagonal, SCAN_STEP):
                x = int(math.floor(px + t * dir_x))
                y = int(math.floor(py + t * dir_y))
                if 0 <= x < width and 0 <= y < height and values[y][x] < layer_threshold:
                    run.append((float(x), float(y)))
                    continue
                if len(run) > MIN_RUN_SAMPLES:
                    segments.append((run[0], run[-1]))
                run = []
            if len(run) > MIN_RUN_SAMPLES:
                segments.append((run[0], run[-1]))

            checkpoint()
            if cap is not None and len(segments) >= cap:
                break

        checkpoint((layer_no + 1) / len(layers) * 100.0, f"Hatching (Layer {layer_no + 1})...")
        if cap is not None and len(segments) >= cap:
            break

    if cap is not None:
        del segments[cap:]
    logger.debug(f"Hatch: {len(segments)} segments")
    return SegmentSet(segments=segments)
