"""Marching Waves: grayscale images to vector artwork via wave propagation.

Dark pixels act as wave sources. A Fast Marching solver spreads a
travel-time field outward from them, and extractors turn that field (or
the image itself) into contours, streamlines, stipple dots, a TSP tour
or cross-hatching.

Architecture layers (strict one-way dependency):
    scripts/ → marching_waves.runtime → marching_waves.extraction → marching_waves.utils

Key invariants:
    - Fields are (H, W) float32 arrays; x = column, y = row
    - Unreached distance cells hold inf and contribute nothing
    - Long loops pass through a Checkpoint (cancel, pause, progress, yield)
    - YAML-only configs (schema marching_waves.v1)
"""

__version__ = "1.0.0"
