"""Finite-difference gradients of scalar fields.

Forward differences, zero in the last column (gx) and last row (gy):

    gx[y, x] = f[y, x+1] - f[y, x]
    gy[y, x] = f[y+1, x] - f[y, x]

Differences involving the unreached sentinel (inf - inf, inf - finite)
are treated as 0 so untouched regions read as flat.

Recomputed per extraction job; nothing is cached across jobs.
"""

from typing import Tuple

import numpy as np


def gradient_field(field: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Forward-difference gradient and its magnitude.

    Parameters
    ----------
    field : np.ndarray
        Scalar field, shape (H, W)

    Returns
    -------
    gx, gy, magnitude : np.ndarray
        float32 arrays of shape (H, W)
    """
    f = np.asarray(field, dtype=np.float32)
    gx = np.zeros_like(f)
    gy = np.zeros_like(f)
    with np.errstate(invalid='ignore', over='ignore'):
        gx[:, :-1] = f[:, 1:] - f[:, :-1]
        gy[:-1, :] = f[1:, :] - f[:-1, :]
    gx[~np.isfinite(gx)] = 0.0
    gy[~np.isfinite(gy)] = 0.0
    mag = np.hypot(gx, gy).astype(np.float32)
    return gx, gy, mag


def edge_map(image: np.ndarray) -> np.ndarray:
    """Edge strength of a source image for contour snapping.

    Parameters
    ----------
    image : np.ndarray
        (H, W) luminance or (H, W, C) RGB/RGBA; only channel 0 is used

    Returns
    -------
    np.ndarray
        float32 (H, W) forward-difference magnitude, zero in the last row
        and the last column
    """
    img = np.asarray(image, dtype=np.float32)
    if img.ndim == 3:
        img = img[..., 0]
    if img.ndim != 2:
        raise ValueError(f"Expected (H, W) or (H, W, C) image, got shape {img.shape}")

    edges = np.zeros_like(img)
    gx = img[:-1, 1:] - img[:-1, :-1]
    gy = img[1:, :-1] - img[:-1, :-1]
    edges[:-1, :-1] = np.sqrt(gx * gx + gy * gy)
    return edges
