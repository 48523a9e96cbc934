"""Atomic filesystem operations and YAML/array I/O.

Provides:
    - Atomic writes: tmp file → fsync → rename (no partial reads)
    - YAML load/save (PyYAML safe_load / safe_dump)
    - Grayscale field loading from ``.npy`` files for the CLI

The engine itself persists nothing between jobs; these helpers serve the
config loader and the ``scripts/run_job.py`` entrypoint.

Usage:
    from marching_waves.utils import fs
    cfg = fs.load_yaml("configs/engine.yaml")
    fs.atomic_yaml_dump(result.to_dict(), out_dir / "contours.yaml")
"""

import os
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import yaml


def ensure_dir(p: Union[str, Path]) -> Path:
    """Create directory if it doesn't exist, return Path object."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(
    path: Union[str, Path],
    data: bytes,
    tmp_suffix: str = ".tmp"
) -> None:
    """Write bytes to file atomically (tmp → fsync → rename).

    Parameters
    ----------
    path : Union[str, Path]
        Target file path
    data : bytes
        Data to write
    tmp_suffix : str
        Temporary file suffix, default ".tmp"

    Raises
    ------
    RuntimeError
        If the write or rename fails; the tmp file is removed first.
    """
    path = Path(path)
    ensure_dir(path.parent)
    tmp_path = path.with_suffix(path.suffix + tmp_suffix)

    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError as e:
        if tmp_path.exists():
            tmp_path.unlink()
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_yaml_dump(obj: Any, path: Union[str, Path]) -> None:
    """Save a plain Python object (dicts, lists, floats) as YAML atomically."""
    yaml_str = yaml.safe_dump(
        obj,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
        width=120
    )
    atomic_write_bytes(path, yaml_str.encode('utf-8'))


def load_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load YAML file safely.

    Parameters
    ----------
    path : Union[str, Path]
        YAML file path

    Returns
    -------
    Dict[str, Any]
        Parsed YAML content ({} for an empty file)

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    yaml.YAMLError
        If YAML parsing fails
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    try:
        with open(path, 'r', encoding='utf-8') as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e


def load_grayscale(path: Union[str, Path]) -> np.ndarray:
    """Load a 2-D luminance array from ``.npy``.

    Integer arrays are assumed to be 8-bit and rescaled to [0, 1].

    Raises
    ------
    FileNotFoundError
        If file doesn't exist
    ValueError
        If the array is not 2-D
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Grayscale array not found: {path}")

    arr = np.load(path)
    if arr.ndim != 2:
        raise ValueError(f"Expected a 2-D grayscale array in {path}, got shape {arr.shape}")
    if np.issubdtype(arr.dtype, np.integer):
        arr = arr.astype(np.float32) / 255.0
    return np.clip(arr.astype(np.float32), 0.0, 1.0)
