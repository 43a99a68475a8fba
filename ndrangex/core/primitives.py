from __future__ import annotations

from typing import Tuple

import numpy as np


def sphere_bounds(centers: np.ndarray, radius: float) -> Tuple[np.ndarray, np.ndarray]:
    """Return per-point axis-aligned boxes ``center +/- radius``.

    A query point lies inside the box of every centre within ``radius`` of it,
    so point-in-box is a sound prefilter for the exact distance test.
    """

    arr = np.asarray(centers)
    if arr.ndim != 2:
        raise ValueError("sphere_bounds expects a 2-D array of centres.")
    lower = arr - radius
    upper = arr + radius
    return lower, upper


def box_contains(
    outer_lower: np.ndarray,
    outer_upper: np.ndarray,
    inner_lower: np.ndarray,
    inner_upper: np.ndarray,
) -> bool:
    return bool(np.all(outer_lower <= inner_lower) and np.all(outer_upper >= inner_upper))


__all__ = [
    "sphere_bounds",
    "box_contains",
]
