from __future__ import annotations

from typing import Sequence, Tuple
import math

import numpy as np


# -------------------------
# Reference point -> symbol center
# -------------------------
def ref_to_center(x: float, y: float, w: int, h: int) -> Tuple[float, float]:
    """
    Shift a top-left-referenced match position by half the template size.

    (x, y) is a position in correlation-surface coordinates, which coincide
    with source-image coordinates of the template's top-left corner.
    """
    return (float(x) + w / 2.0, float(y) + h / 2.0)


# -------------------------
# Distances
# -------------------------
def pairwise_min_distance(points: Sequence[Sequence[float]]) -> float:
    """
    Smallest distance between any two points; +inf for fewer than two.
    """
    if len(points) < 2:
        return math.inf
    p = np.asarray(points, dtype=float).reshape(-1, 2)
    d = np.hypot(p[:, None, 0] - p[None, :, 0], p[:, None, 1] - p[None, :, 1])
    d[np.diag_indices_from(d)] = np.inf
    return float(d.min())
