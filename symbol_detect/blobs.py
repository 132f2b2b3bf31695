from __future__ import annotations

import math
from typing import List, Sequence

import cv2
import numpy as np

from common.geometry import ref_to_center
from common.types import Blob, Detection


def detection_mask(surface: np.ndarray, min_coeff: float) -> np.ndarray:
    """
    Binary mask (uint8, 0/255) of surface cells with value >= min_coeff.
    """
    if surface.ndim != 2:
        raise ValueError("surface must be 2-D")
    c = float(min_coeff)
    if not -1.0 <= c <= 1.0:
        raise ValueError(f"minimum correlation must be in [-1, 1], got {min_coeff!r}")
    mask = np.zeros(surface.shape, dtype=np.uint8)
    mask[surface >= c] = 255
    return mask


def extract_blobs(mask: np.ndarray, surface: np.ndarray) -> List[Blob]:
    """
    8-connected components of `mask`, each summarized by its centroid and
    the peak `surface` value among its cells. Ordered by label (raster order
    of each component's first cell).
    """
    if mask.shape != surface.shape:
        raise ValueError(f"mask shape {mask.shape} does not match surface shape {surface.shape}")
    m = mask if mask.dtype == np.uint8 else (mask != 0).astype(np.uint8)

    n, labels, stats, centroids = cv2.connectedComponentsWithStats(m, connectivity=8, ltype=cv2.CV_32S)
    if n <= 1:
        return []

    # peak correlation per label; label 0 is background
    peak = np.full(n, -np.inf, dtype=np.float64)
    fg = labels > 0
    np.maximum.at(peak, labels[fg], surface[fg].astype(np.float64))

    blobs: List[Blob] = []
    for i in range(1, n):
        x, y, w, h, area = (int(v) for v in stats[i, :5])
        cx, cy = centroids[i]
        blobs.append(Blob(x=cx, y=cy, strength=peak[i], area=area, bbox=(x, y, w, h)))
    return blobs


def merge_blobs(blobs: Sequence[Blob], min_distance: float) -> List[Blob]:
    """
    Strength-greedy minimum-distance suppression.

    Blobs are visited by descending strength (ties: smaller y, then smaller x).
    Each visited blob is accepted and every remaining blob with a centroid
    closer than `min_distance` is dropped. Accepted blobs are pairwise at
    least `min_distance` apart, so merging a merged set changes nothing.
    """
    d = float(min_distance)
    if not d > 0 or math.isinf(d):
        raise ValueError(f"minimum distance must be a finite value > 0, got {min_distance!r}")
    if not blobs:
        return []

    pts = np.array([[b.x, b.y] for b in blobs], dtype=np.float64)
    strength = np.array([b.strength for b in blobs], dtype=np.float64)
    # lexsort: last key is primary
    order = np.lexsort((pts[:, 0], pts[:, 1], -strength))

    keep: List[int] = []
    while order.size > 0:
        i = int(order[0])
        keep.append(i)
        rest = order[1:]
        dist = np.hypot(pts[rest, 0] - pts[i, 0], pts[rest, 1] - pts[i, 1])
        order = rest[dist >= d]
    return [blobs[i] for i in keep]


def blobs_to_detections(blobs: Sequence[Blob], tmpl_w: int, tmpl_h: int) -> List[Detection]:
    """Map blob reference points to symbol centers, preserving order."""
    out: List[Detection] = []
    for b in blobs:
        cx, cy = ref_to_center(b.x, b.y, tmpl_w, tmpl_h)
        out.append(Detection(x=cx, y=cy, strength=b.strength, area=b.area))
    return out
