from __future__ import annotations

from typing import Iterable, Sequence, Tuple

import cv2
import numpy as np

from common.utils import as_bgr


MAGENTA = (255, 0, 255)


def annotate_detections(
    gray_u8: np.ndarray,
    points: Iterable[Sequence[float]],
    *,
    color: Tuple[int, int, int] = MAGENTA,
    marker_size: int = 15,
    thickness: int = 2,
) -> np.ndarray:
    """
    Draw a cross at every detection on a BGR copy of the source image.
    The input is left untouched.
    """
    if gray_u8.ndim == 2:
        bgr = cv2.cvtColor(gray_u8, cv2.COLOR_GRAY2BGR)
    else:
        bgr = gray_u8.copy()
    c = as_bgr(color)
    for x, y in points:
        cv2.drawMarker(
            bgr,
            (int(round(x)), int(round(y))),
            c,
            markerType=cv2.MARKER_CROSS,
            markerSize=int(marker_size),
            thickness=int(thickness),
        )
    return bgr


def surface_to_u8(surface: np.ndarray) -> np.ndarray:
    """Linear map of a correlation surface from [-1, 1] to [0, 255]."""
    s = np.clip(surface.astype(np.float32), -1.0, 1.0)
    return np.round((s + 1.0) * 127.5).astype(np.uint8)
