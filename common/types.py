from __future__ import annotations

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


Point = Tuple[float, float]


@dataclass(slots=True)
class Blob:
    """
    One 8-connected region of the detection mask.

    Attributes:
        x, y: centroid of the member cells, in correlation-surface coordinates
              (i.e. the top-left offset of the template).
        strength: highest correlation value among member cells.
        area: number of member cells.
        bbox: (x, y, w, h) bounding box of the member cells.
    """
    x: float
    y: float
    strength: float
    area: int = 1
    bbox: Tuple[int, int, int, int] = (0, 0, 1, 1)

    def __post_init__(self) -> None:
        self.x = float(self.x)
        self.y = float(self.y)
        self.strength = float(self.strength)
        if self.area < 1:
            raise ValueError("area must be >= 1")

    @property
    def point(self) -> Point:
        return (self.x, self.y)


@dataclass(slots=True)
class Detection:
    """
    Symbol-center coordinate in source-image pixels.

    Attributes:
        x, y: center of the detected symbol.
        strength: peak correlation coefficient of the originating blob.
        area: size of the originating blob (surface cells).
    """
    x: float
    y: float
    strength: float
    area: int = 1

    @property
    def point(self) -> Point:
        return (float(self.x), float(self.y))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(slots=True)
class DetectionResult:
    """
    Output of a pipeline run.

    `detections` are ordered by descending strength. The diagnostic arrays
    are only populated when the caller asks for intermediates.
    """
    detections: List[Detection]
    template_size: Tuple[int, int]           # (w, h) of the input template
    timings_ms: Dict[str, float] = field(default_factory=dict)
    binary: Optional[np.ndarray] = field(default=None, repr=False)
    binary_template: Optional[np.ndarray] = field(default=None, repr=False)
    surface: Optional[np.ndarray] = field(default=None, repr=False)
    mask: Optional[np.ndarray] = field(default=None, repr=False)

    @property
    def points(self) -> List[Point]:
        return [d.point for d in self.detections]

    def __len__(self) -> int:
        return len(self.detections)

    def to_dict(self) -> Dict[str, Any]:
        """Metadata without image buffers (safe to log/serialize)."""
        return {
            "count": len(self.detections),
            "template_size": list(self.template_size),
            "detections": [d.to_dict() for d in self.detections],
            "timings_ms": {k: round(v, 3) for k, v in self.timings_ms.items()},
        }
