from __future__ import annotations

import math
from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional

import yaml

from symbol_detect.correlate import METHODS


@dataclass(frozen=True, slots=True)
class DetectionParams:
    """
    Tuning knobs of the detection pipeline.

    Attributes:
        threshold_level: intensities strictly below this become foreground (0..255).
        min_correlation: surface cells at or above this are match candidates (-1..1).
        min_distance_px: accepted detections are at least this far apart (> 0).
        method: correlation backend, "integral" or "direct".
        workers: concurrent row bands used by the correlator.
    """
    threshold_level: int = 128
    min_correlation: float = 0.80
    min_distance_px: float = 50.0
    method: str = "integral"
    workers: int = 1

    def __post_init__(self) -> None:
        lvl = self.threshold_level
        if isinstance(lvl, bool) or int(lvl) != lvl or not 0 <= lvl <= 255:
            raise ValueError(f"threshold_level must be an integer in [0, 255], got {lvl!r}")
        c = float(self.min_correlation)
        if math.isnan(c) or not -1.0 <= c <= 1.0:
            raise ValueError(f"min_correlation must be in [-1, 1], got {self.min_correlation!r}")
        d = float(self.min_distance_px)
        if not d > 0 or math.isinf(d):
            raise ValueError(f"min_distance_px must be a finite value > 0, got {self.min_distance_px!r}")
        if self.method not in METHODS:
            raise ValueError(f"method must be one of {METHODS}, got {self.method!r}")
        if int(self.workers) < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers!r}")
        # normalize numeric types (frozen dataclass)
        object.__setattr__(self, "threshold_level", int(lvl))
        object.__setattr__(self, "min_correlation", c)
        object.__setattr__(self, "min_distance_px", d)
        object.__setattr__(self, "workers", int(self.workers))

    @classmethod
    def from_dict(cls, D: Optional[Dict[str, Any]]) -> "DetectionParams":
        """Build from a mapping; unknown keys are ignored, missing keys defaulted."""
        D = D or {}
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in D.items() if k in known and v is not None})

    @classmethod
    def from_yaml(cls, path: str, section: str = "detection") -> "DetectionParams":
        """
        Load the `detection:` section of a YAML file, e.g. config/params.yaml:
            detection:
              threshold_level: 128
              min_correlation: 0.80
              min_distance_px: 50
        """
        with open(path, "r") as f:
            D = yaml.safe_load(f) or {}
        return cls.from_dict(D.get(section) or {})

    def with_overrides(self, **kw: Any) -> "DetectionParams":
        """Copy with the non-None keyword values replaced (validated again)."""
        return replace(self, **{k: v for k, v in kw.items() if v is not None})
