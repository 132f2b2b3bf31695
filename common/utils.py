from __future__ import annotations

from typing import Sequence, Tuple
import time


def timer_ms(func):
    """
    Decorator that returns (result, elapsed_ms) for timing pipeline stages.
    """
    def wrapper(*args, **kwargs):
        t0 = time.perf_counter()
        out = func(*args, **kwargs)
        dt_ms = (time.perf_counter() - t0) * 1e3
        return out, dt_ms
    wrapper.__name__ = getattr(func, "__name__", "wrapper")
    wrapper.__doc__ = getattr(func, "__doc__", None)
    return wrapper


def as_bgr(color: Sequence[int]) -> Tuple[int, int, int]:
    """Validate an OpenCV BGR color triple."""
    if len(color) != 3:
        raise ValueError("color must have 3 components (B, G, R)")
    b, g, r = (int(c) for c in color)
    for c in (b, g, r):
        if not 0 <= c <= 255:
            raise ValueError("color components must be in [0, 255]")
    return (b, g, r)
