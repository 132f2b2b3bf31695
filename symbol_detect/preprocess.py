from __future__ import annotations
"""
Preprocessing utilities for symbol detection:
- Input validation for image buffers (shape, sample kind, template fit)
- Conversion of decoded files to single-channel uint8
- Inverse binary threshold (dark symbols become white foreground)
- Framing of shapeless (uniform) templates with a background border
"""

from typing import Iterable, Tuple

import cv2
import numpy as np

from common.errors import EmptyImageError, ImageFormatError, InvalidTemplateSizeError


SUPPORTED_DTYPES = (np.uint8, np.float32)

FOREGROUND = 255
BACKGROUND = 0


# -----------------------------
# Validation
# -----------------------------

def check_image(img: np.ndarray, name: str = "image", dtypes: Iterable[type] = SUPPORTED_DTYPES) -> None:
    """
    Raise if `img` is not a non-empty single-channel image of an accepted kind.
    """
    if not isinstance(img, np.ndarray):
        raise ImageFormatError(f"{name} must be a numpy ndarray, got {type(img).__name__}")
    if img.ndim != 2:
        raise ImageFormatError(f"{name} must be 2-D single-channel, got shape {img.shape}")
    allowed = tuple(np.dtype(d) for d in dtypes)
    if img.dtype not in allowed:
        names = ", ".join(str(d) for d in allowed)
        raise ImageFormatError(f"{name} sample kind {img.dtype} not supported (expected {names})")
    if img.shape[0] == 0 or img.shape[1] == 0:
        raise EmptyImageError(f"{name} is empty (width={img.shape[1]}, height={img.shape[0]})")


def check_template_fits(source: np.ndarray, template: np.ndarray) -> None:
    H, W = source.shape[:2]
    h, w = template.shape[:2]
    if w > W or h > H:
        raise InvalidTemplateSizeError(
            f"template {w}x{h} exceeds source {W}x{H}"
        )


# -----------------------------
# Basic image ops
# -----------------------------

def to_gray_u8(img: np.ndarray) -> np.ndarray:
    """Collapse a decoded BGR/BGRA/gray buffer to single-channel uint8."""
    if img.ndim == 2:
        g = img
    elif img.ndim == 3 and img.shape[2] == 1:
        g = img[:, :, 0]
    elif img.ndim == 3 and img.shape[2] == 4:
        g = cv2.cvtColor(img, cv2.COLOR_BGRA2GRAY)
    else:
        g = cv2.cvtColor(img, cv2.COLOR_BGR2GRAY)
    if g.dtype != np.uint8:
        g = np.clip(g, 0, 255).astype(np.uint8)
    return np.ascontiguousarray(g)


def threshold_binary_inv(gray_u8: np.ndarray, level: int) -> np.ndarray:
    """
    Inverse binary threshold: 255 where intensity < level, 0 elsewhere.

    `level` must lie in [0, 255]; level 0 yields an all-background image.
    Returns a new uint8 array; the input is not modified.
    """
    check_image(gray_u8, "gray image", dtypes=(np.uint8,))
    if isinstance(level, bool) or int(level) != level or not 0 <= level <= 255:
        raise ValueError(f"threshold level must be an integer in [0, 255], got {level!r}")
    out = np.zeros_like(gray_u8)
    out[gray_u8 < int(level)] = FOREGROUND
    return out


def is_uniform(img: np.ndarray) -> bool:
    return bool(img.min() == img.max())


def pad_background(img: np.ndarray, border: int = 1) -> np.ndarray:
    """Surround a binary image with a `border`-wide background margin."""
    return cv2.copyMakeBorder(img, border, border, border, border, cv2.BORDER_CONSTANT, value=BACKGROUND)


def frame_uniform_template(binary_tmpl: np.ndarray, border: int = 1) -> Tuple[np.ndarray, bool]:
    """
    Add a background border around a uniform binary template.

    A constant template has zero variance, so its correlation is -1 everywhere.
    Framing it gives it the contrast against the background it is expected
    to have in the image. The source must then be padded with the same
    border (`pad_background`) so that symbols touching the image edge still
    have an offset where the frame fits; surface offsets then refer to the
    top-left of the unframed template. Non-uniform templates are returned
    unchanged.

    Returns (template, framed).
    """
    if not is_uniform(binary_tmpl):
        return binary_tmpl, False
    return pad_background(binary_tmpl, border), True
