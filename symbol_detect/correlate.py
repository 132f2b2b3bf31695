from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Tuple

import cv2
import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from common.logging_setup import get_logger, log_event
from symbol_detect.preprocess import check_image, check_template_fits


log = get_logger("symbol_detect.correlate")

METHODS = ("integral", "direct")

# Value assigned where the coefficient is undefined (constant template or window).
NO_MATCH = -1.0


@dataclass(slots=True)
class _TemplateStats:
    h: int
    w: int
    zm64: np.ndarray         # mean-subtracted template, float64
    zm32: np.ndarray         # same, float32 (OpenCV input)
    ss: float                # sum of squared deviations
    constant: bool


def _template_stats(template: np.ndarray) -> _TemplateStats:
    t = template.astype(np.float64)
    zm = t - t.mean()
    return _TemplateStats(
        h=int(t.shape[0]),
        w=int(t.shape[1]),
        zm64=zm,
        zm32=zm.astype(np.float32),
        ss=float(np.sum(zm * zm)),
        constant=bool(template.min() == template.max()),
    )


def _constant_windows(src: np.ndarray, h: int, w: int) -> np.ndarray:
    """
    Boolean map of valid offsets whose h x w window holds a single value.
    Exact: compares window min and max (erode/dilate with top-left anchor).
    """
    out_h, out_w = src.shape[0] - h + 1, src.shape[1] - w + 1
    kernel = np.ones((h, w), dtype=np.uint8)
    lo = cv2.erode(src, kernel, anchor=(0, 0), borderType=cv2.BORDER_REPLICATE)
    hi = cv2.dilate(src, kernel, anchor=(0, 0), borderType=cv2.BORDER_REPLICATE)
    return (lo == hi)[:out_h, :out_w]


def _window_sq_dev_integral(src: np.ndarray, h: int, w: int) -> np.ndarray:
    """
    Per-window sum of squared deviations from summed-area tables (float64).

    `src` should be centered: SQ - S*S/n cancels catastrophically when the
    window mean is large next to its spread.
    """
    s, sq = cv2.integral2(src, sdepth=cv2.CV_64F, sqdepth=cv2.CV_64F)
    S = s[h:, w:] - s[:-h, w:] - s[h:, :-w] + s[:-h, :-w]
    SQ = sq[h:, w:] - sq[:-h, w:] - sq[h:, :-w] + sq[:-h, :-w]
    return SQ - (S * S) / float(h * w)


def _ncc_block_integral(src: np.ndarray, ts: _TemplateStats) -> Tuple[np.ndarray, np.ndarray]:
    # T' sums to zero and window deviations ignore a constant shift, so both
    # terms are computed on the centered source
    centered = src.astype(np.float64)
    centered -= centered.mean()
    num = cv2.matchTemplate(centered.astype(np.float32), ts.zm32, cv2.TM_CCORR).astype(np.float64)
    wss = _window_sq_dev_integral(centered, ts.h, ts.w)
    return num, wss


def _ncc_block_direct(src: np.ndarray, ts: _TemplateStats) -> Tuple[np.ndarray, np.ndarray]:
    windows = sliding_window_view(src.astype(np.float64), (ts.h, ts.w))
    out_h, out_w = windows.shape[:2]
    num = np.empty((out_h, out_w), dtype=np.float64)
    wss = np.empty((out_h, out_w), dtype=np.float64)
    # one output row at a time keeps the temporary at out_w * h * w
    for i in range(out_h):
        row = windows[i]
        dev = row - row.mean(axis=(1, 2), keepdims=True)
        num[i] = np.einsum("jkl,kl->j", dev, ts.zm64)
        wss[i] = np.einsum("jkl,jkl->j", dev, dev)
    return num, wss


def _ncc_block(src: np.ndarray, ts: _TemplateStats, method: str) -> np.ndarray:
    if method == "integral":
        num, wss = _ncc_block_integral(src, ts)
    else:
        num, wss = _ncc_block_direct(src, ts)

    undefined = _constant_windows(src, ts.h, ts.w) | (wss <= 0.0)
    denom = np.sqrt(np.where(undefined, 1.0, wss) * ts.ss)
    ncc = num / denom
    ncc[undefined] = NO_MATCH
    np.clip(ncc, -1.0, 1.0, out=ncc)
    return ncc.astype(np.float32)


def _row_bands(out_h: int, workers: int) -> List[Tuple[int, int]]:
    n = max(1, min(int(workers), out_h))
    edges = np.linspace(0, out_h, n + 1).round().astype(int)
    return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]


def ncc_surface(
    source: np.ndarray,
    template: np.ndarray,
    *,
    method: str = "integral",
    workers: int = 1,
) -> np.ndarray:
    """
    Normalized cross-correlation of `template` at every valid offset of `source`.

    Args:
        source: 2-D uint8 or float32 image (H, W)
        template: 2-D uint8 or float32 image (h, w), h <= H and w <= W
        method: "integral" (matchTemplate numerator + summed-area window
                statistics) or "direct" (explicit sliding windows); they agree
                to within 1e-4
        workers: number of horizontal output bands computed concurrently

    Returns:
        float32 surface of shape (H - h + 1, W - w + 1) with values in [-1, 1].
        Offsets where the template or the window is constant are -1.0.
    """
    check_image(source, "source")
    check_image(template, "template")
    check_template_fits(source, template)
    if method not in METHODS:
        raise ValueError(f"method must be one of {METHODS}, got {method!r}")
    if int(workers) < 1:
        raise ValueError("workers must be >= 1")

    H, W = source.shape
    h, w = template.shape
    out_h, out_w = H - h + 1, W - w + 1

    ts = _template_stats(template)
    if ts.constant or ts.ss <= 0.0:
        log_event(log, logging.DEBUG, "Constant template; surface is all no-match", w=w, h=h)
        return np.full((out_h, out_w), NO_MATCH, dtype=np.float32)

    bands = _row_bands(out_h, workers)
    surface = np.empty((out_h, out_w), dtype=np.float32)

    def run(band: Tuple[int, int]) -> None:
        r0, r1 = band
        # rows r0..r1-1 of the output need source rows r0..r1+h-2
        surface[r0:r1] = _ncc_block(source[r0:r1 + h - 1], ts, method)

    if len(bands) == 1:
        run(bands[0])
    else:
        with ThreadPoolExecutor(max_workers=len(bands)) as pool:
            # list() re-raises the first worker exception, if any
            list(pool.map(run, bands))

    return surface
