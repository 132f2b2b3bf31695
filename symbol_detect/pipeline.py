from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import cv2
import numpy as np
import yaml

from common.errors import SymbolDetectionError
from common.logging_setup import FORMATS, get_logger, log_event, setup_logging
from common.types import DetectionResult, Point
from common.utils import timer_ms
from symbol_detect.annotate import annotate_detections, surface_to_u8
from symbol_detect.blobs import blobs_to_detections, detection_mask, extract_blobs, merge_blobs
from symbol_detect.correlate import METHODS, ncc_surface
from symbol_detect.params import DetectionParams
from symbol_detect.preprocess import (
    check_image,
    check_template_fits,
    frame_uniform_template,
    pad_background,
    threshold_binary_inv,
    to_gray_u8,
)


log = get_logger("symbol_detect")

# Background margin around uniform templates (and around the source they are matched in)
FRAME_BORDER = 1

_threshold = timer_ms(threshold_binary_inv)
_correlate = timer_ms(ncc_surface)
_mask = timer_ms(detection_mask)
_extract = timer_ms(extract_blobs)
_merge = timer_ms(merge_blobs)


def run_detection(
    image: np.ndarray,
    template: np.ndarray,
    params: Optional[DetectionParams] = None,
    *,
    keep_intermediates: bool = False,
) -> DetectionResult:
    """
    Locate every instance of `template` in `image`.

    Args:
        image: grayscale uint8 source (H, W)
        template: grayscale uint8 symbol (h, w), h <= H and w <= W
        params: thresholds and merge distance (defaults if None)
        keep_intermediates: attach binary images, surface and mask to the result

    Returns:
        DetectionResult with symbol centers in source pixel coordinates,
        strongest first.

    Raises:
        EmptyImageError, InvalidTemplateSizeError, ImageFormatError before any
        computation takes place.
    """
    P = params or DetectionParams()

    check_image(image, "image", dtypes=(np.uint8,))
    check_image(template, "template", dtypes=(np.uint8,))
    check_template_fits(image, template)

    timings: Dict[str, float] = {}

    # 1) Binarize source and template alike
    binary, timings["threshold"] = _threshold(image, P.threshold_level)
    tmpl_bin = threshold_binary_inv(template, P.threshold_level)
    th, tw = tmpl_bin.shape

    # A framed template is matched against a source padded by the same border:
    # the surface keeps its (H - h + 1, W - w + 1) shape and offsets still
    # refer to the top-left of the unframed (w, h) template.
    tmpl_bin, framed = frame_uniform_template(tmpl_bin, border=FRAME_BORDER)
    corr_src = pad_background(binary, FRAME_BORDER) if framed else binary
    if framed:
        log_event(log, logging.DEBUG, "Uniform template framed", w=tw, h=th, border=FRAME_BORDER)

    # 2) Normalized cross-correlation
    surface, timings["correlate"] = _correlate(corr_src, tmpl_bin, method=P.method, workers=P.workers)

    # 3) Candidate mask
    mask, timings["mask"] = _mask(surface, P.min_correlation)

    # 4) Blobs + minimum-distance merge
    blobs, timings["blobs"] = _extract(mask, surface)
    merged, timings["merge"] = _merge(blobs, P.min_distance_px)

    # 5) Reference point -> symbol center
    detections = blobs_to_detections(merged, tw, th)

    log_event(
        log,
        logging.DEBUG,
        "Detection stages",
        surface_shape=list(surface.shape),
        candidates=int(np.count_nonzero(mask)),
        blobs=len(blobs),
        accepted=len(merged),
        framed=framed,
        timings_ms=timings,
    )

    result = DetectionResult(detections=detections, template_size=(tw, th), timings_ms=timings)
    if keep_intermediates:
        result.binary = binary
        result.binary_template = tmpl_bin
        result.surface = surface
        result.mask = mask
    return result


def detect_symbols(
    image: np.ndarray,
    template: np.ndarray,
    params: Optional[DetectionParams] = None,
) -> List[Point]:
    """Symbol-center (x, y) coordinates, strongest match first."""
    return run_detection(image, template, params).points


# -----------------------------
# Command line
# -----------------------------

def _load_yaml(path: Optional[str]) -> Dict:
    if not path:
        return {}
    with open(path, "r") as f:
        return yaml.safe_load(f) or {}


def _read_gray(path: str) -> Optional[np.ndarray]:
    img = cv2.imread(path, cv2.IMREAD_UNCHANGED)
    if img is None:
        return None
    return to_gray_u8(img)


def _write_results_row(path: Path, row: Dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", buffering=1) as f:
        f.write(json.dumps(row) + "\n")


def _dump_intermediates(out_dir: Path, result: DetectionResult) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    cv2.imwrite(str(out_dir / "1_threshold.png"), result.binary)
    cv2.imwrite(str(out_dir / "2_correlation.png"), surface_to_u8(result.surface))
    cv2.imwrite(str(out_dir / "3_detections.png"), result.mask)


def build_arg_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Locate every instance of a symbol template in an image")
    ap.add_argument("--image", required=True, help="Source image (any format OpenCV reads)")
    ap.add_argument("--template", required=True, help="Symbol template image")
    ap.add_argument("--config", default=None, help="YAML parameters, e.g. config/params.yaml")
    ap.add_argument("--threshold", type=int, default=None, help="Inverse binarization level (0..255)")
    ap.add_argument("--min-corr", type=float, default=None, help="Minimum correlation coefficient (-1..1)")
    ap.add_argument("--min-dist", type=float, default=None, help="Minimum distance between detections (px)")
    ap.add_argument("--method", choices=METHODS, default=None, help="Correlation backend")
    ap.add_argument("--workers", type=int, default=None, help="Correlator row bands run concurrently")
    ap.add_argument("--annotate", default=None, help="Write the source with a cross on each detection")
    ap.add_argument("--dump-dir", default=None, help="Write threshold/correlation/mask images here")
    ap.add_argument("--results", default=None, help="Append a JSON row per run to this file")
    ap.add_argument("--log-level", default=None, help="DEBUG/INFO/WARNING/ERROR")
    ap.add_argument("--log-format", choices=FORMATS, default=None, help="json (default) or text log lines")
    return ap


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)

    try:
        P_file = _load_yaml(args.config)
    except (OSError, yaml.YAMLError) as e:
        setup_logging(args.log_level, force=True, fmt=args.log_format or "json")
        log_event(log, logging.ERROR, "Cannot read config", path=args.config, error=str(e))
        return 2
    log_cfg = P_file.get("logging") or {}
    try:
        setup_logging(args.log_level or log_cfg.get("level"), force=True, fmt=args.log_format or log_cfg.get("format"))
    except ValueError as e:
        setup_logging(args.log_level, force=True, fmt="json")
        log_event(log, logging.ERROR, "Invalid logging config", error=str(e))
        return 2

    try:
        params = DetectionParams.from_dict(P_file.get("detection")).with_overrides(
            threshold_level=args.threshold,
            min_correlation=args.min_corr,
            min_distance_px=args.min_dist,
            method=args.method,
            workers=args.workers,
        )
    except ValueError as e:
        log_event(log, logging.ERROR, "Invalid parameters", error=str(e))
        return 2

    image = _read_gray(args.image)
    template = _read_gray(args.template)
    for path, img in ((args.image, image), (args.template, template)):
        if img is None:
            log_event(log, logging.ERROR, "Failed to decode image", path=path)
            return 2

    try:
        result = run_detection(image, template, params, keep_intermediates=bool(args.dump_dir))
    except SymbolDetectionError as e:
        log_event(log, logging.ERROR, "Invalid input", kind=type(e).__name__, error=str(e))
        return 2

    log_event(log, logging.INFO, "Symbols detected", count=len(result), image=args.image, template=args.template)

    if args.annotate:
        ann = P_file.get("annotate") or {}
        bgr = annotate_detections(
            image,
            result.points,
            color=tuple(ann.get("color_bgr", (255, 0, 255))),
            marker_size=int(ann.get("marker_size", 15)),
            thickness=int(ann.get("thickness", 2)),
        )
        Path(args.annotate).parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(args.annotate, bgr)

    if args.dump_dir:
        _dump_intermediates(Path(args.dump_dir), result)

    row = {"image": args.image, "template": args.template, **result.to_dict()}
    results_file = args.results or log_cfg.get("results_file")
    if results_file:
        _write_results_row(Path(results_file), row)

    print(json.dumps({"detections": [[d.x, d.y] for d in result.detections]}))
    return 0


if __name__ == "__main__":
    sys.exit(main())
