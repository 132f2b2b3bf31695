"""
Symbol detection by normalized cross-correlation

This package provides:
- Inverse binary thresholding of grayscale images (dark symbols -> white foreground)
- A normalized cross-correlation surface between image and template, with
  constant regions scored as no-match (-1.0)
- Thresholding of the surface, 8-connected blob extraction and a
  strength-greedy minimum-distance merge
- Mapping of blob reference points to symbol centers

Entry point:
    python -m symbol_detect.pipeline --image page.png --template symbol.png --config config/params.yaml
"""
from .params import DetectionParams
from .pipeline import detect_symbols, run_detection

__all__ = ["DetectionParams", "detect_symbols", "run_detection"]
