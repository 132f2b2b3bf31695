from __future__ import annotations

"""
Input validation errors raised by the detection pipeline.

All of them derive from ValueError so callers that only care about
"bad input" can catch the builtin.
"""


class SymbolDetectionError(ValueError):
    """Base class for precondition failures. Raised before any computation."""


class EmptyImageError(SymbolDetectionError):
    """Source or template has zero width or height."""


class InvalidTemplateSizeError(SymbolDetectionError):
    """Template is wider or taller than the source image."""


class ImageFormatError(SymbolDetectionError):
    """Buffer is not a single-channel 2-D image of a supported sample kind."""
