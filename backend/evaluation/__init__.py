"""Evaluation module for Pixel Battle challenges.

This module contains the visual scoring engine:
- Rasterizing rendered surfaces and target images into pixel buffers
- Pixel-by-pixel comparison with an optional diff overlay
- Orchestration of a full evaluation
"""

from .errors import (
    CaptureTimeoutError,
    ComparisonError,
    ImageLoadError,
    ShapeMismatchError,
    SurfaceAccessError,
)
from .pixel_buffer import PixelBuffer
from .image_compare import DEFAULT_TOLERANCE, ComparisonResult, compare, round_score
from .rasterizer import capture_rendered_surface, load_reference_image
from .evaluator import ChallengeEvaluator, evaluate, evaluate_candidates

__all__ = [
    "CaptureTimeoutError",
    "ComparisonError",
    "ImageLoadError",
    "ShapeMismatchError",
    "SurfaceAccessError",
    "PixelBuffer",
    "DEFAULT_TOLERANCE",
    "ComparisonResult",
    "compare",
    "round_score",
    "capture_rendered_surface",
    "load_reference_image",
    "ChallengeEvaluator",
    "evaluate",
    "evaluate_candidates",
]
