"""Pixel-by-pixel similarity scoring, CSS Battle style.

Two equally sized RGBA buffers are compared pixel by pixel. A pixel matches
when every channel (including alpha) differs by at most ``tolerance``; the
score is the percentage of matching pixels rounded to two decimals.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any

import numpy as np

from .errors import ShapeMismatchError
from .pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 5

# Matching pixels keep their colour at low opacity, mismatches are painted red
MATCH_ALPHA = 100
MISMATCH_COLOR = (255, 0, 0, 200)


@dataclass(frozen=True)
class ComparisonResult:
    """Outcome of comparing two pixel buffers."""
    score: float  # 0.00 to 100.00
    matching_pixels: int
    total_pixels: int
    diff_buffer: PixelBuffer | None = None

    @property
    def non_matching_pixels(self) -> int:
        return self.total_pixels - self.matching_pixels

    def to_dict(self, include_diff: bool = True) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "score": self.score,
            "matching_pixels": self.matching_pixels,
            "total_pixels": self.total_pixels,
        }
        if include_diff:
            payload["diff_image"] = self.diff_buffer.to_data_url() if self.diff_buffer else None
        return payload


def round_score(value: float) -> float:
    """Round half up to two decimals (multiply, round, divide by 100).

    Scores are never negative, so this is also round-half-away-from-zero.
    """
    return math.floor(value * 100 + 0.5) / 100


def _as_array(buffer: PixelBuffer) -> np.ndarray:
    return np.frombuffer(buffer.data, dtype=np.uint8).reshape(buffer.height, buffer.width, 4)


def compare(
    buffer_a: PixelBuffer,
    buffer_b: PixelBuffer,
    generate_diff: bool = False,
    tolerance: int = DEFAULT_TOLERANCE,
) -> ComparisonResult:
    """
    Compare two pixel buffers and return a similarity score.

    Args:
        buffer_a: First buffer (the rendered surface); its colours are used
                  for matching pixels in the diff
        buffer_b: Second buffer (the reference image)
        generate_diff: If True, also build a diff buffer of the same shape
        tolerance: Maximum per-channel absolute difference for a match

    Returns:
        ComparisonResult with score, pixel counts and optional diff buffer

    Raises:
        ShapeMismatchError: If the buffers differ in width or height
    """
    if buffer_a.shape != buffer_b.shape:
        raise ShapeMismatchError(buffer_a.shape, buffer_b.shape)
    if not 0 <= tolerance <= 255:
        raise ValueError(f"Tolerance must be between 0 and 255, got {tolerance}")

    arr_a = _as_array(buffer_a)
    arr_b = _as_array(buffer_b)

    # int16 so the subtraction cannot wrap around
    delta = np.abs(arr_a.astype(np.int16) - arr_b.astype(np.int16))
    matches = np.all(delta <= tolerance, axis=2)

    matching_pixels = int(np.count_nonzero(matches))
    total_pixels = buffer_a.total_pixels
    score = round_score(matching_pixels / total_pixels * 100)

    diff_buffer = None
    if generate_diff:
        diff = np.empty_like(arr_a)
        diff[..., :3] = arr_a[..., :3]
        diff[..., 3] = MATCH_ALPHA
        diff[~matches] = MISMATCH_COLOR
        diff_buffer = PixelBuffer(buffer_a.width, buffer_a.height, diff.tobytes())

    logger.debug(
        f"[Compare] {matching_pixels}/{total_pixels} pixels match "
        f"(tolerance={tolerance}) -> {score:.2f}"
    )

    return ComparisonResult(
        score=score,
        matching_pixels=matching_pixels,
        total_pixels=total_pixels,
        diff_buffer=diff_buffer,
    )
