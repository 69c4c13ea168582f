"""Errors raised while capturing and comparing visual surfaces.

A failed comparison never yields a score; callers receive one of these instead.
"""


class ComparisonError(Exception):
    """Base class for every failure of a pixel comparison."""


class SurfaceAccessError(ComparisonError):
    """The rendered surface could not be read (closed, detached, no body)."""


class ImageLoadError(ComparisonError):
    """The reference image could not be fetched or decoded."""


class ShapeMismatchError(ComparisonError):
    """Two pixel buffers with different dimensions were compared."""

    def __init__(self, shape_a: tuple[int, int], shape_b: tuple[int, int]):
        self.shape_a = shape_a
        self.shape_b = shape_b
        super().__init__(
            f"Cannot compare {shape_a[0]}x{shape_a[1]} buffer with {shape_b[0]}x{shape_b[1]} buffer"
        )


class CaptureTimeoutError(ComparisonError, TimeoutError):
    """A capture step did not finish within its time budget."""
