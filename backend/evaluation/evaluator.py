"""Orchestrates one visual evaluation: capture both sources, then compare.

The rendered surface and the reference image are rasterized concurrently,
each within a time budget. The comparison only runs once both buffers are
available; any failure aborts the evaluation and no score is produced.
"""

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Mapping
from contextlib import asynccontextmanager
from typing import Any

import httpx
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from challenges import Challenge, target_image_locator
from config import settings
from screenshot_capture import ScreenshotCapture, ScreenshotOptions
from .errors import (
    CaptureTimeoutError,
    ComparisonError,
    ImageLoadError,
    ShapeMismatchError,
    SurfaceAccessError,
)
from .image_compare import ComparisonResult, compare
from .pixel_buffer import PixelBuffer
from .rasterizer import capture_rendered_surface, load_reference_image

logger = logging.getLogger(__name__)


async def _bounded(awaitable: Awaitable[PixelBuffer], timeout: float, step: str) -> PixelBuffer:
    try:
        return await asyncio.wait_for(awaitable, timeout)
    except CaptureTimeoutError:
        raise
    except asyncio.TimeoutError as e:
        raise CaptureTimeoutError(f"{step} did not finish within {timeout}s") from e


async def _gather_fail_fast(*awaitables: Awaitable[PixelBuffer]) -> list[PixelBuffer]:
    """Run awaitables concurrently; the first failure cancels the rest."""
    tasks = [asyncio.ensure_future(a) for a in awaitables]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        # Let cancelled siblings unwind before propagating
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def evaluate(
    surface: Any,
    target_image_url: str,
    width: int = 400,
    height: int = 300,
    generate_diff: bool = False,
    *,
    reference: PixelBuffer | None = None,
    tolerance: int | None = None,
    timeout: float | None = None,
    strict_subresources: bool | None = None,
    client: httpx.AsyncClient | None = None,
) -> ComparisonResult:
    """
    Score a rendered surface against a target image.

    Args:
        surface: Playwright Page or Frame with the rendered document
        target_image_url: URL, data URL or file path of the target image
        width: Comparison width (default 400, the preview viewport)
        height: Comparison height (default 300)
        generate_diff: If True, include a diff buffer in the result
        reference: Already-loaded target buffer to reuse instead of decoding again
        tolerance: Per-channel match tolerance (default settings.compare_tolerance)
        timeout: Time budget for each capture step (default settings.capture_timeout_sec)
        strict_subresources: See capture_rendered_surface
        client: Optional httpx client for fetching the target image

    Returns:
        ComparisonResult for the surface

    Raises:
        SurfaceAccessError, ImageLoadError, ShapeMismatchError, CaptureTimeoutError
    """
    tolerance = settings.compare_tolerance if tolerance is None else tolerance
    timeout = settings.capture_timeout_sec if timeout is None else timeout

    if reference is not None and reference.shape != (width, height):
        raise ShapeMismatchError(reference.shape, (width, height))

    capture = _bounded(
        capture_rendered_surface(
            surface, width, height, strict_subresources=strict_subresources
        ),
        timeout,
        "Rendered surface capture",
    )

    if reference is None:
        load = _bounded(
            load_reference_image(target_image_url, width, height, client=client),
            timeout,
            "Reference image load",
        )
        surface_buffer, reference = await _gather_fail_fast(capture, load)
    else:
        surface_buffer = await capture

    result = compare(surface_buffer, reference, generate_diff=generate_diff, tolerance=tolerance)
    logger.info(
        f"[Evaluate] Score {result.score:.2f} ({result.matching_pixels}/{result.total_pixels} pixels)"
    )
    return result


async def evaluate_candidates(
    surfaces: Mapping[str, Any],
    target_image_url: str,
    width: int = 400,
    height: int = 300,
    generate_diff: bool = False,
    *,
    tolerance: int | None = None,
    timeout: float | None = None,
    strict_subresources: bool | None = None,
    client: httpx.AsyncClient | None = None,
) -> dict[str, ComparisonResult | ComparisonError]:
    """
    Score several rendered surfaces against the same target image.

    The target is decoded once and shared by every comparison. A failure to
    load it raises; failures of individual surfaces are returned in place of
    their result so they are never mistaken for a 0.0 score.
    """
    timeout = settings.capture_timeout_sec if timeout is None else timeout

    reference = await _bounded(
        load_reference_image(target_image_url, width, height, client=client),
        timeout,
        "Reference image load",
    )

    keys = list(surfaces)
    outcomes = await asyncio.gather(
        *(
            evaluate(
                surfaces[key],
                target_image_url,
                width,
                height,
                generate_diff,
                reference=reference,
                tolerance=tolerance,
                timeout=timeout,
                strict_subresources=strict_subresources,
            )
            for key in keys
        ),
        return_exceptions=True,
    )

    results: dict[str, ComparisonResult | ComparisonError] = {}
    for key, outcome in zip(keys, outcomes):
        if isinstance(outcome, ComparisonError):
            logger.warning(f"[Evaluate] Comparison unavailable for {key}: {outcome}")
        elif isinstance(outcome, BaseException):
            raise outcome
        results[key] = outcome
    return results


class ChallengeEvaluator:
    """Renders generated HTML for a challenge and scores it against the target image."""

    def __init__(
        self,
        capture: ScreenshotCapture,
        width: int | None = None,
        height: int | None = None,
    ):
        self.capture = capture
        self.width = width or settings.preview_width
        self.height = height or settings.preview_height

    @property
    def options(self) -> ScreenshotOptions:
        return ScreenshotOptions(width=self.width, height=self.height)

    def _target_for(self, challenge: Challenge) -> str:
        locator = target_image_locator(challenge)
        if locator is None:
            raise ImageLoadError(f"Challenge '{challenge.challenge_id}' has no target image")
        return locator

    @asynccontextmanager
    async def _rendered(self, html: str) -> AsyncIterator[Any]:
        """Preview page for one fragment, with browser failures as comparison errors."""
        try:
            async with self.capture.preview(html, self.options) as page:
                yield page
        except PlaywrightTimeoutError as e:
            raise CaptureTimeoutError(f"Timed out rendering preview: {e}") from e
        except PlaywrightError as e:
            raise SurfaceAccessError(f"Cannot render preview: {e}") from e

    async def _open_page(self, html: str) -> Any:
        try:
            return await self.capture.open_preview(html, self.options)
        except PlaywrightTimeoutError as e:
            raise CaptureTimeoutError(f"Timed out rendering preview: {e}") from e
        except PlaywrightError as e:
            raise SurfaceAccessError(f"Cannot render preview: {e}") from e

    async def evaluate_html(
        self,
        challenge: Challenge,
        html: str,
        generate_diff: bool = False,
    ) -> ComparisonResult:
        """Render one fragment and score it."""
        target = self._target_for(challenge)
        async with self._rendered(html) as page:
            return await evaluate(page, target, self.width, self.height, generate_diff)

    async def evaluate_outputs(
        self,
        challenge: Challenge,
        outputs: Mapping[str, str],
        generate_diff: bool = False,
    ) -> dict[str, ComparisonResult | ComparisonError]:
        """Render each model's fragment and score them all against one decoded target.

        A fragment that fails to render is reported in its own slot; the
        other models are still scored.
        """
        target = self._target_for(challenge)
        pages = {}
        render_errors: dict[str, ComparisonError] = {}
        try:
            for key, html in outputs.items():
                try:
                    pages[key] = await self._open_page(html)
                except ComparisonError as e:
                    logger.warning(f"[Evaluate] Comparison unavailable for {key}: {e}")
                    render_errors[key] = e

            scored = await evaluate_candidates(
                pages, target, self.width, self.height, generate_diff
            )
        finally:
            for page in pages.values():
                await page.close()

        return {key: render_errors.get(key) or scored[key] for key in outputs}
