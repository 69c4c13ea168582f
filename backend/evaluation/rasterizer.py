"""Rasterize the two visual sources of a comparison into pixel buffers.

The rendered surface (a live Playwright page or frame) and the reference image
(a URL, data URL or file path) are both normalized to RGBA buffers of exactly
``width x height`` so they can be compared directly.
"""

import asyncio
import base64
import binascii
import io
import logging
from pathlib import Path
from typing import Any

import httpx
from PIL import Image, UnidentifiedImageError
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config import settings
from .errors import CaptureTimeoutError, ImageLoadError, SurfaceAccessError
from .pixel_buffer import PixelBuffer

logger = logging.getLogger(__name__)

BACKGROUND_COLOR = (255, 255, 255, 255)

# Images that finished loading without any decodable pixels
_UNREADABLE_IMAGES_JS = """() => Array.from(document.images)
    .filter((img) => img.complete && img.naturalWidth === 0)
    .map((img) => img.currentSrc || img.src)"""


def _surface_gone(surface: Any) -> bool:
    """True if the page has been closed or the frame detached."""
    is_detached = getattr(surface, "is_detached", None)
    if callable(is_detached) and is_detached():
        return True
    is_closed = getattr(surface, "is_closed", None)
    return bool(callable(is_closed) and is_closed())


def _flatten_onto_white(image: Image.Image, width: int, height: int) -> Image.Image:
    """Place the image at the top-left of an opaque white canvas of the target size."""
    rgba = image.convert("RGBA")
    # crop() pads with transparent pixels when the image is smaller than the box
    region = rgba.crop((0, 0, width, height))
    canvas = Image.new("RGBA", (width, height), BACKGROUND_COLOR)
    canvas.alpha_composite(region)
    return canvas


async def capture_rendered_surface(
    surface: Any,
    width: int,
    height: int,
    *,
    strict_subresources: bool | None = None,
) -> PixelBuffer:
    """
    Rasterize the visible body of a rendered document.

    Args:
        surface: Playwright Page or Frame holding the rendered document
        width: Target buffer width in CSS pixels
        height: Target buffer height in CSS pixels
        strict_subresources: If True, an embedded image that cannot be read
                             aborts the capture; otherwise it renders blank.
                             Defaults to settings.strict_subresources

    Returns:
        PixelBuffer of exactly width x height on a white background

    Raises:
        SurfaceAccessError: If the document body cannot be read
        CaptureTimeoutError: If the browser times out while capturing
    """
    if strict_subresources is None:
        strict_subresources = settings.strict_subresources

    if _surface_gone(surface):
        raise SurfaceAccessError("Cannot access surface content: surface is closed or detached")

    try:
        body = await surface.query_selector("body")
        if body is None:
            raise SurfaceAccessError("Cannot access surface content: document has no body")

        unreadable = await surface.evaluate(_UNREADABLE_IMAGES_JS)
        if unreadable:
            if strict_subresources:
                raise SurfaceAccessError(
                    f"Cannot read {len(unreadable)} embedded image(s): {', '.join(unreadable)}"
                )
            logger.warning(
                f"[Capture] {len(unreadable)} embedded image(s) unreadable, rendering blank: {unreadable}"
            )

        screenshot_bytes = await body.screenshot(
            type="png",
            omit_background=True,
            scale="css",
            animations="disabled",
            caret="hide",
        )
    except PlaywrightTimeoutError as e:
        raise CaptureTimeoutError(f"Timed out capturing rendered surface: {e}") from e
    except PlaywrightError as e:
        raise SurfaceAccessError(f"Cannot access surface content: {e}") from e

    with Image.open(io.BytesIO(screenshot_bytes)) as shot:
        canvas = _flatten_onto_white(shot, width, height)

    logger.debug(f"[Capture] Rendered surface captured ({width}x{height})")
    return PixelBuffer.from_image(canvas)


async def _read_locator(locator: str, client: httpx.AsyncClient | None) -> bytes:
    if locator.startswith("data:"):
        header, sep, payload = locator.partition(",")
        if not sep:
            raise ImageLoadError(f"Invalid data URL format: {locator[:50]}...")
        try:
            if header.endswith(";base64"):
                return base64.b64decode(payload, validate=True)
            return payload.encode("utf-8")
        except binascii.Error as e:
            raise ImageLoadError(f"Invalid base64 image data: {e}") from e

    if locator.startswith(("http://", "https://")):
        return await _fetch_image(locator, client)

    path = Path(locator)
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as e:
        raise ImageLoadError(f"Failed to load image: {locator}: {e}") from e


async def _fetch_image(url: str, client: httpx.AsyncClient | None) -> bytes:
    if client is None:
        async with httpx.AsyncClient(timeout=settings.image_fetch_timeout_sec) as own_client:
            return await _fetch_image(url, own_client)

    try:
        response = await client.get(url, follow_redirects=True)
        response.raise_for_status()
    except httpx.TimeoutException as e:
        raise CaptureTimeoutError(f"Timed out fetching image {url}") from e
    except httpx.HTTPStatusError as e:
        raise ImageLoadError(
            f"Failed to load image: {url} (HTTP {e.response.status_code})"
        ) from e
    except httpx.HTTPError as e:
        raise ImageLoadError(f"Failed to load image: {url}: {e}") from e
    return response.content


async def load_reference_image(
    locator: str | Path,
    width: int,
    height: int,
    *,
    client: httpx.AsyncClient | None = None,
) -> PixelBuffer:
    """
    Decode a static image and stretch it to exactly width x height.

    The aspect ratio is not preserved.

    Args:
        locator: http(s) URL, data URL, or local file path of the image
        width: Target buffer width
        height: Target buffer height
        client: Optional httpx client used for http(s) URLs

    Returns:
        PixelBuffer of exactly width x height

    Raises:
        ImageLoadError: If the image cannot be fetched or decoded
        CaptureTimeoutError: If fetching the image times out
    """
    locator = str(locator)
    raw = await _read_locator(locator, client)

    try:
        with Image.open(io.BytesIO(raw)) as img:
            img.load()
            scaled = img.convert("RGBA").resize((width, height), Image.Resampling.BILINEAR)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        raise ImageLoadError(f"Failed to decode image: {locator[:80]}: {e}") from e

    logger.debug(f"[Reference] Loaded {locator[:80]} as {width}x{height}")
    return PixelBuffer.from_image(scaled)
