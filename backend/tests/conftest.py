"""Shared fixtures for backend tests."""

import asyncio
import io
from contextlib import asynccontextmanager

import pytest
from httpx import ASGITransport, AsyncClient
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter
from PIL import Image
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from config import limiter
from main import app

WHITE = (255, 255, 255, 255)
RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


def solid_image(width: int, height: int, color: tuple[int, int, int, int]) -> Image.Image:
    return Image.new("RGBA", (width, height), color)


def png_bytes(image: Image.Image) -> bytes:
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


class FakeElement:
    """Stands in for a Playwright ElementHandle of <body>."""

    def __init__(self, image: Image.Image, error: Exception | None = None):
        self.image = image
        self.error = error
        self.screenshot_kwargs: dict | None = None

    async def screenshot(self, **kwargs) -> bytes:
        self.screenshot_kwargs = kwargs
        if self.error is not None:
            raise self.error
        return png_bytes(self.image)


class FakeSurface:
    """Stands in for a Playwright Page: a rendered document with a body."""

    def __init__(
        self,
        image: Image.Image | None = None,
        *,
        has_body: bool = True,
        closed: bool = False,
        unreadable_images: list[str] | None = None,
        screenshot_error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.body = FakeElement(image or solid_image(400, 300, WHITE), screenshot_error)
        self.has_body = has_body
        self.closed = closed
        self.unreadable_images = unreadable_images or []
        self.delay = delay
        self.cancelled = False

    def is_closed(self) -> bool:
        return self.closed

    async def close(self) -> None:
        self.closed = True

    async def query_selector(self, selector: str):
        assert selector == "body"
        try:
            await asyncio.sleep(self.delay)
        except asyncio.CancelledError:
            self.cancelled = True
            raise
        return self.body if self.has_body else None

    async def evaluate(self, expression: str):
        return list(self.unreadable_images)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _reset_state():
    """Reset rate-limiter storage between tests."""
    fresh = MemoryStorage()
    limiter._storage = fresh
    limiter._limiter = FixedWindowRateLimiter(fresh)
    yield


@pytest.fixture
async def client():
    """Async HTTP client against the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac


class FakeCapture:
    """Stands in for ScreenshotCapture.

    Fragments mentioning 'red' render solid red, anything else solid blue;
    'closed' yields an unreadable surface and 'slow' one that never finishes.
    'hang' and 'crash' fail while the page loads, like a browser timeout
    or a dead browser.
    """

    def __init__(self):
        self.opened: list[FakeSurface] = []

    async def open_preview(self, html_fragment, options=None):
        if "hang" in html_fragment:
            raise PlaywrightTimeoutError("page.set_content: Timeout 10000ms exceeded.")
        if "crash" in html_fragment:
            raise PlaywrightError("Target page, context or browser has been closed")
        color = RED if "red" in html_fragment else BLUE
        surface = FakeSurface(
            solid_image(options.width, options.height, color),
            closed="closed" in html_fragment,
            delay=60 if "slow" in html_fragment else 0.0,
        )
        self.opened.append(surface)
        return surface

    @asynccontextmanager
    async def preview(self, html_fragment, options=None):
        surface = await self.open_preview(html_fragment, options)
        try:
            yield surface
        finally:
            await surface.close()
