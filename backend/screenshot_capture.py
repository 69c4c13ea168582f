"""Preview rendering for generated HTML/CSS.

Renders model-generated fragments inside a fixed-size preview document using
a headless browser. The resulting pages are the rendered surfaces that the
evaluation module rasterizes and scores.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from playwright.async_api import Browser, Page, Playwright, async_playwright

from config import settings

logger = logging.getLogger(__name__)

PREVIEW_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <style>
    html, body {{
      margin: 0;
      padding: 0;
      width: 100%;
      height: 100%;
      overflow: hidden;
    }}
  </style>
</head>
<body>
{content}
</body>
</html>"""


def build_preview_document(fragment: str) -> str:
    """Wrap an HTML/CSS fragment in the preview document."""
    return PREVIEW_TEMPLATE.format(content=fragment)


@dataclass
class ScreenshotOptions:
    """Options for preview rendering."""
    width: int = settings.preview_width
    height: int = settings.preview_height
    device_scale_factor: float = 1.0
    wait_timeout: int = 0  # extra milliseconds to wait after load (animations)
    load_timeout: int = 10000  # milliseconds allowed for set_content


class ScreenshotCapture:
    """Owns a headless Chromium and opens preview pages for HTML fragments."""

    def __init__(self):
        self.playwright: Optional[Playwright] = None
        self.browser: Optional[Browser] = None

    async def __aenter__(self):
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    async def start(self):
        """Start the browser instance."""
        if self.browser is None:
            self.playwright = await async_playwright().start()
            self.browser = await self.playwright.chromium.launch(
                headless=True,
                args=['--no-sandbox', '--disable-setuid-sandbox']
            )
            logger.info("[Capture] Headless Chromium started")

    async def close(self):
        """Close the browser instance."""
        if self.browser:
            await self.browser.close()
            self.browser = None
        if self.playwright:
            await self.playwright.stop()
            self.playwright = None

    async def open_preview(
        self,
        html_fragment: str,
        options: Optional[ScreenshotOptions] = None,
    ) -> Page:
        """
        Render an HTML fragment in a new preview page.

        Args:
            html_fragment: Generated markup (may include <style> tags)
            options: Viewport size and wait settings

        Returns:
            The loaded page; the caller is responsible for closing it
        """
        if not self.browser:
            await self.start()

        options = options or ScreenshotOptions()

        page = await self.browser.new_page(
            viewport={'width': options.width, 'height': options.height},
            device_scale_factor=options.device_scale_factor,
        )
        try:
            await page.set_content(
                build_preview_document(html_fragment),
                wait_until='load',
                timeout=options.load_timeout,
            )
            if options.wait_timeout:
                await asyncio.sleep(options.wait_timeout / 1000)
        except BaseException:
            await page.close()
            raise
        return page

    @asynccontextmanager
    async def preview(
        self,
        html_fragment: str,
        options: Optional[ScreenshotOptions] = None,
    ) -> AsyncIterator[Page]:
        """Context manager variant of open_preview that closes the page on exit."""
        page = await self.open_preview(html_fragment, options)
        try:
            yield page
        finally:
            await page.close()
