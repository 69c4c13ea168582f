"""Immutable RGBA pixel grid shared by the rasterizer and the comparator."""

import base64
import io
from collections.abc import Iterable
from dataclasses import dataclass

from PIL import Image

Pixel = tuple[int, int, int, int]


@dataclass(frozen=True)
class PixelBuffer:
    """Rectangular grid of RGBA pixels, row-major with a top-left origin.

    ``data`` holds ``width * height * 4`` bytes, one ``(r, g, b, a)`` quadruple
    per pixel.
    """

    width: int
    height: int
    data: bytes

    def __post_init__(self):
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Invalid buffer dimensions {self.width}x{self.height}")
        if not isinstance(self.data, bytes):
            object.__setattr__(self, "data", bytes(self.data))
        expected = self.width * self.height * 4
        if len(self.data) != expected:
            raise ValueError(
                f"Buffer of {self.width}x{self.height} needs {expected} bytes, got {len(self.data)}"
            )

    @property
    def shape(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def total_pixels(self) -> int:
        return self.width * self.height

    def pixel(self, x: int, y: int) -> Pixel:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"Pixel ({x}, {y}) outside {self.width}x{self.height} buffer")
        offset = (y * self.width + x) * 4
        r, g, b, a = self.data[offset:offset + 4]
        return r, g, b, a

    def pixels(self) -> list[Pixel]:
        """All pixels in row-major order."""
        data = self.data
        return [tuple(data[i:i + 4]) for i in range(0, len(data), 4)]  # type: ignore[misc]

    @classmethod
    def from_pixels(cls, width: int, height: int, pixels: Iterable[Pixel]) -> "PixelBuffer":
        data = bytearray()
        for pixel in pixels:
            data.extend(pixel)
        return cls(width, height, bytes(data))

    @classmethod
    def from_image(cls, image: Image.Image) -> "PixelBuffer":
        rgba = image if image.mode == "RGBA" else image.convert("RGBA")
        width, height = rgba.size
        return cls(width, height, rgba.tobytes())

    def to_image(self) -> Image.Image:
        return Image.frombytes("RGBA", (self.width, self.height), self.data)

    def to_png(self) -> bytes:
        buf = io.BytesIO()
        self.to_image().save(buf, format="PNG")
        return buf.getvalue()

    def to_data_url(self) -> str:
        """Encode as a ``data:image/png;base64,...`` URL for display."""
        image_base64 = base64.b64encode(self.to_png()).decode("utf-8")
        return f"data:image/png;base64,{image_base64}"

    def __repr__(self) -> str:
        return f"PixelBuffer(width={self.width}, height={self.height})"
