"""
Color Atlas Packing

Every voxel is one solid color, so the exported texture is a palette:
unique colors are packed as solid square cells into a square,
power-of-two atlas.

Layout:
- Colors are deduplicated by their "r,g,b" key, first-seen order
- Grid side s = ceil(sqrt(n)); atlas side = max(16, next_pow2(s))
- Cell pixel size = atlas_side // s; color i sits at (i % s, i // s)
- Unused pixels stay fully transparent

UV units:
- "block": Java block model units, the atlas spans 0-16
- "pixel": absolute atlas pixels (bbmodel with explicit uv_width/uv_height)
"""

import base64
import binascii
import io
import logging
import math
import struct
import zlib
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple
import numpy as np
from PIL import Image

from ..color import Color, color_key

logger = logging.getLogger(__name__)


MIN_ATLAS_SIZE = 16
BLOCK_UV_SPAN = 16.0

UV_BLOCK = "block"
UV_PIXEL = "pixel"

UVRect = Tuple[float, float, float, float]


def next_power_of_two(n: int) -> int:
    """Smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 1 << (int(n) - 1).bit_length()


def _png_chunk(tag: bytes, data: bytes) -> bytes:
    return (
        struct.pack('>I', len(data)) +
        tag +
        data +
        struct.pack('>I', binascii.crc32(tag + data) & 0xFFFFFFFF)
    )


def minimal_png() -> bytes:
    """A valid 1x1 fully transparent RGBA PNG."""
    header = struct.pack('>IIBBBBB', 1, 1, 8, 6, 0, 0, 0)
    scanline = b'\x00' + b'\x00\x00\x00\x00'  # filter byte + one RGBA pixel
    return (
        b'\x89PNG\r\n\x1a\n' +
        _png_chunk(b'IHDR', header) +
        _png_chunk(b'IDAT', zlib.compress(scanline)) +
        _png_chunk(b'IEND', b'')
    )


def encode_png(pixels: np.ndarray) -> bytes:
    """
    Encode an (H, W, 4) uint8 array as PNG.

    If the image cannot be encoded, a minimal valid blank PNG is
    returned instead of raising.
    """
    try:
        buffer = io.BytesIO()
        Image.fromarray(np.asarray(pixels, dtype=np.uint8)).save(buffer, format="PNG")
        return buffer.getvalue()
    except (OSError, ValueError, TypeError) as e:
        logger.warning("PNG encoding failed, using a blank image: %s", e)
        return minimal_png()


@dataclass
class ColorAtlas:
    """
    Packed color atlas.

    Attributes:
        pixels: (height, width, 4) uint8 RGBA image
        color_index: Canonical color key -> atlas index
        colors: Unique colors, position = atlas index
        width, height: Atlas size in pixels
        grid_side: Cells per atlas row (0 for an empty atlas)
        cell_size: Cell edge in pixels (0 for an empty atlas)
    """

    pixels: np.ndarray
    color_index: Dict[str, int] = field(default_factory=dict)
    colors: List[Color] = field(default_factory=list)
    width: int = MIN_ATLAS_SIZE
    height: int = MIN_ATLAS_SIZE
    grid_side: int = 0
    cell_size: int = 0

    @property
    def uv_map(self) -> Dict[int, UVRect]:
        """Atlas index -> UV rectangle in block units."""
        return self.uv_rects(UV_BLOCK)

    def cell_origin(self, index: int) -> Tuple[int, int]:
        """Top-left pixel of a color's cell."""
        x = (index % self.grid_side) * self.cell_size
        y = (index // self.grid_side) * self.cell_size
        return x, y

    def uv_rect(self, index: int, unit: str = UV_BLOCK) -> UVRect:
        """
        UV rectangle (u1, v1, u2, v2) of a color cell.

        Args:
            index: Atlas index of the color
            unit: UV_BLOCK (atlas spans 0-16) or UV_PIXEL (absolute pixels)
        """
        if unit == UV_BLOCK:
            scale = BLOCK_UV_SPAN / self.width
        elif unit == UV_PIXEL:
            scale = 1.0
        else:
            raise ValueError(f"Unknown UV unit: {unit}")

        x, y = self.cell_origin(index)
        return (
            x * scale,
            y * scale,
            (x + self.cell_size) * scale,
            (y + self.cell_size) * scale,
        )

    def uv_rects(self, unit: str = UV_BLOCK) -> Dict[int, UVRect]:
        return {index: self.uv_rect(index, unit) for index in range(len(self.colors))}

    def index_of(self, color: Color) -> int:
        """Atlas index of a color (0 if the color was not packed)."""
        return self.color_index.get(color_key(color), 0)

    def to_png(self) -> bytes:
        return encode_png(self.pixels)

    def to_data_uri(self) -> str:
        encoded = base64.b64encode(self.to_png()).decode('ascii')
        return f"data:image/png;base64,{encoded}"


class TexturePacker:
    """
    Packs voxel colors into a ColorAtlas.

    Usage:
        atlas = TexturePacker().pack(grid.colors())
    """

    def __init__(self, min_size: int = MIN_ATLAS_SIZE):
        self.min_size = min_size

    def pack(self, colors: Sequence[Color]) -> ColorAtlas:
        """
        Deduplicate colors and lay them out in an atlas.

        Args:
            colors: Voxel colors, duplicates allowed

        Returns:
            ColorAtlas (a blank white atlas with empty maps if no colors)
        """
        color_index: Dict[str, int] = {}
        unique: List[Color] = []
        for color in colors:
            key = color_key(color)
            if key not in color_index:
                color_index[key] = len(unique)
                unique.append(color)

        if not unique:
            pixels = np.full((self.min_size, self.min_size, 4), 255, dtype=np.uint8)
            return ColorAtlas(pixels, width=self.min_size, height=self.min_size)

        grid_side = math.isqrt(len(unique))
        if grid_side * grid_side < len(unique):
            grid_side += 1
        size = max(self.min_size, next_power_of_two(grid_side))
        cell_size = size // grid_side

        pixels = np.zeros((size, size, 4), dtype=np.uint8)
        for index, color in enumerate(unique):
            x = (index % grid_side) * cell_size
            y = (index // grid_side) * cell_size
            pixels[y:y + cell_size, x:x + cell_size] = (color.r, color.g, color.b, 255)

        logger.debug(
            "Packed %d unique colors (%d input) into %dx%d atlas",
            len(unique), len(colors), size, size
        )

        return ColorAtlas(
            pixels=pixels,
            color_index=color_index,
            colors=unique,
            width=size,
            height=size,
            grid_side=grid_side,
            cell_size=cell_size,
        )
