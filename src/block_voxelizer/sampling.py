"""
Surface Color Resolution

ColorResolver turns a SurfaceHit into one 8-bit RGB color. Sources are
tried in priority order, first match wins:

1. Texture: the hit has a UV and its material exposes a decodable image
2. Vertex colors: the mesh has per-vertex colors, interpolated with the
   hit's barycentric coordinates
3. Flat material color (material arrays select by the face's group)
4. White

Decoded texture pixels live in a TextureCache that the caller creates for
one conversion and drops afterwards.
"""

import logging
import math
import threading
from typing import Dict, Optional, Tuple
import numpy as np
from PIL import Image

from .color import Color, WHITE
from .intersector import SurfaceHit
from .mesh import TextureImage

logger = logging.getLogger(__name__)


class TextureCache:
    """
    Read-through cache of decoded texture pixels.

    Keys are TextureImage handles (compared by identity). A texture that
    cannot be decoded is cached as None so decoding is attempted once.
    """

    def __init__(self):
        self._pixels: Dict[TextureImage, Optional[np.ndarray]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._pixels)

    def __contains__(self, texture: TextureImage) -> bool:
        return texture in self._pixels

    def pixels(self, texture: TextureImage) -> Optional[np.ndarray]:
        """
        Get the decoded (H, W, 3) uint8 pixels of a texture.

        Returns:
            Pixel array, or None if the image is missing or undecodable
        """
        with self._lock:
            if texture not in self._pixels:
                self._pixels[texture] = self._decode(texture)
            return self._pixels[texture]

    def clear(self):
        with self._lock:
            self._pixels.clear()

    @staticmethod
    def _decode(texture: TextureImage) -> Optional[np.ndarray]:
        source = texture.source
        try:
            if source is None:
                return None
            if isinstance(source, np.ndarray):
                pixels = np.asarray(source, dtype=np.uint8)
                if pixels.ndim == 2:
                    pixels = np.stack([pixels] * 3, axis=-1)
                pixels = pixels[:, :, :3]
            elif isinstance(source, Image.Image):
                pixels = np.array(source.convert("RGB"), dtype=np.uint8)
            else:
                with Image.open(source) as img:
                    pixels = np.array(img.convert("RGB"), dtype=np.uint8)
        except (OSError, ValueError) as e:
            logger.warning("Could not decode texture %r: %s", texture.name, e)
            return None

        if pixels.shape[0] == 0 or pixels.shape[1] == 0:
            logger.warning("Texture %r is empty", texture.name)
            return None

        logger.debug(
            "Decoded texture %r (%dx%d)", texture.name, pixels.shape[1], pixels.shape[0]
        )
        return np.ascontiguousarray(pixels)


def sample_texture(
    pixels: np.ndarray,
    uv: Tuple[float, float],
    flip_y: bool = True
) -> Color:
    """
    Nearest-pixel texture lookup.

    Args:
        pixels: (H, W, 3) uint8 image
        uv: Texture coordinate; values outside [0, 1) wrap around
        flip_y: If True, v=0 is the bottom row of the image

    Returns:
        The pixel color
    """
    height, width = pixels.shape[:2]
    u, v = uv
    if flip_y:
        v = 1.0 - v

    # Python's modulo folds negative indices back into range
    x = int(math.floor(u * width)) % width
    y = int(math.floor(v * height)) % height
    return Color.from_array(pixels[y, x])


def barycentric_coordinates(
    point: np.ndarray,
    a: np.ndarray,
    b: np.ndarray,
    c: np.ndarray
) -> Optional[np.ndarray]:
    """
    Barycentric weights of a point with respect to triangle (a, b, c).

    Returns:
        Array (wa, wb, wc), or None for a degenerate triangle
    """
    v0 = c - a
    v1 = b - a
    v2 = point - a

    dot00 = float(v0 @ v0)
    dot01 = float(v0 @ v1)
    dot02 = float(v0 @ v2)
    dot11 = float(v1 @ v1)
    dot12 = float(v1 @ v2)

    denom = dot00 * dot11 - dot01 * dot01
    if abs(denom) <= 1e-12 * dot00 * dot11:
        return None

    inv_denom = 1.0 / denom
    u = (dot11 * dot02 - dot01 * dot12) * inv_denom
    v = (dot00 * dot12 - dot01 * dot02) * inv_denom
    return np.array([1.0 - u - v, v, u])


class ColorResolver:
    """
    Resolves the color of surface hits.

    Usage:
        resolver = ColorResolver(TextureCache())
        color = resolver.resolve(hit)
    """

    def __init__(self, cache: Optional[TextureCache] = None):
        """
        Initialize the resolver.

        Args:
            cache: Texture cache shared for one conversion; a private one
                is created if omitted
        """
        self.cache = cache if cache is not None else TextureCache()

    def resolve(self, hit: SurfaceHit) -> Color:
        """Color of the surface at a hit."""
        mesh = hit.mesh
        material = mesh.material.select(hit.material_index)

        texture = material.texture_image
        if hit.uv is not None and texture is not None:
            pixels = self.cache.pixels(texture)
            if pixels is not None:
                return sample_texture(pixels, hit.uv, texture.flip_y)

        if mesh.colors is not None and hit.face_index is not None:
            return self._vertex_color(hit)

        color = material.flat_color
        return color if color is not None else WHITE

    @staticmethod
    def _vertex_color(hit: SurfaceHit) -> Color:
        mesh = hit.mesh
        corners = mesh.faces[hit.face_index]
        a, b, c = mesh.positions[corners]
        corner_colors = mesh.colors[corners]

        weights = barycentric_coordinates(hit.point, a, b, c)
        if weights is None:
            return Color.from_floats(*corner_colors[0])

        red, green, blue = weights @ corner_colors
        return Color.from_floats(red, green, blue)
