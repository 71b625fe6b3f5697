"""
Color Management Module

Handles:
- The 24-bit Color value type and its canonical "r,g,b" dedup key
- Linear -> sRGB conversion (glTF factors and vertex colors are linear)
- Combining the colors seen by a voxel's six probe rays

Color Space Background:
- Texture images are stored in sRGB (perceptual) space
- glTF stores baseColorFactor and COLOR_0 in Linear space
- Mixing the two without conversion makes flat-colored meshes look darker
  than textured ones in the exported atlas
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Sequence, Optional
import math
import numpy as np
from numba import njit, prange


@dataclass(frozen=True)
class Color:
    """24-bit RGB color, no alpha. Components are ints in [0, 255]."""

    r: int
    g: int
    b: int

    @classmethod
    def from_floats(cls, r: float, g: float, b: float) -> "Color":
        """
        Build a color from normalized [0, 1] components.

        Components are rounded half-up and clamped to [0, 255].
        """
        return cls(_to_byte(r), _to_byte(g), _to_byte(b))

    @classmethod
    def from_array(cls, values: Sequence) -> "Color":
        """Build a color from the first three entries of a uint8 array/list."""
        return cls(int(values[0]), int(values[1]), int(values[2]))

    @property
    def key(self) -> str:
        """Canonical deduplication key."""
        return color_key(self)

    def as_tuple(self):
        return (self.r, self.g, self.b)


WHITE = Color(255, 255, 255)


class ColorSamplingMode(Enum):
    """How the per-direction hit colors of one cell are combined."""
    AVERAGE = "average"     # Arithmetic mean of every hit
    DOMINANT = "dominant"   # Most frequent hit color
    NEAREST = "nearest"     # Color of the closest hit


def color_key(color: Color) -> str:
    """Canonical "r,g,b" string used to deduplicate colors."""
    return f"{color.r},{color.g},{color.b}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _to_byte(value: float) -> int:
    return max(0, min(255, _round_half_up(value * 255.0)))


@njit(cache=True)
def _linear_to_srgb_component(c: float) -> float:
    """
    Convert a single Linear component to sRGB.

    Args:
        c: Linear value normalized to [0, 1]

    Returns:
        sRGB value
    """
    if c <= 0.0031308:
        return c * 12.92
    else:
        return 1.055 * (c ** (1.0 / 2.4)) - 0.055


@njit(cache=True, parallel=True)
def linear_to_srgb(colors: np.ndarray) -> np.ndarray:
    """
    Convert Linear colors to sRGB color space.

    Args:
        colors: Array of shape (N, C) with float Linear values [0, 1]

    Returns:
        Array of same shape with float64 sRGB values [0, 1]
    """
    n = colors.shape[0]
    channels = colors.shape[1]
    result = np.empty((n, channels), dtype=np.float64)

    for i in prange(n):
        for c in range(channels):
            value = max(0.0, min(1.0, colors[i, c]))
            if c < 3:
                result[i, c] = _linear_to_srgb_component(value)
            else:
                result[i, c] = value  # Alpha is not gamma encoded

    return result


def average_colors(colors: Sequence[Color]) -> Color:
    """
    Component-wise arithmetic mean, rounded half-up.

    Returns white for an empty sequence.
    """
    if not colors:
        return WHITE
    if len(colors) == 1:
        return colors[0]

    count = len(colors)
    return Color(
        _round_half_up(sum(c.r for c in colors) / count),
        _round_half_up(sum(c.g for c in colors) / count),
        _round_half_up(sum(c.b for c in colors) / count),
    )


def dominant_color(colors: Sequence[Color]) -> Color:
    """Most frequent color; ties go to the color seen first."""
    if not colors:
        return WHITE
    counts = Counter(colors)
    best = max(counts.values())
    for color in colors:
        if counts[color] == best:
            return color
    return colors[0]


def combine_colors(
    colors: Sequence[Color],
    mode: ColorSamplingMode = ColorSamplingMode.AVERAGE,
    distances: Optional[Sequence[float]] = None
) -> Color:
    """
    Reduce the hit colors of one cell to a single representative color.

    Args:
        colors: Colors of every direction that produced a hit
        mode: Combination strategy
        distances: Hit distances aligned with colors (NEAREST mode)

    Returns:
        The cell color
    """
    if mode == ColorSamplingMode.DOMINANT:
        return dominant_color(colors)

    if mode == ColorSamplingMode.NEAREST and colors:
        if distances is None or len(distances) != len(colors):
            raise ValueError("NEAREST sampling requires one distance per color")
        return colors[int(np.argmin(distances))]

    return average_colors(colors)
