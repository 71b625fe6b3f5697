"""
Unit tests for surface color resolution.
"""

import sys
from pathlib import Path
import numpy as np
import unittest
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from block_voxelizer.color import Color, WHITE
from block_voxelizer.intersector import RayMeshIntersector
from block_voxelizer.mesh import FlatColor, Indexed, Textured, TextureImage, TriangleMesh
from block_voxelizer.sampling import (
    ColorResolver,
    TextureCache,
    barycentric_coordinates,
    sample_texture,
)

RED = Color(255, 0, 0)
BLUE = Color(0, 0, 255)

# 2x2 texture: top row red/green, bottom row blue/white
CHECKER = np.array([
    [[255, 0, 0], [0, 255, 0]],
    [[0, 0, 255], [255, 255, 255]],
], dtype=np.uint8)


def hit_on(mesh: TriangleMesh, x: float = 0.25, y: float = 0.25):
    """Hit the z=0 triangle of a mesh from above."""
    return RayMeshIntersector(mesh).intersect((x, y, 1.0), (0, 0, -1))


def triangle(**kwargs) -> TriangleMesh:
    return TriangleMesh(
        positions=[[0, 0, 0], [1, 0, 0], [0, 1, 0]],
        faces=[[0, 1, 2]],
        **kwargs
    )


class TestSampleTexture(unittest.TestCase):
    """Tests for nearest-pixel lookup."""

    def test_flip_y(self):
        # v=0.25 with flip addresses the bottom row
        assert sample_texture(CHECKER, (0.25, 0.25), flip_y=True) == Color(0, 0, 255)
        assert sample_texture(CHECKER, (0.25, 0.25), flip_y=False) == Color(255, 0, 0)

    def test_wraps_out_of_range(self):
        assert sample_texture(CHECKER, (1.75, 0.25), flip_y=False) == Color(0, 255, 0)
        assert sample_texture(CHECKER, (-0.25, 0.25), flip_y=False) == Color(0, 255, 0)

    def test_edge_uv_one(self):
        # u=1.0 wraps to the first column
        assert sample_texture(CHECKER, (1.0, 0.0), flip_y=False) == Color(255, 0, 0)

    def test_flipped_v_zero_wraps_to_top_row(self):
        # 1 - 0 = 1.0 lands one past the last row and wraps to row 0
        assert sample_texture(CHECKER, (0.25, 0.0), flip_y=True) == Color(255, 0, 0)
        assert sample_texture(CHECKER, (0.75, 0.0), flip_y=True) == Color(0, 255, 0)


class TestBarycentric(unittest.TestCase):
    """Tests for barycentric weights."""

    def test_weights(self):
        a, b, c = np.array([0., 0, 0]), np.array([1., 0, 0]), np.array([0., 1, 0])
        weights = barycentric_coordinates(np.array([0.25, 0.25, 0.0]), a, b, c)
        np.testing.assert_allclose(weights, [0.5, 0.25, 0.25])

    def test_degenerate(self):
        a, b, c = np.array([0., 0, 0]), np.array([1., 0, 0]), np.array([2., 0, 0])
        assert barycentric_coordinates(np.array([0.5, 0, 0]), a, b, c) is None


class TestTextureCache(unittest.TestCase):
    """Tests for TextureCache."""

    def test_decodes_once(self):
        texture = TextureImage(Image.fromarray(CHECKER))
        cache = TextureCache()

        first = cache.pixels(texture)
        second = cache.pixels(texture)
        assert first is second
        assert first.shape == (2, 2, 3)
        assert len(cache) == 1

    def test_rgba_array_drops_alpha(self):
        rgba = np.zeros((4, 4, 4), dtype=np.uint8)
        pixels = TextureCache().pixels(TextureImage(rgba))
        assert pixels.shape == (4, 4, 3)

    def test_undecodable_cached_as_none(self):
        texture = TextureImage("/nonexistent/texture.png", name="missing")
        cache = TextureCache()

        with self.assertLogs("block_voxelizer.sampling", level="WARNING"):
            assert cache.pixels(texture) is None
        assert texture in cache
        assert cache.pixels(texture) is None

    def test_clear(self):
        cache = TextureCache()
        cache.pixels(TextureImage(CHECKER))
        cache.clear()
        assert len(cache) == 0


class TestColorResolver(unittest.TestCase):
    """Tests for color source priority."""

    def test_texture_first(self):
        mesh = triangle(
            uvs=[[0, 0], [1, 0], [0, 1]],
            colors=[[1, 0, 0]] * 3,
            material=Textured(TextureImage(CHECKER, flip_y=False), RED),
        )
        # uv (0.25, 0.25) -> top-left pixel
        assert ColorResolver().resolve(hit_on(mesh)) == Color(255, 0, 0)

        mesh.material = Textured(TextureImage(CHECKER, flip_y=True), RED)
        assert ColorResolver().resolve(hit_on(mesh)) == Color(0, 0, 255)

    def test_missing_texture_falls_back_to_vertex_colors(self):
        mesh = triangle(
            uvs=[[0, 0], [1, 0], [0, 1]],
            colors=[[0, 0, 1]] * 3,
            material=Textured(TextureImage(None), RED),
        )
        assert ColorResolver().resolve(hit_on(mesh)) == BLUE

    def test_vertex_color_interpolation(self):
        mesh = triangle(colors=[[1, 0, 0], [0, 1, 0], [0, 0, 1]])
        # weights (0.5, 0.25, 0.25)
        assert ColorResolver().resolve(hit_on(mesh)) == Color(128, 64, 64)

    def test_flat_color(self):
        assert ColorResolver().resolve(hit_on(triangle(material=FlatColor(RED)))) == RED

    def test_textured_without_uv_uses_flat_color(self):
        mesh = triangle(material=Textured(TextureImage(CHECKER), BLUE))
        assert ColorResolver().resolve(hit_on(mesh)) == BLUE

    def test_white_fallback(self):
        assert ColorResolver().resolve(hit_on(triangle())) == WHITE

    def test_indexed_material(self):
        mesh = TriangleMesh(
            positions=[[0, 0, 0], [1, 0, 0], [0, 1, 0], [0, 0, 1], [1, 0, 1], [0, 1, 1]],
            faces=[[0, 1, 2], [3, 4, 5]],
            material=Indexed((FlatColor(RED), FlatColor(BLUE))),
            material_indices=[1, 5],
        )
        resolver = ColorResolver()
        low = RayMeshIntersector(mesh).intersect((0.25, 0.25, -1.0), (0, 0, 1))
        high = RayMeshIntersector(mesh).intersect((0.25, 0.25, 2.0), (0, 0, -1))

        assert resolver.resolve(low) == BLUE
        # Out-of-range index falls back to the first material
        assert resolver.resolve(high) == RED

    def test_empty_indexed_material_is_white(self):
        assert ColorResolver().resolve(hit_on(triangle(material=Indexed(())))) == WHITE


if __name__ == "__main__":
    unittest.main(verbosity=2)
