"""
Unit tests for atlas packing and block model export.
"""

import base64
import io
import json
import sys
import tempfile
import uuid
from pathlib import Path
from unittest import mock
import numpy as np
import unittest
from PIL import Image

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from block_voxelizer.color import Color
from block_voxelizer.geometry import BoundingBox, Vector3
from block_voxelizer.voxelizer import Voxel, VoxelGrid
from block_voxelizer.exporters import (
    BBModelExporter,
    DISPLAY_PRESETS,
    FACE_DIRECTIONS,
    JavaModelExporter,
    TexturePacker,
    UuidGenerator,
    build_cuboids,
)
from block_voxelizer.exporters.java_model import CREDIT
from block_voxelizer.exporters.texture_atlas import (
    UV_PIXEL,
    encode_png,
    minimal_png,
    next_power_of_two,
)

RED = Color(255, 0, 0)
GREEN = Color(0, 255, 0)
BLUE = Color(0, 0, 255)

PNG_SIGNATURE = b'\x89PNG\r\n\x1a\n'


def sample_grid() -> VoxelGrid:
    """Three voxels in a 2x1x1 box at resolution 8 (edge 0.25)."""
    box = BoundingBox(Vector3(0, 0, 0), Vector3(2, 1, 1))
    return VoxelGrid(
        resolution=8,
        voxels=[
            Voxel(Vector3(0.125, 0.125, 0.125), RED),
            Voxel(Vector3(1.875, 0.875, 0.875), GREEN),
            Voxel(Vector3(0.375, 0.125, 0.125), RED),
        ],
        bounding_box=box,
    )


class TestTexturePacker(unittest.TestCase):
    """Tests for TexturePacker."""

    def test_next_power_of_two(self):
        assert [next_power_of_two(n) for n in (0, 1, 2, 3, 16, 17)] == [1, 1, 2, 4, 16, 32]

    def test_deduplicates_in_first_seen_order(self):
        atlas = TexturePacker().pack([GREEN, RED, GREEN, BLUE, RED])

        assert atlas.colors == [GREEN, RED, BLUE]
        assert atlas.color_index == {"0,255,0": 0, "255,0,0": 1, "0,0,255": 2}
        assert atlas.index_of(BLUE) == 2

    def test_layout(self):
        atlas = TexturePacker().pack([RED, GREEN, BLUE])

        assert (atlas.width, atlas.height) == (16, 16)
        assert atlas.grid_side == 2
        assert atlas.cell_size == 8
        assert tuple(atlas.pixels[0, 0]) == (255, 0, 0, 255)
        assert tuple(atlas.pixels[7, 15]) == (0, 255, 0, 255)
        assert tuple(atlas.pixels[8, 0]) == (0, 0, 255, 255)
        # Unused cell stays transparent
        assert tuple(atlas.pixels[15, 15]) == (0, 0, 0, 0)

    def test_uv_rects(self):
        atlas = TexturePacker().pack([RED, GREEN, BLUE])

        assert atlas.uv_map[1] == (8.0, 0.0, 16.0, 8.0)
        assert atlas.uv_rect(2, UV_PIXEL) == (0.0, 8.0, 8.0, 16.0)
        with self.assertRaises(ValueError):
            atlas.uv_rect(0, "inches")

    def test_large_palette_grows_atlas(self):
        colors = [Color(i % 256, i // 256, 7) for i in range(300)]
        atlas = TexturePacker().pack(colors)

        assert atlas.grid_side == 18
        assert (atlas.width, atlas.height) == (32, 32)
        assert atlas.cell_size == 1
        # index 299 -> cell (11, 16), half a block unit per pixel
        assert atlas.uv_map[299] == (5.5, 8.0, 6.0, 8.5)

    def test_block_uv_matches_pixel_uv(self):
        colors = [Color(i, 0, 0) for i in range(20)]
        atlas = TexturePacker().pack(colors)
        scale = 16.0 / atlas.width
        for index in range(len(colors)):
            block = atlas.uv_rect(index)
            pixel = atlas.uv_rect(index, UV_PIXEL)
            assert block == tuple(p * scale for p in pixel)

    def test_empty(self):
        atlas = TexturePacker().pack([])

        assert atlas.colors == []
        assert atlas.color_index == {}
        assert atlas.uv_map == {}
        assert atlas.pixels.shape == (16, 16, 4)
        assert np.all(atlas.pixels == 255)

    def test_png(self):
        atlas = TexturePacker().pack([RED])
        png = atlas.to_png()

        assert png.startswith(PNG_SIGNATURE)
        with Image.open(io.BytesIO(png)) as img:
            assert img.size == (16, 16)
            assert img.convert("RGBA").getpixel((0, 0)) == (255, 0, 0, 255)

    def test_data_uri(self):
        uri = TexturePacker().pack([RED]).to_data_uri()
        assert uri.startswith("data:image/png;base64,")
        assert base64.b64decode(uri.split(",", 1)[1]).startswith(PNG_SIGNATURE)

    def test_encode_failure_returns_minimal_png(self):
        with mock.patch(
            "block_voxelizer.exporters.texture_atlas.Image.fromarray",
            side_effect=ValueError("encoder unavailable")
        ):
            with self.assertLogs("block_voxelizer.exporters.texture_atlas", level="WARNING"):
                png = encode_png(np.zeros((16, 16, 4), dtype=np.uint8))

        assert png == minimal_png()
        with Image.open(io.BytesIO(png)) as img:
            assert img.size == (1, 1)


class TestCuboids(unittest.TestCase):
    """Tests for voxel -> cuboid normalization."""

    def test_normalization(self):
        grid = sample_grid()
        atlas = TexturePacker().pack(grid.colors())
        cuboids = build_cuboids(grid, atlas)

        # scale = 16 / 2 = 8, half extent = 0.25 * 8 / 2 = 1
        assert cuboids[0].from_ == (0.0, 0.0, 0.0)
        assert cuboids[0].to == (2.0, 2.0, 2.0)
        assert cuboids[1].from_ == (14.0, 6.0, 6.0)
        assert cuboids[1].to == (16.0, 8.0, 8.0)
        assert [c.color_index for c in cuboids] == [0, 1, 0]

    def test_rounding(self):
        box = BoundingBox(Vector3(0, 0, 0), Vector3(3, 3, 3))
        grid = VoxelGrid(9, [Voxel(Vector3(1 / 6, 1 / 6, 1 / 6), RED)], box)
        cuboid = build_cuboids(grid, TexturePacker().pack(grid.colors()))[0]

        assert cuboid.from_ == (0.0, 0.0, 0.0)
        assert cuboid.to == (1.78, 1.78, 1.78)

    def test_within_block_model_limits(self):
        box = BoundingBox(Vector3(-5, 0, 2), Vector3(5, 1, 3))
        voxels = [
            Voxel(Vector3(x, 0.5, 2.5), RED)
            for x in np.linspace(-4.9, 4.9, 20)
        ]
        grid = VoxelGrid(64, voxels, box)
        for cuboid in build_cuboids(grid, TexturePacker().pack(grid.colors())):
            for value in cuboid.from_ + cuboid.to:
                assert -16.0 <= value <= 32.0


class TestJavaModelExporter(unittest.TestCase):
    """Tests for the flat block model dialect."""

    def test_document(self):
        grid = sample_grid()
        document, png = JavaModelExporter().build(grid)

        assert document["credit"] == CREDIT
        assert document["textures"] == {"texture": "texture.png"}
        assert len(document["elements"]) == grid.count_voxels()
        assert document["display"] == DISPLAY_PRESETS
        assert png.startswith(PNG_SIGNATURE)

        element = document["elements"][1]
        assert element["from"] == [14.0, 6.0, 6.0]
        assert tuple(element["faces"]) == FACE_DIRECTIONS
        for face in element["faces"].values():
            assert face["texture"] == "#texture"
            assert face["uv"] == [8.0, 0.0, 16.0, 8.0]

    def test_display_presets(self):
        document, _ = JavaModelExporter().build(sample_grid())
        gui = document["display"]["gui"]
        assert gui["rotation"] == [30, 225, 0]
        assert gui["scale"] == [0.625, 0.625, 0.625]
        assert set(document["display"]) == {
            "gui", "ground", "fixed", "thirdperson_righthand", "firstperson_righthand"
        }

        # Documents get their own copy of the presets
        document["display"]["gui"]["scale"][0] = 9
        assert DISPLAY_PRESETS["gui"]["scale"][0] == 0.625

    def test_export_writes_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            model_path, texture_path = JavaModelExporter().export(
                sample_grid(), Path(tmp) / "out", "chair"
            )

            assert model_path.name == "chair.json"
            assert texture_path.name == "texture.png"
            with open(model_path, encoding="utf-8") as f:
                document = json.load(f)
            assert len(document["elements"]) == 3
            with Image.open(texture_path) as img:
                assert img.size == (16, 16)

    def test_empty_grid(self):
        document, png = JavaModelExporter().build(VoxelGrid(16))
        assert document["elements"] == []
        assert png.startswith(PNG_SIGNATURE)


class TestBBModelExporter(unittest.TestCase):
    """Tests for the rich Blockbench dialect."""

    def test_document(self):
        grid = sample_grid()
        document = BBModelExporter().build(grid, name="chair")

        assert document["meta"] == {
            "format_version": "4.5", "model_format": "java_block", "box_uv": False
        }
        assert document["name"] == "chair"
        assert document["resolution"] == {"width": 16, "height": 16}
        assert len(document["elements"]) == 3

        element = document["elements"][1]
        assert element["name"] == "voxel_1"
        assert element["box_uv"] is False
        for face in element["faces"].values():
            assert face["texture"] == 0
            assert face["uv"] == [8.0, 0.0, 16.0, 8.0]

        texture = document["textures"][0]
        assert texture["id"] == "0"
        assert texture["mode"] == "bitmap"
        assert texture["source"].startswith("data:image/png;base64,")
        assert (texture["uv_width"], texture["uv_height"]) == (16, 16)

    def test_outliner_matches_elements(self):
        document = BBModelExporter().build(sample_grid())

        element_ids = [element["uuid"] for element in document["elements"]]
        assert document["outliner"] == element_ids
        all_ids = element_ids + [document["textures"][0]["uuid"]]
        assert len(set(all_ids)) == len(all_ids)
        for value in all_ids:
            assert len(value) == 36
            assert uuid.UUID(value).version == 4

    def test_seeded_uuids_are_reproducible(self):
        first = BBModelExporter(uuid_generator=UuidGenerator(seed=7)).build(sample_grid())
        second = BBModelExporter(uuid_generator=UuidGenerator(seed=7)).build(sample_grid())
        assert first == second

    def test_export_appends_extension(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = BBModelExporter().export(sample_grid(), Path(tmp) / "chair")

            assert path.name == "chair.bbmodel"
            with open(path, encoding="utf-8") as f:
                document = json.load(f)
            assert document["name"] == "chair"
            assert document["outliner"] == [e["uuid"] for e in document["elements"]]

    def test_empty_grid(self):
        document = BBModelExporter().build(VoxelGrid(16))
        assert document["elements"] == []
        assert document["outliner"] == []
        assert len(document["textures"]) == 1


class TestUuidGenerator(unittest.TestCase):

    def test_secure_by_default(self):
        generator = UuidGenerator()
        assert generator.secure
        assert uuid.UUID(generator()).version == 4

    def test_fallback_when_no_secure_source(self):
        with mock.patch(
            "block_voxelizer.exporters.bbmodel.secure_random_available",
            return_value=False
        ):
            generator = UuidGenerator()

        assert not generator.secure
        values = {generator() for _ in range(50)}
        assert len(values) == 50
        for value in values:
            assert uuid.UUID(value).version == 4

    def test_seeded(self):
        a, b = UuidGenerator(seed=1), UuidGenerator(seed=1)
        assert [a() for _ in range(3)] == [b() for _ in range(3)]
        assert UuidGenerator(seed=2)() != UuidGenerator(seed=1)()


if __name__ == "__main__":
    unittest.main(verbosity=2)
