"""
Java Block Model Exporter

Writes the flat block-model dialect: a JSON document that references the
texture by a slot name, plus a separate PNG atlas saved next to it.

Document layout:
    {
        "credit": "...",
        "textures": {"texture": "texture.png"},
        "elements": [{"from": [...], "to": [...], "faces": {...}}],
        "display": {...}
    }
"""

import copy
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from ..voxelizer import VoxelGrid
from .cuboids import DISPLAY_PRESETS, FACE_DIRECTIONS, build_cuboids
from .texture_atlas import UV_BLOCK, ColorAtlas, TexturePacker

logger = logging.getLogger(__name__)


CREDIT = "Created with Block Voxelizer"
TEXTURE_SLOT = "texture"
TEXTURE_NAME = "texture.png"


class JavaModelExporter:
    """
    Export voxel grids as Java block models.

    Every voxel becomes one element; all six faces of an element point at
    the voxel's color cell in the atlas (UVs in 0-16 block units).

    Usage:
        exporter = JavaModelExporter()
        model_path, texture_path = exporter.export(grid, "out/")
    """

    def __init__(self, packer: Optional[TexturePacker] = None, indent: int = 2):
        self.packer = packer or TexturePacker()
        self.indent = indent

    def build(
        self,
        grid: VoxelGrid,
        atlas: Optional[ColorAtlas] = None
    ) -> Tuple[Dict[str, Any], bytes]:
        """
        Build the model document and its texture.

        Args:
            grid: Voxelization result
            atlas: Pre-packed atlas; packed from the grid's colors if omitted

        Returns:
            Tuple of (model document, PNG bytes)
        """
        if atlas is None:
            atlas = self.packer.pack(grid.colors())
        uv_rects = atlas.uv_rects(UV_BLOCK)

        elements = []
        for cuboid in build_cuboids(grid, atlas):
            uv = list(uv_rects.get(cuboid.color_index, (0.0, 0.0, 0.0, 0.0)))
            elements.append({
                "from": list(cuboid.from_),
                "to": list(cuboid.to),
                "faces": {
                    direction: {"uv": list(uv), "texture": f"#{TEXTURE_SLOT}"}
                    for direction in FACE_DIRECTIONS
                },
            })

        document = {
            "credit": CREDIT,
            "textures": {TEXTURE_SLOT: TEXTURE_NAME},
            "elements": elements,
            "display": copy.deepcopy(DISPLAY_PRESETS),
        }
        return document, atlas.to_png()

    def export(
        self,
        grid: VoxelGrid,
        output_dir: Union[str, Path],
        model_name: str = "model"
    ) -> Tuple[Path, Path]:
        """
        Write <model_name>.json and texture.png into a directory.

        Args:
            grid: Voxelization result
            output_dir: Target directory (created if missing)
            model_name: File stem of the model document

        Returns:
            Tuple of (model path, texture path)
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        document, png = self.build(grid)

        model_path = output_dir / f"{model_name}.json"
        texture_path = output_dir / TEXTURE_NAME

        with open(model_path, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=self.indent)
        with open(texture_path, 'wb') as f:
            f.write(png)

        logger.info(
            "Wrote %d elements to %s (texture %s)",
            len(document["elements"]), model_path, texture_path
        )
        return model_path, texture_path
