"""
Blockbench Project Exporter

Writes the rich .bbmodel dialect: one self-contained JSON document with
the atlas inlined as a base64 PNG data URI. Elements and the texture get
UUIDs, faces reference the texture by integer index and carry UVs in
atlas pixels (uv_width/uv_height equal the atlas size).
"""

import copy
import json
import logging
import os
import random
import uuid
from pathlib import Path
from typing import Any, Dict, Optional, Union

from ..voxelizer import VoxelGrid
from .cuboids import DISPLAY_PRESETS, FACE_DIRECTIONS, build_cuboids
from .java_model import TEXTURE_NAME
from .texture_atlas import UV_PIXEL, ColorAtlas, TexturePacker

logger = logging.getLogger(__name__)


FORMAT_VERSION = "4.5"
MODEL_FORMAT = "java_block"
TEXTURE_INDEX = 0


def secure_random_available() -> bool:
    """True if the platform exposes an OS-level random source."""
    return hasattr(os, "urandom")


class UuidGenerator:
    """
    Produces version-4 UUID strings.

    Uses uuid.uuid4 when the OS random source is available and no seed
    is given. Otherwise a random.Random stream drives the UUID bits, which
    makes the output reproducible for a fixed seed.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self.secure = seed is None and secure_random_available()
        self._rng = None if self.secure else random.Random(seed)

    def __call__(self) -> str:
        if self.secure:
            return str(uuid.uuid4())
        return str(uuid.UUID(int=self._rng.getrandbits(128), version=4))


class BBModelExporter:
    """
    Export voxel grids as Blockbench projects.

    Usage:
        exporter = BBModelExporter()
        path = exporter.export(grid, "model.bbmodel", name="chair")
    """

    def __init__(
        self,
        packer: Optional[TexturePacker] = None,
        uuid_generator: Optional[UuidGenerator] = None,
        indent: Optional[int] = None
    ):
        """
        Initialize the exporter.

        Args:
            packer: Atlas packer (default TexturePacker())
            uuid_generator: UUID source; pass UuidGenerator(seed) for
                reproducible documents
            indent: JSON indentation (compact if None)
        """
        self.packer = packer or TexturePacker()
        self.uuid_generator = uuid_generator or UuidGenerator()
        self.indent = indent

    def build(
        self,
        grid: VoxelGrid,
        name: str = "model",
        atlas: Optional[ColorAtlas] = None
    ) -> Dict[str, Any]:
        """
        Build the .bbmodel document.

        Args:
            grid: Voxelization result
            name: Project name stored in the document
            atlas: Pre-packed atlas; packed from the grid's colors if omitted

        Returns:
            JSON-serializable document
        """
        if atlas is None:
            atlas = self.packer.pack(grid.colors())
        uv_rects = atlas.uv_rects(UV_PIXEL)

        elements = []
        for i, cuboid in enumerate(build_cuboids(grid, atlas)):
            uv = list(uv_rects.get(cuboid.color_index, (0.0, 0.0, 0.0, 0.0)))
            elements.append({
                "uuid": self.uuid_generator(),
                "name": f"voxel_{i}",
                "box_uv": False,
                "from": list(cuboid.from_),
                "to": list(cuboid.to),
                "faces": {
                    direction: {"uv": list(uv), "texture": TEXTURE_INDEX}
                    for direction in FACE_DIRECTIONS
                },
            })

        texture = {
            "uuid": self.uuid_generator(),
            "id": str(TEXTURE_INDEX),
            "name": TEXTURE_NAME,
            "source": atlas.to_data_uri(),
            "mode": "bitmap",
            "visible": True,
            "width": atlas.width,
            "height": atlas.height,
            "uv_width": atlas.width,
            "uv_height": atlas.height,
        }

        return {
            "meta": {
                "format_version": FORMAT_VERSION,
                "model_format": MODEL_FORMAT,
                "box_uv": False,
            },
            "name": name,
            "resolution": {"width": atlas.width, "height": atlas.height},
            "elements": elements,
            "outliner": [element["uuid"] for element in elements],
            "textures": [texture],
            "display": copy.deepcopy(DISPLAY_PRESETS),
        }

    def export(
        self,
        grid: VoxelGrid,
        path: Union[str, Path],
        name: Optional[str] = None
    ) -> Path:
        """
        Write the document to a single .bbmodel file.

        Args:
            grid: Voxelization result
            path: Output file (".bbmodel" is appended if missing)
            name: Project name (defaults to the file stem)

        Returns:
            Path of the written file
        """
        path = Path(path)
        if path.suffix.lower() != ".bbmodel":
            path = path.with_name(path.name + ".bbmodel")
        path.parent.mkdir(parents=True, exist_ok=True)

        document = self.build(grid, name=name or path.stem)

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(document, f, indent=self.indent)

        logger.info("Wrote %d elements to %s", len(document["elements"]), path)
        return path
