"""
Scene Input Types

The voxelization core consumes a list of TriangleMesh objects. Each mesh
carries world-space positions, optional UV0 coordinates, optional
per-vertex colors, and a material reference.

Materials are a small tagged union:
- FlatColor: a single color (or none at all, e.g. a shader-only material)
- Textured: a texture image plus an optional flat fallback color
- Indexed: one material per face group, selected by material index
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple, Union
import numpy as np
from PIL import Image

from .color import Color
from .geometry import BoundingBox


@dataclass(eq=False)
class TextureImage:
    """
    A texture image handle.

    The pixels are decoded lazily by the per-conversion TextureCache, so
    `source` may be a PIL image, an (H, W, 3|4) uint8 array or a path.

    Attributes:
        source: Image data or location
        flip_y: True if UV v=0 addresses the bottom row of the image
            (OpenGL convention), False if it addresses the top row
        name: Optional label used in log messages
    """

    source: Union[Image.Image, np.ndarray, str, Path, None]
    flip_y: bool = True
    name: Optional[str] = None

    def __repr__(self) -> str:
        return f"TextureImage(name={self.name!r}, flip_y={self.flip_y})"


@dataclass(frozen=True)
class FlatColor:
    """Material with one flat color. color=None means no exposed color channel."""
    color: Optional[Color] = None

    @property
    def flat_color(self) -> Optional[Color]:
        return self.color

    @property
    def texture_image(self) -> Optional[TextureImage]:
        return None

    def select(self, index: Optional[int]) -> "FlatColor":
        return self


@dataclass(frozen=True, eq=False)
class Textured:
    """Material backed by a texture image."""
    texture: TextureImage
    color: Optional[Color] = None

    @property
    def flat_color(self) -> Optional[Color]:
        return self.color

    @property
    def texture_image(self) -> Optional[TextureImage]:
        return self.texture

    def select(self, index: Optional[int]) -> "Textured":
        return self


@dataclass(frozen=True)
class Indexed:
    """Per-face-group material array (multi-material mesh)."""
    materials: Tuple["MaterialRef", ...] = ()

    def select(self, index: Optional[int]) -> "MaterialRef":
        """
        Pick the material for a face group.

        Falls back to the first element when the index is missing or
        out of range. Nested arrays are resolved with the same index;
        an empty array behaves like a material without color.
        """
        if not self.materials:
            return FlatColor()
        if index is not None and 0 <= index < len(self.materials):
            chosen = self.materials[index]
        else:
            chosen = self.materials[0]
        return chosen.select(index)


MaterialRef = Union[FlatColor, Textured, Indexed]


@dataclass
class TriangleMesh:
    """
    A world-space triangle mesh.

    Attributes:
        positions: (V, 3) float64 vertex positions, transforms already applied
        faces: (F, 3) int64 vertex indices per triangle
        uvs: Optional (V, 2) UV0 coordinates
        colors: Optional (V, 3) per-vertex colors, floats in [0, 1]
        material: Material reference
        material_indices: Optional (F,) material index per face
        name: Optional label
    """

    positions: np.ndarray
    faces: np.ndarray
    uvs: Optional[np.ndarray] = None
    colors: Optional[np.ndarray] = None
    material: MaterialRef = field(default_factory=FlatColor)
    material_indices: Optional[np.ndarray] = None
    name: str = "mesh"

    def __post_init__(self):
        self.positions = np.asarray(self.positions, dtype=np.float64).reshape(-1, 3)
        self.faces = np.asarray(self.faces, dtype=np.int64).reshape(-1, 3)

        if len(self.faces) and (
            self.faces.min() < 0 or self.faces.max() >= len(self.positions)
        ):
            raise ValueError(
                f"Mesh '{self.name}': face indices must lie in "
                f"[0, {len(self.positions)})"
            )

        if self.uvs is not None:
            self.uvs = np.asarray(self.uvs, dtype=np.float64).reshape(-1, 2)
            if len(self.uvs) != len(self.positions):
                raise ValueError(
                    f"Mesh '{self.name}': {len(self.uvs)} UVs for "
                    f"{len(self.positions)} vertices"
                )

        if self.colors is not None:
            colors = np.asarray(self.colors, dtype=np.float64)
            self.colors = colors.reshape(len(colors), -1)[:, :3]
            if len(self.colors) != len(self.positions):
                raise ValueError(
                    f"Mesh '{self.name}': {len(self.colors)} vertex colors for "
                    f"{len(self.positions)} vertices"
                )

        if self.material_indices is not None:
            self.material_indices = np.asarray(
                self.material_indices, dtype=np.int64
            ).reshape(-1)
            if len(self.material_indices) != len(self.faces):
                raise ValueError(
                    f"Mesh '{self.name}': {len(self.material_indices)} material "
                    f"indices for {len(self.faces)} faces"
                )

    @property
    def has_geometry(self) -> bool:
        """True if the mesh has at least one triangle."""
        return len(self.positions) > 0 and len(self.faces) > 0

    @property
    def triangle_count(self) -> int:
        return len(self.faces)

    @property
    def bounding_box(self) -> BoundingBox:
        if not self.has_geometry:
            return BoundingBox.empty()
        return BoundingBox.from_points(self.positions[self.faces.ravel()])

    def triangle(self, face_index: int) -> np.ndarray:
        """World-space vertices of one triangle as a (3, 3) array."""
        return self.positions[self.faces[face_index]]

    def material_index_for(self, face_index: int) -> Optional[int]:
        if self.material_indices is None:
            return None
        if 0 <= face_index < len(self.material_indices):
            return int(self.material_indices[face_index])
        return None


def scene_bounding_box(meshes) -> BoundingBox:
    """Bounding box enclosing every mesh in the list."""
    box = None
    for mesh in meshes:
        mesh_box = mesh.bounding_box
        box = mesh_box if box is None else box.union(mesh_box)
    return box if box is not None else BoundingBox.empty()
