"""
Dialect-Neutral Cuboid Generation

Both model dialects share the same geometry: one axis-aligned cuboid per
voxel, in block-model space. Block-model viewers accept coordinates in
[-16, 32]; the model is scaled uniformly so the grid's longest axis spans
16 units with the bounding box minimum at the origin.
"""

from dataclasses import dataclass
from typing import List, Tuple

from ..geometry import BoundingBox, Vector3
from ..voxelizer import VoxelGrid
from .texture_atlas import ColorAtlas

# Faces of a block model element, in the order they are written
FACE_DIRECTIONS = ("north", "south", "east", "west", "up", "down")

# Viewer placement hints, identical for every exported model
DISPLAY_PRESETS = {
    "gui": {"rotation": [30, 225, 0], "translation": [0, 0, 0], "scale": [0.625, 0.625, 0.625]},
    "ground": {"rotation": [0, 0, 0], "translation": [0, 3, 0], "scale": [0.25, 0.25, 0.25]},
    "fixed": {"rotation": [0, 0, 0], "translation": [0, 0, 0], "scale": [0.5, 0.5, 0.5]},
    "thirdperson_righthand": {"rotation": [75, 45, 0], "translation": [0, 2.5, 0], "scale": [0.375, 0.375, 0.375]},
    "firstperson_righthand": {"rotation": [0, 45, 0], "translation": [0, 0, 0], "scale": [0.4, 0.4, 0.4]},
}

MODEL_SPAN = 16.0

COORDINATE_DECIMALS = 2

Triple = Tuple[float, float, float]


@dataclass(frozen=True)
class Cuboid:
    """One exported element: corners in model space and its atlas color index."""
    from_: Triple
    to: Triple
    color_index: int


def model_scale(box: BoundingBox) -> float:
    """Uniform scale that maps the box's longest axis onto 16 units."""
    return MODEL_SPAN / (box.max_dimension or 1.0)


def normalize_voxel(
    position: Vector3,
    voxel_edge: float,
    box: BoundingBox
) -> Tuple[Triple, Triple]:
    """
    Map a voxel center to element corners in model space.

    Args:
        position: Voxel center in scene space
        voxel_edge: Voxel edge in scene space
        box: The grid's bounding box

    Returns:
        (from, to) corners, rounded to two decimals
    """
    scale = model_scale(box)
    half = voxel_edge * scale / 2.0

    center = (position - box.min).scaled(scale).as_tuple()
    from_ = tuple(round(axis - half, COORDINATE_DECIMALS) for axis in center)
    to = tuple(round(axis + half, COORDINATE_DECIMALS) for axis in center)
    return from_, to


def build_cuboids(grid: VoxelGrid, atlas: ColorAtlas) -> List[Cuboid]:
    """
    Convert every voxel of a grid to a cuboid.

    Args:
        grid: Voxelization result
        atlas: Atlas packed from the grid's colors

    Returns:
        One Cuboid per voxel, in voxel order
    """
    voxel_edge = grid.voxel_edge
    cuboids = []
    for voxel in grid.voxels:
        from_, to = normalize_voxel(voxel.position, voxel_edge, grid.bounding_box)
        cuboids.append(Cuboid(from_, to, atlas.index_of(voxel.color)))
    return cuboids
