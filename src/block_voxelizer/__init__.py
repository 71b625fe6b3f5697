"""
Block Voxelizer
===============

Converts arbitrary 3D models (glTF) into voxel block models.

Meshes are sampled on a uniform grid by raycasting from every cell center,
each occupied cell takes the color of the surface it touches, and the
result is written as a Java block model (JSON + texture atlas) or as a
self-contained Blockbench project.

Key Features:
- Six-direction raycast voxelization, Numba-compiled intersection kernels
- Texture, vertex color and material color sampling
- Optional interior fill (scipy.ndimage)
- Power-of-two color atlas packing
- Export to Java block model (.json + .png) and Blockbench (.bbmodel)

Example Usage:
    from block_voxelizer import BlockModelConverter

    converter = BlockModelConverter(resolution=32)
    converter.load_scene("chair.glb")
    converter.voxelize()
    converter.export_java_model("out/")
"""

__version__ = "1.0.0"
__author__ = "Block Voxelizer Team"

from .generator import BlockModelConverter
from .geometry import BoundingBox, GridBuilder, Vector3
from .color import Color, ColorSamplingMode, linear_to_srgb
from .mesh import FlatColor, Indexed, Textured, TextureImage, TriangleMesh
from .intersector import Intersector, RayMeshIntersector
from .sampling import ColorResolver, TextureCache
from .voxelizer import (
    Voxel,
    VoxelGrid,
    VoxelizationCancelled,
    VoxelizationEngine,
    VoxelizationOptions,
)
from .ingestion import SceneLoader, meshes_from_trimesh, validate_file
from .exporters import BBModelExporter, JavaModelExporter, TexturePacker, UuidGenerator

__all__ = [
    "BlockModelConverter",
    "BoundingBox",
    "GridBuilder",
    "Vector3",
    "Color",
    "ColorSamplingMode",
    "linear_to_srgb",
    "FlatColor",
    "Indexed",
    "Textured",
    "TextureImage",
    "TriangleMesh",
    "Intersector",
    "RayMeshIntersector",
    "ColorResolver",
    "TextureCache",
    "Voxel",
    "VoxelGrid",
    "VoxelizationCancelled",
    "VoxelizationEngine",
    "VoxelizationOptions",
    "SceneLoader",
    "meshes_from_trimesh",
    "validate_file",
    "BBModelExporter",
    "JavaModelExporter",
    "TexturePacker",
    "UuidGenerator",
]
