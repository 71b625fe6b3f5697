"""
Scene Ingestion Module

This module handles:
- Validating input files (glTF binary/JSON by default)
- Loading scenes with trimesh and baking node transforms into world space
- Converting trimesh visuals (textures, PBR factors, vertex/face colors)
  into TriangleMesh objects with material references

glTF stores baseColorFactor and COLOR_0 in linear space; they are
converted to sRGB here so every color reaching the core shares the same
encoding as texture pixels.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union
import numpy as np
import trimesh
from trimesh.visual import ColorVisuals, TextureVisuals
from trimesh.visual.material import PBRMaterial, SimpleMaterial

from .color import Color, linear_to_srgb
from .mesh import FlatColor, MaterialRef, Textured, TextureImage, TriangleMesh

logger = logging.getLogger(__name__)


GLTF_EXTENSIONS = (".glb", ".gltf")


def validate_file(
    path: Union[str, Path],
    strict: bool = True
) -> Tuple[bool, Optional[str]]:
    """
    Check whether a file can be used as input.

    The check is by extension only and case-insensitive.

    Args:
        path: Candidate input file
        strict: If True only .glb/.gltf are accepted, otherwise any mesh
            format trimesh can load

    Returns:
        Tuple of (valid, error message or None)
    """
    suffix = Path(path).suffix.lower()

    if suffix in GLTF_EXTENSIONS:
        return True, None

    if not strict and suffix.lstrip(".") in trimesh.available_formats():
        return True, None

    return False, (
        f"Unsupported file format '{suffix or Path(path).name}'. "
        "Please select a GLB or GLTF file."
    )


def _to_unit_floats(values) -> np.ndarray:
    """uint8 (or float) RGB(A) rows as float64 in [0, 1], RGB only."""
    array = np.asarray(values)
    if array.ndim == 1:
        array = array.reshape(1, -1)
    if np.issubdtype(array.dtype, np.integer):
        array = array.astype(np.float64) / 255.0
    return np.ascontiguousarray(array[:, :3], dtype=np.float64)


def _color_from_factor(values, linear: bool) -> Optional[Color]:
    if values is None:
        return None
    floats = _to_unit_floats(values)
    if len(floats) == 0 or floats.shape[1] < 3:
        return None
    if linear:
        floats = linear_to_srgb(floats)
    return Color.from_floats(*floats[0])


class SceneLoader:
    """
    Loads 3D scenes into world-space triangle meshes.

    Usage:
        loader = SceneLoader()
        meshes = loader.load("chair.glb")
    """

    def __init__(self, strict: bool = True):
        """
        Initialize the loader.

        Args:
            strict: Restrict input files to .glb/.gltf (see validate_file)
        """
        self.strict = strict

    def validate_file(self, path: Union[str, Path]) -> Tuple[bool, Optional[str]]:
        return validate_file(path, self.strict)

    def load(self, path: Union[str, Path]) -> List[TriangleMesh]:
        """
        Load a scene file.

        Args:
            path: Path to the scene (.glb/.gltf, or other trimesh formats
                when the loader is not strict)

        Returns:
            List of TriangleMesh in scene graph order

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the format is unsupported or the file cannot be parsed
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Scene not found: {path}")

        valid, error = self.validate_file(path)
        if not valid:
            raise ValueError(error)

        try:
            scene = trimesh.load(str(path), force="scene")
        except (OSError, ValueError, KeyError, IndexError) as e:
            raise ValueError(f"Failed to parse {path.name}: {e}") from e

        linear = path.suffix.lower() in GLTF_EXTENSIONS
        meshes = meshes_from_trimesh(scene, convert_linear_colors=linear)

        logger.info(
            "Loaded %s: %d mesh(es), %d triangles",
            path.name, len(meshes), sum(m.triangle_count for m in meshes)
        )
        return meshes


def meshes_from_trimesh(
    obj: Union[trimesh.Trimesh, trimesh.Scene],
    convert_linear_colors: bool = False
) -> List[TriangleMesh]:
    """
    Convert an in-memory trimesh object to TriangleMesh objects.

    Args:
        obj: A Trimesh or a Scene (node transforms are applied)
        convert_linear_colors: Treat material factors and vertex colors
            as linear and convert them to sRGB

    Returns:
        List of TriangleMesh; geometry that is not a triangle mesh
        (point clouds, paths) is skipped
    """
    if isinstance(obj, trimesh.Trimesh):
        return [_convert_mesh(obj, None, obj.metadata.get("name", "mesh"), convert_linear_colors)]

    if not isinstance(obj, trimesh.Scene):
        raise ValueError(f"Unsupported trimesh object: {type(obj).__name__}")

    meshes = []
    for node_name in obj.graph.nodes_geometry:
        transform, geometry_name = obj.graph[node_name]
        geometry = obj.geometry.get(geometry_name)

        if not isinstance(geometry, trimesh.Trimesh):
            logger.debug(
                "Skipping node %r: %s is not a triangle mesh",
                node_name, type(geometry).__name__
            )
            continue

        meshes.append(_convert_mesh(geometry, transform, node_name, convert_linear_colors))

    return meshes


def _convert_mesh(
    source: trimesh.Trimesh,
    transform: Optional[np.ndarray],
    name: str,
    linear: bool
) -> TriangleMesh:
    positions = np.asarray(source.vertices, dtype=np.float64)
    faces = np.asarray(source.faces, dtype=np.int64)
    if transform is not None:
        positions = trimesh.transformations.transform_points(positions, transform)

    visual = source.visual

    if isinstance(visual, TextureVisuals):
        uvs = None
        if visual.uv is not None and len(visual.uv) == len(positions):
            uvs = np.asarray(visual.uv, dtype=np.float64)
        material = _convert_material(visual.material, name, linear)
        return TriangleMesh(positions, faces, uvs=uvs, material=material, name=name)

    if isinstance(visual, ColorVisuals) and visual.kind == "vertex":
        colors = _to_unit_floats(visual.vertex_colors)
        if linear:
            colors = linear_to_srgb(colors)
        return TriangleMesh(positions, faces, colors=colors, name=name)

    if isinstance(visual, ColorVisuals) and visual.kind == "face":
        # Unshare vertices so every face carries its own color
        face_colors = _to_unit_floats(visual.face_colors)
        if linear:
            face_colors = linear_to_srgb(face_colors)
        positions = positions[faces].reshape(-1, 3)
        colors = np.repeat(face_colors, 3, axis=0)
        faces = np.arange(len(positions), dtype=np.int64).reshape(-1, 3)
        return TriangleMesh(positions, faces, colors=colors, name=name)

    return TriangleMesh(positions, faces, material=FlatColor(), name=name)


def _convert_material(material, name: str, linear: bool) -> MaterialRef:
    """Map a trimesh material to a FlatColor or Textured reference."""
    if isinstance(material, PBRMaterial):
        color = _color_from_factor(material.baseColorFactor, linear)
        image = material.baseColorTexture
        if image is not None:
            return Textured(TextureImage(image, flip_y=True, name=f"{name}:baseColor"), color)
        return FlatColor(color)

    if isinstance(material, SimpleMaterial):
        # MTL diffuse colors are already sRGB
        color = _color_from_factor(material.diffuse, False)
        if material.image is not None:
            return Textured(TextureImage(material.image, flip_y=True, name=f"{name}:diffuse"), color)
        return FlatColor(color)

    return FlatColor()
