"""
Main BlockModelConverter Class

This is the primary interface for the conversion pipeline.
It orchestrates:
1. Scene loading (glTF via trimesh)
2. Voxelization by raycasting
3. Color atlas packing
4. Export to Java block models and Blockbench projects

Example Usage:
    converter = BlockModelConverter(resolution=32)
    converter.load_scene("chair.glb")
    converter.voxelize()
    converter.export_java_model("out/")
"""

import logging
from pathlib import Path
from typing import Callable, List, Optional, Union
import trimesh

from .color import ColorSamplingMode
from .ingestion import SceneLoader, meshes_from_trimesh
from .mesh import TriangleMesh
from .voxelizer import (
    DEFAULT_RESOLUTION,
    ProgressCallback,
    VoxelGrid,
    VoxelizationEngine,
    VoxelizationOptions,
)
from .exporters import BBModelExporter, JavaModelExporter, TexturePacker, UuidGenerator

logger = logging.getLogger(__name__)


EXPORT_FORMATS = ("java", "bbmodel")


class BlockModelConverter:
    """
    High-level interface for converting 3D scenes into block models.

    Attributes:
        options: Voxelization settings used by voxelize()
        meshes: The loaded triangle meshes
        grid: The current voxel grid
    """

    def __init__(
        self,
        resolution: int = DEFAULT_RESOLUTION,
        fill_interior: bool = False,
        color_mode: Union[str, ColorSamplingMode] = ColorSamplingMode.AVERAGE,
        seed: Optional[int] = None,
        strict: bool = True
    ):
        """
        Initialize the converter.

        Args:
            resolution: Cells along the longest axis (clamped to 8-64)
            fill_interior: Fill enclosed cells after the surface scan
            color_mode: "average", "dominant" or "nearest"
            seed: Seed for reproducible UUIDs in .bbmodel output
            strict: Only accept .glb/.gltf input files
        """
        self.options = VoxelizationOptions(
            resolution=resolution,
            fill_interior=fill_interior,
            color_sampling_mode=color_mode,
        )
        self.seed = seed

        self._loader = SceneLoader(strict=strict)
        self._engine = VoxelizationEngine()
        self._packer = TexturePacker()
        self._meshes: Optional[List[TriangleMesh]] = None
        self._source: Optional[str] = None
        self._grid: Optional[VoxelGrid] = None

    def load_scene(self, path: Union[str, Path]) -> "BlockModelConverter":
        """
        Load a scene file for voxelization.

        Args:
            path: Path to a .glb or .gltf file

        Returns:
            self for method chaining
        """
        self._meshes = self._loader.load(path)
        self._source = Path(path).stem
        self._grid = None
        return self

    def load_meshes(
        self,
        meshes: Union[List[TriangleMesh], trimesh.Trimesh, trimesh.Scene],
        name: str = "model"
    ) -> "BlockModelConverter":
        """
        Use in-memory geometry instead of a file.

        Args:
            meshes: TriangleMesh list or a trimesh Trimesh/Scene
            name: Name used for exported files

        Returns:
            self for method chaining
        """
        if isinstance(meshes, (trimesh.Trimesh, trimesh.Scene)):
            meshes = meshes_from_trimesh(meshes)
        self._meshes = list(meshes)
        self._source = name
        self._grid = None
        return self

    def voxelize(
        self,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None
    ) -> "BlockModelConverter":
        """
        Convert the loaded meshes to a voxel grid.

        Args:
            on_progress: Optional progress callback (0-100)
            should_cancel: Optional cancellation poll

        Returns:
            self for method chaining
        """
        if self._meshes is None:
            raise RuntimeError("No scene loaded. Call load_scene() first.")

        self._grid = self._engine.voxelize(
            self._meshes, self.options, on_progress, should_cancel
        )
        return self

    def _require_grid(self) -> VoxelGrid:
        if self._grid is None:
            raise RuntimeError("No voxel grid. Call voxelize() first.")
        return self._grid

    def export_java_model(
        self,
        output_dir: Union[str, Path],
        model_name: Optional[str] = None
    ) -> List[Path]:
        """
        Export a Java block model (model JSON + texture.png).

        Args:
            output_dir: Output directory
            model_name: File stem of the model (defaults to the scene name)

        Returns:
            Paths of the written files
        """
        grid = self._require_grid()
        exporter = JavaModelExporter(self._packer)
        model_path, texture_path = exporter.export(
            grid, output_dir, model_name or self._source or "model"
        )
        return [model_path, texture_path]

    def export_bbmodel(
        self,
        output_path: Union[str, Path],
        name: Optional[str] = None
    ) -> Path:
        """
        Export a self-contained Blockbench project.

        Args:
            output_path: Output file path
            name: Project name (defaults to the scene name)
        """
        grid = self._require_grid()
        exporter = BBModelExporter(self._packer, UuidGenerator(self.seed))
        return exporter.export(grid, output_path, name or self._source)

    def export_all(
        self,
        output_dir: Union[str, Path],
        formats: Optional[list] = None,
        name: Optional[str] = None
    ) -> List[Path]:
        """
        Export to multiple formats at once.

        Args:
            output_dir: Output directory
            formats: List of formats to export (default: all)
            name: Base name of the outputs (defaults to the scene name)

        Returns:
            Paths of every written file
        """
        formats = formats or list(EXPORT_FORMATS)
        unknown = [f for f in formats if f not in EXPORT_FORMATS]
        if unknown:
            raise ValueError(f"Unknown export format(s): {', '.join(unknown)}")

        output_dir = Path(output_dir)
        name = name or self._source or "model"
        written = []

        if "java" in formats:
            written.extend(self.export_java_model(output_dir, name))

        if "bbmodel" in formats:
            written.append(self.export_bbmodel(output_dir / f"{name}.bbmodel", name))

        return written

    @property
    def meshes(self) -> Optional[List[TriangleMesh]]:
        """Get the loaded meshes."""
        return self._meshes

    @property
    def grid(self) -> Optional[VoxelGrid]:
        """Get the current voxel grid."""
        return self._grid

    @property
    def voxel_count(self) -> int:
        if self._grid is None:
            return 0
        return self._grid.count_voxels()

    @property
    def triangle_count(self) -> int:
        if self._meshes is None:
            return 0
        return sum(mesh.triangle_count for mesh in self._meshes)

    def get_stats(self) -> dict:
        """
        Get conversion statistics.

        Returns:
            Dictionary with grid and palette statistics
        """
        grid = self._require_grid()
        atlas = self._packer.pack(grid.colors())
        box = grid.bounding_box

        return {
            "mesh_count": len(self._meshes or []),
            "triangle_count": self.triangle_count,
            "resolution": grid.resolution,
            "voxel_count": grid.count_voxels(),
            "unique_colors": len(atlas.colors),
            "atlas_size": (atlas.width, atlas.height),
            "bounding_box": (box.min.as_tuple(), box.max.as_tuple()),
            "voxel_edge": grid.voxel_edge,
        }

    def preview(self) -> dict:
        """
        Get a preview of the current state.

        Returns:
            Dictionary with current state information
        """
        info = {
            "scene_loaded": self._meshes is not None,
            "voxelized": self._grid is not None,
        }

        if self._meshes is not None:
            info["mesh_count"] = len(self._meshes)
            info["triangle_count"] = self.triangle_count

        if self._grid is not None:
            info["resolution"] = self._grid.resolution
            info["voxel_count"] = self._grid.count_voxels()

        return info
