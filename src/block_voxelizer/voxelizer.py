"""
Voxel Data Structures and Voxelization Engine

This module provides:
- VoxelizationOptions: Resolution, interior fill and color sampling settings
- VoxelGrid: Sparse list of occupied, colored cells plus the scanned bounds
- VoxelizationEngine: Converts triangle meshes into a VoxelGrid by raycasting

Algorithm:
1. Build a uniform grid over the scene bounds (resolution = cells along
   the longest axis)
2. From every cell center, cast six axis-aligned rays. Per direction the
   meshes are tested in list order and the first mesh hit within one voxel
   edge wins
3. A cell is occupied if any direction hit; its color combines the
   colors of all hitting directions

Cost: O(resolution^3 x meshes x 6) ray queries, each kept sub-linear in
triangle count by the intersector's bucket grid.
"""

from dataclasses import dataclass, field
import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union
import numpy as np
from scipy import ndimage

from .color import Color, ColorSamplingMode, combine_colors
from .geometry import BoundingBox, GridBuilder, Vector3, voxel_edge_for
from .intersector import Intersector, RayMeshIntersector, SurfaceHit
from .mesh import TriangleMesh, scene_bounding_box
from .sampling import ColorResolver, TextureCache

logger = logging.getLogger(__name__)


MIN_RESOLUTION = 8
MAX_RESOLUTION = 64
DEFAULT_RESOLUTION = 16

# Probe directions, in the order rays are cast from each cell center
DIRECTIONS = np.array([
    [1, 0, 0],   # +X
    [-1, 0, 0],  # -X
    [0, 1, 0],   # +Y
    [0, -1, 0],  # -Y
    [0, 0, 1],   # +Z
    [0, 0, -1],  # -Z
], dtype=np.float64)

# Progress checkpoints (percent)
PROGRESS_START = 0
PROGRESS_MESHES_EXTRACTED = 10
PROGRESS_INTERSECTORS_READY = 20
PROGRESS_SCAN_START = 30
PROGRESS_SCAN_END = 90
PROGRESS_DONE = 100

ProgressCallback = Callable[[float], None]
IntersectorFactory = Callable[[TriangleMesh, float], Intersector]


class VoxelizationCancelled(RuntimeError):
    """Raised when should_cancel requests a stop during the scan."""


@dataclass
class VoxelizationOptions:
    """
    User-facing voxelization settings.

    Attributes:
        resolution: Cell count along the bounding box's longest axis (8-64)
        fill_interior: If True, fill cells enclosed by the surface shell
        color_sampling_mode: How hit colors of one cell are combined
    """

    resolution: int = DEFAULT_RESOLUTION
    fill_interior: bool = False
    color_sampling_mode: Union[ColorSamplingMode, str] = ColorSamplingMode.AVERAGE

    def __post_init__(self):
        if isinstance(self.color_sampling_mode, str):
            self.color_sampling_mode = ColorSamplingMode(self.color_sampling_mode)


@dataclass(frozen=True)
class Voxel:
    """One occupied cell: its center and resolved color."""
    position: Vector3
    color: Color


@dataclass
class VoxelGrid:
    """
    Sparse voxel grid produced by one voxelization pass.

    Voxels are kept in scan order (x outer, y middle, z inner), surface
    voxels first, then interior voxels when interior fill is enabled.
    """

    resolution: int
    voxels: List[Voxel] = field(default_factory=list)
    bounding_box: BoundingBox = field(default_factory=BoundingBox.empty)

    @property
    def voxel_edge(self) -> float:
        """Edge length of one cell, same formula as the grid builder."""
        return voxel_edge_for(self.bounding_box, self.resolution)

    @property
    def is_empty(self) -> bool:
        return len(self.voxels) == 0

    def count_voxels(self) -> int:
        """Count the number of occupied cells."""
        return len(self.voxels)

    def colors(self) -> List[Color]:
        """Colors of all voxels, in voxel order."""
        return [voxel.color for voxel in self.voxels]

    def get_unique_colors(self) -> List[Color]:
        """Distinct voxel colors in first-seen order."""
        return list(dict.fromkeys(self.colors()))

    def positions(self) -> np.ndarray:
        """(N, 3) array of voxel centers."""
        if not self.voxels:
            return np.zeros((0, 3))
        return np.array([voxel.position.as_tuple() for voxel in self.voxels])


def clamp_resolution(resolution: int) -> int:
    """Clamp a resolution into the supported range, warning if it was outside."""
    resolution = int(resolution)
    clamped = max(MIN_RESOLUTION, min(MAX_RESOLUTION, resolution))
    if clamped != resolution:
        logger.warning(
            "Resolution %d outside [%d, %d], using %d",
            resolution, MIN_RESOLUTION, MAX_RESOLUTION, clamped
        )
    return clamped


class ProgressReporter:
    """
    Single aggregation point for progress callbacks.

    Values are clamped to [0, 100] and never decrease, so callers always
    observe a monotonic sequence.
    """

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self._callback = callback
        self._last: Optional[float] = None

    def report(self, value: float):
        value = float(min(100.0, max(0.0, value)))
        if self._last is not None and value < self._last:
            value = self._last
        self._last = value
        if self._callback is not None:
            self._callback(value)


class VoxelizationEngine:
    """
    Engine for converting triangle meshes to colored voxel grids.

    The engine holds no per-conversion state: every voxelize() call builds
    its own grid, intersectors and texture cache and discards them on
    return.

    Usage:
        engine = VoxelizationEngine()
        grid = engine.voxelize(meshes, VoxelizationOptions(resolution=32))
    """

    def __init__(
        self,
        intersector_factory: Optional[IntersectorFactory] = None,
        chunk_size: int = 4096,
        cull_back_faces: bool = False
    ):
        """
        Initialize the engine.

        Args:
            intersector_factory: Builds an Intersector for (mesh, voxel_edge);
                defaults to RayMeshIntersector
            chunk_size: Cell centers scanned per batch (progress granularity)
            cull_back_faces: Passed to the default intersector
        """
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")

        self.chunk_size = chunk_size
        self.cull_back_faces = cull_back_faces
        self.intersector_factory = intersector_factory or self._default_intersector
        self.grid_builder = GridBuilder()

    def _default_intersector(self, mesh: TriangleMesh, voxel_edge: float) -> Intersector:
        return RayMeshIntersector(
            mesh, cell_size=voxel_edge, cull_back_faces=self.cull_back_faces
        )

    def voxelize(
        self,
        meshes: Iterable[TriangleMesh],
        options: Optional[VoxelizationOptions] = None,
        on_progress: Optional[ProgressCallback] = None,
        should_cancel: Optional[Callable[[], bool]] = None
    ) -> VoxelGrid:
        """
        Convert meshes to a voxel grid.

        Args:
            meshes: World-space triangle meshes, tested in list order
            options: Voxelization settings (defaults if omitted)
            on_progress: Called synchronously with values in [0, 100]
            should_cancel: Polled between scan batches; returning True
                aborts with VoxelizationCancelled

        Returns:
            VoxelGrid (empty, with an all-zero bounding box, if no mesh
            has geometry)
        """
        options = options or VoxelizationOptions()
        progress = ProgressReporter(on_progress)
        progress.report(PROGRESS_START)

        resolution = clamp_resolution(options.resolution)

        usable = []
        for mesh in meshes:
            if mesh.has_geometry:
                usable.append(mesh)
            else:
                logger.debug("Skipping mesh %r without geometry", mesh.name)

        if not usable:
            logger.info("No meshes with geometry, returning an empty grid")
            progress.report(PROGRESS_DONE)
            return VoxelGrid(resolution, [], BoundingBox.empty())

        progress.report(PROGRESS_MESHES_EXTRACTED)

        box = scene_bounding_box(usable)
        voxel_edge = voxel_edge_for(box, resolution)
        intersectors = [self.intersector_factory(mesh, voxel_edge) for mesh in usable]

        progress.report(PROGRESS_INTERSECTORS_READY)

        centers, voxel_edge = self.grid_builder.create_grid(box, resolution)
        logger.debug(
            "Grid: %d cells, edge %.6f, %d meshes", len(centers), voxel_edge, len(usable)
        )

        progress.report(PROGRESS_SCAN_START)

        cache = TextureCache()
        resolver = ColorResolver(cache)
        mode = options.color_sampling_mode

        occupied: List[int] = []
        cell_colors: List[Color] = []
        total = len(centers)

        for start in range(0, total, self.chunk_size):
            if should_cancel is not None and should_cancel():
                cache.clear()
                raise VoxelizationCancelled(
                    f"Voxelization cancelled after {start} of {total} cells"
                )

            chunk = centers[start:start + self.chunk_size]
            for offset, color in self._scan_chunk(
                chunk, intersectors, voxel_edge, resolver, mode
            ):
                occupied.append(start + offset)
                cell_colors.append(color)

            done = min(start + self.chunk_size, total)
            progress.report(
                PROGRESS_SCAN_START +
                (PROGRESS_SCAN_END - PROGRESS_SCAN_START) * done / total
            )

        progress.report(PROGRESS_SCAN_END)

        voxels = [
            Voxel(Vector3.from_iterable(centers[index]), color)
            for index, color in zip(occupied, cell_colors)
        ]

        if options.fill_interior and voxels:
            interior = self._fill_interior(box, voxel_edge, occupied, cell_colors)
            logger.debug("Interior fill added %d voxels", len(interior))
            voxels.extend(interior)

        cache.clear()

        logger.info(
            "Voxelized %d mesh(es) at resolution %d: %d voxels",
            len(usable), resolution, len(voxels)
        )
        progress.report(PROGRESS_DONE)

        return VoxelGrid(resolution, voxels, box)

    def _scan_chunk(
        self,
        centers: np.ndarray,
        intersectors: Sequence[Intersector],
        voxel_edge: float,
        resolver: ColorResolver,
        mode: ColorSamplingMode
    ) -> List[Tuple[int, Color]]:
        """
        Raycast one batch of cell centers.

        Returns:
            (cell offset within the batch, color) for every occupied cell
        """
        n_dirs = len(DIRECTIONS)
        origins = np.repeat(centers, n_dirs, axis=0)
        directions = np.tile(DIRECTIONS, (len(centers), 1))

        # First mesh (in list order) hit within one voxel edge, per ray
        surface_hits: Dict[int, SurfaceHit] = {}
        pending = np.arange(len(origins))

        for intersector in intersectors:
            if len(pending) == 0:
                break

            hits = intersector.intersect_many(
                origins[pending], directions[pending], voxel_edge
            )
            found = hits.hit_mask & (hits.distance <= voxel_edge)

            for local in np.flatnonzero(found):
                ray = int(pending[local])
                surface_hits[ray] = intersector.surface_hit(
                    origins[ray], directions[ray], hits, int(local)
                )

            pending = pending[~found]

        results = []
        hit_rays = np.fromiter(surface_hits.keys(), dtype=np.int64, count=len(surface_hits))

        for cell in np.unique(hit_rays // n_dirs):
            cell_hits = [
                surface_hits[ray]
                for ray in range(cell * n_dirs, (cell + 1) * n_dirs)
                if ray in surface_hits
            ]
            colors = [resolver.resolve(hit) for hit in cell_hits]
            distances = [hit.distance for hit in cell_hits]
            results.append((int(cell), combine_colors(colors, mode, distances)))

        return results

    def _fill_interior(
        self,
        box: BoundingBox,
        voxel_edge: float,
        occupied: List[int],
        cell_colors: List[Color]
    ) -> List[Voxel]:
        """
        Fill cells enclosed by the surface voxels.

        Each interior cell takes the color of the nearest surface cell.
        """
        counts = GridBuilder.cell_counts(box, voxel_edge)

        color_index = np.full(counts, -1, dtype=np.int64)
        cells = np.unravel_index(np.asarray(occupied, dtype=np.int64), counts)
        color_index[cells] = np.arange(len(occupied))

        shell = color_index >= 0
        interior = ndimage.binary_fill_holes(shell) & ~shell
        if not interior.any():
            return []

        # Index of the nearest shell cell for every cell of the grid
        nearest = ndimage.distance_transform_edt(
            ~shell, return_distances=False, return_indices=True
        )

        origin = box.min.as_array()
        voxels = []
        for ix, iy, iz in np.argwhere(interior):
            source = color_index[nearest[0, ix, iy, iz], nearest[1, ix, iy, iz], nearest[2, ix, iy, iz]]
            center = origin + (np.array([ix, iy, iz]) + 0.5) * voxel_edge
            voxels.append(Voxel(Vector3.from_iterable(center), cell_colors[source]))

        return voxels
