"""
Ray/Triangle Intersection with Numba JIT Compilation

The voxelization engine only needs one primitive from this module:
"nearest hit along a ray against one mesh". Intersector defines that
boundary; RayMeshIntersector is the default implementation.

Acceleration structure:
- Triangles are bucketed into a uniform grid (CSR layout: offsets + items)
  keyed by their bounding boxes
- A bounded query (max_distance < inf) only tests triangles in the buckets
  overlapped by the ray segment's bounding box
- An unbounded query tests every triangle

The voxelizer always queries with max_distance = voxel edge and builds the
grid with the same cell size, so each ray touches a handful of buckets.

Intersection test: Moller-Trumbore, double sided unless cull_back_faces is
set (front faces are counter-clockwise, as in glTF/OpenGL).
"""

from dataclasses import dataclass
from typing import NamedTuple, Optional, Tuple
import math
import numpy as np
from numba import njit

from .mesh import TriangleMesh


# Determinant threshold below which a ray is parallel to the triangle
PARALLEL_EPSILON = 1e-12

# Upper bound on the number of buckets of one acceleration grid
MAX_BUCKETS = 1 << 21

# Default bucket count along the longest axis when no cell size is given
DEFAULT_BUCKETS_PER_AXIS = 32


class RayHits(NamedTuple):
    """Batched nearest-hit results, one row per ray."""
    distance: np.ndarray     # (N,) float64, -1 on miss
    face: np.ndarray         # (N,) int64 triangle index, -1 on miss
    barycentric: np.ndarray  # (N, 3) float64 weights of the triangle vertices

    @property
    def hit_mask(self) -> np.ndarray:
        return self.face >= 0


@dataclass
class SurfaceHit:
    """
    Nearest surface hit of one ray against one mesh.

    Attributes:
        distance: Distance from the ray origin along the unit direction
        point: World-space hit position
        face_index: Index of the triangle that was hit
        barycentric: Weights (w0, w1, w2) of the triangle's vertices
        uv: Interpolated UV0 coordinate, if the mesh has UVs
        material_index: Material group of the face, if the mesh has one
        mesh: The mesh that was hit
    """

    distance: float
    point: np.ndarray
    face_index: Optional[int]
    barycentric: Optional[np.ndarray]
    uv: Optional[Tuple[float, float]]
    material_index: Optional[int]
    mesh: TriangleMesh


@njit(cache=True)
def _ray_triangle(
    ox: float, oy: float, oz: float,
    dx: float, dy: float, dz: float,
    tri: np.ndarray,
    cull_back_faces: bool
):
    """
    Moller-Trumbore ray/triangle test.

    Returns:
        (t, u, v) with t = -1.0 on miss; u and v weight vertices 1 and 2
    """
    e1x = tri[1, 0] - tri[0, 0]
    e1y = tri[1, 1] - tri[0, 1]
    e1z = tri[1, 2] - tri[0, 2]
    e2x = tri[2, 0] - tri[0, 0]
    e2y = tri[2, 1] - tri[0, 1]
    e2z = tri[2, 2] - tri[0, 2]

    # p = d x e2
    px = dy * e2z - dz * e2y
    py = dz * e2x - dx * e2z
    pz = dx * e2y - dy * e2x

    det = e1x * px + e1y * py + e1z * pz
    if cull_back_faces:
        if det < PARALLEL_EPSILON:
            return -1.0, 0.0, 0.0
    elif abs(det) < PARALLEL_EPSILON:
        return -1.0, 0.0, 0.0

    inv_det = 1.0 / det

    sx = ox - tri[0, 0]
    sy = oy - tri[0, 1]
    sz = oz - tri[0, 2]

    u = (sx * px + sy * py + sz * pz) * inv_det
    if u < 0.0 or u > 1.0:
        return -1.0, 0.0, 0.0

    # q = s x e1
    qx = sy * e1z - sz * e1y
    qy = sz * e1x - sx * e1z
    qz = sx * e1y - sy * e1x

    v = (dx * qx + dy * qy + dz * qz) * inv_det
    if v < 0.0 or u + v > 1.0:
        return -1.0, 0.0, 0.0

    t = (e2x * qx + e2y * qy + e2z * qz) * inv_det
    if t < 0.0:
        return -1.0, 0.0, 0.0

    return t, u, v


@njit(cache=True)
def _fill_buckets(
    cell_lo: np.ndarray,
    cell_hi: np.ndarray,
    dims: np.ndarray
):
    """
    Build the CSR bucket layout of the acceleration grid.

    Args:
        cell_lo: (F, 3) int64 first cell touched by each triangle's bounds
        cell_hi: (F, 3) int64 last cell touched (inclusive)
        dims: (3,) int64 grid dimensions

    Returns:
        (offsets, items): offsets has one entry per bucket plus one,
        items holds triangle indices bucket by bucket
    """
    n_buckets = dims[0] * dims[1] * dims[2]
    counts = np.zeros(n_buckets + 1, dtype=np.int64)
    n_tris = cell_lo.shape[0]

    for t in range(n_tris):
        for cx in range(cell_lo[t, 0], cell_hi[t, 0] + 1):
            for cy in range(cell_lo[t, 1], cell_hi[t, 1] + 1):
                for cz in range(cell_lo[t, 2], cell_hi[t, 2] + 1):
                    b = (cx * dims[1] + cy) * dims[2] + cz
                    counts[b + 1] += 1

    offsets = np.cumsum(counts)
    items = np.empty(offsets[n_buckets], dtype=np.int64)
    cursor = offsets[:n_buckets].copy()

    for t in range(n_tris):
        for cx in range(cell_lo[t, 0], cell_hi[t, 0] + 1):
            for cy in range(cell_lo[t, 1], cell_hi[t, 1] + 1):
                for cz in range(cell_lo[t, 2], cell_hi[t, 2] + 1):
                    b = (cx * dims[1] + cy) * dims[2] + cz
                    items[cursor[b]] = t
                    cursor[b] += 1

    return offsets, items


@njit(cache=True)
def _cast_rays_bruteforce(
    triangles: np.ndarray,
    origins: np.ndarray,
    directions: np.ndarray,
    max_distance: float,
    cull_back_faces: bool
):
    """Nearest hit per ray, testing every triangle."""
    n = origins.shape[0]
    distance = np.full(n, -1.0)
    face = np.full(n, -1, dtype=np.int64)
    bary = np.zeros((n, 3))

    for r in range(n):
        best = np.inf
        for t in range(triangles.shape[0]):
            hit_t, u, v = _ray_triangle(
                origins[r, 0], origins[r, 1], origins[r, 2],
                directions[r, 0], directions[r, 1], directions[r, 2],
                triangles[t], cull_back_faces
            )
            if hit_t >= 0.0 and hit_t <= max_distance and hit_t < best:
                best = hit_t
                distance[r] = hit_t
                face[r] = t
                bary[r, 0] = 1.0 - u - v
                bary[r, 1] = u
                bary[r, 2] = v

    return distance, face, bary


@njit(cache=True)
def _cast_rays_bucketed(
    triangles: np.ndarray,
    offsets: np.ndarray,
    items: np.ndarray,
    grid_min: np.ndarray,
    cell_size: float,
    dims: np.ndarray,
    origins: np.ndarray,
    directions: np.ndarray,
    max_distance: float,
    cull_back_faces: bool
):
    """Nearest hit per ray within max_distance, using the bucket grid."""
    n = origins.shape[0]
    distance = np.full(n, -1.0)
    face = np.full(n, -1, dtype=np.int64)
    bary = np.zeros((n, 3))

    # Last ray that tested each triangle (triangles span several buckets)
    stamp = np.full(triangles.shape[0], -1, dtype=np.int64)
    lo = np.empty(3, dtype=np.int64)
    hi = np.empty(3, dtype=np.int64)

    for r in range(n):
        overlaps = True
        for k in range(3):
            end = origins[r, k] + directions[r, k] * max_distance
            seg_lo = min(origins[r, k], end)
            seg_hi = max(origins[r, k], end)
            c0 = int(np.floor((seg_lo - grid_min[k]) / cell_size))
            c1 = int(np.floor((seg_hi - grid_min[k]) / cell_size))
            if c1 < 0 or c0 >= dims[k]:
                overlaps = False
                break
            lo[k] = max(c0, 0)
            hi[k] = min(c1, dims[k] - 1)

        if not overlaps:
            continue

        best = np.inf
        for cx in range(lo[0], hi[0] + 1):
            for cy in range(lo[1], hi[1] + 1):
                for cz in range(lo[2], hi[2] + 1):
                    b = (cx * dims[1] + cy) * dims[2] + cz
                    for j in range(offsets[b], offsets[b + 1]):
                        t = items[j]
                        if stamp[t] == r:
                            continue
                        stamp[t] = r
                        hit_t, u, v = _ray_triangle(
                            origins[r, 0], origins[r, 1], origins[r, 2],
                            directions[r, 0], directions[r, 1], directions[r, 2],
                            triangles[t], cull_back_faces
                        )
                        if hit_t >= 0.0 and hit_t <= max_distance and hit_t < best:
                            best = hit_t
                            distance[r] = hit_t
                            face[r] = t
                            bary[r, 0] = 1.0 - u - v
                            bary[r, 1] = u
                            bary[r, 2] = v

    return distance, face, bary


class Intersector:
    """
    Nearest-hit ray queries against one prepared mesh.

    Subclasses implement intersect_many; intersect is derived from it.
    """

    def __init__(self, mesh: TriangleMesh):
        self.mesh = mesh

    def intersect_many(
        self,
        origins: np.ndarray,
        directions: np.ndarray,
        max_distance: float = math.inf
    ) -> RayHits:
        """
        Cast a batch of rays.

        Args:
            origins: (N, 3) ray origins
            directions: (N, 3) unit ray directions
            max_distance: Hits farther than this are ignored

        Returns:
            RayHits with the nearest hit of every ray
        """
        raise NotImplementedError

    def intersect(
        self,
        origin,
        direction,
        max_distance: float = math.inf
    ) -> Optional[SurfaceHit]:
        """
        Cast a single ray.

        Returns:
            The nearest SurfaceHit, or None if the ray misses
        """
        origins = np.asarray(origin, dtype=np.float64).reshape(1, 3)
        directions = np.asarray(direction, dtype=np.float64).reshape(1, 3)
        hits = self.intersect_many(origins, directions, max_distance)
        if hits.face[0] < 0:
            return None
        return self.surface_hit(origins[0], directions[0], hits, 0)

    def surface_hit(
        self,
        origin: np.ndarray,
        direction: np.ndarray,
        hits: RayHits,
        row: int
    ) -> SurfaceHit:
        """Expand one row of a batched result into a SurfaceHit."""
        mesh = self.mesh
        face_index = int(hits.face[row])
        weights = hits.barycentric[row].copy()
        distance = float(hits.distance[row])

        uv = None
        if mesh.uvs is not None:
            corner_uvs = mesh.uvs[mesh.faces[face_index]]
            u, v = weights @ corner_uvs
            uv = (float(u), float(v))

        return SurfaceHit(
            distance=distance,
            point=np.asarray(origin, dtype=np.float64) + np.asarray(direction) * distance,
            face_index=face_index,
            barycentric=weights,
            uv=uv,
            material_index=mesh.material_index_for(face_index),
            mesh=mesh,
        )


class RayMeshIntersector(Intersector):
    """
    Default Intersector backed by Numba kernels and a uniform bucket grid.

    Usage:
        intersector = RayMeshIntersector(mesh, cell_size=voxel_edge)
        hit = intersector.intersect(origin, (1, 0, 0), max_distance=voxel_edge)
    """

    def __init__(
        self,
        mesh: TriangleMesh,
        cell_size: Optional[float] = None,
        cull_back_faces: bool = False
    ):
        """
        Prepare a mesh for ray queries.

        Args:
            mesh: The mesh to query
            cell_size: Edge of the acceleration grid cells (defaults to
                1/32 of the mesh's longest extent)
            cull_back_faces: If True, ignore triangles facing away from the ray
        """
        super().__init__(mesh)
        self.cull_back_faces = cull_back_faces
        self._triangles = np.ascontiguousarray(
            mesh.positions[mesh.faces], dtype=np.float64
        ).reshape(-1, 3, 3)
        self._build_grid(cell_size)

    @property
    def bucket_count(self) -> int:
        return int(np.prod(self._dims))

    def _build_grid(self, cell_size: Optional[float]):
        """Bucket triangles into the uniform acceleration grid."""
        if len(self._triangles) == 0:
            self._grid_min = np.zeros(3)
            self._cell_size = 1.0
            self._dims = np.ones(3, dtype=np.int64)
            self._offsets = np.zeros(2, dtype=np.int64)
            self._items = np.zeros(0, dtype=np.int64)
            return

        tri_min = self._triangles.min(axis=1)
        tri_max = self._triangles.max(axis=1)
        grid_min = tri_min.min(axis=0)
        extent = tri_max.max(axis=0) - grid_min

        if cell_size is None or cell_size <= 0:
            cell_size = (extent.max() or 1.0) / DEFAULT_BUCKETS_PER_AXIS

        dims = np.floor(extent / cell_size).astype(np.int64) + 1
        while int(np.prod(dims)) > MAX_BUCKETS:
            cell_size *= 2.0
            dims = np.floor(extent / cell_size).astype(np.int64) + 1

        cell_lo = np.floor((tri_min - grid_min) / cell_size).astype(np.int64)
        cell_hi = np.floor((tri_max - grid_min) / cell_size).astype(np.int64)
        cell_lo = np.clip(cell_lo, 0, dims - 1)
        cell_hi = np.clip(cell_hi, 0, dims - 1)

        self._offsets, self._items = _fill_buckets(cell_lo, cell_hi, dims)
        self._grid_min = grid_min
        self._cell_size = float(cell_size)
        self._dims = dims

    def intersect_many(
        self,
        origins: np.ndarray,
        directions: np.ndarray,
        max_distance: float = math.inf
    ) -> RayHits:
        origins = np.ascontiguousarray(origins, dtype=np.float64).reshape(-1, 3)
        directions = np.ascontiguousarray(directions, dtype=np.float64).reshape(-1, 3)

        if len(self._triangles) == 0 or len(origins) == 0:
            n = len(origins)
            return RayHits(np.full(n, -1.0), np.full(n, -1, dtype=np.int64), np.zeros((n, 3)))

        if math.isinf(max_distance):
            distance, face, bary = _cast_rays_bruteforce(
                self._triangles, origins, directions,
                np.inf, self.cull_back_faces
            )
        else:
            distance, face, bary = _cast_rays_bucketed(
                self._triangles, self._offsets, self._items,
                self._grid_min, self._cell_size, self._dims,
                origins, directions, float(max_distance), self.cull_back_faces
            )

        return RayHits(distance, face, bary)
