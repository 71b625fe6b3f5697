"""
Geometry Primitives and Grid Construction

This module provides:
- Vector3: Immutable point/direction in model space
- BoundingBox: Axis-aligned box, degenerate extents allowed (flat meshes)
- GridBuilder: Uniform voxel grid over a bounding box

Grid layout:
- The voxel edge is derived from the longest axis: edge = max_dim / resolution
- Every axis gets ceil(size / edge) cells, never fewer than one, so a flat
  plane still produces a one-cell-thick slab
- Cell centers sit at box.min + (index + 0.5) * edge
"""

from dataclasses import dataclass
from typing import Iterable, Tuple
import math
import numpy as np


@dataclass(frozen=True)
class Vector3:
    """A point or direction in model space."""

    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    @classmethod
    def from_iterable(cls, values: Iterable[float]) -> "Vector3":
        x, y, z = values
        return cls(float(x), float(y), float(z))

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z], dtype=np.float64)

    def __add__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector3") -> "Vector3":
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def scaled(self, factor: float) -> "Vector3":
        return Vector3(self.x * factor, self.y * factor, self.z * factor)


ORIGIN = Vector3(0.0, 0.0, 0.0)

CELL_COUNT_EPSILON = 1e-9


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned bounding box.

    Invariant: min <= max on every axis. Zero extent on one or more
    axes is legal (e.g. a single quad lying in a plane).
    """

    min: Vector3 = ORIGIN
    max: Vector3 = ORIGIN

    @classmethod
    def empty(cls) -> "BoundingBox":
        """The all-zero degenerate box used for empty scenes."""
        return cls(ORIGIN, ORIGIN)

    @classmethod
    def from_points(cls, points: np.ndarray) -> "BoundingBox":
        """
        Compute the tight box around a set of points.

        Args:
            points: Array of shape (N, 3)

        Returns:
            BoundingBox (all-zero if no points are given)
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if len(points) == 0:
            return cls.empty()
        return cls(
            Vector3.from_iterable(points.min(axis=0)),
            Vector3.from_iterable(points.max(axis=0)),
        )

    @property
    def size(self) -> Vector3:
        return self.max - self.min

    @property
    def max_dimension(self) -> float:
        size = self.size
        return max(size.x, size.y, size.z)

    @property
    def is_empty(self) -> bool:
        """True for the all-zero box returned for empty input."""
        return self.min == ORIGIN and self.max == ORIGIN

    def union(self, other: "BoundingBox") -> "BoundingBox":
        return BoundingBox(
            Vector3(
                min(self.min.x, other.min.x),
                min(self.min.y, other.min.y),
                min(self.min.z, other.min.z),
            ),
            Vector3(
                max(self.max.x, other.max.x),
                max(self.max.y, other.max.y),
                max(self.max.z, other.max.z),
            ),
        )

    def expanded(self, margin: float) -> "BoundingBox":
        delta = Vector3(margin, margin, margin)
        return BoundingBox(self.min - delta, self.max + delta)

    def contains(self, point: Vector3, tolerance: float = 1e-9) -> bool:
        return (
            self.min.x - tolerance <= point.x <= self.max.x + tolerance and
            self.min.y - tolerance <= point.y <= self.max.y + tolerance and
            self.min.z - tolerance <= point.z <= self.max.z + tolerance
        )


def voxel_edge_for(box: BoundingBox, resolution: int) -> float:
    """
    Voxel edge length for a box at the given resolution.

    A box with zero size on every axis is treated as having a
    longest dimension of 1 so the edge is never zero.
    """
    max_dimension = box.max_dimension or 1.0
    return max_dimension / resolution


class GridBuilder:
    """
    Builds the uniform sampling grid for voxelization.

    The builder is stateless; create_grid is a pure function of its
    inputs and always enumerates cells x-outer, y-middle, z-inner.
    """

    @staticmethod
    def cell_counts(box: BoundingBox, voxel_edge: float) -> Tuple[int, int, int]:
        """Number of cells along each axis (minimum 1)."""
        size = box.size
        # Tolerance keeps 0.3 / (0.3 / 8) from rounding up to 9 cells
        return tuple(
            max(1, int(math.ceil(axis_size / voxel_edge - CELL_COUNT_EPSILON)))
            for axis_size in (size.x, size.y, size.z)
        )

    def create_grid(
        self,
        box: BoundingBox,
        resolution: int
    ) -> Tuple[np.ndarray, float]:
        """
        Generate the cell centers of a voxel grid.

        Args:
            box: Bounding volume to cover
            resolution: Cell count along the longest axis

        Returns:
            Tuple of (cell_centers, voxel_edge) where cell_centers is a
            float64 array of shape (N, 3) in scan order
        """
        voxel_edge = voxel_edge_for(box, resolution)
        count_x, count_y, count_z = self.cell_counts(box, voxel_edge)

        ix, iy, iz = np.meshgrid(
            np.arange(count_x),
            np.arange(count_y),
            np.arange(count_z),
            indexing="ij",
        )
        indices = np.stack([ix.ravel(), iy.ravel(), iz.ravel()], axis=1)

        centers = box.min.as_array() + (indices + 0.5) * voxel_edge
        return centers, voxel_edge
