"""
Unit tests for ray/mesh intersection.
"""

import sys
from pathlib import Path
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from block_voxelizer.intersector import RayMeshIntersector
from block_voxelizer.mesh import TriangleMesh


def unit_triangle(**kwargs) -> TriangleMesh:
    """Triangle in the z=0 plane, counter-clockwise seen from +Z."""
    return TriangleMesh(
        positions=[[0, 0, 0], [1, 0, 0], [0, 1, 0]],
        faces=[[0, 1, 2]],
        **kwargs
    )


class TestRayMeshIntersector(unittest.TestCase):
    """Tests for RayMeshIntersector."""

    def test_hit(self):
        intersector = RayMeshIntersector(unit_triangle())
        hit = intersector.intersect((0.25, 0.25, 1.0), (0, 0, -1))

        assert hit is not None
        assert abs(hit.distance - 1.0) < 1e-12
        assert hit.face_index == 0
        np.testing.assert_allclose(hit.point, [0.25, 0.25, 0.0])
        np.testing.assert_allclose(hit.barycentric, [0.5, 0.25, 0.25])
        assert hit.uv is None

    def test_miss_outside_triangle(self):
        intersector = RayMeshIntersector(unit_triangle())
        assert intersector.intersect((0.9, 0.9, 1.0), (0, 0, -1)) is None

    def test_miss_behind_origin(self):
        intersector = RayMeshIntersector(unit_triangle())
        assert intersector.intersect((0.25, 0.25, 1.0), (0, 0, 1)) is None

    def test_max_distance(self):
        intersector = RayMeshIntersector(unit_triangle(), cell_size=0.25)
        assert intersector.intersect((0.25, 0.25, 1.0), (0, 0, -1), 0.5) is None
        assert intersector.intersect((0.25, 0.25, 1.0), (0, 0, -1), 2.0) is not None

    def test_double_sided_by_default(self):
        intersector = RayMeshIntersector(unit_triangle())
        assert intersector.intersect((0.25, 0.25, -1.0), (0, 0, 1)) is not None

    def test_cull_back_faces(self):
        intersector = RayMeshIntersector(unit_triangle(), cull_back_faces=True)
        assert intersector.intersect((0.25, 0.25, 1.0), (0, 0, -1)) is not None
        assert intersector.intersect((0.25, 0.25, -1.0), (0, 0, 1)) is None

    def test_uv_and_material_index(self):
        mesh = unit_triangle(uvs=[[0, 0], [1, 0], [0, 1]], material_indices=[3])
        hit = RayMeshIntersector(mesh).intersect((0.5, 0.25, 1.0), (0, 0, -1))

        assert hit is not None
        np.testing.assert_allclose(hit.uv, (0.5, 0.25))
        assert hit.material_index == 3

    def test_nearest_of_two_layers(self):
        mesh = TriangleMesh(
            positions=[
                [0, 0, 0], [1, 0, 0], [0, 1, 0],
                [0, 0, 0.5], [1, 0, 0.5], [0, 1, 0.5],
            ],
            faces=[[0, 1, 2], [3, 4, 5]],
        )
        hit = RayMeshIntersector(mesh).intersect((0.2, 0.2, 1.0), (0, 0, -1))
        assert hit.face_index == 1
        assert abs(hit.distance - 0.5) < 1e-12

    def test_bucketed_matches_bruteforce(self):
        rng = np.random.default_rng(42)
        positions = rng.uniform(-1, 1, size=(90, 3))
        faces = np.arange(90).reshape(-1, 3)
        intersector = RayMeshIntersector(TriangleMesh(positions, faces), cell_size=0.2)

        origins = rng.uniform(-1, 1, size=(300, 3))
        directions = np.tile(np.array([[1.0, 0.0, 0.0], [0.0, -1.0, 0.0]]), (150, 1))

        bounded = intersector.intersect_many(origins, directions, 0.3)
        unbounded = intersector.intersect_many(origins, directions)

        expected = unbounded.hit_mask & (unbounded.distance <= 0.3)
        np.testing.assert_array_equal(bounded.hit_mask, expected)
        np.testing.assert_allclose(
            bounded.distance[expected], unbounded.distance[expected]
        )

    def test_empty_mesh(self):
        intersector = RayMeshIntersector(TriangleMesh(np.zeros((0, 3)), np.zeros((0, 3))))
        hits = intersector.intersect_many(np.zeros((4, 3)), np.tile([1.0, 0, 0], (4, 1)), 1.0)
        assert not hits.hit_mask.any()

    def test_large_cell_count_is_bounded(self):
        mesh = TriangleMesh(
            positions=[[0, 0, 0], [100, 0, 0], [0, 100, 100]],
            faces=[[0, 1, 2]],
        )
        intersector = RayMeshIntersector(mesh, cell_size=0.01)
        assert intersector.bucket_count <= 1 << 21


if __name__ == "__main__":
    unittest.main(verbosity=2)
