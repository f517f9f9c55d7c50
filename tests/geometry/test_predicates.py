"""Tests for point-in-mesh, plane fitting and 2D polygon predicates."""

import numpy as np
import pytest

from rigforge.core.errors import GeometryDegenerate
from rigforge.geometry.predicates import (
    fit_frame, is_clockwise, lift_to_3d, plane_basis, point_in_mesh,
    point_in_polygon, points_in_mesh, project_to_2d, ray_hit_counts, signed_area,
)
from rigforge.geometry.primitives import make_icosphere, make_tube


class TestPointInMesh:

    def setup_method(self):
        self.sphere = make_icosphere(2, radius=1.0)

    def test_center_inside(self):
        assert point_in_mesh(np.array([0.05, 0.02, 0.01]), self.sphere)

    def test_far_point_outside(self):
        assert not point_in_mesh(np.array([50.0, 0.0, 0.0]), self.sphere)

    def test_batch(self):
        pts = np.array([[0.1, 0.1, 0.1], [0.0, 0.0, 3.0], [-0.3, 0.2, -0.4], [2.0, 2.0, 2.0]])
        np.testing.assert_array_equal(points_in_mesh(pts, self.sphere), [True, False, True, False])

    def test_tube_interior(self):
        tube = make_tube(radius=0.5, length=2.0)
        assert point_in_mesh(np.array([0.1, -0.05, 0.3]), tube)
        assert not point_in_mesh(np.array([0.7, 0.0, 0.0]), tube)

    def test_hit_counts_chunked(self):
        rng = np.random.default_rng(0)
        pts = rng.uniform(-0.5, 0.5, size=(600, 3))
        counts = ray_hit_counts(pts, self.sphere.vertices, self.sphere.faces)
        assert counts.shape == (600,)
        # Points well inside a convex mesh cross its surface exactly once
        assert np.all(counts == 1)

    def test_empty_mesh(self):
        counts = ray_hit_counts(np.zeros((2, 3)), np.zeros((0, 3)), np.zeros((0, 3)))
        np.testing.assert_array_equal(counts, [0, 0])


class TestPlaneFit:

    def test_fit_xy_plane(self):
        pts = np.array([[0, 0, 2], [1, 0, 2], [1, 1, 2], [0, 1, 2], [0.5, 0.2, 2]], dtype=float)
        frame = fit_frame(pts)
        np.testing.assert_array_almost_equal(frame.normal, [0, 0, 1])
        np.testing.assert_array_almost_equal(frame.origin, pts.mean(axis=0))

    def test_normal_sign_deterministic(self):
        pts = np.array([[0, 0, 0], [0, 1, 0], [0, 0, 1], [0, 1, 1]], dtype=float)
        a = fit_frame(pts)
        b = fit_frame(pts[::-1])
        np.testing.assert_array_almost_equal(a.normal, b.normal)
        assert a.normal[0] > 0

    def test_basis_orthonormal(self):
        u, v = plane_basis(np.array([1.0, 2.0, -0.5]))
        n = np.array([1.0, 2.0, -0.5]) / np.linalg.norm([1.0, 2.0, -0.5])
        assert np.dot(u, v) == pytest.approx(0.0, abs=1e-12)
        assert np.dot(u, n) == pytest.approx(0.0, abs=1e-12)
        np.testing.assert_array_almost_equal(np.cross(u, v), n)

    def test_too_few_points(self):
        with pytest.raises(GeometryDegenerate):
            fit_frame(np.zeros((2, 3)))

    def test_coincident(self):
        with pytest.raises(GeometryDegenerate, match="coincident"):
            fit_frame(np.ones((5, 3)))

    def test_collinear(self):
        pts = np.outer(np.arange(5.0), [1.0, 2.0, 3.0])
        with pytest.raises(GeometryDegenerate, match="collinear"):
            fit_frame(pts)

    def test_project_lift_roundtrip(self):
        rng = np.random.default_rng(4)
        pts = rng.normal(size=(10, 3))
        pts[:, 2] = 0.5 * pts[:, 0] - 0.25 * pts[:, 1] + 3.0
        frame = fit_frame(pts)
        np.testing.assert_array_almost_equal(lift_to_3d(project_to_2d(pts, frame), frame), pts)


class TestPolygons:

    square = np.array([[0, 0], [1, 0], [1, 1], [0, 1]], dtype=float)

    def test_signed_area(self):
        assert signed_area(self.square) == pytest.approx(1.0)
        assert signed_area(self.square[::-1]) == pytest.approx(-1.0)

    def test_is_clockwise(self):
        assert not is_clockwise(self.square)
        assert is_clockwise(self.square[::-1])

    def test_point_in_polygon(self):
        pts = np.array([[0.5, 0.5], [1.5, 0.5], [0.1, 0.9], [-0.1, 0.5]])
        np.testing.assert_array_equal(point_in_polygon(pts, self.square), [True, False, True, False])

    def test_point_in_concave_polygon(self):
        # U shape open at the top
        poly = np.array([[0, 0], [3, 0], [3, 3], [2, 3], [2, 1], [1, 1], [1, 3], [0, 3]], dtype=float)
        pts = np.array([[0.5, 2.0], [1.5, 2.0], [2.5, 2.0], [1.5, 0.5]])
        np.testing.assert_array_equal(point_in_polygon(pts, poly), [True, False, True, True])
