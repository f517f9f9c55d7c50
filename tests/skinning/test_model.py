"""Tests for the immutable mesh / skeleton / binding snapshots."""

import numpy as np
import pytest

from rigforge.core.errors import GeometryDegenerate, InputError
from rigforge.skinning.model import Mesh, Skeleton, SkinBinding, SkinnedMeshData


def _quad():
    vertices = np.array([[0, 0, 0], [1, 0, 0], [1, 1, 0], [0, 1, 0]], dtype=np.float64)
    faces = np.array([[0, 1, 2], [0, 2, 3]])
    return vertices, faces


class TestMesh:

    def test_arrays_are_copied_and_read_only(self):
        vertices, faces = _quad()
        mesh = Mesh(vertices, faces)
        vertices[0, 0] = 42.0
        assert mesh.vertices[0, 0] == 0.0
        with pytest.raises(ValueError):
            mesh.vertices[0, 0] = 1.0

    def test_counts_and_centroid(self):
        mesh = Mesh(*_quad())
        assert mesh.vertex_count == 4
        assert mesh.face_count == 2
        np.testing.assert_array_almost_equal(mesh.centroid(), [0.5, 0.5, 0])

    def test_mean_edge_length(self):
        mesh = Mesh(*_quad())
        # Four unit edges counted once, diagonal counted twice
        expected = (4 * 1.0 + 2 * np.sqrt(2)) / 6
        assert mesh.mean_edge_length() == pytest.approx(expected)

    def test_empty_mesh(self):
        mesh = Mesh(np.zeros((0, 3)), np.zeros((0, 3)))
        assert mesh.faces.shape == (0, 3)
        assert mesh.mean_edge_length() == 0.0
        mesh.validate()

    def test_bad_shape(self):
        with pytest.raises(InputError):
            Mesh(np.zeros((4, 2)), np.zeros((0, 3)))

    def test_face_out_of_range(self):
        vertices, _ = _quad()
        mesh = Mesh(vertices, [[0, 1, 4]])
        with pytest.raises(InputError, match="face 0"):
            mesh.validate()

    def test_non_finite(self):
        vertices, faces = _quad()
        vertices[2, 1] = np.nan
        with pytest.raises(InputError):
            Mesh(vertices, faces).validate()


class TestSkeleton:

    def test_bone_segments(self):
        skel = Skeleton([[0, 0, 0], [0, 0, 1], [0, 1, 1]], [[0, 1], [1, 2]])
        starts, ends = skel.bone_segments()
        np.testing.assert_array_equal(starts, [[0, 0, 0], [0, 0, 1]])
        np.testing.assert_array_equal(ends, [[0, 0, 1], [0, 1, 1]])
        assert skel.joint_count == 3 and skel.bone_count == 2

    def test_zero_length_bone(self):
        skel = Skeleton([[0, 0, 0], [0, 0, 0]], [[0, 1]])
        with pytest.raises(GeometryDegenerate) as info:
            skel.validate()
        assert info.value.entity == "bone 0"

    def test_self_loop(self):
        with pytest.raises(InputError):
            Skeleton([[0, 0, 0], [1, 0, 0]], [[1, 1]]).validate()

    def test_out_of_range(self):
        with pytest.raises(InputError):
            Skeleton([[0, 0, 0], [1, 0, 0]], [[0, 2]]).validate()

    def test_degenerate_is_input_error(self):
        assert issubclass(GeometryDegenerate, InputError)


class TestSkinBinding:

    def test_default(self):
        b = SkinBinding.default(3)
        np.testing.assert_array_equal(b.indices, [[0], [0], [0]])
        np.testing.assert_array_equal(b.weights, [[1], [1], [1]])

    def test_from_dense_orders_by_weight(self):
        dense = np.array([[0.1, 0.7, 0.2], [0.5, 0.5, 0.0]])
        b = SkinBinding.from_dense(dense, max_influences=2)
        np.testing.assert_array_equal(b.indices, [[1, 2], [0, 1]])
        np.testing.assert_array_almost_equal(b.weights, [[0.7, 0.2], [0.5, 0.5]])

    def test_to_dense_sums_duplicates(self):
        b = SkinBinding([[1, 1]], [[0.25, 0.5]])
        np.testing.assert_array_almost_equal(b.to_dense(3), [[0, 0.75, 0]])

    def test_normalized_keeps_top_four(self):
        b = SkinBinding([[0, 1, 2, 3, 4]], [[0.1, 0.2, 0.3, 0.4, 0.5]])
        n = b.normalized(4)
        assert n.indices.shape == (1, 4)
        np.testing.assert_array_equal(n.indices[0], [4, 3, 2, 1])
        assert n.weights.sum() == pytest.approx(1.0)
        assert n.weights[0, 0] == pytest.approx(0.5 / 1.4)

    def test_normalized_clips_negative(self):
        n = SkinBinding([[0, 1]], [[-0.5, 2.0]]).normalized()
        assert n.indices[0, 0] == 1
        assert n.weights[0, 0] == pytest.approx(1.0)
        assert np.all(n.weights >= 0)

    def test_normalized_all_zero_falls_back_to_root(self):
        n = SkinBinding([[2, 3]], [[0.0, 0.0]]).normalized()
        assert n.indices[0, 0] == 0
        assert n.weights[0, 0] == 1.0

    def test_zero_slots_point_at_joint_zero(self):
        n = SkinBinding([[5, 6]], [[1.0, 0.0]]).normalized()
        assert n.weights[0, 1] == 0.0
        assert n.indices[0, 1] == 0

    def test_remapped_and_take(self):
        b = SkinBinding([[0, 1], [1, 0], [0, 0]], [[0.5, 0.5], [1, 0], [1, 0]])
        r = b.remapped(np.array([7, 9]))
        np.testing.assert_array_equal(r.indices, [[7, 9], [9, 7], [7, 7]])
        t = b.take([2, 0])
        np.testing.assert_array_equal(t.indices, [[0, 0], [0, 1]])

    def test_shape_mismatch(self):
        with pytest.raises(InputError):
            SkinBinding([[0, 1]], [[1.0]])

    def test_validate(self):
        b = SkinBinding([[0], [3]], [[1.0], [1.0]])
        b.validate(2, 4)
        with pytest.raises(InputError):
            b.validate(2, 3)
        with pytest.raises(InputError):
            b.validate(3, 4)
        with pytest.raises(InputError):
            SkinBinding([[0]], [[-1.0]]).validate(1, 1)


class TestSkinnedMeshData:

    def test_from_arrays_defaults(self):
        vertices, faces = _quad()
        data = SkinnedMeshData.from_arrays(vertices, faces)
        assert data.skeleton.joint_count == 0
        assert data.binding.vertex_count == 4
        data.validate()

    def test_validate_binding_length(self):
        vertices, faces = _quad()
        data = SkinnedMeshData.from_arrays(
            vertices, faces, joints=[[0, 0, 0], [1, 0, 0]], bones=[[0, 1]],
            skin_indices=np.zeros((3, 1)), skin_weights=np.ones((3, 1)),
        )
        with pytest.raises(InputError, match="binding covers 3"):
            data.validate()

    def test_normalized_returns_new_snapshot(self):
        vertices, faces = _quad()
        data = SkinnedMeshData.from_arrays(
            vertices, faces, joints=[[0, 0, 0], [1, 0, 0]], bones=[[0, 1]],
            skin_indices=np.tile([0, 1], (4, 1)), skin_weights=np.tile([2.0, 2.0], (4, 1)),
        )
        n = data.normalized()
        np.testing.assert_array_almost_equal(n.binding.weights, 0.5)
        np.testing.assert_array_almost_equal(data.binding.weights, 2.0)
        assert n.mesh is data.mesh
