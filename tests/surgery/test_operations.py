"""Tests for cut and merge on scene nodes."""

import numpy as np

from rigforge.core.scene_graph import SceneNode
from rigforge.geometry.primitives import make_icosphere, make_tube
from rigforge.geometry.topology import TopologyGraph
from rigforge.skinning.builder import build_skinned_mesh, extract_skinned_mesh
from rigforge.skinning.model import Skeleton, SkinnedMeshData
from rigforge.skinning.weights import compute_skin_binding
from rigforge.surgery import Attachment, Plane, cut_object, merge_objects


def _node(mesh, joints, bones, name):
    skel = Skeleton(joints, bones)
    data = SkinnedMeshData(mesh, skel, compute_skin_binding(mesh, skel))
    return build_skinned_mesh(data, name)


def _sphere_node():
    return _node(make_icosphere(2), [[0, 0, -0.8], [0, 0, 0.1], [0, 0, 0.8]], [[0, 1], [1, 2]], "body")


class TestCutObject:

    def test_pieces_are_named_nodes(self):
        node = _sphere_node()
        pieces = cut_object(node, Plane((0, 0, 1), 0.0))
        assert [p.name for p in pieces] == ["body_piece0", "body_piece1"]
        for piece in pieces:
            data = extract_skinned_mesh(piece)
            data.validate()
            assert data.skeleton.joint_count == 2

    def test_source_node_untouched(self):
        node = _sphere_node()
        before = node.mesh.geometry.positions.copy()
        cut_object(node, Plane((0, 0, 1), 0.0), sharpness=0.0)
        np.testing.assert_array_equal(node.mesh.geometry.positions, before)
        assert len(node.children) == 1

    def test_cut_respects_parent_transform(self):
        scene = SceneNode("scene")
        node = _sphere_node()
        scene.add(node)
        node.set_position(0.0, 0.0, 10.0)
        # The plane at z=10 halves the moved sphere
        pieces = cut_object(node, Plane((0, 0, 1), -10.0))
        assert len(pieces) == 2
        heights = sorted(extract_skinned_mesh(p).mesh.centroid()[2] for p in pieces)
        assert heights[0] < 10.0 < heights[1]


def test_merge_objects():
    limb = _node(
        make_tube(radius=0.4, length=2.0, segments=12, rings=8, center=(0, 0, 1.5)),
        [[0, 0, 0.7], [0, 0, 1.5], [0, 0, 2.3]], [[0, 1], [1, 2]], "limb",
    )
    body = _node(make_icosphere(2), [[0, 0, -0.5], [0, 0, 0.5]], [[0, 1]], "body")
    merged = merge_objects(limb, body, Attachment("connect", 0, 1))
    assert merged.name == "limb+body"
    data = extract_skinned_mesh(merged)
    assert data.skeleton.joint_count == 5
    assert TopologyGraph(data.mesh.faces).boundary_edges() == []

    named = merge_objects(limb, body, Attachment("connect", 0, 1), name="torso")
    assert named.name == "torso"
