"""Build live skinned scene nodes from snapshots, and read them back.

The holder node sits at the mesh centroid and carries a
:class:`SkinnedMeshInstance` whose positions are relative to it.  Joint
nodes hang under the holder as a hierarchy found by walking the bone graph
depth-first from joint 0; each joint's local position is relative to its
parent, so world transforms compose down the chain.
"""

import logging

import networkx as nx
import numpy as np

from rigforge.constants import MAX_INFLUENCES
from rigforge.core.errors import InputError
from rigforge.core.math_utils import transform_points
from rigforge.core.mesh import BufferGeometry, SkinnedMeshInstance
from rigforge.core.scene_graph import RenderSkeleton, SceneNode
from rigforge.skinning.model import Mesh, SkinBinding, SkinnedMeshData, Skeleton

logger = logging.getLogger(__name__)


def joint_parents(joint_count: int, bones: np.ndarray) -> list[int]:
    """Parent joint per joint (-1 for roots), DFS from joint 0 then each unreached joint."""
    graph = nx.Graph()
    graph.add_nodes_from(range(joint_count))
    graph.add_edges_from(np.asarray(bones, dtype=np.int64).reshape(-1, 2).tolist())
    parents = [-1] * joint_count
    reached = set()
    for root in range(joint_count):
        if root in reached:
            continue
        reached.add(root)
        for parent, child in nx.dfs_edges(graph, source=root):
            parents[child] = parent
            reached.add(child)
    return parents


def _padded(binding: SkinBinding, width: int) -> tuple[np.ndarray, np.ndarray]:
    idx = np.zeros((binding.vertex_count, width), dtype=np.uint16)
    w = np.zeros((binding.vertex_count, width), dtype=np.float32)
    k = min(width, binding.indices.shape[1])
    idx[:, :k] = binding.indices[:, :k]
    w[:, :k] = binding.weights[:, :k]
    return idx, w


def build_skinned_mesh(data: SkinnedMeshData, name: str = "skinned_mesh") -> SceneNode:
    """Create a scene node holding a render-ready skinned mesh."""
    data.validate()
    mesh = data.mesh
    centroid = mesh.centroid()

    skeleton = data.skeleton
    binding = data.binding
    if skeleton.bone_count == 0:
        logger.debug("%s: no bones, synthesizing a root joint at the centroid", name)
        skeleton = Skeleton(centroid.reshape(1, 3), np.zeros((0, 2), dtype=np.int64))
        binding = SkinBinding.default(mesh.vertex_count)
    binding = binding.normalized(MAX_INFLUENCES)

    holder = SceneNode(name)
    holder.set_position(*centroid)

    geometry = BufferGeometry(
        positions=(mesh.vertices - centroid).astype(np.float32).ravel(),
        normals=np.zeros(mesh.vertex_count * 3, dtype=np.float32),
        indices=mesh.faces.astype(np.uint32).ravel(),
        vertex_count=mesh.vertex_count,
    )
    geometry.compute_normals()
    geometry.skin_indices, geometry.skin_weights = _padded(binding, MAX_INFLUENCES)

    parents = joint_parents(skeleton.joint_count, skeleton.bones)
    joint_nodes = [SceneNode(f"{name}_joint_{i}") for i in range(skeleton.joint_count)]
    for i, node in enumerate(joint_nodes):
        p = parents[i]
        origin = centroid if p < 0 else skeleton.joints[p]
        node.set_position(*(skeleton.joints[i] - origin))
        (holder if p < 0 else joint_nodes[p]).add(node)

    holder.mesh = SkinnedMeshInstance(
        name=name,
        geometry=geometry,
        skeleton=RenderSkeleton(joint_nodes, skeleton.bones),
    )
    holder.update_world_matrix(force=True)
    logger.debug(
        "Built %s: %d vertices, %d joints (%d roots)",
        name, mesh.vertex_count, skeleton.joint_count, parents.count(-1),
    )
    return holder


def _root_of(node: SceneNode) -> SceneNode:
    while node.parent is not None:
        node = node.parent
    return node


def extract_skinned_mesh(node: SceneNode) -> SkinnedMeshData:
    """Read a world-space snapshot from a node built by :func:`build_skinned_mesh`."""
    instance = node.mesh
    if not isinstance(instance, SkinnedMeshInstance) or instance.skeleton is None:
        raise InputError(f"node {node.name!r} does not carry a skinned mesh")
    _root_of(node).update_world_matrix(force=True)

    geometry = instance.geometry
    vertices = transform_points(node.world_matrix, geometry.positions.reshape(-1, 3))
    faces = geometry.indices.reshape(-1, 3).astype(np.int64)
    skeleton = instance.skeleton
    if geometry.has_skin:
        binding = SkinBinding(
            geometry.skin_indices.astype(np.int64),
            geometry.skin_weights.astype(np.float64),
        )
    else:
        binding = SkinBinding.default(len(vertices))
    return SkinnedMeshData(
        mesh=Mesh(vertices, faces),
        skeleton=Skeleton(skeleton.world_positions(), skeleton.bones),
        binding=binding,
    )
