"""Immutable mesh, skeleton and skin-binding snapshots.

These are the values exchanged at every engine boundary.  Arrays are
copied on construction and flagged read-only, so a snapshot handed to an
engine cannot be changed by it; engines build new snapshots instead.

Binding indices address joints (one render bone per joint).
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from rigforge.constants import EPSILON, MAX_INFLUENCES
from rigforge.core.errors import GeometryDegenerate, InputError


def _frozen(arr, dtype, shape_tail: tuple, name: str) -> NDArray:
    a = np.array(arr, dtype=dtype, copy=True)
    if a.size == 0:
        a = a.reshape((0,) + shape_tail)
    if a.ndim != 1 + len(shape_tail) or a.shape[1:] != shape_tail:
        raise InputError(f"{name} must have shape (N, {', '.join(map(str, shape_tail))}), got {a.shape}")
    a.setflags(write=False)
    return a


@dataclass(frozen=True, eq=False)
class Mesh:
    """Triangle mesh: ``vertices`` (V, 3) float64, ``faces`` (F, 3) int64."""
    vertices: NDArray[np.float64]
    faces: NDArray[np.int64]

    def __post_init__(self):
        object.__setattr__(self, "vertices", _frozen(self.vertices, np.float64, (3,), "vertices"))
        object.__setattr__(self, "faces", _frozen(self.faces, np.int64, (3,), "faces"))

    @property
    def vertex_count(self) -> int:
        return len(self.vertices)

    @property
    def face_count(self) -> int:
        return len(self.faces)

    def centroid(self) -> NDArray[np.float64]:
        if self.vertex_count == 0:
            return np.zeros(3)
        return self.vertices.mean(axis=0)

    def mean_edge_length(self) -> float:
        if self.face_count == 0:
            return 0.0
        f = self.faces
        v = self.vertices
        lengths = np.concatenate([
            np.linalg.norm(v[f[:, 1]] - v[f[:, 0]], axis=1),
            np.linalg.norm(v[f[:, 2]] - v[f[:, 1]], axis=1),
            np.linalg.norm(v[f[:, 0]] - v[f[:, 2]], axis=1),
        ])
        return float(lengths.mean())

    def validate(self) -> None:
        if not np.all(np.isfinite(self.vertices)):
            raise InputError("mesh has non-finite vertex coordinates")
        if self.face_count and (self.faces.min() < 0 or self.faces.max() >= self.vertex_count):
            bad = int(np.argmax((self.faces < 0).any(axis=1) | (self.faces >= self.vertex_count).any(axis=1)))
            raise InputError(
                f"face {bad} references a vertex outside 0..{self.vertex_count - 1}"
            )


@dataclass(frozen=True, eq=False)
class Skeleton:
    """Joints (J, 3) and bones (B, 2) as joint-index pairs."""
    joints: NDArray[np.float64]
    bones: NDArray[np.int64]

    def __post_init__(self):
        object.__setattr__(self, "joints", _frozen(self.joints, np.float64, (3,), "joints"))
        object.__setattr__(self, "bones", _frozen(self.bones, np.int64, (2,), "bones"))

    @property
    def joint_count(self) -> int:
        return len(self.joints)

    @property
    def bone_count(self) -> int:
        return len(self.bones)

    def bone_segments(self) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        """(B, 3) start and end positions of every bone."""
        return self.joints[self.bones[:, 0]], self.joints[self.bones[:, 1]]

    def validate(self) -> None:
        if not np.all(np.isfinite(self.joints)):
            raise InputError("skeleton has non-finite joint coordinates")
        if self.bone_count == 0:
            return
        if self.bones.min() < 0 or self.bones.max() >= self.joint_count:
            raise InputError(f"bone endpoint outside joint range 0..{self.joint_count - 1}")
        for i, (a, b) in enumerate(self.bones):
            if a == b:
                raise InputError(f"bone {i} connects joint {a} to itself")
            if np.linalg.norm(self.joints[b] - self.joints[a]) < EPSILON:
                raise GeometryDegenerate("bone has zero length", entity=f"bone {i}")


@dataclass(frozen=True, eq=False)
class SkinBinding:
    """Per-vertex joint influences: ``indices`` and ``weights``, both (V, K)."""
    indices: NDArray[np.int64]
    weights: NDArray[np.float64]

    def __post_init__(self):
        idx = np.array(self.indices, dtype=np.int64, copy=True)
        w = np.array(self.weights, dtype=np.float64, copy=True)
        if idx.ndim == 1:
            idx = idx[:, np.newaxis]
        if w.ndim == 1:
            w = w[:, np.newaxis]
        if idx.shape != w.shape:
            raise InputError(f"binding indices {idx.shape} and weights {w.shape} differ in shape")
        idx.setflags(write=False)
        w.setflags(write=False)
        object.__setattr__(self, "indices", idx)
        object.__setattr__(self, "weights", w)

    @property
    def vertex_count(self) -> int:
        return len(self.indices)

    @classmethod
    def default(cls, vertex_count: int) -> "SkinBinding":
        """Every vertex fully bound to joint 0."""
        idx = np.zeros((vertex_count, 1), dtype=np.int64)
        w = np.ones((vertex_count, 1), dtype=np.float64)
        return cls(idx, w)

    @classmethod
    def from_dense(cls, dense: NDArray, max_influences: Optional[int] = None) -> "SkinBinding":
        """Build from a (V, J) weight matrix, keeping every column or the top ``max_influences``."""
        dense = np.asarray(dense, dtype=np.float64)
        n_vert, n_joint = dense.shape
        k = n_joint if max_influences is None else min(max_influences, n_joint)
        if k == 0:
            return cls(np.zeros((n_vert, 1), dtype=np.int64), np.zeros((n_vert, 1)))
        # Stable descending order: ties resolve to the lower joint index
        order = np.argsort(-dense, axis=1, kind="stable")[:, :k]
        weights = np.take_along_axis(dense, order, axis=1)
        return cls(order, weights)

    def to_dense(self, joint_count: int) -> NDArray[np.float64]:
        """(V, J) matrix with duplicate joint entries summed."""
        dense = np.zeros((self.vertex_count, joint_count), dtype=np.float64)
        rows = np.repeat(np.arange(self.vertex_count), self.indices.shape[1])
        np.add.at(dense, (rows, self.indices.ravel()), self.weights.ravel())
        return dense

    def normalized(self, max_influences: int = MAX_INFLUENCES) -> "SkinBinding":
        """Top ``max_influences`` joints per vertex, non-negative, summing to 1.

        Vertices whose weights are all zero fall back to (joint 0, 1).
        """
        n_joint = int(self.indices.max()) + 1 if self.indices.size else 1
        dense = np.clip(self.to_dense(n_joint), 0.0, None)
        top = SkinBinding.from_dense(dense, max_influences)
        w = np.array(top.weights)
        idx = np.array(top.indices)
        totals = w.sum(axis=1)
        empty = totals <= EPSILON
        w[~empty] /= totals[~empty, np.newaxis]
        w[empty] = 0.0
        w[empty, 0] = 1.0
        idx[empty] = 0
        # Zero-weight slots point at joint 0
        idx[w == 0.0] = 0
        return SkinBinding(idx, w)

    def remapped(self, mapping: NDArray) -> "SkinBinding":
        """Rewrite joint indices through ``mapping[old] -> new``."""
        mapping = np.asarray(mapping, dtype=np.int64)
        return SkinBinding(mapping[self.indices], self.weights)

    def take(self, vertex_ids: NDArray) -> "SkinBinding":
        vertex_ids = np.asarray(vertex_ids, dtype=np.int64)
        return SkinBinding(self.indices[vertex_ids], self.weights[vertex_ids])

    def validate(self, vertex_count: int, joint_count: int) -> None:
        if self.vertex_count != vertex_count:
            raise InputError(
                f"binding covers {self.vertex_count} vertices, mesh has {vertex_count}"
            )
        if not np.all(np.isfinite(self.weights)):
            raise InputError("binding has non-finite weights")
        if self.weights.size and self.weights.min() < 0:
            raise InputError("binding has negative weights")
        if self.indices.size and (self.indices.min() < 0 or self.indices.max() >= max(joint_count, 1)):
            raise InputError(f"binding references a joint outside 0..{max(joint_count, 1) - 1}")


@dataclass(frozen=True, eq=False)
class SkinnedMeshData:
    """Mesh + skeleton + per-vertex binding: the unit every engine consumes."""
    mesh: Mesh
    skeleton: Skeleton
    binding: SkinBinding

    @classmethod
    def from_arrays(
        cls,
        vertices,
        faces,
        joints=None,
        bones=None,
        skin_indices=None,
        skin_weights=None,
    ) -> "SkinnedMeshData":
        mesh = Mesh(vertices, faces)
        skeleton = Skeleton(
            np.zeros((0, 3)) if joints is None else joints,
            np.zeros((0, 2), dtype=np.int64) if bones is None else bones,
        )
        if skin_indices is None:
            binding = SkinBinding.default(mesh.vertex_count)
        else:
            binding = SkinBinding(skin_indices, skin_weights)
        return cls(mesh, skeleton, binding)

    @property
    def vertices(self) -> NDArray[np.float64]:
        return self.mesh.vertices

    @property
    def faces(self) -> NDArray[np.int64]:
        return self.mesh.faces

    def validate(self) -> None:
        """Raise InputError / GeometryDegenerate for malformed data."""
        self.mesh.validate()
        self.skeleton.validate()
        self.binding.validate(self.mesh.vertex_count, self.skeleton.joint_count)

    def with_binding(self, binding: SkinBinding) -> "SkinnedMeshData":
        return SkinnedMeshData(self.mesh, self.skeleton, binding)

    def normalized(self, max_influences: int = MAX_INFLUENCES) -> "SkinnedMeshData":
        return self.with_binding(self.binding.normalized(max_influences))
