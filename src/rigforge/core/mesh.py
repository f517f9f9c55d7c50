"""Render-side buffers for skinned meshes attached to scene nodes."""

from dataclasses import dataclass
from typing import Any, Optional

import numpy as np
from numpy.typing import NDArray


@dataclass
class BufferGeometry:
    """Flat vertex attribute arrays as a renderer consumes them.

    positions: (V*3,) float32, relative to the owning node
    normals: (V*3,) float32
    indices: (F*3,) uint32 triangle list
    skin_indices: (V, 4) uint16 joint indices, optional
    skin_weights: (V, 4) float32 joint weights, optional
    """
    positions: NDArray[np.float32]
    normals: NDArray[np.float32]
    indices: Optional[NDArray[np.uint32]] = None
    vertex_count: int = 0
    skin_indices: Optional[NDArray[np.uint16]] = None
    skin_weights: Optional[NDArray[np.float32]] = None

    def __post_init__(self):
        if self.vertex_count == 0:
            self.vertex_count = len(self.positions) // 3

    @property
    def triangle_count(self) -> int:
        if self.indices is not None:
            return len(self.indices) // 3
        return self.vertex_count // 3

    @property
    def has_skin(self) -> bool:
        return self.skin_indices is not None and self.skin_weights is not None

    def compute_normals(self) -> None:
        """Area-weighted per-vertex normals from the triangle list."""
        pos = self.positions.reshape(-1, 3).astype(np.float64)
        norms = np.zeros_like(pos)
        if self.indices is not None and len(self.indices):
            tri = self.indices.reshape(-1, 3).astype(np.int64)
            face_n = np.cross(pos[tri[:, 1]] - pos[tri[:, 0]], pos[tri[:, 2]] - pos[tri[:, 0]])
            for k in range(3):
                np.add.at(norms, tri[:, k], face_n)
        norms /= np.maximum(np.linalg.norm(norms, axis=1, keepdims=True), 1e-10)
        self.normals = norms.ravel().astype(np.float32)


@dataclass
class MeshInstance:
    """A named mesh attached to a scene node."""
    name: str
    geometry: BufferGeometry


@dataclass
class SkinnedMeshInstance(MeshInstance):
    """A mesh bound to a render skeleton.

    ``skeleton`` is a :class:`rigforge.core.scene_graph.RenderSkeleton`
    whose joint order matches the geometry's ``skin_indices``.
    """
    skeleton: Optional[Any] = None
