"""Scene graph with hierarchical transforms for skinned meshes and joints.

A skinned object is a holder node carrying a
:class:`~rigforge.core.mesh.SkinnedMeshInstance`, with one child chain of
joint nodes per skeleton root.  World matrices compose parent to child, so
joint world positions follow any transform applied above the holder.
"""

from typing import Optional

import numpy as np
from numpy.typing import NDArray

from rigforge.core.math_utils import (
    Mat4, Vec3, Quat,
    mat4_identity, mat4_compose, quat_identity, vec3,
)
from rigforge.core.mesh import MeshInstance


class SceneNode:
    """A node in the scene graph hierarchy.

    position, quaternion, scale → local matrix.
    World matrix = parent.world_matrix @ local_matrix.
    """

    def __init__(self, name: str = ""):
        self.name = name
        self.parent: Optional["SceneNode"] = None
        self.children: list["SceneNode"] = []

        self.position: Vec3 = vec3()
        self.quaternion: Quat = quat_identity()
        self.scale: Vec3 = vec3(1, 1, 1)

        self.local_matrix: Mat4 = mat4_identity()
        self.world_matrix: Mat4 = mat4_identity()

        self.mesh: Optional[MeshInstance] = None

        self._matrix_dirty: bool = True

    def add(self, child: "SceneNode") -> "SceneNode":
        """Attach *child*, detaching it from its previous parent."""
        if child.parent is not None:
            child.parent.remove(child)
        child.parent = self
        self.children.append(child)
        child._matrix_dirty = True
        return self

    def remove(self, child: "SceneNode") -> "SceneNode":
        if child in self.children:
            self.children.remove(child)
            child.parent = None
        return self

    def set_position(self, x: float, y: float, z: float) -> "SceneNode":
        self.position = vec3(x, y, z)
        self._matrix_dirty = True
        return self

    def update_world_matrix(self, force: bool = False) -> None:
        """Recompute world matrices for this node and all descendants."""
        if self._matrix_dirty or force:
            self.local_matrix = mat4_compose(self.position, self.quaternion, self.scale)
            self._matrix_dirty = False

        if self.parent is not None:
            self.world_matrix = self.parent.world_matrix @ self.local_matrix
        else:
            self.world_matrix = self.local_matrix.copy()

        for child in self.children:
            child.update_world_matrix(force=force)

    def get_world_position(self) -> Vec3:
        return self.world_matrix[:3, 3].copy()


class RenderSkeleton:
    """Joint nodes of a skinned mesh plus the bone edges between them.

    ``joints[i]`` is the scene node for joint ``i``; ``bones`` is the
    ``(B, 2)`` joint index array the hierarchy was built from.
    """

    def __init__(self, joints: list[SceneNode], bones: NDArray):
        self.joints = joints
        self.bones = np.asarray(bones, dtype=np.int64).reshape(-1, 2)

    @property
    def joint_count(self) -> int:
        return len(self.joints)

    def world_positions(self) -> NDArray[np.float64]:
        """(J, 3) joint world positions; world matrices must be current."""
        if not self.joints:
            return np.zeros((0, 3), dtype=np.float64)
        return np.array([j.get_world_position() for j in self.joints], dtype=np.float64)

