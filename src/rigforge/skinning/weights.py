"""Harmonic skin weights from mesh geometry and a skeleton.

One policy is implemented, a local free/fixed partition per bone:

1. Every vertex is anchored to its nearest bone (clamped point-to-segment
   distance).
2. For bone *i*, vertices anchored to *i* are held at 1.  Vertices anchored
   to a bone that shares a joint with *i* are free, except those lying on
   the far half of that bone (away from the shared joint), which are held
   at 0 together with every vertex anchored elsewhere.
3. The free values solve the cotangent Laplace equation with the held
   values as boundary conditions (Cholesky, one system per bone).
4. A bone's weight is credited to its joints: to both endpoints
   (``"endpoints"``), or split by the projection parameter along the bone
   (``"projection"``).

The result is left unnormalized; callers normalize through
:meth:`SkinBinding.normalized`.
"""

import logging
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from scipy.sparse.csgraph import connected_components

from rigforge.constants import EPSILON
from rigforge.core.errors import InputError, SolveError
from rigforge.core.math_utils import batch_segment_distances
from rigforge.core.settings import SolverSettings
from rigforge.core.sparse import CholeskySolver
from rigforge.geometry.laplacian import cotangent_weights, laplacian_from_weights
from rigforge.skinning.model import Mesh, Skeleton, SkinBinding

logger = logging.getLogger(__name__)


class SkinWeightSolver:
    """Computes per-joint skin weights for a mesh/skeleton pair."""

    # Fraction of an adjacent bone (from the shared joint) left free
    FREE_SPAN = 0.5

    def __init__(self, settings: Optional[SolverSettings] = None):
        self.settings = settings or SolverSettings()
        self.settings.validate()

    def compute(self, mesh: Mesh, skeleton: Skeleton) -> NDArray[np.float64]:
        """Unnormalized ``(V, J)`` joint weights."""
        self._check_inputs(mesh, skeleton)
        starts, ends = skeleton.bone_segments()
        dists, t_vals = batch_segment_distances(mesh.vertices, starts, ends)   # (V, B)
        anchor = np.argmin(dists, axis=1)                                      # (V,)
        anchor_t = t_vals[np.arange(mesh.vertex_count), anchor]               # (V,)

        cot = cotangent_weights(mesh.vertices, mesh.faces)
        lap = laplacian_from_weights(cot)

        weights = np.zeros((mesh.vertex_count, skeleton.joint_count), dtype=np.float64)
        for i, (j0, j1) in enumerate(skeleton.bones):
            if not np.any(anchor == i):
                if self.settings.unreferenced_bones == "error":
                    raise InputError(f"bone {i} is not the nearest bone of any vertex")
                logger.warning("Skipping bone %d: no vertex is anchored to it", i)
                continue
            bone_w = self._solve_bone(i, skeleton, anchor, anchor_t, cot, lap)
            if self.settings.joint_aggregation == "projection":
                t = t_vals[:, i]
                weights[:, j0] += bone_w * (1.0 - t)
                weights[:, j1] += bone_w * t
            else:
                weights[:, j0] += bone_w
                weights[:, j1] += bone_w

        logger.info(
            "Solved skin weights: %d vertices, %d bones, %d joints",
            mesh.vertex_count, skeleton.bone_count, skeleton.joint_count,
        )
        return weights

    def compute_binding(self, mesh: Mesh, skeleton: Skeleton) -> SkinBinding:
        """Normalized binding with at most ``max_influences`` joints per vertex."""
        dense = self.compute(mesh, skeleton)
        return SkinBinding.from_dense(dense).normalized(self.settings.max_influences)

    def _check_inputs(self, mesh: Mesh, skeleton: Skeleton) -> None:
        mesh.validate()
        if skeleton.bone_count == 0:
            raise InputError("skeleton has no bones to compute weights for")
        # Raises GeometryDegenerate for zero-length bones
        skeleton.validate()

    def _free_mask(
        self, i: int, skeleton: Skeleton, anchor: NDArray, anchor_t: NDArray,
    ) -> NDArray[np.bool_]:
        bones = skeleton.bones
        shared = set(bones[i].tolist())
        free = np.zeros(len(anchor), dtype=bool)
        for j, (a, b) in enumerate(bones):
            if j == i or not ({int(a), int(b)} & shared):
                continue
            on_j = anchor == j
            # Distance along bone j measured from the joint it shares with i
            from_shared = anchor_t if int(a) in shared else 1.0 - anchor_t
            free |= on_j & (from_shared < self.FREE_SPAN)
        return free

    def _solve_bone(self, i, skeleton, anchor, anchor_t, cot, lap) -> NDArray[np.float64]:
        system = f"skin weights bone {i}"
        held = (anchor == i).astype(np.float64)
        free = self._free_mask(i, skeleton, anchor, anchor_t)
        free_ids = np.flatnonzero(free)
        if len(free_ids) == 0:
            return held
        fixed_ids = np.flatnonzero(~free)

        w_ff = cot[free_ids][:, free_ids]
        w_fc = cot[free_ids][:, fixed_ids]
        # Every free component needs a fixed neighbour, or L_ff is singular
        n_comp, labels = connected_components(abs(w_ff) > 0, directed=False)
        touches = np.asarray(abs(w_fc).sum(axis=1)).ravel() > EPSILON
        for c in range(n_comp):
            if not np.any(touches[labels == c]):
                raise SolveError(
                    f"{int(np.sum(labels == c))} free vertices have no held neighbour "
                    "(disconnected mesh component)",
                    system=system,
                )

        l_ff = lap[free_ids][:, free_ids]
        rhs = w_fc @ held[fixed_ids]
        out = held.copy()
        out[free_ids] = CholeskySolver(system).factorize(l_ff).solve(rhs)
        logger.debug("Bone %d: %d free, %d held vertices", i, len(free_ids), len(fixed_ids))
        return out


def compute_skin_binding(
    mesh: Mesh, skeleton: Skeleton, settings: Optional[SolverSettings] = None,
) -> SkinBinding:
    """Convenience wrapper around :meth:`SkinWeightSolver.compute_binding`."""
    return SkinWeightSolver(settings).compute_binding(mesh, skeleton)
