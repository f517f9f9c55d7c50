"""Union of two skinned meshes.

Stages, each returning an explicit result struct:

- :meth:`MeshMerge.prealign`: move A onto B (snap) or insert a joint on
  B's target bone (split).
- :meth:`MeshMerge.remove_interior` -> :class:`RemovalResult`: drop
  triangles with a vertex inside the other mesh.
- :meth:`MeshMerge.stitch` -> :class:`StitchResult`: combine buffers and
  skeletons, pair boundary loops and triangulate a patch per pair.
- :meth:`MeshMerge.relax`: smooth a band around the patches.
- :meth:`MeshMerge.reconcile`: keep or recompute bindings, compact and
  normalize.

The engine keeps its removal and stitch results, so re-running with new
smoothing parameters only repeats relaxation and reconciliation.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
from numpy.typing import NDArray

from rigforge.core.errors import InputError, TopologyError
from rigforge.core.math_utils import segment_projection
from rigforge.core.settings import SurgeryConfig
from rigforge.geometry.laplacian import relax, uniform_laplacian
from rigforge.geometry.predicates import fit_frame, is_clockwise, points_in_mesh, project_to_2d, signed_area
from rigforge.geometry.topology import TopologyGraph, orient_against
from rigforge.geometry.triangulation import triangulate_loops
from rigforge.skinning.model import Mesh, Skeleton, SkinBinding, SkinnedMeshData
from rigforge.skinning.weights import SkinWeightSolver

logger = logging.getLogger(__name__)

MODES = ("snap", "split", "connect")


@dataclass(frozen=True)
class Attachment:
    """How B attaches to A.

    ``source_joint`` indexes A's joints.  ``target`` is a B joint for
    ``snap`` and ``connect``, or the two joints of a B bone for ``split``.
    """
    mode: str
    source_joint: int
    target: Union[int, tuple[int, int]]


@dataclass
class RemovalResult:
    a: SkinnedMeshData
    b: SkinnedMeshData
    # B joint that A's source joint attaches to after pre-alignment
    target_joint: int
    a_vertex_keep: NDArray[np.bool_]
    b_vertex_keep: NDArray[np.bool_]
    a_face_keep: NDArray[np.bool_]
    b_face_keep: NDArray[np.bool_]


@dataclass
class StitchResult:
    vertices: NDArray[np.float64]
    faces: NDArray[np.int64]
    patch_faces: NDArray[np.int64]
    seeds: NDArray[np.int64]
    loop_pairs: list[tuple[list[int], list[int]]]
    skeleton: Skeleton
    binding: SkinBinding
    topology: TopologyGraph
    laplacian: object = None


def _pad(binding: SkinBinding, width: int) -> tuple[NDArray, NDArray]:
    idx = np.zeros((binding.vertex_count, width), dtype=np.int64)
    w = np.zeros((binding.vertex_count, width), dtype=np.float64)
    k = binding.indices.shape[1]
    idx[:, :k] = binding.indices
    w[:, :k] = binding.weights
    return idx, w


def _stack_bindings(parts: list[SkinBinding]) -> SkinBinding:
    width = max(p.indices.shape[1] for p in parts)
    padded = [_pad(p, width) for p in parts]
    return SkinBinding(
        np.vstack([p[0] for p in padded]),
        np.vstack([p[1] for p in padded]),
    )


def _translated(data: SkinnedMeshData, delta: NDArray) -> SkinnedMeshData:
    return SkinnedMeshData(
        Mesh(data.mesh.vertices + delta, data.mesh.faces),
        Skeleton(data.skeleton.joints + delta, data.skeleton.bones),
        data.binding,
    )


def pair_loops(centroids_a: NDArray, centroids_b: NDArray) -> list[tuple[int, int]]:
    """Greedy nearest-centroid matching of equally many loops."""
    dist = np.linalg.norm(centroids_a[:, np.newaxis, :] - centroids_b[np.newaxis, :, :], axis=2)
    pairs = []
    free_a = set(range(len(centroids_a)))
    free_b = set(range(len(centroids_b)))
    while free_a and free_b:
        best = min(((dist[i, j], i, j) for i in free_a for j in free_b))
        _, i, j = best
        pairs.append((i, j))
        free_a.discard(i)
        free_b.discard(j)
    return pairs


class MeshMerge:
    """Merges skinned mesh B into skinned mesh A."""

    def __init__(
        self,
        a: SkinnedMeshData,
        b: SkinnedMeshData,
        attach: Attachment,
        config: Optional[SurgeryConfig] = None,
    ):
        a.validate()
        b.validate()
        self.a = a
        self.b = b
        self.attach = attach
        self.config = config or SurgeryConfig()
        self.config.validate()
        self._check_attachment()
        self._removal: Optional[RemovalResult] = None
        self._stitch: Optional[StitchResult] = None

    @property
    def stitch_result(self) -> Optional[StitchResult]:
        """Stitch stage of the last run, or None before the first run."""
        return self._stitch

    def _check_attachment(self) -> None:
        att = self.attach
        if att.mode not in MODES:
            raise InputError(f"Unknown merge mode: {att.mode!r}")
        if not 0 <= att.source_joint < self.a.skeleton.joint_count:
            raise InputError(f"source joint {att.source_joint} not in A's skeleton")
        n_b = self.b.skeleton.joint_count
        if att.mode == "split":
            try:
                j0, j1 = (int(j) for j in att.target)
            except (TypeError, ValueError) as exc:
                raise InputError("split target must be a pair of B joints") from exc
            bones = {tuple(sorted(b)) for b in self.b.skeleton.bones.tolist()}
            if tuple(sorted((j0, j1))) not in bones:
                raise InputError(f"joints ({j0}, {j1}) are not a bone of B")
        elif not isinstance(att.target, (int, np.integer)) or not 0 <= att.target < n_b:
            raise InputError(f"target joint {att.target!r} not in B's skeleton")

    # ── Step 1 ─────────────────────────────────────────────────────────

    def prealign(self) -> tuple[SkinnedMeshData, SkinnedMeshData, int]:
        """Returns (A', B', target joint in B')."""
        a, b, att = self.a, self.b, self.attach
        if att.mode == "snap":
            delta = b.skeleton.joints[att.target] - a.skeleton.joints[att.source_joint]
            logger.debug("Snap: translating A by %s", np.round(delta, 6))
            return _translated(a, delta), b, int(att.target)
        if att.mode == "connect":
            return a, b, int(att.target)

        j0, j1 = (int(j) for j in att.target)
        p0, p1 = b.skeleton.joints[j0], b.skeleton.joints[j1]
        t = segment_projection(a.skeleton.joints[att.source_joint], p0, p1)
        frac = self.config.merge.split_snap_fraction
        if t < frac:
            return a, b, j0
        if t > 1.0 - frac:
            return a, b, j1

        new_joint = b.skeleton.joint_count
        joints = np.vstack([b.skeleton.joints, p0 + t * (p1 - p0)])
        bones = b.skeleton.bones.copy()
        k = next(i for i, bone in enumerate(bones.tolist()) if sorted(bone) == sorted((j0, j1)))
        bones[k] = (j0, new_joint)
        bones = np.vstack([bones, [(new_joint, j1)]])
        logger.debug("Split: bone %d of B split at t=%.3f", k, t)
        return a, SkinnedMeshData(b.mesh, Skeleton(joints, bones), b.binding), new_joint

    # ── Step 2 ─────────────────────────────────────────────────────────

    def remove_interior(self) -> RemovalResult:
        a, b, target = self.prealign()
        a_inside = points_in_mesh(a.mesh.vertices, b.mesh)
        b_inside = points_in_mesh(b.mesh.vertices, a.mesh)
        result = RemovalResult(
            a=a,
            b=b,
            target_joint=target,
            a_vertex_keep=~a_inside,
            b_vertex_keep=~b_inside,
            a_face_keep=~a_inside[a.mesh.faces].any(axis=1),
            b_face_keep=~b_inside[b.mesh.faces].any(axis=1),
        )
        logger.info(
            "Interior removal: %d of %d A vertices, %d of %d B vertices inside",
            int(a_inside.sum()), len(a_inside), int(b_inside.sum()), len(b_inside),
        )
        return result

    # ── Steps 3-8 ──────────────────────────────────────────────────────

    def _combined_skeleton(self, a: SkinnedMeshData, b: SkinnedMeshData, target: int):
        """Merged skeleton and the B joint index map."""
        n_a = a.skeleton.joint_count
        n_b = b.skeleton.joint_count
        source = self.attach.source_joint
        if self.attach.mode == "snap":
            others = [j for j in range(n_b) if j != target]
            b_map = np.empty(n_b, dtype=np.int64)
            b_map[others] = n_a + np.arange(len(others))
            b_map[target] = source
            joints = np.vstack([a.skeleton.joints, b.skeleton.joints[others]])
            bones = np.vstack([a.skeleton.bones, b_map[b.skeleton.bones]])
        else:
            b_map = n_a + np.arange(n_b)
            joints = np.vstack([a.skeleton.joints, b.skeleton.joints])
            bones = np.vstack([a.skeleton.bones, b_map[b.skeleton.bones], [(source, b_map[target])]])
        return Skeleton(joints, bones.reshape(-1, 2)), b_map

    def _patch(self, k: int, vertices: NDArray, loop_a: list[int], loop_b: list[int]) -> NDArray[np.int64]:
        region = f"loop pair {k}"
        frame = fit_frame(vertices[loop_a + loop_b])
        pa = project_to_2d(vertices[loop_a], frame)
        pb = project_to_2d(vertices[loop_b], frame)
        if is_clockwise(pa) == is_clockwise(pb):
            raise TopologyError("boundary loops have the same winding", region=region)
        scale = self.config.merge.patch_scale
        if abs(signed_area(pa)) < abs(signed_area(pb)):
            pa = pa * scale
        else:
            pb = pb * scale
        points = np.vstack([pa, pb])
        local_loops = [list(range(len(loop_a))), list(range(len(loop_a), len(points)))]
        try:
            tris = triangulate_loops(points, local_loops)
        except TopologyError as exc:
            raise TopologyError(str(exc), region=region) from exc
        patch = np.asarray(loop_a + loop_b, dtype=np.int64)[tris]
        return orient_against(patch, [loop_a, loop_b])

    def stitch(self, removal: RemovalResult) -> StitchResult:
        a, b = removal.a, removal.b
        a_ids = np.flatnonzero(removal.a_vertex_keep)
        b_ids = np.flatnonzero(removal.b_vertex_keep)
        a_map = np.full(a.mesh.vertex_count, -1, dtype=np.int64)
        b_map = np.full(b.mesh.vertex_count, -1, dtype=np.int64)
        a_map[a_ids] = np.arange(len(a_ids))
        b_map[b_ids] = len(a_ids) + np.arange(len(b_ids))

        vertices = np.vstack([a.mesh.vertices[a_ids], b.mesh.vertices[b_ids]])
        faces_a = a_map[a.mesh.faces[removal.a_face_keep]]
        faces_b = b_map[b.mesh.faces[removal.b_face_keep]]

        skeleton, b_joint_map = self._combined_skeleton(a, b, removal.target_joint)
        binding = _stack_bindings([a.binding.take(a_ids), b.binding.take(b_ids).remapped(b_joint_map)])

        loops_a = TopologyGraph(faces_a).boundary_loops()
        loops_b = TopologyGraph(faces_b).boundary_loops()
        if len(loops_a) != len(loops_b):
            raise TopologyError(
                f"A has {len(loops_a)} boundary loops, B has {len(loops_b)}", region="stitch",
            )

        pairs = []
        patches = []
        if loops_a:
            cent_a = np.array([vertices[loop].mean(axis=0) for loop in loops_a])
            cent_b = np.array([vertices[loop].mean(axis=0) for loop in loops_b])
            for k, (i, j) in enumerate(pair_loops(cent_a, cent_b)):
                pairs.append((loops_a[i], loops_b[j]))
                patches.append(self._patch(k, vertices, loops_a[i], loops_b[j]))
        patch_faces = np.vstack(patches) if patches else np.zeros((0, 3), dtype=np.int64)
        all_faces = np.vstack([faces_a, faces_b, patch_faces])
        seeds = np.unique(patch_faces)

        logger.info(
            "Stitched %d loop pairs with %d patch triangles", len(pairs), len(patch_faces),
        )
        return StitchResult(
            vertices=vertices,
            faces=all_faces,
            patch_faces=patch_faces,
            seeds=seeds,
            loop_pairs=pairs,
            skeleton=skeleton,
            binding=binding,
            topology=TopologyGraph(all_faces),
        )

    # ── Step 9 ─────────────────────────────────────────────────────────

    def relax(self, stitch: StitchResult, layers: int, factor: float) -> NDArray[np.float64]:
        """Seam-relaxed vertex positions; the stitch result is not modified."""
        if layers < 0 or int(layers) != layers:
            raise InputError(f"smooth_layers must be a non-negative integer, got {layers}")
        if factor < 0:
            raise InputError(f"smooth_factor must be >= 0, got {factor}")
        if len(stitch.seeds) == 0:
            return stitch.vertices.copy()
        interior, _ = stitch.topology.expand(stitch.seeds, int(layers))
        if stitch.laplacian is None:
            stitch.laplacian = uniform_laplacian(stitch.faces, len(stitch.vertices))
        return relax(stitch.vertices, stitch.laplacian, interior, factor, system="merge seam relaxation")

    # ── Step 10 ────────────────────────────────────────────────────────

    def reconcile(self, stitch: StitchResult, vertices: NDArray) -> SkinnedMeshData:
        """Drop unreferenced vertices and normalize bindings.

        Patch triangles only reuse loop vertices, so every retained vertex
        already carries a binding.  ``reskin = "all"`` re-solves the whole
        mesh against the merged skeleton instead.
        """
        used = np.unique(stitch.faces)
        remap = np.full(len(vertices), -1, dtype=np.int64)
        remap[used] = np.arange(len(used))
        mesh = Mesh(vertices[used], remap[stitch.faces])
        binding = stitch.binding.take(used)

        if self.config.merge.reskin == "all":
            # Bones of the combined skeleton may attract no vertex
            settings = dataclasses.replace(self.config.solver, unreferenced_bones="skip")
            binding = SkinWeightSolver(settings).compute_binding(mesh, stitch.skeleton)
            logger.info("Recomputed skin weights for %d vertices", mesh.vertex_count)

        binding = binding.normalized(self.config.solver.max_influences)
        return SkinnedMeshData(mesh, stitch.skeleton, binding)

    # ── Driver ─────────────────────────────────────────────────────────

    def run(self, smooth_layers: Optional[int] = None, smooth_factor: Optional[float] = None) -> SkinnedMeshData:
        layers = self.config.merge.smooth_layers if smooth_layers is None else smooth_layers
        factor = self.config.merge.smooth_factor if smooth_factor is None else smooth_factor
        if self._stitch is None:
            self._removal = self.remove_interior()
            self._stitch = self.stitch(self._removal)
        vertices = self.relax(self._stitch, layers, factor)
        result = self.reconcile(self._stitch, vertices)
        logger.info(
            "Merged into %d vertices, %d faces, %d joints",
            result.mesh.vertex_count, result.mesh.face_count, result.skeleton.joint_count,
        )
        return result


def merge(
    a: SkinnedMeshData,
    b: SkinnedMeshData,
    attach: Attachment,
    smooth_layers: Optional[int] = None,
    smooth_factor: Optional[float] = None,
    config: Optional[SurgeryConfig] = None,
) -> SkinnedMeshData:
    """Merge *b* into *a* according to *attach*."""
    return MeshMerge(a, b, attach, config).run(smooth_layers, smooth_factor)
