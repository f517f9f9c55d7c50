"""Plane cut of a skinned mesh into connected pieces.

Pipeline per call (nothing is cached between calls):

1. ``split``: classify vertices against the plane and split every triangle
   that crosses it.  A crossing edge yields two coincident vertices, one
   per side, whose weights interpolate the edge's endpoint weights.
2. ``pieces``: connected components of the split faces.
3. Per piece: a skeleton for its side of the plane (crossing bones are
   shortened to a new joint just short of the plane), an optional cap,
   and seam relaxation when ``sharpness < 1``.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

import networkx as nx
import numpy as np
from numpy.typing import NDArray

from rigforge.constants import EPSILON
from rigforge.core.errors import InputError
from rigforge.core.math_utils import normalize
from rigforge.core.settings import SurgeryConfig
from rigforge.geometry.laplacian import cotangent_laplacian, diffuse, relax, uniform_laplacian
from rigforge.geometry.predicates import Frame, lift_to_3d, plane_basis, project_to_2d
from rigforge.geometry.topology import TopologyGraph, connected_components, orient_against
from rigforge.geometry.triangulation import hex_grid, triangulate_loops
from rigforge.skinning.model import Mesh, Skeleton, SkinBinding, SkinnedMeshData

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Plane:
    """Plane ``normal . x + offset = 0``; the normal is normalized on creation."""
    normal: NDArray[np.float64]
    offset: float = 0.0

    def __post_init__(self):
        n = np.asarray(self.normal, dtype=np.float64).reshape(3)
        length = float(np.linalg.norm(n))
        if not np.isfinite(length) or length < EPSILON:
            raise InputError("cut plane normal must be non-zero")
        object.__setattr__(self, "normal", n / length)
        object.__setattr__(self, "offset", float(self.offset) / length)

    @classmethod
    def from_point_normal(cls, point, normal) -> "Plane":
        n = normalize(np.asarray(normal, dtype=np.float64))
        return cls(n, -float(np.dot(n, point)))

    def signed_distance(self, points: NDArray) -> NDArray[np.float64]:
        return np.asarray(points, dtype=np.float64).reshape(-1, 3) @ self.normal + self.offset


@dataclass
class CutSplit:
    """Split mesh shared by every piece of one cut.

    ``weights`` is dense over the input joints; ``seam`` marks vertices
    lying on the plane (new crossing vertices and input vertices at zero
    distance).
    """
    vertices: NDArray[np.float64]
    faces: NDArray[np.int64]
    weights: NDArray[np.float64]
    positive: NDArray[np.bool_]
    seam: NDArray[np.bool_]


@dataclass
class SideSkeleton:
    """Skeleton for one side of the plane plus the joint weight transfer.

    ``transfer`` is ``(J_in, J_side)``: input weights times ``transfer``
    give weights over this side's joints.
    """
    joints: NDArray[np.float64]
    bones: NDArray[np.int64]
    transfer: NDArray[np.float64]
    new_joint_count: int = 0


@dataclass
class CutPiece:
    """Working state of one piece before it is frozen into a snapshot."""
    vertices: NDArray[np.float64]
    faces: NDArray[np.int64]
    weights: NDArray[np.float64]
    seam: NDArray[np.bool_]
    positive: bool


class MeshCut:
    """Cuts one skinned mesh by a plane.

    Usage::

        pieces = MeshCut(data, Plane((0, 0, 1), 0.0)).run(sharpness=1.0)
    """

    def __init__(self, data: SkinnedMeshData, plane: Plane, config: Optional[SurgeryConfig] = None):
        data.validate()
        self.data = data
        self.plane = plane
        self.config = config or SurgeryConfig()
        self.config.validate()
        self.spacing = data.mesh.mean_edge_length()

    # ── Step 1: triangle split ─────────────────────────────────────────

    def _distances(self, points: NDArray) -> NDArray[np.float64]:
        d = self.plane.signed_distance(points)
        scale = max(1.0, float(np.abs(points).max())) if len(points) else 1.0
        d[np.abs(d) < 1e-9 * scale] = 0.0
        return d

    def split(self) -> CutSplit:
        mesh = self.data.mesh
        verts = mesh.vertices
        d = self._distances(verts)
        positive = d >= 0.0
        dense = self.data.binding.to_dense(max(self.data.skeleton.joint_count, 1))

        new_pos: list[NDArray] = []
        new_w: list[NDArray] = []
        new_side: list[bool] = []
        made: dict[tuple, tuple[int, int]] = {}
        n0 = len(verts)

        def add_vertex(p, w, side) -> int:
            new_pos.append(p)
            new_w.append(w)
            new_side.append(side)
            return n0 + len(new_pos) - 1

        def crossing(u: int, v: int) -> tuple[int, int]:
            """(positive-side, negative-side) vertex where edge u(+) -> v(-) meets the plane."""
            if d[u] == 0.0:
                key = ("on", u)
                if key not in made:
                    made[key] = (u, add_vertex(verts[u], dense[u], False))
                return made[key]
            key = (u, v)
            if key not in made:
                t = d[u] / (d[u] - d[v])
                p = verts[u] + t * (verts[v] - verts[u])
                w = (1.0 - t) * dense[u] + t * dense[v]
                made[key] = (add_vertex(p, w, True), add_vertex(p.copy(), w.copy(), False))
            return made[key]

        faces = mesh.faces
        side = positive[faces]                                   # (F, 3)
        mixed = side.any(axis=1) & ~side.all(axis=1)
        out_faces = [faces[~mixed]]
        extra = []
        for a, b, c in faces[mixed].tolist():
            s = positive[[a, b, c]]
            if s[0] != s[1] and s[0] != s[2]:
                lone, o1, o2 = a, b, c
            elif s[1] != s[0] and s[1] != s[2]:
                lone, o1, o2 = b, c, a
            else:
                lone, o1, o2 = c, a, b
            # (lone-side vertex, other-side vertex) on edges lone-o1 and lone-o2
            if positive[lone]:
                p_lone, p_other = crossing(lone, o1)
                q_lone, q_other = crossing(lone, o2)
            else:
                p_other, p_lone = crossing(o1, lone)
                q_other, q_lone = crossing(o2, lone)
            extra.append((lone, p_lone, q_lone))
            extra.append((p_other, o1, o2))
            extra.append((p_other, o2, q_other))

        if extra:
            out_faces.append(np.array(extra, dtype=np.int64))
        all_faces = np.concatenate(out_faces, axis=0)
        # Triangles collapsed onto on-plane vertices
        keep = ((all_faces[:, 0] != all_faces[:, 1]) & (all_faces[:, 1] != all_faces[:, 2])
                & (all_faces[:, 2] != all_faces[:, 0]))
        all_faces = all_faces[keep]

        if new_pos:
            vertices = np.vstack([verts, np.array(new_pos)])
            weights = np.vstack([dense, np.array(new_w)])
            positive_all = np.concatenate([positive, np.array(new_side, dtype=bool)])
        else:
            vertices, weights, positive_all = verts.copy(), dense.copy(), positive.copy()
        seam = np.concatenate([d == 0.0, np.ones(len(new_pos), dtype=bool)])
        logger.debug(
            "Split %d crossing faces, %d new vertices", int(mixed.sum()), len(new_pos),
        )
        return CutSplit(vertices, all_faces, weights, positive_all, seam)

    # ── Step 2: pieces ─────────────────────────────────────────────────

    def pieces(self, split: CutSplit) -> list[CutPiece]:
        n_total = len(split.vertices)
        _, labels = connected_components(split.faces, n_total)
        face_labels = labels[split.faces[:, 0]]
        out = []
        # csgraph numbers components in order of their lowest vertex
        for label in sorted(set(face_labels.tolist())):
            faces = split.faces[face_labels == label]
            vids = np.unique(faces)
            remap = np.full(n_total, -1, dtype=np.int64)
            remap[vids] = np.arange(len(vids))
            positive = bool(np.round(split.positive[vids].mean()))
            out.append(CutPiece(
                vertices=split.vertices[vids].copy(),
                faces=remap[faces],
                weights=split.weights[vids].copy(),
                seam=split.seam[vids].copy(),
                positive=positive,
            ))
        return out

    # ── Step 3: skeletons ──────────────────────────────────────────────

    def side_skeleton(self, positive: bool) -> SideSkeleton:
        skel = self.data.skeleton
        n_in = max(skel.joint_count, 1)
        if skel.joint_count == 0:
            return SideSkeleton(np.zeros((0, 3)), np.zeros((0, 2), dtype=np.int64), np.zeros((n_in, 0)))

        dj = self._distances(skel.joints)
        on_side = (dj >= 0.0) == positive
        keep_ids = np.flatnonzero(on_side)
        index = {int(j): k for k, j in enumerate(keep_ids)}
        joints = [skel.joints[j] for j in keep_ids]
        bones = []
        # other-side joint -> side joint receiving its weights
        targets: dict[int, int] = {}

        for a, b in skel.bones.tolist():
            if on_side[a] and on_side[b]:
                bones.append((index[a], index[b]))
                continue
            if not on_side[a] and not on_side[b]:
                continue
            e, o = (a, b) if on_side[a] else (b, a)
            seg = skel.joints[o] - skel.joints[e]
            # New joint sits `spacing` off the plane; short halves collapse to the endpoint
            near = abs(dj[e])
            if near >= 2.0 * self.spacing:
                joints.append(skel.joints[e] + seg * (near - self.spacing) / (near + abs(dj[o])))
                new_id = len(joints) - 1
                bones.append((index[e], new_id))
                target = new_id
            else:
                target = index[e]
            targets.setdefault(o, target)

        # Remaining other-side joints inherit the target of the nearest crossing
        graph = nx.Graph()
        graph.add_nodes_from(np.flatnonzero(~on_side).tolist())
        graph.add_edges_from((a, b) for a, b in skel.bones.tolist() if not on_side[a] and not on_side[b])
        if targets:
            paths = nx.multi_source_dijkstra_path(graph, set(targets))
            for j, path in paths.items():
                targets.setdefault(j, targets[path[0]])

        transfer = np.zeros((n_in, len(joints)), dtype=np.float64)
        for j, k in index.items():
            transfer[j, k] = 1.0
        for j, k in targets.items():
            transfer[j, k] = 1.0
        return SideSkeleton(
            joints=np.array(joints, dtype=np.float64).reshape(-1, 3),
            bones=np.array(bones, dtype=np.int64).reshape(-1, 2),
            transfer=transfer,
            new_joint_count=len(joints) - len(keep_ids),
        )

    @staticmethod
    def _piece_skeleton(piece: CutPiece, side: SideSkeleton) -> tuple[Skeleton, NDArray[np.float64]]:
        """Keep the side skeleton components the piece's weights reference."""
        weights = piece.weights @ side.transfer                   # (V, J_side)
        used = np.flatnonzero(weights.max(axis=0) > EPSILON) if weights.size else np.zeros(0, dtype=np.int64)
        if len(used) == 0:
            joint = piece.vertices.mean(axis=0).reshape(1, 3)
            return (Skeleton(joint, np.zeros((0, 2), dtype=np.int64)),
                    np.ones((len(piece.vertices), 1), dtype=np.float64))

        graph = nx.Graph()
        graph.add_nodes_from(range(len(side.joints)))
        graph.add_edges_from(side.bones.tolist())
        kept = set()
        for comp in nx.connected_components(graph):
            if comp & set(used.tolist()):
                kept |= comp
        kept_ids = np.array(sorted(kept), dtype=np.int64)
        remap = np.full(len(side.joints), -1, dtype=np.int64)
        remap[kept_ids] = np.arange(len(kept_ids))
        bones = [(remap[a], remap[b]) for a, b in side.bones.tolist() if a in kept and b in kept]
        skeleton = Skeleton(side.joints[kept_ids], np.array(bones, dtype=np.int64).reshape(-1, 2))
        return skeleton, weights[:, kept_ids]

    # ── Caps and seam profile ──────────────────────────────────────────

    def cap(self, piece: CutPiece) -> CutPiece:
        """Close every all-seam boundary loop with a triangulated patch."""
        loops = [loop for loop in TopologyGraph(piece.faces).boundary_loops()
                 if len(loop) >= 3 and piece.seam[loop].all()]
        if not loops:
            return piece
        u, v = plane_basis(self.plane.normal)
        spacing = self.spacing * self.config.cut.cap_spacing_scale
        vertices = [piece.vertices]
        weights = [piece.weights]
        faces = [piece.faces]
        n = len(piece.vertices)
        for loop in loops:
            origin = piece.vertices[loop].mean(axis=0)
            frame = Frame(origin=origin, normal=self.plane.normal, basis_u=u, basis_v=v)
            outline = project_to_2d(piece.vertices[loop], frame)
            grid = hex_grid(outline, spacing)
            tris = triangulate_loops(np.vstack([outline, grid]), [list(range(len(loop)))])

            local_to_global = np.concatenate([np.asarray(loop), n + np.arange(len(grid))])
            patch = orient_against(local_to_global[tris], [loop])
            faces.append(patch)
            if len(grid):
                local_lap = cotangent_laplacian(np.vstack([piece.vertices[loop], lift_to_3d(grid, frame)]), tris)
                cap_w = diffuse(
                    local_lap, np.arange(len(loop)), piece.weights[loop],
                    system="cut cap weights",
                )
                vertices.append(lift_to_3d(grid, frame))
                weights.append(cap_w[len(loop):])
            n += len(grid)
            logger.debug("Capped seam loop of %d vertices with %d grid points", len(loop), len(grid))

        seam = np.concatenate([piece.seam, np.zeros(n - len(piece.vertices), dtype=bool)])
        return CutPiece(
            vertices=np.vstack(vertices),
            faces=np.vstack(faces),
            weights=np.vstack(weights),
            seam=seam,
            positive=piece.positive,
        )

    def bevel(self, piece: CutPiece, sharpness: float, index: int) -> CutPiece:
        """Relax a band around the seam; ``sharpness == 1`` leaves it untouched."""
        layers = math.ceil((1.0 - sharpness) * self.config.cut.bevel_layers)
        seeds = np.flatnonzero(piece.seam)
        if layers == 0 or len(seeds) == 0:
            return piece
        topo = TopologyGraph(piece.faces)
        interior, _ = topo.expand(seeds, layers)
        smoothness = (1.0 - sharpness) * self.config.cut.bevel_strength
        lap = uniform_laplacian(piece.faces, len(piece.vertices))
        vertices = relax(
            piece.vertices, lap, interior, smoothness,
            system=f"cut seam relaxation piece {index}",
        )
        return CutPiece(vertices, piece.faces, piece.weights, piece.seam, piece.positive)

    # ── Driver ─────────────────────────────────────────────────────────

    def run(self, sharpness: float = 1.0, cap: Optional[bool] = None) -> list[SkinnedMeshData]:
        if not 0.0 <= sharpness <= 1.0:
            raise InputError(f"sharpness must be in [0, 1], got {sharpness}")
        if cap is None:
            cap = self.config.cut.cap

        split = self.split()
        sides = {}
        results = []
        for k, piece in enumerate(self.pieces(split)):
            if piece.positive not in sides:
                sides[piece.positive] = self.side_skeleton(piece.positive)
            skeleton, weights = self._piece_skeleton(piece, sides[piece.positive])
            piece = CutPiece(piece.vertices, piece.faces, weights, piece.seam, piece.positive)
            if cap:
                piece = self.cap(piece)
            if sharpness < 1.0:
                piece = self.bevel(piece, sharpness, k)
            binding = SkinBinding.from_dense(piece.weights).normalized(self.config.solver.max_influences)
            results.append(SkinnedMeshData(Mesh(piece.vertices, piece.faces), skeleton, binding))

        logger.info(
            "Cut %d vertices into %d pieces (sharpness=%.2f, cap=%s)",
            self.data.mesh.vertex_count, len(results), sharpness, cap,
        )
        return results


def cut(
    data: SkinnedMeshData,
    plane: Plane,
    sharpness: float = 1.0,
    cap: Optional[bool] = None,
    config: Optional[SurgeryConfig] = None,
) -> list[SkinnedMeshData]:
    """Cut *data* by *plane* into one snapshot per connected piece."""
    return MeshCut(data, plane, config).run(sharpness=sharpness, cap=cap)
