"""Geometric predicates: point-in-mesh, plane fitting, 2D projection, winding."""

import logging
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from rigforge.constants import COLLINEAR_TOLERANCE, EPSILON, RAY_DIRECTION
from rigforge.core.errors import GeometryDegenerate
from rigforge.core.math_utils import normalize
from rigforge.skinning.model import Mesh

logger = logging.getLogger(__name__)

_RAY = normalize(np.array(RAY_DIRECTION, dtype=np.float64))
_CHUNK = 256


def ray_hit_counts(points: NDArray, vertices: NDArray, faces: NDArray,
                   direction: NDArray = _RAY) -> NDArray[np.int64]:
    """Number of triangles hit by a ray from each point (Möller–Trumbore)."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    counts = np.zeros(len(pts), dtype=np.int64)
    faces = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    if len(faces) == 0 or len(pts) == 0:
        return counts

    v0 = vertices[faces[:, 0]]                       # (F, 3)
    e1 = vertices[faces[:, 1]] - v0
    e2 = vertices[faces[:, 2]] - v0
    h = np.cross(direction, e2)                      # (F, 3)
    det = np.sum(e1 * h, axis=1)                     # (F,)
    usable = np.abs(det) > EPSILON
    inv_det = np.where(usable, 1.0 / np.where(usable, det, 1.0), 0.0)

    for start in range(0, len(pts), _CHUNK):
        p = pts[start:start + _CHUNK]
        s = p[:, np.newaxis, :] - v0[np.newaxis, :, :]            # (P, F, 3)
        u = np.sum(s * h[np.newaxis], axis=2) * inv_det           # (P, F)
        q = np.cross(s, e1[np.newaxis])                           # (P, F, 3)
        v = (q @ direction) * inv_det                             # (P, F)
        t = np.sum(q * e2[np.newaxis], axis=2) * inv_det          # (P, F)
        hit = (usable[np.newaxis] & (u >= 0.0) & (u <= 1.0)
               & (v >= 0.0) & (u + v <= 1.0) & (t > EPSILON))
        counts[start:start + _CHUNK] = hit.sum(axis=1)
    return counts


def points_in_mesh(points: NDArray, mesh: Mesh) -> NDArray[np.bool_]:
    """Odd-parity inside test for many points.

    The mesh must be closed (watertight); on open or non-manifold meshes
    the result is undefined.
    """
    return (ray_hit_counts(points, mesh.vertices, mesh.faces) % 2) == 1


def point_in_mesh(point: NDArray, mesh: Mesh) -> bool:
    """Single-point form of :func:`points_in_mesh` (same watertight requirement)."""
    return bool(points_in_mesh(np.asarray(point).reshape(1, 3), mesh)[0])


@dataclass(frozen=True)
class Frame:
    """Plane frame: origin, unit normal and orthonormal in-plane axes."""
    origin: NDArray[np.float64]
    normal: NDArray[np.float64]
    basis_u: NDArray[np.float64]
    basis_v: NDArray[np.float64]


def plane_basis(normal: NDArray) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Orthonormal (u, v) with u x v = normal."""
    n = normalize(np.asarray(normal, dtype=np.float64))
    if np.linalg.norm(n) < EPSILON:
        raise GeometryDegenerate("plane normal has zero length", entity="normal")
    # Axis least aligned with the normal
    axis = np.zeros(3)
    axis[int(np.argmin(np.abs(n)))] = 1.0
    u = normalize(np.cross(axis, n))
    v = np.cross(n, u)
    return u, v


def fit_frame(points: NDArray) -> Frame:
    """Best-fit plane through >= 3 points (SVD), origin at the centroid."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    if len(pts) < 3:
        raise GeometryDegenerate(f"need at least 3 points, got {len(pts)}", entity="plane fit")
    origin = pts.mean(axis=0)
    centered = pts - origin
    _, s, vt = np.linalg.svd(centered, full_matrices=False)
    if s[0] < EPSILON:
        raise GeometryDegenerate("points are coincident", entity="plane fit")
    if s[1] < COLLINEAR_TOLERANCE * s[0]:
        raise GeometryDegenerate("points are collinear", entity="plane fit")
    normal = vt[2] if len(s) > 2 else np.cross(vt[0], vt[1])
    normal = normalize(normal)
    # Deterministic sign: largest component positive
    if normal[int(np.argmax(np.abs(normal)))] < 0:
        normal = -normal
    u, v = plane_basis(normal)
    return Frame(origin=origin, normal=normal, basis_u=u, basis_v=v)


def project_to_2d(points: NDArray, frame: Frame) -> NDArray[np.float64]:
    d = np.asarray(points, dtype=np.float64).reshape(-1, 3) - frame.origin
    return np.column_stack([d @ frame.basis_u, d @ frame.basis_v])


def lift_to_3d(points2d: NDArray, frame: Frame) -> NDArray[np.float64]:
    p = np.asarray(points2d, dtype=np.float64).reshape(-1, 2)
    return frame.origin + p[:, :1] * frame.basis_u + p[:, 1:2] * frame.basis_v


def signed_area(polygon: NDArray) -> float:
    """Shoelace area, positive for counter-clockwise polygons."""
    p = np.asarray(polygon, dtype=np.float64).reshape(-1, 2)
    x, y = p[:, 0], p[:, 1]
    return 0.5 * float(np.sum(x * np.roll(y, -1) - np.roll(x, -1) * y))


def is_clockwise(polygon: NDArray) -> bool:
    return signed_area(polygon) < 0


def point_in_polygon(points: NDArray, polygon: NDArray) -> NDArray[np.bool_]:
    """Even-odd test of (N, 2) points against a closed polygon."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    poly = np.asarray(polygon, dtype=np.float64).reshape(-1, 2)
    x, y = pts[:, 0:1], pts[:, 1:2]                 # (N, 1)
    x0, y0 = poly[:, 0], poly[:, 1]                 # (M,)
    x1, y1 = np.roll(x0, -1), np.roll(y0, -1)
    straddles = (y0 > y) != (y1 > y)                # (N, M)
    dy = np.where(y1 == y0, 1.0, y1 - y0)
    x_cross = x0 + (y - y0) * (x1 - x0) / dy
    crossings = straddles & (x < x_cross)
    return (crossings.sum(axis=1) % 2) == 1
