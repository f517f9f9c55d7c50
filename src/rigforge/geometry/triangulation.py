"""Constrained 2D triangulation of boundary loops and hexagonal fill grids.

Triangulation is delegated to Shewchuk's Triangle (``triangle`` package)
in PSLG mode.  No Steiner points are allowed, so every output vertex is
an input point and indices map straight back to the caller's vertices.
"""

import logging
from collections import deque
from typing import Sequence

import numpy as np
import triangle as tr
from numpy.typing import NDArray

from rigforge.core.errors import TopologyError
from rigforge.geometry.predicates import point_in_polygon

logger = logging.getLogger(__name__)


def loop_segments(loops: Sequence[Sequence[int]]) -> NDArray[np.int64]:
    """Closed-loop edge list ``(sum(len(loop)), 2)`` over point indices."""
    segs = []
    for loop in loops:
        loop = list(loop)
        segs.extend(zip(loop, loop[1:] + loop[:1]))
    return np.array(segs, dtype=np.int64).reshape(-1, 2)


def triangulate_loops(points2d: NDArray, loops: Sequence[Sequence[int]]) -> NDArray[np.int64]:
    """Triangulate the region bounded by *loops* with their edges as constraints.

    ``loops`` index into ``points2d``; extra points (not on any loop) are
    inserted as interior vertices.  The exterior is excluded by the
    even-odd rule over all loops, so nested loops bound an annulus.
    Raises TopologyError if the loops cross (Triangle would need Steiner
    points) or nothing is left after exterior removal.
    """
    pts = np.asarray(points2d, dtype=np.float64).reshape(-1, 2)
    if len(np.unique(pts, axis=0)) != len(pts):
        raise TopologyError("duplicate points in projected loops", region="patch")
    segments = loop_segments(loops)
    result = tr.triangulate({"vertices": pts, "segments": segments.astype(np.int32)}, "pQ")
    if len(result["vertices"]) != len(pts):
        raise TopologyError(
            f"projected loops intersect ({len(result['vertices']) - len(pts)} Steiner points needed)",
            region="patch",
        )
    tris = np.asarray(result.get("triangles", np.zeros((0, 3))), dtype=np.int64).reshape(-1, 3)

    centroids = pts[tris].mean(axis=1)
    parity = np.zeros(len(tris), dtype=np.int64)
    for loop in loops:
        parity += point_in_polygon(centroids, pts[list(loop)])
    tris = tris[parity % 2 == 1]
    if len(tris) == 0:
        raise TopologyError("triangulation left no interior triangles", region="patch")
    logger.debug("Triangulated %d loops into %d triangles", len(loops), len(tris))
    return tris


def _polygon_edge_distance(points: NDArray, polygon: NDArray) -> NDArray[np.float64]:
    a = polygon                                     # (M, 2)
    ab = np.roll(polygon, -1, axis=0) - a
    len_sq = np.maximum(np.sum(ab * ab, axis=1), 1e-20)
    ap = points[:, np.newaxis, :] - a[np.newaxis]   # (N, M, 2)
    t = np.clip(np.sum(ap * ab[np.newaxis], axis=2) / len_sq, 0.0, 1.0)
    d = ap - t[:, :, np.newaxis] * ab[np.newaxis]
    return np.sqrt(np.sum(d * d, axis=2)).min(axis=1)


def hex_grid(polygon: NDArray, spacing: float) -> NDArray[np.float64]:
    """Hexagonal lattice points strictly inside *polygon*.

    Grown breadth-first from the polygon's vertex centroid; points closer
    than half a spacing to the outline are skipped.
    """
    poly = np.asarray(polygon, dtype=np.float64).reshape(-1, 2)
    if spacing <= 0 or len(poly) < 3:
        return np.zeros((0, 2))
    origin = poly.mean(axis=0)
    du = np.array([spacing, 0.0])
    dv = np.array([0.5 * spacing, np.sqrt(3.0) / 2.0 * spacing])
    steps = ((1, 0), (-1, 0), (0, 1), (0, -1), (1, -1), (-1, 1))

    def accept(p):
        p = p.reshape(1, 2)
        return bool(point_in_polygon(p, poly)[0]) and _polygon_edge_distance(p, poly)[0] > 0.5 * spacing

    if not accept(origin):
        return np.zeros((0, 2))
    seen = {(0, 0)}
    out = [origin]
    queue = deque([(0, 0)])
    while queue:
        i, j = queue.popleft()
        for di, dj in steps:
            key = (i + di, j + dj)
            if key in seen:
                continue
            seen.add(key)
            p = origin + key[0] * du + key[1] * dv
            if accept(p):
                out.append(p)
                queue.append(key)
    return np.array(out, dtype=np.float64)
