"""Procedural closed meshes for examples, diagnostics and tests.

All builders return a welded :class:`Mesh` (shared vertices, outward
counter-clockwise winding), so the results are watertight and can be fed
straight into point-in-mesh tests and the surgery engines.
"""

import math

import numpy as np

from rigforge.skinning.model import Mesh

_AXIS_PERMUTATION = {
    # Cyclic permutations keep the winding outward
    "x": (2, 0, 1),
    "y": (1, 2, 0),
    "z": (0, 1, 2),
}


def _orient_outward(vertices: np.ndarray, faces: np.ndarray) -> np.ndarray:
    """Flip faces whose normal points toward the centroid (convex shapes only)."""
    center = vertices.mean(axis=0)
    v0, v1, v2 = vertices[faces[:, 0]], vertices[faces[:, 1]], vertices[faces[:, 2]]
    normals = np.cross(v1 - v0, v2 - v0)
    inward = np.sum(normals * ((v0 + v1 + v2) / 3.0 - center), axis=1) < 0
    faces = faces.copy()
    faces[inward] = faces[inward][:, [0, 2, 1]]
    return faces


def make_icosphere(subdivisions: int = 2, radius: float = 1.0, center=(0.0, 0.0, 0.0)) -> Mesh:
    """Subdivided icosahedron projected onto a sphere."""
    t = (1.0 + math.sqrt(5.0)) / 2.0
    verts = [
        (-1, t, 0), (1, t, 0), (-1, -t, 0), (1, -t, 0),
        (0, -1, t), (0, 1, t), (0, -1, -t), (0, 1, -t),
        (t, 0, -1), (t, 0, 1), (-t, 0, -1), (-t, 0, 1),
    ]
    verts = [np.array(v, dtype=np.float64) / np.linalg.norm(v) for v in verts]
    faces = [
        (0, 11, 5), (0, 5, 1), (0, 1, 7), (0, 7, 10), (0, 10, 11),
        (1, 5, 9), (5, 11, 4), (11, 10, 2), (10, 7, 6), (7, 1, 8),
        (3, 9, 4), (3, 4, 2), (3, 2, 6), (3, 6, 8), (3, 8, 9),
        (4, 9, 5), (2, 4, 11), (6, 2, 10), (8, 6, 7), (9, 8, 1),
    ]

    for _ in range(subdivisions):
        cache: dict[tuple[int, int], int] = {}

        def midpoint(a: int, b: int) -> int:
            key = (min(a, b), max(a, b))
            if key not in cache:
                m = verts[a] + verts[b]
                verts.append(m / np.linalg.norm(m))
                cache[key] = len(verts) - 1
            return cache[key]

        new_faces = []
        for a, b, c in faces:
            ab, bc, ca = midpoint(a, b), midpoint(b, c), midpoint(c, a)
            new_faces.extend([(a, ab, ca), (b, bc, ab), (c, ca, bc), (ab, bc, ca)])
        faces = new_faces

    v = np.array(verts) * radius
    f = _orient_outward(v, np.array(faces, dtype=np.int64))
    return Mesh(v + np.asarray(center, dtype=np.float64), f)


def make_tube(
    radius: float = 0.5,
    length: float = 2.0,
    segments: int = 12,
    rings: int = 6,
    axis: str = "z",
    center=(0.0, 0.0, 0.0),
) -> Mesh:
    """Closed cylinder with flat end caps, ``rings + 1`` vertex rings along *axis*."""
    if axis not in _AXIS_PERMUTATION:
        raise ValueError(f"Unknown axis: {axis!r}")
    positions = []
    faces = []
    half = length / 2.0

    for i in range(rings + 1):
        z = -half + length * i / rings
        for j in range(segments):
            theta = 2.0 * math.pi * j / segments
            positions.append((radius * math.cos(theta), radius * math.sin(theta), z))

    for i in range(rings):
        for j in range(segments):
            a = i * segments + j
            b = i * segments + (j + 1) % segments
            c = a + segments
            d = b + segments
            faces.extend([(a, b, d), (a, d, c)])

    bottom = len(positions)
    positions.append((0.0, 0.0, -half))
    top = len(positions)
    positions.append((0.0, 0.0, half))
    last = rings * segments
    for j in range(segments):
        jn = (j + 1) % segments
        faces.append((bottom, jn, j))
        faces.append((top, last + j, last + jn))

    v = np.array(positions, dtype=np.float64)[:, _AXIS_PERMUTATION[axis]]
    return Mesh(v + np.asarray(center, dtype=np.float64), np.array(faces, dtype=np.int64))


def make_box(width: float, height: float, depth: float, center=(0.0, 0.0, 0.0)) -> Mesh:
    """Welded 8-vertex box, dimensions along X, Y, Z."""
    hw, hh, hd = width / 2, height / 2, depth / 2
    v = np.array([
        (-hw, -hh, -hd), (hw, -hh, -hd), (hw, hh, -hd), (-hw, hh, -hd),
        (-hw, -hh, hd), (hw, -hh, hd), (hw, hh, hd), (-hw, hh, hd),
    ], dtype=np.float64)
    f = np.array([
        (0, 2, 1), (0, 3, 2),   # -Z
        (4, 5, 6), (4, 6, 7),   # +Z
        (0, 1, 5), (0, 5, 4),   # -Y
        (3, 7, 6), (3, 6, 2),   # +Y
        (0, 4, 7), (0, 7, 3),   # -X
        (1, 2, 6), (1, 6, 5),   # +X
    ], dtype=np.int64)
    return Mesh(v + np.asarray(center, dtype=np.float64), _orient_outward(v, f))
