"""NumPy-backed math utilities: Vec3, Quaternion, Mat4 and segment operations.

Vectors are plain numpy arrays; quaternions are [x, y, z, w] arrays.
Matrices are 4x4 numpy arrays applied to column vectors.
"""

import numpy as np
from numpy.typing import NDArray

from rigforge.constants import EPSILON

# Type aliases
Vec3 = NDArray[np.float64]
Mat4 = NDArray[np.float64]
Quat = NDArray[np.float64]  # [x, y, z, w]


def vec3(x: float = 0.0, y: float = 0.0, z: float = 0.0) -> Vec3:
    return np.array([x, y, z], dtype=np.float64)


def mat4_identity() -> Mat4:
    return np.eye(4, dtype=np.float64)


def mat4_from_quaternion(q: Quat) -> Mat4:
    """Convert quaternion [x,y,z,w] to 4x4 rotation matrix."""
    x, y, z, w = q
    m = np.eye(4, dtype=np.float64)
    m[0, 0] = 1 - 2 * (y * y + z * z)
    m[0, 1] = 2 * (x * y - z * w)
    m[0, 2] = 2 * (x * z + y * w)
    m[1, 0] = 2 * (x * y + z * w)
    m[1, 1] = 1 - 2 * (x * x + z * z)
    m[1, 2] = 2 * (y * z - x * w)
    m[2, 0] = 2 * (x * z - y * w)
    m[2, 1] = 2 * (y * z + x * w)
    m[2, 2] = 1 - 2 * (x * x + y * y)
    return m


def mat4_compose(position: Vec3, quaternion: Quat, scale: Vec3) -> Mat4:
    """Compose TRS matrix from position, quaternion rotation, and scale."""
    m = mat4_from_quaternion(quaternion)
    m[:3, 0] *= scale[0]
    m[:3, 1] *= scale[1]
    m[:3, 2] *= scale[2]
    m[:3, 3] = position
    return m


def quat_identity() -> Quat:
    return np.array([0.0, 0.0, 0.0, 1.0], dtype=np.float64)


# Vector operations

def normalize(v: Vec3) -> Vec3:
    n = np.linalg.norm(v)
    if n < EPSILON:
        return np.zeros_like(v)
    return v / n


def clamp(value: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, value))


def transform_points(m: Mat4, points: NDArray) -> NDArray[np.float64]:
    """Transform (N, 3) points by a 4x4 matrix."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    return pts @ m[:3, :3].T + m[:3, 3]


# ── Segment queries ───────────────────────────────────────────────────

def segment_projection(p: Vec3, a: Vec3, b: Vec3) -> float:
    """Clamped parameter t in [0, 1] of the point on segment ab nearest p.

    Returns 0 for a zero-length segment.
    """
    ab = b - a
    denom = float(np.dot(ab, ab))
    if denom < EPSILON:
        return 0.0
    return clamp(float(np.dot(p - a, ab)) / denom, 0.0, 1.0)


def batch_segment_distances(
    points: NDArray, starts: NDArray, ends: NDArray,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Distance from every point to every segment.

    Parameters
    ----------
    points : (V, 3) array
    starts, ends : (S, 3) arrays of segment endpoints

    Returns
    -------
    ``(dists, t_vals)``, both ``(V, S)``; ``t_vals`` is the clamped
    projection parameter along each segment.  Zero-length segments
    project every point onto their start.
    """
    p = np.asarray(points, dtype=np.float64)[:, np.newaxis, :]   # (V, 1, 3)
    a = np.asarray(starts, dtype=np.float64)                      # (S, 3)
    ab = np.asarray(ends, dtype=np.float64) - a                   # (S, 3)
    ab_len_sq = np.sum(ab * ab, axis=1)                           # (S,)
    safe_len_sq = np.where(ab_len_sq < EPSILON, 1.0, ab_len_sq)

    ap = p - a[np.newaxis, :, :]                                  # (V, S, 3)
    t_vals = np.sum(ap * ab[np.newaxis, :, :], axis=2) / safe_len_sq[np.newaxis, :]
    t_vals = np.where(ab_len_sq[np.newaxis, :] < EPSILON, 0.0, t_vals)
    t_vals = np.clip(t_vals, 0.0, 1.0)

    closest = a[np.newaxis, :, :] + t_vals[:, :, np.newaxis] * ab[np.newaxis, :, :]
    diff = p - closest                                            # (V, S, 3)
    dists = np.sqrt(np.sum(diff * diff, axis=2))                  # (V, S)
    return dists, t_vals
