"""Quality metrics for surgery results."""

import numpy as np
from numpy.typing import NDArray
from shapely.geometry import Polygon
from shapely.validation import make_valid

from rigforge.geometry.laplacian import uniform_laplacian


def laplacian_energy(vertices: NDArray, faces: NDArray, region: NDArray = None) -> float:
    """Mean squared uniform-Laplacian magnitude, optionally over *region* only."""
    v = np.asarray(vertices, dtype=np.float64)
    lap = uniform_laplacian(faces, len(v))
    delta = lap @ v
    if region is not None:
        delta = delta[np.asarray(region, dtype=np.int64)]
    if len(delta) == 0:
        return 0.0
    return float(np.mean(np.sum(delta * delta, axis=1)))


def _outline(points: NDArray):
    """Valid shapely geometry for a 2D outline, or None when it has no area."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if len(pts) < 3:
        return None
    poly = Polygon(pts)
    if not poly.is_valid:
        poly = make_valid(poly)
    return poly if poly.area > 0 else None


def silhouette_iou(outline_a: NDArray, outline_b: NDArray) -> float:
    """Intersection-over-union of two 2D outlines, 0 for degenerate input.

    Self-intersecting outlines are repaired with ``make_valid`` first.
    """
    a = _outline(outline_a)
    b = _outline(outline_b)
    if a is None or b is None:
        return 0.0
    union = a.union(b).area
    if union <= 0:
        return 0.0
    return float(a.intersection(b).area / union)
