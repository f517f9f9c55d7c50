"""Graph Laplacians and the constrained solves built on them.

Two edge weightings are provided: uniform (1 per edge) and cotangent
(mean of the cotangents of the angles opposite an edge; a boundary edge
keeps half its single cotangent).  ``relax`` smooths vertex positions in a
region with its ring held fixed; ``diffuse`` interpolates values
harmonically from a fixed vertex set.
"""

import logging

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import csr_matrix, diags, identity

from rigforge.constants import EPSILON
from rigforge.core.errors import InputError
from rigforge.core.sparse import CholeskySolver, TripletMatrix
from rigforge.geometry.topology import edge_adjacency

logger = logging.getLogger(__name__)


def cotangent_weights(vertices: NDArray, faces: NDArray) -> csr_matrix:
    """Symmetric (V, V) matrix of cotangent edge weights, zero diagonal."""
    v = np.asarray(vertices, dtype=np.float64)
    f = np.asarray(faces, dtype=np.int64).reshape(-1, 3)
    n = len(v)
    trips = TripletMatrix(n)
    for k in range(3):
        # Corner k faces edge (i, j)
        c = f[:, k]
        i = f[:, (k + 1) % 3]
        j = f[:, (k + 2) % 3]
        e1 = v[i] - v[c]
        e2 = v[j] - v[c]
        cross = np.linalg.norm(np.cross(e1, e2), axis=1)
        dot = np.sum(e1 * e2, axis=1)
        cot = np.where(cross > EPSILON, dot / np.maximum(cross, EPSILON), 0.0)
        trips.add_many(i, j, 0.5 * cot)
        trips.add_many(j, i, 0.5 * cot)
    return trips.to_csr()


def laplacian_from_weights(weights: csr_matrix) -> csr_matrix:
    """``D - W`` with ``D`` the row sums of ``W``."""
    degree = np.asarray(weights.sum(axis=1)).ravel()
    return (diags(degree) - weights).tocsr()


def cotangent_laplacian(vertices: NDArray, faces: NDArray) -> csr_matrix:
    return laplacian_from_weights(cotangent_weights(vertices, faces))


def uniform_laplacian(faces: NDArray, vertex_count: int) -> csr_matrix:
    """Row-normalized ``I - D^-1 A``; isolated vertices get a zero row."""
    adj = edge_adjacency(faces, vertex_count)
    degree = np.asarray(adj.sum(axis=1)).ravel()
    inv = np.where(degree > 0, 1.0 / np.maximum(degree, 1.0), 0.0)
    lap = identity(vertex_count, format="csr") - diags(inv) @ adj
    # Isolated vertices: no smoothing term
    lap = diags((degree > 0).astype(np.float64)) @ lap
    return lap.tocsr()


def relax(
    positions: NDArray,
    laplacian: csr_matrix,
    interior: NDArray,
    smoothness: float,
    system: str = "relaxation",
) -> NDArray[np.float64]:
    """Least-squares smoothing of the *interior* vertices.

    Minimizes ``s^2 |L x|^2 + |x - x0|^2`` over interior positions with
    every other vertex fixed, where the Laplacian rows are those of the
    interior vertices.  ``smoothness == 0`` returns the input unchanged.
    All three coordinates share one factorization.
    """
    if smoothness < 0:
        raise InputError(f"smoothness must be >= 0, got {smoothness}")
    out = np.array(positions, dtype=np.float64, copy=True)
    interior = np.asarray(interior, dtype=np.int64)
    if smoothness == 0 or len(interior) == 0:
        return out

    n = len(out)
    fixed = np.setdiff1d(np.arange(n), interior)
    lap_rows = laplacian[interior]
    l_ii = lap_rows[:, interior]
    l_if = lap_rows[:, fixed]
    s2 = float(smoothness) ** 2

    lhs = s2 * (l_ii.T @ l_ii) + identity(len(interior), format="csr")
    rhs = out[interior] - s2 * (l_ii.T @ (l_if @ out[fixed]))
    solver = CholeskySolver(system).factorize(lhs)
    out[interior] = solver.solve(rhs)
    logger.debug("Relaxed %d vertices (%s, s=%.3f)", len(interior), system, smoothness)
    return out


def diffuse(
    laplacian: csr_matrix,
    fixed: NDArray,
    fixed_values: NDArray,
    system: str = "diffusion",
) -> NDArray[np.float64]:
    """Harmonic interpolation: ``L x = 0`` on free vertices, ``x = values`` on *fixed*.

    ``fixed_values`` is ``(len(fixed),)`` or ``(len(fixed), k)``; the result
    has one row per vertex.
    """
    n = laplacian.shape[0]
    fixed = np.asarray(fixed, dtype=np.int64)
    values = np.asarray(fixed_values, dtype=np.float64)
    out = np.zeros((n,) + values.shape[1:], dtype=np.float64)
    out[fixed] = values
    free = np.setdiff1d(np.arange(n), fixed)
    if len(free) == 0:
        return out
    l_ff = laplacian[free][:, free]
    l_fc = laplacian[free][:, fixed]
    rhs = -(l_fc @ values)
    out[free] = CholeskySolver(system).factorize(l_ff).solve(rhs)
    return out
