"""Sparse matrix assembly and Cholesky solves for SPD systems.

Matrices are accumulated from (row, col, value) triplets; repeated entries
at the same position add up when the matrix is built.  Factorization uses
scipy's dense Cholesky on the assembled matrix, which is adequate for the
seam-local and per-bone systems the engines build.
"""

import logging
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import cho_factor, cho_solve
from scipy.sparse import coo_matrix, csr_matrix

from rigforge.core.errors import SolveError

logger = logging.getLogger(__name__)


class TripletMatrix:
    """Additive (row, col, value) accumulator for an ``n_rows x n_cols`` matrix."""

    def __init__(self, n_rows: int, n_cols: Optional[int] = None):
        self.shape = (int(n_rows), int(n_rows if n_cols is None else n_cols))
        self._rows: list[NDArray] = []
        self._cols: list[NDArray] = []
        self._vals: list[NDArray] = []

    def add(self, row: int, col: int, value: float) -> None:
        self.add_many(np.array([row]), np.array([col]), np.array([value], dtype=np.float64))

    def add_many(self, rows: NDArray, cols: NDArray, values: NDArray) -> None:
        """Append a batch of entries (broadcast ``values`` against ``rows``)."""
        rows = np.asarray(rows, dtype=np.int64).ravel()
        cols = np.asarray(cols, dtype=np.int64).ravel()
        values = np.broadcast_to(np.asarray(values, dtype=np.float64), rows.shape).ravel()
        if rows.shape != cols.shape:
            raise ValueError("rows and cols must have the same length")
        if rows.size == 0:
            return
        if rows.min() < 0 or cols.min() < 0 or rows.max() >= self.shape[0] or cols.max() >= self.shape[1]:
            raise IndexError(f"triplet index outside matrix of shape {self.shape}")
        self._rows.append(rows)
        self._cols.append(cols)
        self._vals.append(values.copy())

    @property
    def nnz_entries(self) -> int:
        return sum(len(r) for r in self._rows)

    def to_csr(self) -> csr_matrix:
        """Build the sparse matrix, summing duplicate entries."""
        if not self._rows:
            return csr_matrix(self.shape, dtype=np.float64)
        rows = np.concatenate(self._rows)
        cols = np.concatenate(self._cols)
        vals = np.concatenate(self._vals)
        # COO -> CSR conversion sums duplicates
        return coo_matrix((vals, (rows, cols)), shape=self.shape).tocsr()


class CholeskySolver:
    """Cholesky factorization of a symmetric positive-definite matrix.

    ``system`` labels the matrix in any :class:`SolveError` raised, so a
    failure reports which bone or seam region could not be solved.
    """

    def __init__(self, system: str = "linear system"):
        self.system = system
        self._factor = None
        self.size = 0

    def factorize(self, matrix) -> "CholeskySolver":
        """Factor ``matrix`` (sparse or dense).  Raises SolveError if not SPD."""
        dense = matrix.toarray() if hasattr(matrix, "toarray") else np.asarray(matrix, dtype=np.float64)
        if dense.ndim != 2 or dense.shape[0] != dense.shape[1]:
            raise SolveError(f"matrix of shape {dense.shape} is not square", system=self.system)
        if dense.shape[0] == 0:
            raise SolveError("matrix is empty", system=self.system)
        if not np.all(np.isfinite(dense)):
            raise SolveError("matrix has non-finite entries", system=self.system)
        if not np.allclose(dense, dense.T, atol=1e-9):
            raise SolveError("matrix is not symmetric", system=self.system)
        try:
            self._factor = cho_factor(dense, lower=True, check_finite=False)
        except np.linalg.LinAlgError as exc:
            raise SolveError(f"matrix is not positive definite ({exc})", system=self.system) from exc
        self.size = dense.shape[0]
        logger.debug("Factorized %s (%d unknowns)", self.system, self.size)
        return self

    def solve(self, rhs: NDArray) -> NDArray[np.float64]:
        """Solve for one right-hand side ``(n,)`` or several ``(n, k)``."""
        if self._factor is None:
            raise SolveError("solve() called before factorize()", system=self.system)
        b = np.asarray(rhs, dtype=np.float64)
        if b.shape[0] != self.size:
            raise SolveError(
                f"right-hand side has {b.shape[0]} rows, expected {self.size}",
                system=self.system,
            )
        x = cho_solve(self._factor, b, check_finite=False)
        if not np.all(np.isfinite(x)):
            raise SolveError("solution is not finite", system=self.system)
        return x


def solve_spd(matrix, rhs: NDArray, system: str = "linear system") -> NDArray[np.float64]:
    """Factor and solve in one step."""
    return CholeskySolver(system).factorize(matrix).solve(rhs)
