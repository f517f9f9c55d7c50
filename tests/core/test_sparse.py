"""Tests for triplet assembly and the Cholesky solver."""

import numpy as np
import pytest
from scipy.sparse import csr_matrix

from rigforge.core.errors import SolveError
from rigforge.core.sparse import CholeskySolver, TripletMatrix, solve_spd


def _spd(n=5, seed=0):
    rng = np.random.default_rng(seed)
    a = rng.normal(size=(n, n))
    return a @ a.T + n * np.eye(n)


class TestTripletMatrix:

    def test_duplicates_sum(self):
        t = TripletMatrix(3)
        t.add(0, 1, 2.0)
        t.add(0, 1, 3.0)
        t.add_many([2, 2], [0, 0], [1.0, 1.5])
        m = t.to_csr().toarray()
        assert m[0, 1] == pytest.approx(5.0)
        assert m[2, 0] == pytest.approx(2.5)
        assert t.nnz_entries == 4

    def test_rectangular_shape(self):
        t = TripletMatrix(2, 4)
        t.add(1, 3, 1.0)
        assert t.to_csr().shape == (2, 4)

    def test_empty(self):
        m = TripletMatrix(4).to_csr()
        assert m.shape == (4, 4)
        assert m.nnz == 0

    def test_broadcast_value(self):
        t = TripletMatrix(3)
        t.add_many([0, 1, 2], [0, 1, 2], 1.0)
        np.testing.assert_array_equal(t.to_csr().toarray(), np.eye(3))

    def test_out_of_range(self):
        t = TripletMatrix(2)
        with pytest.raises(IndexError):
            t.add(2, 0, 1.0)


class TestCholeskySolver:

    def test_solves_dense_and_sparse(self):
        a = _spd()
        b = np.arange(5, dtype=np.float64)
        x_dense = CholeskySolver().factorize(a).solve(b)
        x_sparse = CholeskySolver().factorize(csr_matrix(a)).solve(b)
        np.testing.assert_array_almost_equal(a @ x_dense, b)
        np.testing.assert_array_almost_equal(x_dense, x_sparse)

    def test_multiple_right_hand_sides(self):
        a = _spd(4, seed=2)
        b = np.random.default_rng(1).normal(size=(4, 3))
        x = solve_spd(a, b)
        assert x.shape == (4, 3)
        np.testing.assert_array_almost_equal(a @ x, b)

    def test_not_positive_definite_names_system(self):
        a = -np.eye(3)
        with pytest.raises(SolveError, match="seam band"):
            CholeskySolver("seam band").factorize(a)

    def test_not_symmetric(self):
        a = _spd(3)
        a[0, 1] += 1.0
        with pytest.raises(SolveError, match="not symmetric"):
            CholeskySolver().factorize(a)

    def test_empty_matrix(self):
        with pytest.raises(SolveError):
            CholeskySolver().factorize(np.zeros((0, 0)))

    def test_solve_before_factorize(self):
        with pytest.raises(SolveError):
            CholeskySolver().solve(np.zeros(3))

    def test_wrong_rhs_length(self):
        solver = CholeskySolver().factorize(np.eye(3))
        with pytest.raises(SolveError):
            solver.solve(np.zeros(4))

    def test_error_carries_system(self):
        try:
            CholeskySolver("skin weights bone 2").factorize(np.zeros((2, 2)))
        except SolveError as exc:
            assert exc.system == "skin weights bone 2"
            assert str(exc).startswith("skin weights bone 2:")
        else:
            pytest.fail("SolveError not raised")
