"""Unit tests for the bordered linear solvers."""

import numpy as np
import pytest
import scipy.sparse as sp

from bifcont.continuation.bordered import BorderedOperator, BorderingBLS, LSFromBLS, MatrixBLS, MatrixFreeBLS
from bifcont.core.vectors import BorderedArray


def bordered_system(n: int = 8, seed: int = 0):
    rng = np.random.default_rng(seed)
    J = rng.standard_normal((n, n)) + n * np.eye(n)
    dR = rng.standard_normal(n)
    dzu = rng.standard_normal(n)
    dzp = rng.standard_normal() + 2.0
    R = rng.standard_normal(n)
    nrhs = rng.standard_normal()
    return J, dR, dzu, dzp, R, nrhs


def full_solution(J, dR, dzu, dzp, R, nrhs, xiu=1.0, xip=1.0):
    M = np.block([[J, dR[:, None]], [xiu * dzu[None, :], np.array([[xip * dzp]])]])
    sol = np.linalg.solve(M, np.append(R, nrhs))
    return sol[:-1], sol[-1]


SOLVERS = [
    BorderingBLS(),
    MatrixBLS(),
    MatrixFreeBLS(use_bordered_array=True),
    MatrixFreeBLS(use_bordered_array=False),
]


@pytest.mark.parametrize("solver", SOLVERS)
@pytest.mark.parametrize("n", [1, 5, 20])
def test_bordered_solvers_agree(solver, n):
    J, dR, dzu, dzp, R, nrhs = bordered_system(n)
    x_ref, l_ref = full_solution(J, dR, dzu, dzp, R, nrhs, 0.3, 0.7)
    x, l, success, _ = solver.solve(J, dR, dzu, dzp, R, nrhs, 0.3, 0.7)
    assert success
    np.testing.assert_allclose(x, x_ref, rtol=1e-8, atol=1e-10)
    assert l == pytest.approx(l_ref, rel=1e-8, abs=1e-10)


@pytest.mark.parametrize("solver", [BorderingBLS(), MatrixBLS()])
def test_bordered_residual(solver):
    J, dR, dzu, dzp, R, nrhs = bordered_system(12, seed=3)
    x, l, success, _ = solver.solve(J, dR, dzu, dzp, R, nrhs)
    assert success
    np.testing.assert_allclose(J @ x + l * dR, R, atol=1e-10)
    assert np.dot(dzu, x) + dzp * l == pytest.approx(nrhs, abs=1e-10)


def test_bordered_shift():
    J, dR, dzu, dzp, R, nrhs = bordered_system(6, seed=2)
    x_ref, l_ref = full_solution(J + 0.5 * np.eye(6), dR, dzu, dzp, R, nrhs)
    for solver in (BorderingBLS(), MatrixBLS(), MatrixFreeBLS()):
        x, l, success, _ = solver.solve(J, dR, dzu, dzp, R, nrhs, shift=0.5)
        assert success
        np.testing.assert_allclose(x, x_ref, atol=1e-8)
        assert l == pytest.approx(l_ref, abs=1e-8)


def test_matrix_bls_sparse():
    J, dR, dzu, dzp, R, nrhs = bordered_system(10, seed=4)
    x_ref, l_ref = full_solution(J, dR, dzu, dzp, R, nrhs)
    x, l, success, _ = MatrixBLS().solve(sp.csc_matrix(J), dR, dzu, dzp, R, nrhs)
    assert success
    np.testing.assert_allclose(x, x_ref, atol=1e-10)
    assert l == pytest.approx(l_ref)


def test_bordering_zero_pivot():
    # dzp - <dzu, J^-1 dR> = 1 - 1 = 0
    n = 3
    e1 = np.eye(n)[0]
    _, l, success, _ = BorderingBLS().solve(np.eye(n), e1, e1, 1.0, np.ones(n), 1.0)
    assert not success
    assert np.isnan(l)


def test_matrix_bls_singular_jacobian():
    # the bordered matrix is regular although J is singular
    J = np.array([[0.0, 1.0], [0.0, 0.0]])
    a = np.array([0.0, 1.0])
    b = np.array([1.0, 0.0])
    v, sigma, success, _ = MatrixBLS().solve(J, a, b, 0.0, np.zeros(2), 1.0)
    assert success
    np.testing.assert_allclose(v, [1.0, 0.0], atol=1e-14)
    assert sigma == pytest.approx(0.0, abs=1e-14)


def test_bordered_operator():
    J, dR, dzu, dzp, _, _ = bordered_system(4)
    op = BorderedOperator(J, dR, dzu, dzp)
    x = np.arange(5.0)
    flat = op(x)
    bordered = op(BorderedArray(x[:-1], x[-1]))
    np.testing.assert_allclose(flat[:-1], J @ x[:-1] + x[-1] * dR)
    np.testing.assert_allclose(bordered.u, flat[:-1])
    assert bordered.p == pytest.approx(flat[-1])


@pytest.mark.parametrize("sparse", [False, True])
def test_linear_solver_from_bordered_solver(sparse):
    J, dR, dzu, dzp, R, nrhs = bordered_system(7, seed=5)
    M = np.block([[J, dR[:, None]], [dzu[None, :], np.array([[dzp]])]])
    rhs = np.append(R, nrhs)
    A = sp.csr_matrix(M) if sparse else M
    x, success, _ = LSFromBLS().solve(A, rhs)
    assert success
    np.testing.assert_allclose(x, np.linalg.solve(M, rhs), atol=1e-10)
