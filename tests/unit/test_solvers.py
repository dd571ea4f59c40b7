"""Unit tests for the linear solvers, the eigensolver and Newton's method."""

import numpy as np
import pytest
import scipy.sparse as sp

from bifcont.core.eigensolvers import EigenSolver
from bifcont.core.linear_solvers import DefaultLinearSolver, GMRESSolver, PartialSchurPreconditioner
from bifcont.core.newton import NewtonOptions, newton
from bifcont.core.types import Array, Matrix
from bifcont.core.vectors import BorderedArray


def simple_quadratic(u: Array, params) -> Array:
    """f(u) = u^2 - 4. Root at u=2 and u=-2."""
    return u**2 - 4.0


def simple_quadratic_jacobian(u: Array, params) -> Matrix:
    """J(u) = 2u."""
    return np.diag(2 * u)


def random_system(n: int = 10, seed: int = 1):
    rng = np.random.default_rng(seed)
    J = rng.standard_normal((n, n)) + n * np.eye(n)
    rhs = rng.standard_normal(n)
    return J, rhs


@pytest.mark.parametrize("sparse", [False, True])
def test_default_linear_solver(sparse):
    J, rhs = random_system()
    A = sp.csc_matrix(J) if sparse else J
    x, success, iterations = DefaultLinearSolver().solve(A, rhs)
    assert success
    np.testing.assert_allclose(J @ x, rhs, atol=1e-10)

    x1, x2, success, _ = DefaultLinearSolver().solve2(A, rhs, 2 * rhs)
    assert success
    np.testing.assert_allclose(x2, 2 * x1, atol=1e-10)


def test_default_linear_solver_shift():
    J, rhs = random_system()
    x, success, _ = DefaultLinearSolver().solve(J, rhs, shift=0.5)
    assert success
    np.testing.assert_allclose(J @ x + 0.5 * x, rhs, atol=1e-10)


def test_default_linear_solver_singular():
    J = np.array([[1.0, 1.0], [2.0, 2.0]])
    _, success, _ = DefaultLinearSolver().solve(J, np.array([1.0, 0.0]))
    assert not success


def test_gmres_matrix_free():
    J, rhs = random_system()
    x, success, iterations = GMRESSolver().solve(lambda v: J @ v, rhs)
    assert success
    assert iterations > 0
    np.testing.assert_allclose(J @ x, rhs, atol=1e-8)
    # a zero right-hand side needs no iterations
    x, success, iterations = GMRESSolver().solve(J, np.zeros(10))
    assert success and iterations == 0
    assert not np.any(x)


def test_gmres_bordered_array():
    J, rhs = random_system(4)

    def op(z):
        return BorderedArray(J @ z.u + z.p, 2 * z.p)

    x, success, _ = GMRESSolver().solve(op, BorderedArray(rhs, 2.0))
    assert success
    assert x.p == pytest.approx(1.0)
    np.testing.assert_allclose(J @ x.u + 1.0, rhs, atol=1e-8)


def test_gmres_complex_rhs():
    J, rhs = random_system()
    x, success, _ = GMRESSolver().solve(J, 1j * rhs)
    assert success
    np.testing.assert_allclose(J @ x, 1j * rhs, atol=1e-8)



def spectrum_with_outliers(n: int = 200, n_outliers: int = 10, seed: int = 0):
    """Symmetric matrix with eigenvalues in [1, 2] and a few large outliers."""
    rng = np.random.default_rng(seed)
    Q, _ = np.linalg.qr(rng.standard_normal((n, n)))
    d = np.concatenate([np.linspace(1.0, 2.0, n - n_outliers), np.logspace(np.log10(50.0), 3.0, n_outliers)])
    return (Q * d) @ Q.T, rng.standard_normal(n)


def test_partial_schur_preconditioner():
    A, b = spectrum_with_outliers()
    P = PartialSchurPreconditioner(A, 10)
    np.testing.assert_allclose(np.sort(P.eigenvalues.real), np.logspace(np.log10(50.0), 3.0, 10), rtol=1e-6)
    assert P.U.shape == (200, 10)
    # the deflated eigenvalues are mapped to 1
    v = P.U[:, 0]
    np.testing.assert_allclose(P.matvec(A @ v), v, atol=1e-5)
    # the complement is left unchanged
    w = b - P.U @ (P.U.T @ b)
    np.testing.assert_allclose(P.matvec(w), w, atol=1e-10)


def test_partial_schur_preconditioner_reduces_gmres_iterations():
    A, b = spectrum_with_outliers()
    x_ref = np.linalg.solve(A, b)
    x_plain, success_plain, its_plain = GMRESSolver().solve(lambda v: A @ v, b)
    P = PartialSchurPreconditioner(lambda v: A @ v, 10, n=200)
    x_prec, success_prec, its_prec = GMRESSolver(preconditioner=P).solve(lambda v: A @ v, b)
    assert success_plain and success_prec
    np.testing.assert_allclose(x_plain, x_ref, rtol=1e-8)
    np.testing.assert_allclose(x_prec, x_ref, rtol=1e-8)
    assert its_prec < its_plain


def test_eigensolver_sorting():
    A = np.diag([-1.0, 3.0, 0.5, -2.0])
    A[0, 3] = 1.0
    vals, vecs, success, _ = EigenSolver().solve(A)
    assert success
    np.testing.assert_allclose(vals.real, [3.0, 0.5, -1.0, -2.0])
    for val, vec in zip(vals, vecs):
        np.testing.assert_allclose(A @ vec, val * vec, atol=1e-12)
    vals, _, _, _ = EigenSolver().solve(A, k=2)
    assert len(vals) == 2


def test_eigensolver_sparse():
    n = 200
    A = sp.diags(np.linspace(-10.0, 1.0, n), format="csc")
    vals, vecs, success, _ = EigenSolver(direct_threshold=50).solve(A, k=3)
    assert success
    assert len(vals) == 3
    # the eigenvalues closest to the shift 0, sorted by decreasing real part
    assert np.all(np.diff(vals.real) <= 0)
    assert np.min(np.abs(vals)) < 0.06


def test_adjoint_basis():
    A = np.array([[1.0, 2.0], [0.0, -1.0]])
    vec, val = EigenSolver().adjoint_basis(A.T, -1.0)
    assert val == pytest.approx(-1.0)
    np.testing.assert_allclose(A.T @ vec, -vec, atol=1e-12)


def test_newton_converges():
    result = newton(simple_quadratic, simple_quadratic_jacobian, np.array([3.0]), None)
    assert result.converged
    np.testing.assert_allclose(result.solution, [2.0])
    assert result.residuals[0] == pytest.approx(5.0)
    assert result.residuals[-1] < 1e-10
    assert len(result.residuals) == result.iterations + 1


def test_newton_does_not_mutate_guess():
    x0 = np.array([3.0])
    newton(simple_quadratic, simple_quadratic_jacobian, x0, None)
    assert x0[0] == 3.0


def test_newton_no_root():
    def f(u, params):
        return u**2 + 1.0

    result = newton(f, simple_quadratic_jacobian, np.array([0.5]), None, NewtonOptions(max_iterations=5))
    assert not result.converged
    assert result.iterations == 5


def test_newton_linear_solver_failure():
    def f(u, params):
        return np.array([u[0] + u[1] - 1.0, 2 * u[0] + 2 * u[1] - 3.0])

    def jac(u, params):
        return np.array([[1.0, 1.0], [2.0, 2.0]])

    result = newton(f, jac, np.zeros(2), None)
    assert not result.converged
    assert result.iterations == 0


def test_newton_callback_stops():
    calls = []

    def callback(x, fx, J, residual, iteration, itlinear, options):
        calls.append(iteration)
        return False

    result = newton(simple_quadratic, simple_quadratic_jacobian, np.array([3.0]), None, callback=callback)
    assert calls == [1]
    assert result.iterations == 1


def test_newton_options():
    options = NewtonOptions(max_iterations=3)
    changed = options.copy(convergence_tolerance=1e-6)
    assert changed.max_iterations == 3
    assert changed.convergence_tolerance == 1e-6
    assert options.convergence_tolerance == 1e-10
    with pytest.raises(AssertionError):
        NewtonOptions(tolerance=1.0)
