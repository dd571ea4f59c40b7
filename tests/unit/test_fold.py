"""Sociable unit tests for the minimally augmented Fold problem and the continuation of Fold points."""

import numpy as np
import pytest

from bifcont.codim2.fold import (
    FoldLinearSolverMinAug,
    FoldProblemMinimallyAugmented,
    continuation_fold,
    fold_point,
    newton_fold,
)
from bifcont.continuation.bordered import MatrixBLS, MatrixFreeBLS
from bifcont.continuation.parameters import ContinuationParameters
from bifcont.core.branch import Branch, SpecialPoint
from bifcont.core.newton import NewtonOptions, newton
from bifcont.core.problem import BifurcationProblem
from bifcont.core.vectors import BorderedArray


def quadratic_problem():
    """x^2 - p, a fold at (0, 0)."""
    return BifurcationProblem(
        lambda x, par: x**2 - par["p"], np.array([0.1]), {"p": -0.01}, "p", J=lambda x, par: np.diag(2 * x)
    )


def cubic_problem(hessian: bool):
    """x^2 + x^3 - p, folds at (0, 0) and (-2/3, 4/27)."""
    d2F = (lambda x, par, dx1, dx2: (2 + 6 * x) * dx1 * dx2) if hessian else None
    return BifurcationProblem(
        lambda x, par: x**2 + x**3 - par["p"],
        np.array([-0.6]),
        {"p": 0.15},
        "p",
        J=lambda x, par: np.diag(2 * x + 3 * x**2),
        d2F=d2F,
    )


def bt_problem():
    """
    Normal form of the Bogdanov-Takens bifurcation:
    x' = y, y' = beta1 + beta2 x + x^2 + x y.
    The Fold curve is beta1 = beta2^2 / 4, x = -beta2 / 2, y = 0, with the
    Bogdanov-Takens point at beta1 = beta2 = 0.
    """

    def rhs(u, par):
        x, y = u
        return np.array([y, par["beta1"] + par["beta2"] * x + x**2 + x * y])

    def jacobian(u, par):
        x, y = u
        return np.array([[0.0, 1.0], [par["beta2"] + 2 * x + y, x]])

    return BifurcationProblem(rhs, np.array([0.5, 0.0]), {"beta1": 0.25, "beta2": -1.0}, "beta1", J=jacobian)


@pytest.mark.parametrize("bordered_solver", [MatrixBLS(), MatrixFreeBLS()])
def test_newton_fold(bordered_solver):
    problem = quadratic_problem()
    guess = BorderedArray(np.array([0.1]), -0.01)
    result, fold_problem = newton_fold(
        problem, guess, problem.params, "p", np.ones(1), np.ones(1), bordered_solver=bordered_solver
    )
    assert result.converged
    assert result.solution.u[0] == pytest.approx(0.0, abs=1e-8)
    assert result.solution.p == pytest.approx(0.0, abs=1e-8)
    assert fold_problem(result.solution, problem.params).p == pytest.approx(0.0, abs=1e-10)


@pytest.mark.parametrize("hessian", [False, True])
def test_newton_fold_second_derivative(hessian):
    problem = cubic_problem(hessian)
    assert problem.has_hessian == hessian
    guess = BorderedArray(np.array([-0.6]), 0.15)
    result, _ = newton_fold(problem, guess, problem.params, "p", np.ones(1), np.ones(1), bordered_solver=MatrixBLS())
    assert result.converged
    assert result.solution.u[0] == pytest.approx(-2 / 3, abs=1e-8)
    assert result.solution.p == pytest.approx(4 / 27, abs=1e-8)


@pytest.mark.parametrize("fd_epsilon", [1e-6, 1e-8])
def test_finite_difference_step(fd_epsilon):
    problem = cubic_problem(False)
    fold_problem = FoldProblemMinimallyAugmented(
        problem, "p", np.ones(1), np.ones(1), bordered_solver=MatrixBLS(), fd_epsilon=fd_epsilon
    )
    options = NewtonOptions(linear_solver=FoldLinearSolverMinAug())
    result = newton(fold_problem, fold_problem.jacobian, BorderedArray(np.array([-0.6]), 0.15), problem.params, options)
    assert result.converged
    assert result.solution.u[0] == pytest.approx(-2 / 3, abs=1e-7)


def test_updated_null_vectors():
    problem = BifurcationProblem(
        lambda x, par: np.array([x[0] ** 2 - par["p"], x[1]]),
        np.zeros(2),
        {"p": 0.0},
        "p",
        J=lambda x, par: np.array([[2 * x[0], 0.0], [0.0, 1.0]]),
    )
    a = np.array([1.0, 1.0]) / np.sqrt(2)
    b = np.array([1.0, 0.5])
    fold_problem = FoldProblemMinimallyAugmented(problem, "p", a.copy(), b.copy(), bordered_solver=MatrixBLS())
    new = fold_problem.updated(BorderedArray(np.zeros(2), 0.0), problem.params, 1)
    assert new is not fold_problem
    assert np.linalg.norm(new.a) == pytest.approx(1.0)
    assert np.linalg.norm(new.b) == pytest.approx(1.0)
    # at the fold the vectors are the null vectors of J and its adjoint
    np.testing.assert_allclose(new.b, [1.0, 0.0], atol=1e-12)
    np.testing.assert_allclose(new.a, [1.0, 0.0], atol=1e-12)
    # the original problem is untouched
    np.testing.assert_allclose(fold_problem.a, a)
    np.testing.assert_allclose(fold_problem.b, b)
    # the point of a continuation is accepted as well
    nested = fold_problem.updated(BorderedArray(BorderedArray(np.zeros(2), 0.0), 1.0), problem.params, 1)
    np.testing.assert_allclose(nested.b, new.b)


def test_same_lenses_rejected():
    problem = bt_problem()
    with pytest.raises(AssertionError):
        continuation_fold(
            problem, BorderedArray(np.array([0.5, 0.0]), 0.25), problem.params, "beta1", "beta1",
            np.array([1.0, 0.0]), np.array([0.0, 1.0]), ContinuationParameters(),
        )


def test_fold_point_type():
    branch = Branch()
    branch.add_special_point(SpecialPoint("hopf", 0, 0.0, np.zeros(1)))
    branch.add_special_point(SpecialPoint("fold", 1, 0.5, np.ones(1)))
    with pytest.raises(AssertionError):
        fold_point(branch, 0)
    guess = fold_point(branch, 1)
    assert guess.p == 0.5
    np.testing.assert_allclose(guess.u, [1.0])


def test_bogdanov_takens_detection():
    problem = bt_problem()
    a = np.array([0.5, -1.0])
    cp = ContinuationParameters(
        ds=0.05, dsmax=0.1, max_steps=100, p_max=0.5, detect_fold=False, detect_bifurcation=0,
        detect_codim2_bifurcation=2,
    )
    branch = continuation_fold(
        problem, BorderedArray(np.array([0.5, 0.0]), 0.25), problem.params, "beta1", "beta2",
        np.array([1.0, 0.0]), a / np.linalg.norm(a), cp, update_min_aug_every_step=1, bordered_solver=MatrixBLS(),
    )
    assert branch.kind == "fold_codim2"
    assert branch.lens.name == "beta2"
    # the points lie on the Fold curve
    for pt in branch:
        beta2 = pt.p
        assert pt.x.u[0] == pytest.approx(-beta2 / 2, abs=1e-8)
        assert pt.x.p == pytest.approx(beta2**2 / 4, abs=1e-8)
        assert pt.record["beta2"] == beta2
    assert branch.special_point_types() == ["bt"]
    bt = branch.special_points[0]
    assert abs(bt.param) < 1e-3
    assert bt.x.u[0] == pytest.approx(-bt.param / 2, abs=1e-3)
    assert bt.x.p == pytest.approx(0.0, abs=1e-3)
    # the null vectors were updated along the curve
    assert branch.functional.a is not None
    np.testing.assert_allclose(np.linalg.norm(branch.functional.b), 1.0)


def cusp_problem():
    """p1 + p2 x - x^3, Fold curve p2 = 3 x^2, p1 = -2 x^3 with a cusp at x = 0."""
    return BifurcationProblem(
        lambda x, par: par["p1"] + par["p2"] * x - x**3,
        np.array([1.0]),
        {"p1": -2.0, "p2": 3.0},
        "p1",
        J=lambda x, par: np.diag(par["p2"] - 3 * x**2),
    )


@pytest.mark.parametrize("detect_codim2", [0, 2])
def test_cusp_detection(detect_codim2):
    problem = cusp_problem()
    cp = ContinuationParameters(ds=-0.05, dsmax=0.1, max_steps=80, detect_codim2_bifurcation=detect_codim2)
    branch = continuation_fold(
        problem, BorderedArray(np.array([1.0]), -2.0), problem.params, "p1", "p2",
        np.ones(1), np.ones(1), cp, bordered_solver=MatrixBLS(),
    )
    # the turning point in p2 is never reported as a Fold
    assert branch.special_point_types() == ["cusp"]
    cusp = branch.special_points[0]
    assert cusp.param == pytest.approx(0.0, abs=1e-3)
    assert cusp.x.u[0] == pytest.approx(0.0, abs=0.05)
    for pt in branch:
        assert pt.p == pytest.approx(3 * pt.x.u[0] ** 2, abs=1e-8)
        assert pt.x.p == pytest.approx(-2 * pt.x.u[0] ** 3, abs=1e-8)


def zero_hopf_problem():
    """
    x' = p1 - x^2, coupled to an oscillator y' = p2 y - z, z' = y + p2 z.
    The Fold curve x = p1 = 0 has a zero-Hopf point at p2 = 0, where the
    pair of eigenvalues p2 +- i crosses the imaginary axis.
    """

    def rhs(u, par):
        x, y, z = u
        return np.array([par["p1"] - x**2, par["p2"] * y - z, y + par["p2"] * z])

    def jacobian(u, par):
        return np.array([[-2 * u[0], 0.0, 0.0], [0.0, par["p2"], -1.0], [0.0, 1.0, par["p2"]]])

    return BifurcationProblem(rhs, np.zeros(3), {"p1": 0.0, "p2": -0.5}, "p1", J=jacobian)


def test_zero_hopf_detection():
    problem = zero_hopf_problem()
    e1 = np.array([1.0, 0.0, 0.0])
    cp = ContinuationParameters(ds=0.05, dsmax=0.1, p_max=0.5, max_steps=100, detect_codim2_bifurcation=2)
    branch = continuation_fold(
        problem, BorderedArray(np.zeros(3), 0.0), problem.params, "p1", "p2", e1, e1, cp,
        compute_eigen_elements=True, bordered_solver=MatrixBLS(),
    )
    assert branch[0].eigenvalues is not None
    assert branch[0].n_unstable == 0
    assert branch[-1].n_unstable == 2
    assert branch.special_point_types() == ["zh"]
    assert branch.special_points[0].param == pytest.approx(0.0, abs=1e-3)


def test_zero_hopf_needs_eigenvalues():
    problem = zero_hopf_problem()
    e1 = np.array([1.0, 0.0, 0.0])
    cp = ContinuationParameters(ds=0.05, dsmax=0.1, p_max=0.5, max_steps=100, detect_codim2_bifurcation=2)
    branch = continuation_fold(
        problem, BorderedArray(np.zeros(3), 0.0), problem.params, "p1", "p2", e1, e1, cp,
        bordered_solver=MatrixBLS(),
    )
    assert branch[0].eigenvalues is None
    assert branch.special_point_types() == []


def test_fold_curve_user_record():
    problem = bt_problem()
    a = np.array([0.5, -1.0])
    cp = ContinuationParameters(ds=0.05, dsmax=0.1, max_steps=5, detect_bifurcation=0)
    branch = continuation_fold(
        problem, BorderedArray(np.array([0.5, 0.0]), 0.25), problem.params, "beta1", "beta2",
        np.array([1.0, 0.0]), a / np.linalg.norm(a), cp, update_min_aug_every_step=1, bordered_solver=MatrixBLS(),
        record_from_solution=lambda x, p2: {"x": x[0], "twice_beta2": 2 * p2},
    )
    assert len(branch) > 1
    for pt in branch:
        assert set(pt.record) == {"x", "twice_beta2", "beta1", "beta2", "BT"}
        assert pt.record["x"] == pt.x.u[0]
        assert pt.record["twice_beta2"] == 2 * pt.p
        assert pt.record["beta1"] == pt.x.p
        assert pt.record["beta2"] == pt.p
