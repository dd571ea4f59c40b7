"""Sociable unit tests for normal forms and branch switching."""

import numpy as np
import pytest

from bifcont.continuation.branch_switching import multicontinuation, reduced_roots, switch_branch
from bifcont.continuation.continuation import continuation
from bifcont.continuation.normal_forms import compute_normal_form, compute_normal_form_1d
from bifcont.continuation.parameters import ContinuationParameters
from bifcont.core.problem import BifurcationProblem


def pitchfork_problem():
    """p x - x^3 with analytic derivatives."""
    return BifurcationProblem(
        lambda x, par: par["p"] * x - x**3,
        np.array([0.0]),
        {"p": -0.5},
        "p",
        J=lambda x, par: np.diag(par["p"] - 3 * x**2),
        d2F=lambda x, par, dx1, dx2: -6 * x * dx1 * dx2,
        d3F=lambda x, par, dx1, dx2, dx3: -6 * dx1 * dx2 * dx3,
    )


def transcritical_problem():
    """x (p - x) with finite difference second and third derivatives."""
    return BifurcationProblem(
        lambda x, par: x * (par["p"] - x), np.array([0.0]), {"p": -0.5}, "p",
        J=lambda x, par: np.diag(par["p"] - 2 * x),
    )


def decoupled_problem():
    """(p x1 - x1^3, p x2 - x2^3), a branch point with two-dimensional kernel at p = 0."""
    return BifurcationProblem(
        lambda x, par: par["p"] * x - x**3,
        np.zeros(2),
        {"p": -0.3},
        "p",
        J=lambda x, par: np.diag(par["p"] - 3 * x**2),
        d2F=lambda x, par, dx1, dx2: -6 * x * dx1 * dx2,
        d3F=lambda x, par, dx1, dx2, dx3: -6 * dx1 * dx2 * dx3,
    )


def trivial_branch(problem, p_max=0.3):
    cp = ContinuationParameters(ds=0.05, dsmax=0.1, p_max=p_max)
    branch = continuation(problem, contparams=cp)
    assert branch.special_point_types()[0] in ("bp", "nd")
    return branch


def test_pitchfork_normal_form():
    problem = pitchfork_problem()
    branch = trivial_branch(problem)
    nf = compute_normal_form_1d(problem, branch, 0)
    assert nf.type == "pitchfork"
    assert nf.a == pytest.approx(0.0, abs=1e-8)
    assert nf.b1 == pytest.approx(1.0, rel=1e-6)
    assert nf.b2 == pytest.approx(0.0, abs=1e-8)
    assert nf.b3 == pytest.approx(-6.0, rel=1e-6)


def test_pitchfork_branch_switching():
    problem = pitchfork_problem()
    branch = trivial_branch(problem)
    cp = ContinuationParameters(ds=0.05, dsmax=0.1, max_steps=10, detect_bifurcation=0)
    new_branch = switch_branch(problem, branch, 0, cp)
    assert len(new_branch) > 1
    for pt in new_branch:
        assert pt.x[0] > 0
        assert pt.x[0] ** 2 == pytest.approx(pt.p, abs=1e-8)


def test_transcritical_branch_switching():
    problem = transcritical_problem()
    branch = trivial_branch(problem)
    nf = compute_normal_form_1d(problem, branch, 0)
    assert nf.type == "transcritical"
    cp = ContinuationParameters(ds=0.05, dsmax=0.1, max_steps=10, detect_bifurcation=0)
    new_branch = switch_branch(problem, branch, 0, cp)
    assert len(new_branch) > 1
    for pt in new_branch:
        assert pt.x[0] == pytest.approx(pt.p, abs=1e-8)


def test_branch_switching_with_deflation():
    problem = transcritical_problem()
    branch = trivial_branch(problem)
    cp = ContinuationParameters(ds=0.05, dsmax=0.1, max_steps=3, detect_bifurcation=0)
    new_branch = switch_branch(problem, branch, 0, cp, use_deflation=True)
    assert new_branch[0].x[0] == pytest.approx(new_branch[0].p, abs=1e-8)
    assert abs(new_branch[0].x[0]) > 1e-3


def test_fold_is_not_switched():
    problem = BifurcationProblem(
        lambda x, par: x**2 - par["p"], np.array([1.0]), {"p": 1.0}, "p", J=lambda x, par: np.diag(2 * x)
    )
    cp = ContinuationParameters(ds=-0.05, dsmax=0.1, p_max=1.5, detect_fold=False)
    branch = continuation(problem, contparams=cp)
    assert branch.special_point_types() == ["bp"]
    assert compute_normal_form_1d(problem, branch, 0).type == "fold"
    assert switch_branch(problem, branch, 0, cp) is None


def test_nd_normal_form():
    problem = decoupled_problem()
    branch = trivial_branch(problem)
    assert branch.special_point_types() == ["nd"]
    assert branch.kernel_dim(0) == 2
    nf = compute_normal_form(problem, branch, 0)
    assert nf.dim == 2
    np.testing.assert_allclose(nf.a, 0.0, atol=1e-8)
    np.testing.assert_allclose(nf.B1, np.eye(2), atol=1e-6)
    # the reduced equation is dp x_i - x_i^3 = 0
    x = np.array([0.3, -0.2])
    np.testing.assert_allclose(nf.reduced_form(x, 0.1), 0.1 * x - x**3, atol=1e-6)
    roots = reduced_roots(nf, 0.05, np.random.default_rng(0))
    assert len(roots) >= 2
    for root in roots:
        np.testing.assert_allclose(nf.reduced_form(root, 0.05), 0.0, atol=1e-9)
    assert reduced_roots(nf, -0.05, np.random.default_rng(0)) == []


def test_multicontinuation():
    problem = decoupled_problem()
    branch = trivial_branch(problem)
    cp = ContinuationParameters(ds=0.05, dsmax=0.1, max_steps=5, detect_bifurcation=0)
    result = switch_branch(problem, branch, 0, cp)
    assert result.before == []
    assert len(result.after) >= 2
    for x in result.after:
        np.testing.assert_allclose(problem(x, problem.set_param(problem.params, branch.special_points[0].param + 0.05)),
                                   0.0, atol=1e-9)
        assert np.linalg.norm(x) > 1e-3
    assert len(result.branches) == len(result.after)
    for new_branch in result.branches:
        assert len(new_branch) > 1

    direct = multicontinuation(problem, branch, 0, cp)
    assert len(direct.after) == len(result.after)
