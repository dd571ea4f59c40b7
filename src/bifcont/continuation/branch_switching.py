"""
Automatic branch switching at branch points, based on the normal form of
the bifurcation point.
"""

from __future__ import annotations

from typing import Any, NamedTuple

import numpy as np

from ..core.branch import Branch
from ..core.newton import NewtonOptions, newton
from ..core.types import Array
from .continuation import continuation
from .deflation import DeflationOperator
from .normal_forms import NdBranchPoint, compute_normal_form, compute_normal_form_1d
from .parameters import ContinuationParameters


class BranchSwitchResult(NamedTuple):
    """The result of branch switching at a non-simple branch point."""

    #: the bifurcated branches
    branches: list[Branch]
    #: the solutions found before the branch point (p < p0)
    before: list[Array]
    #: the solutions found after the branch point (p > p0)
    after: list[Array]
    #: number of roots of the reduced equation that could not be corrected
    rejected: int


def switch_branch(
    problem: Any,
    branch: Branch,
    ind_bif: int,
    contparams: ContinuationParameters,
    delta_p: float | None = None,
    ampfactor: float = 1.0,
    use_deflation: bool = False,
    nev: int | None = None,
    issymmetric: bool | None = None,
    delta: float = 1e-8,
    verbosity: int = 0,
    **kwargs: Any,
) -> Branch | BranchSwitchResult | None:
    """
    Switch to the bifurcated branch at a branch point and continue it.

    Parameters
    ----------
    problem
        The problem the branch was computed for.
    branch
        The branch containing the branch point.
    ind_bif
        Index of the branch point in branch.special_points.
    contparams
        The settings of the continuation of the new branch.
    delta_p
        Distance in parameter of the predictor from the branch point,
        defaults to contparams.ds.
    ampfactor
        Factor altering the amplitude of the predicted solution.
    use_deflation
        Refine the predictor with a deflated Newton solve, the branch point
        being deflated.
    nev
        Number of eigenvalues computed for the kernel.
    issymmetric
        Is the Jacobian symmetric?
    delta
        Finite difference step for derivatives with respect to the parameter.
    verbosity
        How verbose should the branch switching be?
    kwargs
        Further arguments of continuation().

    Returns
    -------
    Branch, BranchSwitchResult or None
        The new branch, the result of multicontinuation() for kernel
        dimension > 1 or None if there is no bifurcated branch (fold).
    """
    if branch.kernel_dim(ind_bif) > 1:
        if verbosity > 0:
            print(f"Branch switching: kernel dimension = {branch.kernel_dim(ind_bif)}")
        return multicontinuation(
            problem, branch, ind_bif, contparams, delta_p=delta_p, nev=nev, issymmetric=issymmetric,
            delta=delta, verbosity=verbosity, **kwargs,
        )
    assert branch.kind == "equilibrium", f"Branch switching from a branch of kind '{branch.kind}' is not handled"
    special = branch.special_points[ind_bif]
    assert special.type == "bp", f"Branch switching from a special point of type '{special.type}' is not handled"

    ds = contparams.ds if delta_p is None else delta_p
    bif_point = compute_normal_form_1d(
        problem, branch, ind_bif, delta=delta, nev=nev, issymmetric=issymmetric, verbose=verbosity > 0
    )
    pred = bif_point.predictor(ds, ampfactor)
    if pred is None:
        print("Warning: branch switching aborted")
        return None
    if verbosity > 0:
        print(f"Branch switching: bifurcation type = {bif_point.type}, new p = {pred.p}, "
              f"dp = {pred.p - special.param}")
    x_pred = pred.x
    params = problem.set_param(branch.params, pred.p)
    if use_deflation:
        # the branch point itself repels the Newton iterates
        deflation = DeflationOperator(2, 1.0, roots=[special.x])
        result = newton(problem, problem.jacobian, x_pred, params, contparams.newton_options, deflation=deflation)
        if result.converged:
            x_pred = result.solution
        elif verbosity > 0:
            print("Branch switching: deflated Newton did not converge, using the predictor")
    return continuation(problem, x_pred, params, contparams, verbosity=verbosity, **kwargs)


def reduced_roots(
    normal_form: NdBranchPoint,
    dp: float,
    rng: np.random.Generator,
    max_failures: int = 10,
    max_roots: int = 100,
    max_iterations: int = 50,
) -> list[Array]:
    """
    Find the nontrivial roots of the reduced equation at parameter distance dp
    by deflated Newton iterations from random guesses.

    The search stops after max_failures consecutive failures or when
    max_roots roots (including the trivial one) are found.
    """
    n = normal_form.dim
    deflation = DeflationOperator(2, 1.0, roots=[np.zeros(n)], max_roots=max_roots)
    options = NewtonOptions(max_iterations=max_iterations)
    failures = 0
    while failures < max_failures and len(deflation) < max_roots:
        guess = rng.uniform(-1, 1, n)
        result = newton(
            normal_form.reduced_form, normal_form.reduced_jacobian, guess, dp, options, deflation=deflation
        )
        if result.converged and deflation.add_solution(result.solution):
            failures = 0
        else:
            failures += 1
    return list(deflation.roots[1:])


def multicontinuation(
    problem: Any,
    branch: Branch,
    ind_bif: int,
    contparams: ContinuationParameters,
    delta_p: float | None = None,
    nev: int | None = None,
    issymmetric: bool | None = None,
    delta: float = 1e-8,
    max_roots: int = 100,
    seed: int | None = 0,
    verbosity: int = 0,
    **kwargs: Any,
) -> BranchSwitchResult:
    """
    Branch switching at a non-simple branch point.

    The roots of the reduced equation on both sides of the branch point are
    lifted to guesses of solutions of the full problem, corrected by deflated
    Newton iterations and continued.
    """
    normal_form = compute_normal_form(problem, branch, ind_bif, delta=delta, nev=nev, issymmetric=issymmetric)
    ds = abs(contparams.ds if delta_p is None else delta_p)
    rng = np.random.default_rng(seed)
    roots_after = reduced_roots(normal_form, ds, rng, max_roots=max_roots)
    roots_before = reduced_roots(normal_form, -ds, rng, max_roots=max_roots)
    if verbosity > 0:
        print(f"Branch switching: found {len(roots_before)} (resp. {len(roots_after)}) roots "
              "before (resp. after) the branch point (reduced equation)")

    options = contparams.newton_options
    rejected = 0

    def correct(roots: list[Array], sign: int, max_iterations: int) -> list[Array]:
        nonlocal rejected
        params = problem.set_param(branch.params, normal_form.p0 + sign * ds)
        side_options = options.copy(max_iterations=max_iterations)
        deflation = DeflationOperator(2, 1.0)
        # deflate the continuation of the original branch
        trivial = newton(problem, problem.jacobian, normal_form.lift(np.zeros(normal_form.dim)), params, side_options)
        if trivial.converged:
            deflation.add_solution(trivial.solution)
        solutions = []
        for root in roots:
            result = newton(
                problem, problem.jacobian, normal_form.lift(root, sign * ds), params, side_options, deflation=deflation
            )
            if result.converged:
                deflation.add_solution(result.solution)
                solutions.append(result.solution)
            else:
                rejected += 1
        return solutions

    after = correct(roots_after, 1, 10 * options.max_iterations)
    before = correct(roots_before, -1, 15 * options.max_iterations)
    if verbosity > 0:
        print(f"Branch switching: found {len(before)} (resp. {len(after)}) solutions "
              "before (resp. after) the branch point")

    branches = []
    for sign, solutions in ((-1, before), (1, after)):
        params = problem.set_param(branch.params, normal_form.p0 + sign * ds)
        side_contparams = contparams.copy(ds=sign * abs(contparams.ds))
        for x in solutions:
            new_branch = continuation(problem, x, params, side_contparams, verbosity=verbosity, **kwargs)
            if not new_branch.is_empty():
                branches.append(new_branch)
    return BranchSwitchResult(branches, before, after, rejected)
