"""
Newton's method on generic vector types.

The Newton solver finds a root of a (possibly high-dimensional, nonlinear)
function F(x, params) = 0 using a stepping procedure. The linear systems are
delegated to a LinearSolver, so the same implementation serves plain arrays,
bordered arrays and the augmented systems of codim-2 continuation.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np

from .eigensolvers import EigenSolver
from .linear_solvers import DefaultLinearSolver, LinearSolver
from .types import Params, Vector
from .vectors import copy, dot, norm_inf

if TYPE_CHECKING:
    from ..continuation.deflation import DeflationOperator


class NewtonOptions:
    """A wrapper class that holds all the settings of a Newton solve."""

    def __init__(self, **kwargs: Any) -> None:
        #: maximum number of steps during solve
        self.max_iterations = 25
        #: absolute convergence tolerance for the norm of the residuals
        self.convergence_tolerance = 1e-10
        #: how verbose should the solving be? 0 = quiet, larger numbers = print more details
        self.verbosity = 0
        #: the linear solver for the Newton steps
        self.linear_solver: LinearSolver = DefaultLinearSolver()
        #: the eigensolver used for stability computations
        self.eigen_solver = EigenSolver()
        #: the norm used for checking the residuals for convergence
        self.norm: Callable[[Vector], float] = norm_inf
        for key, value in kwargs.items():
            assert hasattr(self, key), f"Unknown Newton option '{key}'"
            setattr(self, key, value)
        assert self.max_iterations >= 0, "max_iterations must be non-negative"
        assert self.convergence_tolerance > 0, "convergence_tolerance must be positive"

    def copy(self, **changes: Any) -> NewtonOptions:
        """Return a copy of the options with some values replaced."""
        settings = dict(vars(self))
        settings.update(changes)
        return NewtonOptions(**settings)


class NewtonResult(NamedTuple):
    """The result of a Newton solve."""

    #: the last iterate
    solution: Vector
    #: norms of the residuals, starting with the initial guess
    residuals: list[float]
    #: did the iteration converge?
    converged: bool
    #: number of Newton iterations
    iterations: int
    #: total number of linear solver iterations
    linear_iterations: int


NewtonCallback = Callable[..., bool]


def newton(
    problem: Callable[[Vector, Params], Vector],
    jacobian: Callable[[Vector, Params], Any],
    x0: Vector,
    params: Params,
    options: NewtonOptions | None = None,
    callback: NewtonCallback | None = None,
    deflation: DeflationOperator | None = None,
) -> NewtonResult:
    """
    Solve F(x, params) = 0 with Newton's method.

    Parameters
    ----------
    problem
        The residual function F(x, params).
    jacobian
        The Jacobian function J(x, params), its result is handed to the linear solver.
    x0
        The initial guess.
    params
        The parameters.
    options
        The Newton options.
    callback
        Optional function callback(x, fx, J, residual, iteration, itlinear, options)
        called after each step, returning False stops the iteration.
    deflation
        Optional deflation operator. The Newton steps are then those of the
        deflated residual M(x)F(x), so the known roots of the operator repel
        the iterates.

    Returns
    -------
    NewtonResult
        The solution, the history of residual norms, the convergence flag and
        the iteration counts.
    """
    if options is None:
        options = NewtonOptions()
    x = copy(x0)
    fx = problem(x, params)
    residual = _residual(x, fx, options, deflation)
    residuals = [residual]
    iteration = 0
    linear_iterations = 0
    converged = residual < options.convergence_tolerance
    if options.verbosity > 1:
        print(f"Newton step #{iteration}, residuals: {residual:.2e}")
    while not converged and iteration < options.max_iterations and np.isfinite(residual):
        J = jacobian(x, params)
        h, success, itlinear = options.linear_solver.solve(J, fx)
        linear_iterations += int(np.sum(itlinear))
        if not success:
            if options.verbosity > 0:
                print(f"Newton: linear solve failed at step #{iteration}")
            break
        if deflation is not None and len(deflation) > 0:
            # Sherman-Morrison correction of the step for the deflated residual
            M = deflation.operator(x)
            dM = deflation.D_operator(x)
            h = h / (1 + dot(dM, h) / M)
        x = x - h
        fx = problem(x, params)
        residual = _residual(x, fx, options, deflation)
        residuals.append(residual)
        iteration += 1
        converged = residual < options.convergence_tolerance
        if options.verbosity > 1:
            print(f"Newton step #{iteration}, residuals: {residual:.2e}")
        if callback is not None and not callback(x, fx, J, residual, iteration, itlinear, options):
            break
    if options.verbosity > 0:
        if converged:
            print(f"Newton solver converged after {iteration} iterations, error: {residual:.2e}")
        else:
            print(f"Newton solver did not converge after {iteration} iterations, error: {residual:.2e}")
    return NewtonResult(x, residuals, bool(converged), iteration, linear_iterations)


def _residual(x: Vector, fx: Vector, options: NewtonOptions, deflation: DeflationOperator | None) -> float:
    """
    Norm of the residual, inf on a root known to the deflation operator.

    Away from the known roots M(x) is finite and nonzero, so the roots of the
    deflated residual M(x)F(x) are those of F and convergence is measured on F.
    """
    if deflation is not None and len(deflation) > 0 and not np.isfinite(deflation.operator(x)):
        return np.inf
    residual = options.norm(fx)
    return float(residual) if np.isfinite(residual) else np.inf
