"""
Fold points and their continuation in two parameters, based on the
minimally augmented formulation.

A Fold point of F(x, p1) = 0 is a solution where the Jacobian J is singular.
It is characterized as a regular root of the augmented system

    F(x, p1) = 0
    sigma(x, p1) = 0

where sigma is the scalar part of the solution of the bordered system

    [ J   a ] [v    ]   [0]
    [ b^T 0 ] [sigma] = [1]

with a close to the left and b close to the right null vector of J. The
unknown of the augmented system is BorderedArray(x, p1), the second
parameter p2 is continued.
"""

from __future__ import annotations

import copy as copy_module
from typing import Any

import numpy as np

from ..continuation.bordered import BorderedLinearSolver, BorderingBLS
from ..continuation.continuation import continuation
from ..continuation.events import ContinuousEvent, DiscreteEvent, EventContext, PairOfEvents
from ..continuation.parameters import ContinuationParameters
from ..core.branch import Branch
from ..core.linear_solvers import DefaultLinearSolver, LinearSolver
from ..core.lens import Lens, lens as make_lens
from ..core.newton import NewtonOptions, NewtonResult, newton
from ..core.types import DataDict, JacobianLike, Params, Vector
from ..core.vectors import BorderedArray, apply, copy, dot, length, norm, zeros_like


class FoldProblemMinimallyAugmented:
    """
    The minimally augmented Fold problem.

    The unknowns are z = BorderedArray(x, p1), where p1 is the parameter
    addressed by `lens`. If a second lens is given, it addresses the
    parameter p2 that is continued along a curve of Fold points.
    """

    def __init__(
        self,
        problem: Any,
        lens: Lens | str | int,
        a: Vector,
        b: Vector,
        issymmetric: bool | None = None,
        linear_solver: LinearSolver | None = None,
        bordered_solver: BorderedLinearSolver | None = None,
        fd_epsilon: float = 1e-8,
        lens2: Lens | str | int | None = None,
        record_from_solution: Any = None,
    ) -> None:
        """
        Initialize the FoldProblemMinimallyAugmented.

        Parameters
        ----------
        problem
            The underlying BifurcationProblem.
        lens
            The lens of the Fold parameter p1.
        a
            Approximation of the left null vector (null vector of the adjoint).
        b
            Approximation of the right null vector of the Jacobian.
        issymmetric
            Is the Jacobian symmetric? Defaults to problem.issymmetric.
        linear_solver
            The linear solver for J, used if an analytic second derivative is available.
        bordered_solver
            The bordered linear solver for the systems involving J and Jt.
        fd_epsilon
            Finite difference step for the derivatives with respect to p1 and x.
        lens2
            Optional lens of the continued parameter p2.
        record_from_solution
            Optional function (x, p2) -> value(s) recorded along Fold curves in
            addition to both parameters and the BT test function.
        """
        #: the underlying problem
        self.problem = problem
        #: the lens of the Fold parameter p1
        self.lens = make_lens(lens)
        #: the lens of the continued parameter p2
        self.lens2 = make_lens(lens2) if lens2 is not None else None
        #: approximate left null vector
        self.a = a
        #: approximate right null vector
        self.b = b
        if issymmetric is None:
            issymmetric = getattr(problem, "issymmetric", False)
        #: is the Jacobian symmetric?
        self.issymmetric = issymmetric
        #: the linear solver for J
        self.linear_solver = linear_solver if linear_solver is not None else DefaultLinearSolver()
        #: the bordered linear solver for J and Jt
        self.bordered_solver = bordered_solver if bordered_solver is not None else BorderingBLS(self.linear_solver)
        #: finite difference step
        self.fd_epsilon = fd_epsilon
        #: user defined values recorded along Fold curves
        self.user_record = record_from_solution
        self.x0: BorderedArray | None = None
        self.params: Params = getattr(problem, "params", None)

    # --- parameters ---

    @property
    def param_lens(self) -> Lens:
        """The lens of the continued parameter p2."""
        assert self.lens2 is not None, "The Fold problem has no second parameter"
        return self.lens2

    def get_param(self, params: Params | None = None) -> Any:
        return self.param_lens.get(self.params if params is None else params)

    def set_param(self, params: Params, value: Any) -> Params:
        return self.param_lens.set(params, value)

    @property
    def has_hessian(self) -> bool:
        return bool(getattr(self.problem, "has_hessian", False))

    def _adjoint(self, x: Vector, params: Params) -> JacobianLike:
        if self.issymmetric:
            return self.problem.jacobian(x, params)
        return self.problem.jacobian_adjoint(x, params)

    def _jacobians(self, x: Vector, params: Params) -> tuple[JacobianLike, JacobianLike]:
        J = self.problem.jacobian(x, params)
        Jt = J if self.issymmetric else self.problem.jacobian_adjoint(x, params)
        return J, Jt

    # --- residuals ---

    def null_vectors(self, z: BorderedArray, params: Params) -> tuple[Vector, Vector, Any, Any, bool]:
        """
        Solve the bordered systems with J and Jt at z = (x, p1).

        Returns
        -------
        tuple
            The vectors v (approximate right null vector) and w (approximate
            left null vector), the scalars sigma of both systems and whether
            both solves succeeded.
        """
        par = self.lens.set(params, z.p)
        J, Jt = self._jacobians(z.u, par)
        zero = zeros_like(self.a)
        v, sigma1, ok1, _ = self.bordered_solver.solve(J, self.a, self.b, 0.0, zero, 1.0)
        w, sigma2, ok2, _ = self.bordered_solver.solve(Jt, self.b, self.a, 0.0, zero, 1.0)
        return v, w, sigma1, sigma2, ok1 and ok2

    def evaluate(self, x: Vector, p: Any, params: Params) -> tuple[Vector, Any]:
        """The residuals F(x, p1) and the test function sigma(x, p1)."""
        par = self.lens.set(params, p)
        J = self.problem.jacobian(x, par)
        _, sigma, success, _ = self.bordered_solver.solve(J, self.a, self.b, 0.0, zeros_like(self.a), 1.0)
        if not success:
            sigma = np.nan
        return self.problem(x, par), sigma

    def __call__(self, z: BorderedArray, params: Params) -> BorderedArray:
        """Residuals of the augmented system at z = BorderedArray(x, p1)."""
        F, sigma = self.evaluate(z.u, z.p, params)
        return BorderedArray(F, sigma)

    def jacobian(self, z: BorderedArray, params: Params) -> FoldJacobian:
        """The Jacobian of the augmented system, represented by the point where it is evaluated."""
        return FoldJacobian(z, params, self)

    def stability_jacobian(self, z: BorderedArray, params: Params) -> JacobianLike:
        """The Jacobian of the underlying problem at the Fold point."""
        return self.problem.jacobian(z.u, self.lens.set(params, z.p))

    def solve_jacobian(
        self, x: Vector, p: Any, params: Params, rhs_u: Vector, rhs_p: Any
    ) -> tuple[Vector, Any, bool, Any]:
        """
        Solve the linear system of the Jacobian of the augmented system

            [ J       dF/dp1     ] [dX  ]   [rhs_u]
            [ sigma_x sigma_p1   ] [dsig] = [rhs_p]

        The derivatives of sigma are sigma_x = -<w, d2F(., v)> and
        sigma_p1 = -<w, dJ/dp1 v>. If an analytic second derivative is
        available, the system is solved by bordering with J. Otherwise
        sigma_x is computed by finite differences of Jt and the system is
        handed to the bordered solver.
        """
        eps = self.fd_epsilon
        par = self.lens.set(params, p)
        par_p = self.lens.set(params, p + eps)
        par_m = self.lens.set(params, p - eps)
        J, Jt = self._jacobians(x, par)
        zero = zeros_like(self.a)
        v, _, ok1, it1 = self.bordered_solver.solve(J, self.a, self.b, 0.0, zero, 1.0)
        w, _, ok2, it2 = self.bordered_solver.solve(Jt, self.b, self.a, 0.0, zero, 1.0)
        if not (ok1 and ok2):
            return zeros_like(rhs_u), 0.0, False, (it1, it2)

        dpF = (self.problem(x, par_p) - self.problem(x, par_m)) / (2 * eps)
        dJvdp = (apply(self.problem.jacobian(x, par_p), v) - apply(self.problem.jacobian(x, par_m), v)) / (2 * eps)
        sigma_p = -dot(w, dJvdp)

        if not self.has_hessian:
            u1 = apply(self._adjoint(x + eps * v, par), w)
            u2 = apply(Jt, w)
            sigma_x = (u2 - u1) / eps
            dX, dsig, success, it = self.bordered_solver.solve(J, dpF, sigma_x, sigma_p, rhs_u, rhs_p)
            return dX, dsig, success, (it1, it2, it)

        # bordering with J, which becomes singular at the Fold point
        x1, x2, success, it = self.linear_solver.solve2(J, rhs_u, dpF)
        sigma_x1 = -dot(w, self.problem.d2F(x, par, x1, v))
        sigma_x2 = -dot(w, self.problem.d2F(x, par, x2, v))
        dsig = (rhs_p - sigma_x1) / (sigma_p - sigma_x2)
        dX = x1 - dsig * x2
        return dX, dsig, success and bool(np.isfinite(dsig)), (it1, it2, it)

    # --- test functions ---

    def bt_test(self, z: BorderedArray, params: Params) -> Any:
        """Bogdanov-Takens test function <w, v> of the normalized null vectors."""
        v, w, _, _, success = self.null_vectors(z, params)
        if not success:
            return np.nan
        return np.real(dot(w / norm(w), v / norm(v)))

    def record_from_solution(self, z: BorderedArray, p2: Any) -> DataDict:
        """Record the Fold parameter, the continued parameter and the BT test function."""
        params = self.set_param(self.params, p2) if self.lens2 is not None else self.params
        if self.user_record is not None:
            record = self.user_record(z.u, p2)
            record = dict(record) if isinstance(record, dict) else {"record": record}
        else:
            record = dict(self.problem.record_from_solution(z.u, z.p))
        record[self.lens.name] = z.p
        if self.lens2 is not None:
            record[self.lens2.name] = p2
        record["BT"] = self.bt_test(z, params)
        return record

    # --- updates ---

    def replace(self, **changes: Any) -> FoldProblemMinimallyAugmented:
        """Shallow copy of the problem with some attributes replaced."""
        new = copy_module.copy(self)
        for key, value in changes.items():
            assert hasattr(new, key), f"FoldProblemMinimallyAugmented has no attribute '{key}'"
            if key in ("lens", "lens2") and value is not None:
                value = make_lens(value)
            setattr(new, key, value)
        return new

    def updated(self, z: BorderedArray, params: Params, step: int) -> FoldProblemMinimallyAugmented:
        """
        Return a Fold problem with the vectors a and b replaced by the
        normalized left and right null vectors at the current point.

        The point z is either BorderedArray(x, p1) or the point of the
        continuation BorderedArray(BorderedArray(x, p1), p2).
        """
        if isinstance(z.u, BorderedArray):
            z = z.u
        v, w, _, _, success = self.null_vectors(z, params)
        if not success:
            print("Warning: could not update the null vectors of the Fold problem")
            return self
        return self.replace(a=w / norm(w), b=v / norm(v))


class FoldJacobian:
    """The Jacobian of the minimally augmented Fold problem at a point."""

    def __init__(self, x: BorderedArray, params: Params, problem: FoldProblemMinimallyAugmented) -> None:
        #: the point z = BorderedArray(x, p1)
        self.x = x
        #: the parameter record
        self.params = params
        #: the Fold problem
        self.problem = problem


class FoldLinearSolverMinAug(LinearSolver):
    """Linear solver for the Jacobian of the minimally augmented Fold problem."""

    def solve(self, J: FoldJacobian, rhs: BorderedArray, shift: Any = None) -> tuple[BorderedArray, bool, Any]:
        assert shift is None, "FoldLinearSolverMinAug does not support shifts"
        dX, dsig, success, iterations = J.problem.solve_jacobian(J.x.u, J.x.p, J.params, rhs.u, rhs.p)
        return BorderedArray(dX, dsig), success, iterations


def fold_point(branch: Branch, index: int) -> BorderedArray:
    """Initial guess BorderedArray(x, p1) of a Fold point from a special point of a branch."""
    special = branch.special_points[index]
    assert special.type in ("bp", "nd", "fold"), f"The special point has type '{special.type}', not a Fold"
    return BorderedArray(copy(special.x), special.param)


def newton_fold(
    problem: Any,
    guess: BorderedArray,
    params: Params,
    lens: Lens | str | int,
    eigenvec: Vector,
    eigenvec_ad: Vector,
    options: NewtonOptions | None = None,
    issymmetric: bool | None = None,
    bordered_solver: BorderedLinearSolver | None = None,
    callback: Any = None,
) -> tuple[NewtonResult, FoldProblemMinimallyAugmented]:
    """
    Compute a Fold point with Newton's method on the minimally augmented problem.

    Parameters
    ----------
    problem
        The BifurcationProblem.
    guess
        Initial guess BorderedArray(x, p1).
    params
        The parameter record.
    lens
        The lens of the Fold parameter p1.
    eigenvec
        Guess of the right null vector of the Jacobian.
    eigenvec_ad
        Guess of the left null vector of the Jacobian.
    options
        The Newton options, the linear solver is replaced.
    issymmetric
        Is the Jacobian symmetric?
    bordered_solver
        The bordered linear solver of the Fold problem.
    callback
        Optional callback of the Newton iteration.

    Returns
    -------
    tuple
        The result of the Newton iteration and the Fold problem.
    """
    if options is None:
        options = NewtonOptions()
    fold_problem = FoldProblemMinimallyAugmented(
        problem, lens, copy(eigenvec_ad), copy(eigenvec), issymmetric=issymmetric,
        linear_solver=options.linear_solver, bordered_solver=bordered_solver,
    )
    fold_options = options.copy(linear_solver=FoldLinearSolverMinAug())
    result = newton(fold_problem, fold_problem.jacobian, guess, params, fold_options, callback=callback)
    return result, fold_problem


def _null_vector_guesses(
    problem: Any, branch: Branch, index: int, start_with_eigen: bool, nev: int | None
) -> tuple[Vector, Vector]:
    special = branch.special_points[index]
    params = problem.set_param(branch.params, special.param)
    eigenvec = special.tau.u / norm(special.tau.u)
    eigenvec_ad = copy(eigenvec)
    if start_with_eigen:
        eigen_solver = branch.contparams.newton_options.eigen_solver
        L = problem.jacobian(special.x, params)
        Lt = L if problem.issymmetric else problem.jacobian_adjoint(special.x, params)
        zeta, _ = eigen_solver.adjoint_basis(L, 0.0, n=length(special.x), nev=nev)
        zeta_star, _ = eigen_solver.adjoint_basis(Lt, 0.0, n=length(special.x), nev=nev)
        eigenvec = np.real(zeta) / norm(np.real(zeta))
        eigenvec_ad = np.real(zeta_star) / norm(np.real(zeta_star))
    return eigenvec, eigenvec_ad


def newton_fold_from_branch(
    problem: Any,
    branch: Branch,
    index: int,
    options: NewtonOptions | None = None,
    start_with_eigen: bool = False,
    nev: int | None = None,
    issymmetric: bool | None = None,
    bordered_solver: BorderedLinearSolver | None = None,
) -> tuple[NewtonResult, FoldProblemMinimallyAugmented]:
    """
    Refine the Fold point branch.special_points[index] with newton_fold().

    The null vectors are initialized with the tangent at the special point,
    or with the eigenvectors of the Jacobian if start_with_eigen is set.
    """
    special = branch.special_points[index]
    guess = fold_point(branch, index)
    params = problem.set_param(branch.params, special.param)
    eigenvec, eigenvec_ad = _null_vector_guesses(problem, branch, index, start_with_eigen, nev)
    if options is None:
        options = branch.contparams.newton_options
    return newton_fold(
        problem, guess, params, branch.lens, eigenvec, eigenvec_ad, options,
        issymmetric=issymmetric, bordered_solver=bordered_solver,
    )


def _zero_hopf_test(precision: float):
    def condition(ctx: EventContext) -> int:
        eigenvalues = ctx.eigenvalues
        if eigenvalues is None or len(eigenvalues) == 0:
            return 1
        rho = np.min(np.abs(eigenvalues.real))
        return int(np.sum((eigenvalues.real > rho) & (eigenvalues.imag > precision)))

    return condition


def _bt_cusp_test(ctx: EventContext) -> tuple[Any, Any]:
    return ctx.problem.bt_test(ctx.z.u, ctx.params), np.real(ctx.tau.p)


CODIM2_TYPES = {"fold": "cusp", "bp": "bt", "hopf": "zh"}


def _correct_bifurcation(branch: Branch) -> None:
    """Rename the codim-1 types of the special points of a Fold curve to their codim-2 meaning."""
    for sp in branch.special_points:
        sp.type = CODIM2_TYPES.get(sp.type, sp.type)


def continuation_fold(
    problem: Any,
    guess: BorderedArray,
    params: Params,
    lens1: Lens | str | int,
    lens2: Lens | str | int,
    eigenvec: Vector,
    eigenvec_ad: Vector,
    contparams: ContinuationParameters,
    update_min_aug_every_step: int = 0,
    compute_eigen_elements: bool = False,
    issymmetric: bool | None = None,
    bordered_solver: BorderedLinearSolver | None = None,
    record_from_solution: Any = None,
    **kwargs: Any,
) -> Branch:
    """
    Continue a curve of Fold points in the parameters (p1, p2).

    Parameters
    ----------
    problem
        The BifurcationProblem.
    guess
        Initial guess BorderedArray(x, p1) of a Fold point.
    params
        The parameter record, holding the initial value of p2.
    lens1
        The lens of the Fold parameter p1.
    lens2
        The lens of the continued parameter p2.
    eigenvec
        Guess of the right null vector of the Jacobian.
    eigenvec_ad
        Guess of the left null vector of the Jacobian.
    contparams
        The settings of the continuation. detect_codim2_bifurcation > 0 enables
        the detection of Bogdanov-Takens, cusp and zero-Hopf points.
    update_min_aug_every_step
        Update the null vectors of the Fold problem every that many steps (0: never).
    compute_eigen_elements
        Compute the eigenvalues along the curve (needed for zero-Hopf detection).
    issymmetric
        Is the Jacobian symmetric?
    bordered_solver
        The bordered linear solver of the Fold problem.
    record_from_solution
        Optional function (x, p2) -> value(s) recorded in each point, next to
        both parameters and the BT test function.
    kwargs
        Further arguments of continuation().

    Returns
    -------
    Branch
        The branch of Fold points, of kind "fold_codim2". Its special points
        have the types "bt", "cusp" and "zh".
    """
    lens1, lens2 = make_lens(lens1), make_lens(lens2)
    assert lens1 != lens2, "Please choose two different parameters for the continuation of Fold points"
    options = contparams.newton_options
    fold_problem = FoldProblemMinimallyAugmented(
        problem, lens1, copy(eigenvec_ad), copy(eigenvec), issymmetric=issymmetric,
        linear_solver=options.linear_solver, bordered_solver=bordered_solver, lens2=lens2,
        record_from_solution=record_from_solution,
    )
    fold_problem.x0 = guess
    fold_problem.params = params

    # with codim-2 detection a turning point in p2 is located by the cusp event
    cp = contparams.copy(
        newton_options=options.copy(linear_solver=FoldLinearSolverMinAug()),
        detect_fold=contparams.detect_fold and contparams.detect_codim2_bifurcation == 0,
        detect_event=max(contparams.detect_event, contparams.detect_codim2_bifurcation),
        detect_bifurcation=contparams.detect_bifurcation if compute_eigen_elements else 0,
    )
    events = None
    if contparams.detect_codim2_bifurcation > 0:
        events = PairOfEvents(
            ContinuousEvent(2, _bt_cusp_test, ("bt", "cusp")),
            DiscreteEvent(1, _zero_hopf_test(contparams.precision_stability), ("zh",),
                          needs_eigenvalues=compute_eigen_elements),
        )
    branch = continuation(
        fold_problem, guess, params, cp, events=events, bordered_solver=BorderingBLS(FoldLinearSolverMinAug()),
        update_every_step=update_min_aug_every_step, kind="fold_codim2", **kwargs,
    )
    assert not branch.is_empty(), "The continuation of Fold points failed at the initial guess"
    _correct_bifurcation(branch)
    return branch


def continuation_fold_from_branch(
    problem: Any,
    branch: Branch,
    index: int,
    lens2: Lens | str | int,
    contparams: ContinuationParameters | None = None,
    start_with_eigen: bool = False,
    nev: int | None = None,
    **kwargs: Any,
) -> Branch:
    """
    Continue the Fold point branch.special_points[index] of a branch in the
    parameter addressed by lens2, see continuation_fold().
    """
    special = branch.special_points[index]
    guess = fold_point(branch, index)
    params = problem.set_param(branch.params, special.param)
    eigenvec, eigenvec_ad = _null_vector_guesses(problem, branch, index, start_with_eigen, nev)
    if contparams is None:
        contparams = branch.contparams
    return continuation_fold(
        problem, guess, params, branch.lens, lens2, eigenvec, eigenvec_ad, contparams, **kwargs
    )
