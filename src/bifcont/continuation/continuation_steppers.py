"""
Pseudo-arclength continuation stepper.

The stepper works on the combined unknowns z = BorderedArray(x, p) of a
problem F(x, p) = 0 and performs predictor-corrector steps along the
solution curve. It holds no problem state: every method receives the
problem, the current point and the parameter record explicitly.
"""

from __future__ import annotations

from typing import Any, NamedTuple

import numpy as np

from ..core.types import Params, Vector
from ..core.vectors import BorderedArray, dot, length, norm_theta, zeros_like
from .bordered import BorderedLinearSolver, BorderingBLS
from .parameters import ContinuationParameters


class StepResult(NamedTuple):
    """The result of a continuation step."""

    #: the new point on the branch
    z: BorderedArray
    #: the tangent at the new point
    tau: BorderedArray
    #: the step size that was used to reach the new point
    ds: float
    #: the step size proposed for the next step
    ds_next: float
    #: did the step succeed?
    success: bool
    #: number of Newton iterations of the corrector
    iterations: int


class PseudoArclengthContinuation:
    """
    Pseudo-arclength parameter continuation stepper.

    The corrector solves the problem extended by the arclength condition
    xiu <tau.u, x - x_old> + xip tau.p (p - p_old) = ds
    with xiu = theta / length(x) and xip = 1 - theta, each Newton step being
    a bordered linear solve.
    """

    def __init__(
        self, contparams: ContinuationParameters, bordered_solver: BorderedLinearSolver | None = None
    ) -> None:
        #: the settings of the continuation
        self.contparams = contparams
        #: the bordered linear solver for the tangent and the corrector
        self.bordered_solver = bordered_solver if bordered_solver is not None else BorderingBLS(
            contparams.newton_options.linear_solver
        )

    def residual(self, problem: Any, z: BorderedArray, params: Params) -> Vector:
        """Residuals of the problem at z = (x, p)."""
        return problem(z.u, problem.set_param(params, z.p))

    def jacobian(self, problem: Any, z: BorderedArray, params: Params) -> Any:
        """Jacobian of the problem at z = (x, p)."""
        return problem.jacobian(z.u, problem.set_param(params, z.p))

    def dF_dp(self, problem: Any, z: BorderedArray, params: Params) -> Vector:
        """Derivative of the residuals with respect to the parameter, by central finite differences."""
        eps = self.contparams.fd_epsilon
        f1 = problem(z.u, problem.set_param(params, z.p + eps))
        f2 = problem(z.u, problem.set_param(params, z.p - eps))
        return (f1 - f2) / (2 * eps)

    def normalize(self, tau: BorderedArray) -> BorderedArray:
        """Normalize a tangent with respect to the weighted arclength norm."""
        return tau / norm_theta(tau, self.contparams.theta)

    def initial_tangent(self, problem: Any, z: BorderedArray, params: Params) -> tuple[BorderedArray, bool]:
        """
        Calculate the tangent at the first point of a branch from the bordered system

            [ J   dF/dp ] [tau.u]   [0]
            [ 0     1   ] [tau.p] = [1]

        The tangent points in the direction of increasing parameter.
        """
        J = self.jacobian(problem, z, params)
        dFdp = self.dF_dp(problem, z, params)
        tau_u, tau_p, success, _ = self.bordered_solver.solve(J, dFdp, zeros_like(z.u), 1.0, zeros_like(dFdp), 1.0)
        if not success:
            return BorderedArray(zeros_like(z.u), 1.0), False
        # tau_p = 1 > 0 by construction
        return self.normalize(BorderedArray(tau_u, tau_p)), True

    def update_tangent(
        self, problem: Any, z: BorderedArray, z_old: BorderedArray, tau_old: BorderedArray, ds: float, params: Params
    ) -> tuple[BorderedArray, bool]:
        """
        Calculate the tangent at the new point z.

        The bordered algorithm solves

            [ J                dF/dp       ] [tau.u]   [0]
            [ xiu tau_old.u^T  xip tau_old.p ] [tau.p] = [1]

        which orients the new tangent along the old one. The secant algorithm
        uses the normalized difference of the last two points.
        """
        theta = self.contparams.theta
        if self.contparams.tangent_algorithm == "secant":
            return self.normalize((z - z_old) / ds), True
        J = self.jacobian(problem, z, params)
        dFdp = self.dF_dp(problem, z, params)
        tau_u, tau_p, success, _ = self.bordered_solver.solve_arclength(J, dFdp, tau_old, zeros_like(dFdp), 1.0, theta)
        if not success:
            # fall back to the secant
            return self.normalize((z - z_old) / ds), False
        return self.normalize(BorderedArray(tau_u, tau_p)), True

    def arclength_residual(self, z: BorderedArray, z_old: BorderedArray, tau: BorderedArray, ds: float) -> Any:
        """The residual of the arclength condition."""
        theta = self.contparams.theta
        xi_u = theta / length(z.u)
        dz = z - z_old
        return xi_u * dot(tau.u, dz.u) + (1 - theta) * tau.p * dz.p - ds

    def corrector(
        self, problem: Any, z_pred: BorderedArray, z_old: BorderedArray, tau: BorderedArray, ds: float, params: Params
    ) -> tuple[BorderedArray, bool, int]:
        """
        Correct the predicted point with a Newton iteration on the problem
        extended by the arclength condition.

        Returns
        -------
        tuple
            The corrected point, whether the iteration converged and the number
            of iterations.
        """
        options = self.contparams.newton_options
        theta = self.contparams.theta
        z = z_pred
        F = self.residual(problem, z, params)
        N = self.arclength_residual(z, z_old, tau, ds)
        error = max(options.norm(F), abs(N))
        count = 0
        converged = error < options.convergence_tolerance
        while not converged and count < options.max_iterations and np.isfinite(error):
            J = self.jacobian(problem, z, params)
            dFdp = self.dF_dp(problem, z, params)
            dx, dp, success, _ = self.bordered_solver.solve_arclength(J, dFdp, tau, F, N, theta)
            if not success:
                break
            z = BorderedArray(z.u - dx, z.p - dp)
            F = self.residual(problem, z, params)
            N = self.arclength_residual(z, z_old, tau, ds)
            error = max(options.norm(F), abs(N))
            count += 1
            converged = error < options.convergence_tolerance
            if options.verbosity > 1:
                print(f"Newton step #{count}, max. residuals: {error:.2e}")
        return z, bool(converged), count

    def adapt_step_size(self, ds: float, iterations: int) -> float:
        """Adapt the step size to the number of Newton iterations taken."""
        cp = self.contparams
        if iterations > cp.n_desired_newton_steps and abs(ds) > cp.dsmin:
            # decrease step size
            return max(abs(ds) * cp.ds_decrease_factor, cp.dsmin) * np.sign(ds)
        if iterations < cp.n_desired_newton_steps:
            # increase step size
            return min(abs(ds) * cp.ds_increase_factor, cp.dsmax) * np.sign(ds)
        return ds

    def solve_at(
        self, problem: Any, z: BorderedArray, tau: BorderedArray, s: float, params: Params
    ) -> tuple[BorderedArray, bool]:
        """Predict and correct a single point at arclength s from z (no step size control)."""
        z_new, converged, _ = self.corrector(problem, z + s * tau, z, tau, s, params)
        return z_new, converged

    def step(self, problem: Any, z: BorderedArray, tau: BorderedArray, ds: float, params: Params) -> StepResult:
        """
        Perform a continuation step from the point z with tangent tau.

        Failed corrections are retried with a smaller step size, the step
        fails when the step size falls below dsmin.
        """
        cp = self.contparams
        while True:
            # make initial guess: z -> z + ds * tangent
            z_pred = z + ds * tau
            z_new, converged, count = self.corrector(problem, z_pred, z, tau, ds, params)
            if converged:
                break
            # retry with a smaller step size
            ds = ds * cp.ds_decrease_factor
            if abs(ds) < cp.dsmin:
                if cp.verbosity > 0:
                    print(f"Continuation: Newton corrector did not converge, ds = {ds:.3e} < dsmin, stopping")
                return StepResult(z, tau, ds, ds, False, count)
            if cp.verbosity > 0:
                print(f"Newton solver did not converge, trying again with ds = {ds:.3e}")
        tau_new, _ = self.update_tangent(problem, z_new, z, tau, ds, params)
        return StepResult(z_new, tau_new, ds, self.adapt_step_size(ds, count), True, count)
