"""
Numerical continuation of solution branches: the driver that steps along a
branch, records the points, computes their stability and detects and
locates the special points.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import numpy as np

from ..core.branch import Branch, BranchPoint, SpecialPoint
from ..core.newton import newton
from ..core.types import Params, Vector
from ..core.vectors import BorderedArray
from .bordered import BorderedLinearSolver
from .continuation_steppers import PseudoArclengthContinuation
from .events import (Event, EventContext, Stability, bisection,
                     classify_stability_change, compute_stability,
                     interpolate_parameter)
from .parameters import ContinuationParameters

FinaliseSolution = Callable[[BorderedArray, BorderedArray, int, Branch], bool]


def continuation(
    problem: Any,
    x0: Vector | None = None,
    params: Params = None,
    contparams: ContinuationParameters | None = None,
    lens: Any = None,
    events: Event | None = None,
    bordered_solver: BorderedLinearSolver | None = None,
    finalise_solution: FinaliseSolution | None = None,
    record_from_solution: Callable[[Vector, Any], Any] | None = None,
    update_every_step: int = 0,
    bothside: bool = False,
    verbosity: int | None = None,
    kind: str = "equilibrium",
) -> Branch:
    """
    Compute a branch of solutions of problem(x, params) = 0 by
    pseudo-arclength continuation in the parameter addressed by the
    problem's lens.

    Parameters
    ----------
    problem
        The problem, e.g. a BifurcationProblem.
    x0
        Initial guess of a solution, defaults to problem.x0.
    params
        The parameter record, defaults to problem.params.
    contparams
        The settings of the continuation.
    lens
        Optional lens replacing the lens of the problem.
    events
        Optional user defined event.
    bordered_solver
        The bordered linear solver for the stepper.
    finalise_solution
        Optional function finalise_solution(z, tau, step, branch) called after
        each step, returning False stops the continuation.
    record_from_solution
        Optional function (x, p) -> recorded value(s), replacing the one of
        the problem.
    update_every_step
        If > 0, the problem is replaced by problem.updated(z, params, step)
        every update_every_step steps.
    bothside
        Continue in both directions from x0 and join the two branches.
    verbosity
        Optional verbosity level overriding the one of contparams.
    kind
        The kind of the branch.

    Returns
    -------
    Branch
        The computed branch.
    """
    if contparams is None:
        contparams = ContinuationParameters()
    if verbosity is not None:
        contparams = contparams.copy(verbosity=verbosity)
    if lens is not None:
        problem = problem.replace(lens=lens)
    if x0 is None:
        x0 = problem.x0
    if params is None:
        params = problem.params
    kwargs = dict(
        events=events,
        bordered_solver=bordered_solver,
        finalise_solution=finalise_solution,
        record_from_solution=record_from_solution,
        update_every_step=update_every_step,
        kind=kind,
    )
    if not bothside:
        return _continuation(problem, x0, params, contparams, **kwargs)
    forward = _continuation(problem, x0, params, contparams.copy(ds=abs(contparams.ds)), **kwargs)
    backward = _continuation(problem, x0, params, contparams.copy(ds=-abs(contparams.ds)), **kwargs)
    if backward.is_empty():
        return forward
    if forward.is_empty():
        return backward.reversed()
    return backward.reversed().concatenate(forward)


class _BranchBuilder:
    """Bookkeeping of a single continuation run."""

    def __init__(self, problem, params, contparams, stepper, events, record_from_solution, branch):
        self.problem = problem
        self.params = params
        self.cp = contparams
        self.stepper = stepper
        self.events = events if contparams.detect_event > 0 else None
        self.record = record_from_solution
        self.branch = branch
        self.need_eigen = contparams.detect_bifurcation > 0 or (
            self.events is not None and self.events.needs_eigenvalues
        )

    def params_at(self, p: Any) -> Params:
        return self.problem.set_param(self.params, p)

    def stability(self, z: BorderedArray) -> Stability | None:
        if not self.need_eigen:
            return None
        stab = compute_stability(self.problem, z, self.params, self.cp)
        if not stab.success:
            print(f"Warning: eigen solve failed at p = {z.p}")
        return stab

    def event_values(self, z: BorderedArray, tau: BorderedArray, stab: Stability | None, step: int) -> np.ndarray | None:
        if self.events is None:
            return None
        eigenvalues = stab.eigenvalues if stab is not None else None
        ctx = EventContext(z, tau, self.problem, self.params_at(z.p), eigenvalues, step)
        return self.events(ctx)

    def make_point(self, z, tau, step, ds, iterations, stab, values) -> BranchPoint:
        if self.record is not None:
            record = self.record(z.u, z.p)
            record = record if isinstance(record, dict) else {"record": record}
        else:
            record = self.problem.record_from_solution(z.u, z.p)
        point = BranchPoint(z.u, z.p, tau, step, ds, iterations, record)
        if stab is not None:
            point.eigenvalues = stab.eigenvalues
            if self.cp.save_eigenvectors:
                point.eigenvectors = stab.eigenvectors
            point.n_unstable = stab.n_unstable
            point.n_imag = stab.n_imag
        point.diagnostics["tau_p"] = tau.p
        if values is not None:
            for label, value in zip(self.events.labels, values):
                point.diagnostics[label] = value
            point.diagnostics["events"] = values
        return point

    def detect(self, prev: BranchPoint, point: BranchPoint, prev_values, values, idx: int) -> SpecialPoint | None:
        """Detect (and locate) at most one special point between prev and point: fold > event > bifurcation."""
        cp = self.cp
        if cp.detect_fold and np.sign(np.real(prev.tau.p)) * np.sign(np.real(point.tau.p)) < 0:
            return self.locate_fold(prev, point, idx)
        if values is not None and prev_values is not None:
            crossed = self.events.crossed(prev_values, values)
            if crossed:
                return self.locate_event(prev, point, prev_values, values, crossed[0], idx)
        if cp.detect_bifurcation >= 2 and prev.n_unstable is not None and point.n_unstable is not None:
            if point.n_unstable != prev.n_unstable:
                return self.locate_bifurcation(prev, point, idx)
        return None

    def _z(self, point: BranchPoint) -> BorderedArray:
        return BorderedArray(point.x, point.p)

    def locate_fold(self, prev: BranchPoint, point: BranchPoint, idx: int) -> SpecialPoint:
        sign0 = np.sign(np.real(prev.tau.p))

        def evaluate_trial(z, tau):
            return np.sign(np.real(tau.p)) == sign0, tau.p, None

        loc = bisection(
            self.stepper, self.problem, self._z(prev), prev.tau, self._z(point), point.tau, point.ds,
            self.params, evaluate_trial, None, None, prev.tau.p, point.tau.p,
            lambda v: abs(v) < self.cp.tol_bisection_event,
        )
        param = interpolate_parameter(loc.interval[0], loc.interval[1], *loc.values)
        return SpecialPoint(
            "fold", idx, param, loc.z.u, tau=loc.tau, interval=loc.interval, status=loc.status,
            params=self.params_at(param), step=point.step, record=point.record, kernel_dim=1,
            precision=loc.precision,
        )

    def locate_event(self, prev, point, prev_values, values, index, idx) -> SpecialPoint:
        events = self.events
        label = events.labels[index]
        continuous = events.is_continuous(index)
        if self.cp.detect_event < 2:
            return SpecialPoint(
                label, idx, point.p, point.x, tau=point.tau, interval=(prev.p, point.p), status="guess",
                params=self.params_at(point.p), step=point.step, record=point.record,
            )

        def evaluate_trial(z, tau):
            stab = self.stability(z) if events.needs_eigenvalues else None
            v = self.event_values(z, tau, stab, point.step)
            return events.same_side(prev_values, v, index), v[index], None

        def tolerance_met(v):
            return continuous and abs(v) < self.cp.tol_bisection_event

        loc = bisection(
            self.stepper, self.problem, self._z(prev), prev.tau, self._z(point), point.tau, point.ds,
            self.params, evaluate_trial, None, None, prev_values[index], values[index], tolerance_met,
        )
        if continuous:
            param = interpolate_parameter(loc.interval[0], loc.interval[1], *loc.values)
        else:
            param = loc.z.p
        return SpecialPoint(
            label, idx, param, loc.z.u, tau=loc.tau, interval=loc.interval, status=loc.status,
            params=self.params_at(param), step=point.step, record=point.record, precision=loc.precision,
        )

    def locate_bifurcation(self, prev: BranchPoint, point: BranchPoint, idx: int) -> SpecialPoint:
        n0, n1 = prev.n_unstable, point.n_unstable
        dn = n1 - n0
        dn_imag = point.n_imag - prev.n_imag
        bif_type = classify_stability_change(dn, dn_imag)
        ind = min(n0, n1)

        def crossing_value(eigenvalues):
            if eigenvalues is None or len(eigenvalues) <= ind:
                return np.nan
            return eigenvalues[ind].real

        eigenvalues, eigenvectors = point.eigenvalues, point.eigenvectors
        if self.cp.detect_bifurcation < 3:
            return SpecialPoint(
                bif_type, idx, point.p, point.x, tau=point.tau, interval=(prev.p, point.p), status="guess",
                params=self.params_at(point.p), step=point.step, record=point.record, delta=(dn, dn_imag),
                kernel_dim=abs(dn), ind_ev=tuple(range(ind, max(n0, n1))), eigenvalues=eigenvalues,
                eigenvectors=eigenvectors,
            )

        def evaluate_trial(z, tau):
            stab = self.stability(z)
            return stab.n_unstable == n0, crossing_value(stab.eigenvalues), stab

        loc = bisection(
            self.stepper, self.problem, self._z(prev), prev.tau, self._z(point), point.tau, point.ds,
            self.params, evaluate_trial, None, None, crossing_value(prev.eigenvalues), crossing_value(point.eigenvalues),
            lambda v: abs(v) < self.cp.tol_bisection_eigenvalue,
        )
        if loc.data is not None:
            eigenvalues, eigenvectors = loc.data.eigenvalues, loc.data.eigenvectors
        param = interpolate_parameter(loc.interval[0], loc.interval[1], *loc.values)
        return SpecialPoint(
            bif_type, idx, param, loc.z.u, tau=loc.tau, interval=loc.interval, status=loc.status,
            params=self.params_at(param), step=point.step, record=point.record, delta=(dn, dn_imag),
            kernel_dim=abs(dn), ind_ev=tuple(range(ind, max(n0, n1))), eigenvalues=eigenvalues,
            eigenvectors=eigenvectors, precision=loc.precision,
        )


def _continuation(
    problem: Any,
    x0: Vector,
    params: Params,
    contparams: ContinuationParameters,
    events: Event | None,
    bordered_solver: BorderedLinearSolver | None,
    finalise_solution: FinaliseSolution | None,
    record_from_solution: Callable[[Vector, Any], Any] | None,
    update_every_step: int,
    kind: str,
) -> Branch:
    """Continuation in a single direction, given by the sign of contparams.ds."""
    cp = contparams
    stepper = PseudoArclengthContinuation(cp, bordered_solver)
    branch = Branch(problem, params, problem.param_lens, cp, kind)
    p0 = problem.get_param(params)

    # correct the initial guess at fixed parameter
    result = newton(problem, problem.jacobian, x0, params, cp.newton_options)
    if not result.converged:
        print(f"Warning: Newton did not converge for the initial guess, residuals: {result.residuals[-1]:.2e}")
        return branch
    z = BorderedArray(result.solution, p0)
    tau, success = stepper.initial_tangent(problem, z, params)
    if not success:
        print("Warning: could not compute the initial tangent")
        return branch

    builder = _BranchBuilder(problem, params, cp, stepper, events, record_from_solution, branch)
    stab = builder.stability(z)
    values = builder.event_values(z, tau, stab, 0)
    point = builder.make_point(z, tau, 0, 0.0, result.iterations, stab, values)
    branch.add_point(point)
    if cp.verbosity > 0:
        print(f"Continuation: starting at p = {z.p}, ds = {cp.ds}")
    if finalise_solution is not None and not finalise_solution(z, tau, 0, branch):
        branch.functional = problem
        return branch

    ds = cp.ds
    step = 0
    while step < cp.max_steps:
        res = stepper.step(builder.problem, z, tau, ds, params)
        if not res.success:
            break
        # points outside of the parameter bounds are not recorded
        if not cp.p_min <= np.real(res.z.p) <= cp.p_max:
            break
        step += 1
        prev_point, prev_values = point, values
        stab = builder.stability(res.z)
        values = builder.event_values(res.z, res.tau, stab, step)
        point = builder.make_point(res.z, res.tau, step, res.ds, res.iterations, stab, values)
        branch.add_point(point)
        special = builder.detect(prev_point, point, prev_values, values, len(branch.points) - 1)
        if special is not None:
            branch.add_special_point(special)
            if cp.verbosity > 0:
                print(f"Continuation: found {special.type} point at p = {special.param} ({special.status})")
        if cp.verbosity > 1:
            print(f"Continuation step #{step}: p = {res.z.p}, ds = {res.ds:.3e}, newton iterations: {res.iterations}")
        z, tau, ds = res.z, res.tau, res.ds_next
        # thread the (possibly) updated problem to the next steps
        if update_every_step > 0 and step % update_every_step == 0:
            builder.problem = builder.problem.updated(z, builder.params_at(z.p), step)
        if finalise_solution is not None and not finalise_solution(z, tau, step, branch):
            break
    branch.functional = builder.problem
    if cp.verbosity > 0:
        print(f"Continuation: finished after {step} steps at p = {z.p}, "
              f"{len(branch.special_points)} special point(s)")
    return branch
