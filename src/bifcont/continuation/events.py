"""
Events and the detection / location of special points along a branch.

An event is a set of test functions evaluated at every point of a branch.
Continuous events detect a sign change of one of their components, discrete
events detect a change of value. Special points are located by bisection of
the continuation step in which they were detected.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any, NamedTuple

import numpy as np

from ..core.types import ComplexArray, Params
from ..core.vectors import BorderedArray
from .parameters import ContinuationParameters


class EventContext(NamedTuple):
    """Everything a test function may need to know about a point of a branch."""

    #: the point z = (x, p)
    z: BorderedArray
    #: the tangent at the point
    tau: BorderedArray
    #: the problem
    problem: Any
    #: the parameter record (with the continuation parameter set to z.p)
    params: Params
    #: the eigenvalues at the point, None if not computed
    eigenvalues: ComplexArray | None
    #: the continuation step
    step: int


class Event:
    """Abstract base class for all events."""

    def __init__(
        self,
        n: int,
        condition: Callable[[EventContext], Any],
        labels: Sequence[str] | None = None,
        needs_eigenvalues: bool = False,
    ) -> None:
        """
        Initialize the Event.

        Parameters
        ----------
        n
            The number of test functions.
        condition
            Function of an EventContext returning the n test function values.
        labels
            The types of the special points detected by each test function.
        needs_eigenvalues
            Do the test functions require the eigenvalues of the point?
        """
        assert n >= 1, "An event needs at least one test function"
        #: the number of test functions
        self.n = n
        #: the function computing the test function values
        self.condition = condition
        #: the types of the special points, one per test function
        self.labels = list(labels) if labels is not None else [f"user{i}" for i in range(n)]
        assert len(self.labels) == n, "Provide one label per test function"
        #: do the test functions require the eigenvalues?
        self.needs_eigenvalues = needs_eigenvalues

    def __call__(self, ctx: EventContext) -> np.ndarray:
        """Evaluate the test functions."""
        return np.atleast_1d(np.asarray(self.condition(ctx)))

    def crossed(self, before: np.ndarray, after: np.ndarray) -> list[int]:
        """Indices of the test functions that detected an event between two points."""
        raise NotImplementedError("'Event' is an abstract base class - do not use for actual detection!")

    def same_side(self, reference: np.ndarray, value: np.ndarray, index: int) -> bool:
        """Is the value of test function `index` still on the side of the reference?"""
        raise NotImplementedError("'Event' is an abstract base class - do not use for actual detection!")

    def is_continuous(self, index: int) -> bool:
        raise NotImplementedError("'Event' is an abstract base class - do not use for actual detection!")


class ContinuousEvent(Event):
    """An event detected by the sign change of a (continuous) test function."""

    def crossed(self, before, after):
        return [i for i in range(self.n) if _sign_change(before[i], after[i])]

    def same_side(self, reference, value, index):
        return not _sign_change(reference[index], value[index])

    def is_continuous(self, index):
        return True


class DiscreteEvent(Event):
    """An event detected by the change of value of an (integer valued) test function."""

    def crossed(self, before, after):
        return [i for i in range(self.n) if before[i] != after[i]]

    def same_side(self, reference, value, index):
        return reference[index] == value[index]

    def is_continuous(self, index):
        return False


class PairOfEvents(Event):
    """A continuous and a discrete event evaluated together."""

    def __init__(self, continuous: ContinuousEvent, discrete: DiscreteEvent) -> None:
        self.continuous = continuous
        self.discrete = discrete
        super().__init__(
            continuous.n + discrete.n,
            lambda ctx: np.concatenate([continuous(ctx), discrete(ctx)]),
            continuous.labels + discrete.labels,
            continuous.needs_eigenvalues or discrete.needs_eigenvalues,
        )

    def crossed(self, before, after):
        nc = self.continuous.n
        result = self.continuous.crossed(before[:nc], after[:nc])
        result += [nc + i for i in self.discrete.crossed(before[nc:], after[nc:])]
        return result

    def same_side(self, reference, value, index):
        nc = self.continuous.n
        if index < nc:
            return self.continuous.same_side(reference[:nc], value[:nc], index)
        return self.discrete.same_side(reference[nc:], value[nc:], index - nc)

    def is_continuous(self, index):
        return index < self.continuous.n


def _sign_change(a: Any, b: Any) -> bool:
    a, b = np.real(a), np.real(b)
    return bool(a * b < 0 or (b == 0 and a != 0))


class Stability(NamedTuple):
    """The linear stability of a point."""

    #: the eigenvalues, sorted by decreasing real part
    eigenvalues: ComplexArray
    #: the eigenvectors (one per row)
    eigenvectors: ComplexArray
    #: number of eigenvalues with positive real part, None if the eigen solve failed
    n_unstable: int | None
    #: number of eigenvalues with positive real part and nonzero imaginary part, None if the eigen solve failed
    n_imag: int | None
    #: did the eigen solve succeed?
    success: bool


def compute_stability(problem: Any, z: BorderedArray, params: Params, contparams: ContinuationParameters) -> Stability:
    """
    Compute the eigenvalues of the stability Jacobian and count the unstable ones.

    An eigenvalue is unstable if its real part exceeds precision_stability, it
    is oscillatory if additionally its imaginary part exceeds it. The counts
    are None if the eigen solve failed, so no bifurcation is detected there.
    """
    J = problem.stability_jacobian(z.u, problem.set_param(params, z.p))
    eigen_solver = contparams.newton_options.eigen_solver
    vals, vecs, success, _ = eigen_solver.solve(J, contparams.nev)
    if not success:
        return Stability(vals, vecs, None, None, False)
    tol = contparams.precision_stability
    n_unstable = int(np.sum(vals.real > tol))
    n_imag = int(np.sum((vals.real > tol) & (np.abs(vals.imag) > tol)))
    return Stability(vals, vecs, n_unstable, n_imag, success)


def classify_stability_change(dn_unstable: int, dn_imag: int) -> str:
    """Type of bifurcation for a given change of the number of unstable eigenvalues."""
    if abs(dn_unstable) == 1:
        return "bp"
    if abs(dn_unstable) == 2 and abs(dn_imag) == 2:
        return "hopf"
    return "nd"


class LocateResult(NamedTuple):
    """The result of the bisection of a special point."""

    #: the point at the high end of the final bracket
    z: BorderedArray
    #: the tangent at that point
    tau: BorderedArray
    #: the parameter interval of the final bracket
    interval: tuple[Any, Any]
    #: the test function values at both ends of the final bracket
    values: tuple[Any, Any]
    #: "converged" or "guess"
    status: str
    #: the length of the final bracket in arclength
    precision: float
    #: the data of the trial point at the high end of the bracket
    data: Any


def bisection(
    stepper: Any,
    problem: Any,
    z0: BorderedArray,
    tau0: BorderedArray,
    z1: BorderedArray,
    tau1: BorderedArray,
    ds: float,
    params: Params,
    evaluate_trial: Callable[[BorderedArray, BorderedArray], tuple[bool, Any, Any]],
    data0: Any,
    data1: Any,
    value0: Any,
    value1: Any,
    tolerance_met: Callable[[Any], bool],
) -> LocateResult:
    """
    Locate a special point between z0 (arclength 0) and z1 (arclength ds) by bisection.

    Each trial point is corrected from z0 along tau0 with a fraction of the step
    size. evaluate_trial(z, tau) returns (same_side_as_z0, value, data).

    The location stops after max_bisection_steps, when the bracket becomes
    smaller than dsmin_bisection or when the test function meets the tolerance.
    It is converged if it stopped for the latter reasons after at least
    n_inversion sign inversions.
    """
    cp = stepper.contparams
    lo, hi = 0.0, ds
    z_lo, z_hi = z0, z1
    tau_hi = tau1
    v_lo, v_hi = value0, value1
    data_hi = data1
    inversions = 1
    status = "guess"
    for _ in range(cp.max_bisection_steps):
        if abs(hi - lo) < cp.dsmin_bisection or tolerance_met(v_hi):
            break
        mid = 0.5 * (lo + hi)
        z_mid, converged = stepper.solve_at(problem, z0, tau0, mid, params)
        if not converged:
            print("Warning: bisection failed to converge, using the last bracket")
            break
        tau_mid, _ = stepper.update_tangent(problem, z_mid, z0, tau0, mid, params)
        same_side, value, data = evaluate_trial(z_mid, tau_mid)
        if same_side:
            lo, z_lo, v_lo = mid, z_mid, value
        else:
            hi, z_hi, tau_hi, v_hi, data_hi = mid, z_mid, tau_mid, value, data
            inversions += 1
    if inversions >= cp.n_inversion and (abs(hi - lo) < cp.dsmin_bisection or tolerance_met(v_hi)):
        status = "converged"
    elif cp.verbosity > 0:
        print(f"Bisection stopped with an interval of {abs(hi - lo):.2e} in arclength")
    return LocateResult(z_hi, tau_hi, (z_lo.p, z_hi.p), (v_lo, v_hi), status, abs(hi - lo), data_hi)


def interpolate_parameter(p_lo: Any, p_hi: Any, v_lo: Any, v_hi: Any) -> Any:
    """Linear interpolation of the parameter value where the test function vanishes."""
    v_lo, v_hi = np.real(v_lo), np.real(v_hi)
    if v_lo == v_hi or not np.isfinite(v_lo) or not np.isfinite(v_hi):
        return p_hi
    t = v_lo / (v_lo - v_hi)
    return p_lo + t * (p_hi - p_lo)
