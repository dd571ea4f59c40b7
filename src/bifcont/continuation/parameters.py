"""Settings of the numerical continuation."""

from __future__ import annotations

from typing import Any

import numpy as np

from ..core.newton import NewtonOptions


class ContinuationParameters:
    """
    A wrapper class that holds all the settings (step sizes, bounds, switches
    for the detection of special points, ...) of a continuation.

    All settings can be overridden with keyword arguments of the constructor.
    """

    def __init__(self, **kwargs: Any) -> None:
        # step size control
        #: initial step size, its sign determines the direction of the continuation
        self.ds = 0.01
        #: minimal step size, the continuation stops when |ds| falls below
        self.dsmin = 1e-4
        #: maximal step size
        self.dsmax = 0.1
        #: rate of step size increase for steps with less than n_desired_newton_steps
        self.ds_increase_factor = 1.1
        #: rate of step size decrease for steps with more than n_desired_newton_steps
        #: or for failed steps
        self.ds_decrease_factor = 0.5
        #: desired number of Newton iterations per continuation step
        self.n_desired_newton_steps = 3
        # bounds
        #: lower bound of the continuation parameter
        self.p_min = -np.inf
        #: upper bound of the continuation parameter
        self.p_max = np.inf
        #: maximum number of continuation steps
        self.max_steps = 400
        # arclength
        #: weight of the unknowns in the arclength norm, (1 - theta) weighs the parameter
        self.theta = 0.5
        #: algorithm for the tangent: "bordered" or "secant"
        self.tangent_algorithm = "bordered"
        #: the settings of the Newton corrector
        self.newton_options = NewtonOptions()
        # detection of special points
        #: detect folds by a sign change of the parameter component of the tangent
        self.detect_fold = True
        #: 0 = no eigenvalues, 1 = compute eigenvalues, 2 = also detect bifurcations,
        #: 3 = also locate them by bisection
        self.detect_bifurcation = 3
        #: 0 = no events, 1 = detect events, 2 = also locate them by bisection
        self.detect_event = 0
        #: codim-2 continuation: 0 = no detection, 1 = detect, 2 = also locate
        self.detect_codim2_bifurcation = 0
        #: number of eigenvalues to compute
        self.nev = 3
        #: save the eigenvectors along the branch?
        self.save_eigenvectors = False
        #: real parts above this threshold count as unstable eigenvalues
        self.precision_stability = 1e-10
        # bisection
        #: bisection stops when the step size falls below this value
        self.dsmin_bisection = 1e-16
        #: maximum number of bisection steps
        self.max_bisection_steps = 15
        #: minimum number of sign inversions before a bisection can be converged
        self.n_inversion = 2
        #: bisection of eigenvalue crossings is converged when the crossing
        #: eigenvalue has a real part below this value
        self.tol_bisection_eigenvalue = 1e-16
        #: tolerance of the bisection of events, in units of the test function
        self.tol_bisection_event = 1e-10
        # misc
        #: finite difference step size for the derivative with respect to the parameter
        self.fd_epsilon = 1e-8
        #: how verbose should the continuation be? 0 = quiet, larger numbers = print more details
        self.verbosity = 0
        for key, value in kwargs.items():
            assert hasattr(self, key), f"Unknown continuation parameter '{key}'"
            setattr(self, key, value)
        self.validate()

    def validate(self) -> None:
        """Check the consistency of the settings."""
        assert self.dsmin > 0, "dsmin must be positive"
        assert self.dsmax >= self.dsmin, "dsmax must be larger than dsmin"
        assert self.dsmin <= abs(self.ds) <= self.dsmax, "|ds| must lie in [dsmin, dsmax]"
        assert self.p_min < self.p_max, "p_min must be smaller than p_max"
        assert 0 <= self.theta <= 1, "theta must lie in [0, 1]"
        assert self.tangent_algorithm in ("bordered", "secant"), (
            f"Unknown tangent algorithm '{self.tangent_algorithm}'"
        )
        assert self.ds_increase_factor >= 1, "ds_increase_factor must be >= 1"
        assert 0 < self.ds_decrease_factor < 1, "ds_decrease_factor must lie in (0, 1)"
        assert self.detect_bifurcation in (0, 1, 2, 3), "detect_bifurcation must be 0, 1, 2 or 3"
        assert self.detect_event in (0, 1, 2), "detect_event must be 0, 1 or 2"
        assert self.detect_codim2_bifurcation in (0, 1, 2), "detect_codim2_bifurcation must be 0, 1 or 2"
        assert self.n_inversion >= 2 and self.n_inversion % 2 == 0, "n_inversion must be an even number >= 2"
        assert self.max_bisection_steps >= 0, "max_bisection_steps must be non-negative"
        assert self.nev >= 1, "nev must be positive"

    def copy(self, **changes: Any) -> ContinuationParameters:
        """Return a copy of the settings with some values replaced."""
        settings = dict(vars(self))
        settings.update(changes)
        return ContinuationParameters(**settings)
