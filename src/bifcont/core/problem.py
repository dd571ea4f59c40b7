"""The BifurcationProblem class: a parametrized nonlinear system F(x, p) = 0."""

from __future__ import annotations

import copy as copy_module
from collections.abc import Callable
from typing import Any

import numdifftools as nd
import numpy as np

from .lens import Lens, lens as make_lens
from .types import DataDict, JacobianLike, Params, Vector
from .vectors import apply, length, norm, transpose


class BifurcationProblem:
    """
    A nonlinear problem F(x, params) = 0 with one distinguished scalar parameter.

    The continuation parameter is addressed by a lens into the parameter
    record. Derivatives that are not provided by the user are approximated:
    the Jacobian with numdifftools, the second and third derivatives by
    central differences of the Jacobian.
    """

    def __init__(
        self,
        F: Callable[[Vector, Params], Vector],
        x0: Vector,
        params: Params,
        lens: Lens | str | int,
        J: Callable[[Vector, Params], JacobianLike] | None = None,
        Jt: Callable[[Vector, Params], JacobianLike] | None = None,
        d2F: Callable[..., Vector] | None = None,
        d3F: Callable[..., Vector] | None = None,
        issymmetric: bool = False,
        record_from_solution: Callable[[Vector, Any], Any] | None = None,
    ) -> None:
        """
        Initialize the BifurcationProblem.

        Parameters
        ----------
        F
            The residual function F(x, params).
        x0
            An initial guess of a solution.
        params
            The parameter record.
        lens
            The lens (or key) addressing the continuation parameter.
        J
            Optional Jacobian function J(x, params).
        Jt
            Optional function for the adjoint of the Jacobian.
        d2F
            Optional second derivative d2F(x, params, dx1, dx2).
        d3F
            Optional third derivative d3F(x, params, dx1, dx2, dx3).
        issymmetric
            Is the Jacobian symmetric? Then the adjoint equals the Jacobian.
        record_from_solution
            Optional function (x, p) -> value(s) recorded along branches.
        """
        #: the residual function
        self.F = F
        #: the initial guess
        self.x0 = x0
        #: the parameter record
        self.params = params
        #: the lens addressing the continuation parameter
        self.lens = make_lens(lens)
        self._J = J
        self._Jt = Jt
        self._d2F = d2F
        self._d3F = d3F
        #: is the Jacobian symmetric?
        self.issymmetric = issymmetric
        self._record = record_from_solution
        #: perturbation size for the finite difference second derivative
        self.fd_epsilon_d2F = 1e-5
        #: perturbation size for the finite difference third derivative
        self.fd_epsilon_d3F = 1e-4

    def __call__(self, x: Vector, params: Params) -> Vector:
        """Evaluate the residual F(x, params)."""
        return self.F(x, params)

    @property
    def has_jacobian(self) -> bool:
        return self._J is not None

    @property
    def has_hessian(self) -> bool:
        """Is an analytic second derivative available?"""
        return self._d2F is not None

    def jacobian(self, x: Vector, params: Params) -> JacobianLike:
        """
        Calculate the Jacobian J = dF/dx.

        Defaults to a finite difference approximation with numdifftools.
        """
        if self._J is not None:
            return self._J(x, params)
        n = length(x)
        m = length(self.F(x, params))
        jac = nd.Jacobian(lambda y: np.ravel(self.F(np.reshape(y, np.shape(x)), params)))
        return np.reshape(jac(np.ravel(x)), (m, n))

    def jacobian_adjoint(self, x: Vector, params: Params) -> JacobianLike:
        """The adjoint (transpose) of the Jacobian."""
        if self._Jt is not None:
            return self._Jt(x, params)
        J = self.jacobian(x, params)
        if self.issymmetric:
            return J
        return transpose(J)

    def stability_jacobian(self, x: Vector, params: Params) -> JacobianLike:
        """The Jacobian whose eigenvalues determine the stability of a solution."""
        return self.jacobian(x, params)

    def d2F(self, x: Vector, params: Params, dx1: Vector, dx2: Vector) -> Vector:
        """
        Second derivative d2F(x)[dx1, dx2].

        Uses the user-provided function if available, else central differences
        of the Jacobian.
        """
        if self._d2F is not None:
            return self._d2F(x, params, dx1, dx2)
        eps = self.fd_epsilon_d2F
        J1 = self.jacobian(x + eps * dx2, params)
        J2 = self.jacobian(x - eps * dx2, params)
        return (apply(J1, dx1) - apply(J2, dx1)) / (2 * eps)

    def d3F(self, x: Vector, params: Params, dx1: Vector, dx2: Vector, dx3: Vector) -> Vector:
        """
        Third derivative d3F(x)[dx1, dx2, dx3].

        Uses the user-provided function if available, else central differences
        of the second derivative.
        """
        if self._d3F is not None:
            return self._d3F(x, params, dx1, dx2, dx3)
        eps = self.fd_epsilon_d3F
        return (self.d2F(x + eps * dx3, params, dx1, dx2) - self.d2F(x - eps * dx3, params, dx1, dx2)) / (2 * eps)

    def dF_dp(self, x: Vector, params: Params, delta: float = 1e-8) -> Vector:
        """Derivative of the residuals with respect to the continuation parameter (central differences)."""
        p = self.get_param(params)
        fp = self.F(x, self.set_param(params, p + delta))
        fm = self.F(x, self.set_param(params, p - delta))
        return (fp - fm) / (2 * delta)

    @property
    def param_lens(self) -> Lens:
        """The lens of the continuation parameter."""
        return self.lens

    def get_param(self, params: Params | None = None) -> Any:
        """Value of the continuation parameter."""
        return self.lens.get(self.params if params is None else params)

    def set_param(self, params: Params, value: Any) -> Params:
        """Copy of the parameter record with a new value of the continuation parameter."""
        return self.lens.set(params, value)

    def record_from_solution(self, x: Vector, p: Any) -> DataDict:
        """
        Values recorded along branches.

        Defaults to the norm of the solution.
        """
        if self._record is None:
            return {"norm": norm(x)}
        record = self._record(x, p)
        if isinstance(record, dict):
            return record
        return {"record": record}

    def updated(self, z: Vector, params: Params, step: int) -> BifurcationProblem:
        """
        Return the problem to be used from the next continuation step on.

        Plain problems do not change along a branch.
        """
        return self

    def replace(self, **changes: Any) -> BifurcationProblem:
        """Shallow copy of the problem with some attributes replaced (e.g. lens or params)."""
        new = copy_module.copy(self)
        for key, value in changes.items():
            if key == "lens":
                value = make_lens(value)
            assert hasattr(new, key), f"BifurcationProblem has no attribute '{key}'"
            setattr(new, key, value)
        return new
