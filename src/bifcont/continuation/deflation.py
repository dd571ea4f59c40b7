"""Deflation operator for finding multiple roots of a problem."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Any

import numpy as np

from ..core import vectors
from ..core.types import Array, Matrix, Vector


class DeflationOperator:
    """
    A deflation operator M for deflated Newton iterations.

    Adds singularities to the equation at given solutions r_i:
    0 = F(u) --> 0 = M(u) * F(u)
    with
    M(u) = product_i (<u - r_i, u - r_i>^-power + shift)

    The parameters are:
      power: some exponent to the norm <u, v>
      shift: some constant added shift parameter for numerical stability,
             so that M(u) tends to 1 away from the known roots
    """

    def __init__(
        self,
        power: float = 2,
        shift: float = 1.0,
        dot: Callable[[Vector, Vector], Any] = vectors.dot,
        roots: Iterable[Vector] = (),
        max_roots: int | None = None,
    ) -> None:
        """
        Initialize the DeflationOperator.

        Parameters
        ----------
        power
            The exponent of the squared distance to the known roots.
        shift
            Constant added to each factor of the operator.
        dot
            The dot product used to measure distances.
        roots
            Initial list of roots to deflate.
        max_roots
            Optional maximum number of roots, further roots are refused.
        """
        assert power > 0, "The power of the deflation operator must be positive"
        #: the exponent of the squared distance that will be used for the deflation operator
        self.power = power
        #: constant in the deflation operator, for numerical stability
        self.shift = shift
        #: the dot product
        self.dot = dot
        #: maximum number of roots, None for no limit
        self.max_roots = max_roots
        #: list of solutions, that will be suppressed by the deflation operator
        self.roots: list[Vector] = []
        for root in roots:
            self.add_solution(root)

    def _distance(self, u: Vector, root: Vector) -> float:
        diff = u - root
        return float(np.real(self.dot(diff, diff)))

    def operator(self, u: Vector) -> float:
        """
        Obtain the value of the deflation operator for given u.

        Parameters
        ----------
        u
            The vector of unknowns.

        Returns
        -------
        float
            The value of the operator, inf if u is one of the roots.
        """
        M = 1.0
        for root in self.roots:
            d = self._distance(u, root)
            if d == 0:
                return np.inf
            M *= d**-self.power + self.shift
        return M

    __call__ = operator

    def D_operator(self, u: Vector) -> Vector:
        """
        Calculate the gradient of the deflation operator for given u.

        Parameters
        ----------
        u
            The vector of unknowns.

        Returns
        -------
        Vector
            The gradient of the operator.
        """
        grad = vectors.zeros_like(u)
        if not self.roots:
            return grad
        M = self.operator(u)
        for root in self.roots:
            diff = u - root
            d = self._distance(u, root)
            factor = d**-self.power + self.shift
            grad = grad + (-self.power * d ** (-self.power - 1) * 2 / factor) * diff
        return M * grad

    def deflated_rhs(self, rhs: Callable[..., Vector]) -> Callable[..., Vector]:
        """
        Deflate the rhs of some problem.

        Returns a new function that represents M(u) * rhs(u, ...).
        """

        def new_rhs(u: Vector, *args: Any) -> Vector:
            # multiply rhs with deflation operator
            return self.operator(u) * rhs(u, *args)

        return new_rhs

    def deflated_jacobian(self, rhs: Callable[..., Array], jacobian: Callable[..., Matrix]) -> Callable[..., Array]:
        """
        Generate the (dense) Jacobian of the deflated rhs of some problem:
        d/du [M(u) F(u)] = F(u) grad M(u)^T + M(u) J(u)
        """

        def new_jac(u: Array, *args: Any) -> Array:
            op = self.operator(u)
            D_op = self.D_operator(u)
            J = jacobian(u, *args)
            J = J.toarray() if hasattr(J, "toarray") else np.asarray(J)
            return np.outer(rhs(u, *args), D_op) + op * J

        return new_jac

    def add_solution(self, u: Vector) -> bool:
        """
        Add a solution to the list of solutions used for deflation.

        Returns False if the maximum number of roots is reached and the
        solution was not added.
        """
        if self.max_roots is not None and len(self.roots) >= self.max_roots:
            return False
        self.roots.append(vectors.copy(u))
        return True

    push = add_solution

    def __len__(self) -> int:
        return len(self.roots)

    def __getitem__(self, index: int) -> Vector:
        return self.roots[index]

    def __iter__(self) -> Iterator[Vector]:
        return iter(self.roots)

    def __repr__(self) -> str:
        return f"DeflationOperator(power={self.power}, shift={self.shift}, roots={len(self.roots)})"
