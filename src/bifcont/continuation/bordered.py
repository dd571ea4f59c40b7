"""
Bordered linear solvers.

A bordered linear solver solves the linear system

    [ shift*I + J      dR     ] [dX]   [R]
    [ xiu * dzu^T   xiu * dzp ] [dl] = [n]

for the vector dX and the scalar dl. Such systems arise from augmenting a
problem F(x) = 0 with a scalar constraint, e.g. the arclength condition of
pseudo-arclength continuation or the defining equation of a fold.
All solvers return the tuple (dX, dl, success, iterations).
"""

from __future__ import annotations

from typing import Any

import numpy as np
import scipy.sparse as sp

from ..core.linear_solvers import DefaultLinearSolver, GMRESSolver, LinearSolver
from ..core.types import Array, JacobianLike, Vector
from ..core.vectors import (BorderedArray, apply, axpy, dot, is_assembled,
                            length, norm, shifted)


class BorderedLinearSolver:
    """Abstract base class for all bordered linear solvers."""

    def solve(
        self,
        J: JacobianLike,
        dR: Vector,
        dzu: Vector,
        dzp: Any,
        R: Vector,
        n: Any,
        xiu: Any = 1.0,
        xip: Any = 1.0,
        shift: Any = None,
    ) -> tuple[Vector, Any, bool, Any]:
        """
        Solve the bordered linear system.

        Parameters
        ----------
        J
            The Jacobian (upper left block).
        dR
            The upper right column.
        dzu
            The vector part of the lower row.
        dzp
            The scalar in the lower right corner.
        R
            The vector part of the right-hand side.
        n
            The scalar part of the right-hand side.
        xiu
            Weight of dzu.
        xip
            Weight of dzp.
        shift
            Optional diagonal shift of J.

        Returns
        -------
        tuple
            The solution (dX, dl), the success flag and the iteration count(s).
        """
        raise NotImplementedError(
            "'BorderedLinearSolver' is an abstract base class - do not use for actual solving!"
        )

    def solve_arclength(
        self, J: JacobianLike, dR: Vector, dz: BorderedArray, R: Vector, n: Any, theta: float, shift: Any = None
    ) -> tuple[Vector, Any, bool, Any]:
        """
        Solve the bordered system of pseudo-arclength continuation, where the
        lower row is the tangent dz weighted by theta / length(dz.u) and 1 - theta.
        """
        return self.solve(J, dR, dz.u, dz.p, R, n, theta / length(dz.u), 1 - theta, shift)


class BorderingBLS(BorderedLinearSolver):
    """
    Bordered linear solver based on the bordering method.

    Only requires solves with J itself (two right-hand sides sharing one
    factorization) and eliminates the scalar unknown via the Schur complement.
    """

    def __init__(self, solver: LinearSolver | None = None, tol: float = 1e-12, check_precision: bool = False) -> None:
        """
        Initialize the BorderingBLS.

        Parameters
        ----------
        solver
            The linear solver for J.
        tol
            Tolerance for checking the precision of the solution.
        check_precision
            Check the residual of the bordered system after each solve?
        """
        #: the linear solver for J
        self.solver = solver if solver is not None else DefaultLinearSolver()
        #: tolerance for checking the precision of the solution
        self.tol = tol
        #: check the residual of the bordered system after each solve?
        self.check_precision = check_precision

    def solve(self, J, dR, dzu, dzp, R, n, xiu=1.0, xip=1.0, shift=None):
        x1, x2, success, iterations = self.solver.solve2(J, R, dR, shift)
        if not success:
            return x1, np.nan, False, iterations
        # Schur complement
        pivot = dzp * xip - dot(dzu, x2) * xiu
        if pivot == 0 or not np.isfinite(pivot):
            return x1, np.nan, False, iterations
        dl = (n - dot(dzu, x1) * xiu) / pivot
        # dX = x1 - dl * x2
        dX = axpy(-dl, x2, x1)
        if self.check_precision:
            residual = apply(J, dX) + dl * dR - R
            if shift is not None:
                residual = residual + shift * dX
            if norm(residual) > self.tol or abs(n - xip * dzp * dl - xiu * dot(dzu, dX)) > self.tol:
                print("Warning: BorderingBLS did not achieve tolerance")
        return dX, dl, True, iterations


class MatrixBLS(BorderedLinearSolver):
    """
    Bordered linear solver that assembles the full (N+1)x(N+1) matrix and
    solves it directly. Requires an assembled (dense or sparse) Jacobian.
    """

    def __init__(self, solver: LinearSolver | None = None) -> None:
        #: the linear solver for the full matrix
        self.solver = solver if solver is not None else DefaultLinearSolver()

    def solve(self, J, dR, dzu, dzp, R, n, xiu=1.0, xip=1.0, shift=None):
        assert is_assembled(J), "MatrixBLS requires an assembled Jacobian"
        A = shifted(J, shift)
        col = np.reshape(dR, (-1, 1))
        row = np.reshape(np.conj(dzu) * xiu, (1, -1))
        corner = np.array([[dzp * xip]])
        if sp.issparse(A):
            M = sp.bmat([[A, sp.csc_matrix(col)], [sp.csc_matrix(row), sp.csc_matrix(corner)]], format="csc")
        else:
            M = np.block([[A, col], [row, corner]])
        rhs = np.append(R, n)
        sol, success, iterations = self.solver.solve(M, rhs)
        return sol[:-1], sol[-1], success, iterations


class BorderedOperator:
    """
    The bordered operator

        [ shift*I + J   a ]
        [     b^T       c ]

    acting on BorderedArrays or on flat vectors with the scalar last.
    """

    def __init__(self, J: JacobianLike, a: Vector, b: Vector, c: Any, shift: Any = None) -> None:
        self.J = J
        self.a = a
        self.b = b
        self.c = c
        self.shift = shift

    def __call__(self, x: Vector) -> Vector:
        if isinstance(x, BorderedArray):
            xu, xp = x.u, x.p
        else:
            xu, xp = x[:-1], x[-1]
        out_u = apply(self.J, xu) + xp * self.a
        if self.shift is not None:
            out_u = out_u + self.shift * xu
        out_p = dot(self.b, xu) + self.c * xp
        if isinstance(x, BorderedArray):
            return BorderedArray(out_u, out_p)
        return np.append(out_u, out_p)


class MatrixFreeBLS(BorderedLinearSolver):
    """
    Bordered linear solver that hands the full bordered operator to an
    iterative linear solver (GMRES by default).
    """

    def __init__(self, solver: LinearSolver | None = None, use_bordered_array: bool = True) -> None:
        """
        Initialize the MatrixFreeBLS.

        Parameters
        ----------
        solver
            The (iterative) linear solver for the bordered operator.
        use_bordered_array
            Represent (x, p) as a BorderedArray? Else a flat vector is used.
        """
        #: the linear solver for the bordered operator
        self.solver = solver if solver is not None else GMRESSolver()
        #: represent (x, p) as a BorderedArray?
        self.use_bordered_array = use_bordered_array

    def solve(self, J, dR, dzu, dzp, R, n, xiu=1.0, xip=1.0, shift=None):
        operator = BorderedOperator(J, dR, dzu * xiu, dzp * xip, shift)
        if self.use_bordered_array:
            sol, success, iterations = self.solver.solve(operator, BorderedArray(R.copy(), n))
            return sol.u, sol.p, success, iterations
        sol, success, iterations = self.solver.solve(operator, np.append(R, n))
        return sol[:-1], sol[-1], success, iterations


class LSFromBLS(LinearSolver):
    """
    A linear solver for an assembled (N+1)x(N+1) matrix, that splits off the
    last row and column and solves the system with a bordered linear solver.
    """

    def __init__(self, solver: BorderedLinearSolver | None = None) -> None:
        #: the bordered linear solver
        self.solver = solver if solver is not None else BorderingBLS()

    def _split(self, J: Any) -> tuple[Any, Array, Array, Any]:
        assert is_assembled(J), "LSFromBLS requires an assembled matrix"
        if sp.issparse(J):
            J = sp.csc_matrix(J)
            A = J[:-1, :-1]
            col = J[:-1, -1].toarray().ravel()
            row = J[-1, :-1].toarray().ravel()
            corner = J[-1, -1]
        else:
            A = J[:-1, :-1]
            col = np.array(J[:-1, -1])
            row = np.array(J[-1, :-1])
            corner = J[-1, -1]
        # the lower row enters through a conjugating dot product
        return A, col, np.conj(row), corner

    def solve(self, J, rhs, shift=None):
        assert shift is None, "LSFromBLS does not support shifts"
        A, col, row, corner = self._split(J)
        x, l, success, iterations = self.solver.solve(A, col, row, corner, rhs[:-1], rhs[-1])
        return np.append(x, l), success, int(np.sum(iterations))
