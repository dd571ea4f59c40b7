"""
Linear solvers.

All linear solvers share the same contract: solve(J, rhs, shift) returns the
triple (x, success, iterations) for the linear system (shift*I + J) x = rhs.
Failures (singular matrices, non-finite results, non-converging iterations)
are never raised, they are reported through the success flag.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import scipy.linalg
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .types import Array, JacobianLike
from .vectors import BorderedArray, apply, as_operator, from_flat, is_assembled, length, shifted, to_flat


class LinearSolver:
    """
    Abstract base class for all linear solvers.

    A linear solver solves (shift*I + J) x = rhs for a Jacobian J given in any
    of the supported representations.
    """

    def solve(self, J: JacobianLike, rhs: Array, shift: Any = None) -> tuple[Array, bool, int]:
        """
        Solve the linear system (shift*I + J) x = rhs.

        Parameters
        ----------
        J
            The Jacobian.
        rhs
            The right-hand side.
        shift
            Optional diagonal shift.

        Returns
        -------
        tuple
            The solution x, whether the solve succeeded and the number of iterations.
        """
        raise NotImplementedError("'LinearSolver' is an abstract base class - do not use for actual solving!")

    def solve2(
        self, J: JacobianLike, rhs1: Array, rhs2: Array, shift: Any = None
    ) -> tuple[Array, Array, bool, tuple[int, int]]:
        """
        Solve the linear system for two right-hand sides.

        Subclasses may share the factorization of J between both solves.

        Returns
        -------
        tuple
            The solutions x1 and x2, whether both solves succeeded and both iteration counts.
        """
        x1, ok1, it1 = self.solve(J, rhs1, shift)
        x2, ok2, it2 = self.solve(J, rhs2, shift)
        return x1, x2, ok1 and ok2, (it1, it2)


class DefaultLinearSolver(LinearSolver):
    """
    Direct solver using a LU factorization.

    Uses scipy.linalg.lu_factor for dense and scipy.sparse.linalg.splu for
    sparse matrices. Matrix-free Jacobians are handed to GMRES instead.
    """

    def __init__(self) -> None:
        #: solver used for Jacobians that are not assembled
        self.fallback: LinearSolver = GMRESSolver()

    def factorize(self, J: Any, shift: Any = None) -> Any:
        """Compute the LU factorization of shift*I + J, returns a function rhs -> x."""
        A = shifted(J, shift)
        if sp.issparse(A):
            lu = spla.splu(sp.csc_matrix(A))
            return lu.solve
        lu_piv = scipy.linalg.lu_factor(np.asarray(A), check_finite=False)
        return lambda rhs: scipy.linalg.lu_solve(lu_piv, rhs, check_finite=False)

    def solve(self, J: JacobianLike, rhs: Array, shift: Any = None) -> tuple[Array, bool, int]:
        if not is_assembled(J):
            return self.fallback.solve(J, rhs, shift)
        try:
            x = self.factorize(J, shift)(rhs)
        except (np.linalg.LinAlgError, RuntimeError, ValueError):
            return np.full_like(rhs, np.nan), False, 1
        return x, bool(np.all(np.isfinite(x))), 1

    def solve2(
        self, J: JacobianLike, rhs1: Array, rhs2: Array, shift: Any = None
    ) -> tuple[Array, Array, bool, tuple[int, int]]:
        if not is_assembled(J):
            return self.fallback.solve2(J, rhs1, rhs2, shift)
        try:
            solve = self.factorize(J, shift)
            x1 = solve(rhs1)
            x2 = solve(rhs2)
        except (np.linalg.LinAlgError, RuntimeError, ValueError):
            return np.full_like(rhs1, np.nan), np.full_like(rhs2, np.nan), False, (1, 1)
        success = bool(np.all(np.isfinite(x1)) and np.all(np.isfinite(x2)))
        return x1, x2, success, (1, 1)


class GMRESSolver(LinearSolver):
    """
    Iterative solver using scipy.sparse.linalg.gmres.

    Works for all Jacobian representations, including plain functions v -> J*v.
    """

    def __init__(
        self, rtol: float = 1e-12, restart: int = 200, maxiter: int | None = None, preconditioner: Any = None
    ) -> None:
        #: relative tolerance of the GMRES iteration
        self.rtol = rtol
        #: number of iterations between restarts
        self.restart = restart
        #: maximum number of iterations
        self.maxiter = maxiter
        #: optional preconditioner (a LinearOperator approximating the inverse of J,
        #: e.g. a PartialSchurPreconditioner)
        self.preconditioner: Any = preconditioner

    def solve(self, J: JacobianLike, rhs: Array, shift: Any = None) -> tuple[Array, bool, int]:
        if isinstance(rhs, BorderedArray):
            # iterate on the flattened vector
            flat_rhs = to_flat(rhs)
            op = spla.LinearOperator(
                (flat_rhs.size, flat_rhs.size),
                matvec=lambda v: to_flat(apply(J, from_flat(v, rhs))),
                dtype=flat_rhs.dtype,
            )
            x, success, iterations = self.solve(op, flat_rhs, shift)
            return from_flat(x, rhs), success, iterations
        n = length(rhs)
        A = as_operator(J, n, shift)
        dtype = np.result_type(A.dtype, rhs.dtype)
        if dtype != A.dtype:
            # complex right-hand side for a real operator
            A = spla.LinearOperator((n, n), matvec=A.matvec, dtype=dtype)
        iterations = 0

        def count(_: Any) -> None:
            nonlocal iterations
            iterations += 1

        # the trivial system is solved without iterating
        if not np.any(rhs):
            return np.zeros_like(rhs), True, 0
        x, info = spla.gmres(
            A,
            rhs,
            rtol=self.rtol,
            atol=0.0,
            restart=min(self.restart, n),
            maxiter=self.maxiter,
            M=self.preconditioner,
            callback=count,
            callback_type="pr_norm",
        )
        success = info == 0 and bool(np.all(np.isfinite(x)))
        return x, success, iterations


class PartialSchurPreconditioner(spla.LinearOperator):
    """
    Preconditioner for iterative solvers deflating nev eigenvalues of J.

    For an orthonormal basis U of an invariant subspace of J, i.e. J U = U S,
    the operator

        P = U S^-1 U^T + (I - U U^T) = I + U (S^-1 - I) U^T

    maps the eigenvalues of J in that subspace to 1 and leaves the rest of
    the spectrum unchanged. Deflating the eigenvalues far away from the bulk
    of the spectrum reduces the number of GMRES iterations.
    """

    def __init__(
        self, J: JacobianLike, nev: int, which: str = "LM", n: int | None = None, tol: float = 1e-9
    ) -> None:
        """
        Compute the invariant subspace with scipy.sparse.linalg.eigs.

        Parameters
        ----------
        J
            The Jacobian, as (sparse) matrix, LinearOperator or function v -> J*v.
        nev
            Number of eigenvalues to deflate.
        which
            Which eigenvalues to deflate, see scipy.sparse.linalg.eigs.
        n
            Dimension of the problem, required for Jacobians given as plain functions.
        tol
            Tolerance of the eigen solver.
        """
        if is_assembled(J) or isinstance(J, spla.LinearOperator):
            n = J.shape[0]
        assert n is not None, "Provide the dimension n for matrix-free Jacobians"
        assert 0 < nev < n - 1, "The number of deflated eigenvalues must lie in [1, n-2]"
        A = J if is_assembled(J) else as_operator(J, n)
        eigenvalues, eigenvectors = spla.eigs(A, k=nev, which=which, tol=tol)
        # real basis of the subspace, a complex pair contributes its real and imaginary parts
        phases = np.exp(-1j * np.angle(eigenvectors[np.argmax(np.abs(eigenvectors), axis=0), np.arange(nev)]))
        eigenvectors = eigenvectors * phases
        complex_pairs = np.abs(eigenvalues.imag) > tol * np.abs(eigenvalues)
        basis = np.hstack([eigenvectors.real, eigenvectors[:, complex_pairs].imag])
        U = scipy.linalg.orth(basis, rcond=1e-8)
        JU = np.column_stack([apply(J, U[:, i]) for i in range(U.shape[1])])
        #: the deflated eigenvalues
        self.eigenvalues = eigenvalues
        #: orthonormal basis of the invariant subspace
        self.U = U
        #: the projection of J onto the subspace, J U = U S
        self.S = U.T @ JU
        #: the inverse of S
        self.Sm1 = np.linalg.inv(self.S)
        super().__init__(dtype=np.float64, shape=(n, n))

    def _matvec(self, x: Array) -> Array:
        y = self.U.T @ x
        return x + self.U @ (self.Sm1 @ y - y)
