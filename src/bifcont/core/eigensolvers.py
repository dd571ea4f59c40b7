"""Eigensolvers for the linear stability analysis of branch points."""

from __future__ import annotations

from typing import Any

import numpy as np
import scipy.linalg
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .types import Array, ComplexArray, JacobianLike
from .vectors import as_operator, is_assembled


class EigenSolver:
    """
    A wrapper to the direct eigensolver of LAPACK and the iterative eigensolver
    ARPACK, that finds eigenvalues and eigenvectors of an eigenproblem.
    """

    def __init__(self, shift: complex = 0.0, tol: float = 1e-8, direct_threshold: int = 100) -> None:
        #: The shift used for the shift-invert method in the iterative eigensolver.
        #: The eigensolver will find the eigenvalues near the value of the shift first.
        self.shift = shift
        #: convergence tolerance of the iterative eigensolver
        self.tol = tol
        #: dense matrices up to this size are always solved with the direct eigensolver
        self.direct_threshold = direct_threshold
        #: results of the latest eigenvalue computation
        self.latest_eigenvalues: ComplexArray | None = None
        #: results of the latest eigenvector computation
        self.latest_eigenvectors: ComplexArray | None = None

    def solve(self, A: JacobianLike, k: int | None = None, n: int | None = None) -> tuple[ComplexArray, ComplexArray, bool, int]:
        """
        Solve the eigenproblem A*x = v*x for the eigenvalues v and the eigenvectors x.

        Parameters
        ----------
        A
            The matrix (or linear operator) to compute the eigenvalues of.
        k
            Number of eigenvalues to return. If None, all eigenvalues are computed
            by a direct eigensolver.
        n
            Dimension of the problem, required for Jacobians given as plain functions.

        Returns
        -------
        tuple
            The eigenvalues (sorted by decreasing real part), the eigenvectors
            (one per row), whether the computation succeeded and the number of
            iterations.
        """
        if is_assembled(A) or isinstance(A, spla.LinearOperator):
            n = A.shape[0]
        assert n is not None, "Provide the dimension n for matrix-free eigenproblems"
        direct = k is None or k >= n - 1 or (is_assembled(A) and (not sp.issparse(A) or n <= self.direct_threshold))
        try:
            if direct:
                assert is_assembled(A), "The direct eigensolver requires an assembled matrix"
                A_dense = A.toarray() if sp.issparse(A) else np.asarray(A)
                eigenvalues, eigenvectors = scipy.linalg.eig(A_dense)
                iterations = 1
            else:
                # compute only the k eigenvalues closest to the shift with
                # ARPACK in shift-invert mode
                op = A if is_assembled(A) else as_operator(A, n)
                eigenvalues, eigenvectors = spla.eigs(op, k=k, sigma=self.shift, which="LM", tol=self.tol)
                iterations = k
        except (np.linalg.LinAlgError, spla.ArpackError, RuntimeError):
            empty = np.zeros(0, dtype=complex)
            return empty, np.zeros((0, n), dtype=complex), False, 0
        # sort by largest eigenvalue (largest real part) and filter infinite eigenvalues
        idx = np.lexsort((eigenvalues.imag, eigenvalues.real))[::-1]
        idx = idx[np.isfinite(eigenvalues[idx])]
        if k is not None:
            idx = idx[:k]
        self.latest_eigenvalues = eigenvalues[idx]
        self.latest_eigenvectors = eigenvectors.T[idx]
        return self.latest_eigenvalues, self.latest_eigenvectors, True, iterations

    def adjoint_basis(self, At: JacobianLike, lam: complex, n: int | None = None, nev: int | None = None) -> tuple[Array, complex]:
        """
        Find the eigenvector of the adjoint operator At whose eigenvalue is
        closest to conj(lam).

        Returns
        -------
        tuple
            The eigenvector and its eigenvalue.
        """
        vals, vecs, success, _ = self.solve(At, nev, n)
        assert success and len(vals) > 0, "Eigen solve of the adjoint failed"
        index = int(np.argmin(np.abs(vals - np.conj(lam))))
        if abs(vals[index] - np.conj(lam)) > 1e-2:
            print(f"Warning: the adjoint eigenvalue {vals[index]:.3e} is far from conj({lam:.3e})")
        return vecs[index], vals[index]

    def adjoint_bases(self, At: JacobianLike, lams: Any, n: int | None = None) -> list[Array]:
        """Eigenvectors of the adjoint operator for a list of eigenvalues."""
        vals, vecs, success, _ = self.solve(At, None, n)
        assert success, "Eigen solve of the adjoint failed"
        result = []
        used: set[int] = set()
        for lam in lams:
            dist = np.abs(vals - np.conj(lam))
            # do not pick the same eigenvector twice for degenerate eigenvalues
            for i in used:
                dist[i] = np.inf
            index = int(np.argmin(dist))
            used.add(index)
            result.append(vecs[index])
        return result
