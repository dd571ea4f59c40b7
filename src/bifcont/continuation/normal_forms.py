"""
Normal forms of branch points.

At a branch point (x0, p0) with kernel ker L = span(zeta_1, ..., zeta_n) of the
Jacobian L, the Lyapunov-Schmidt reduction gives the reduced equation on the
kernel coordinates x, with dp = p - p0:

    a dp + B1 x dp + 1/2 B2(x, x) + 1/6 B3(x, x, x) = 0

For a one-dimensional kernel the coefficients are the scalars a, b1, b2, b3
and the roots of the reduced equation predict the bifurcated branches.
"""

from __future__ import annotations

from typing import Any, NamedTuple

import numpy as np
import scipy.sparse as sp

from ..core.branch import Branch
from ..core.eigensolvers import EigenSolver
from ..core.linear_solvers import DefaultLinearSolver
from ..core.types import Array, Params
from ..core.vectors import apply, dot, is_assembled, norm
from .bordered import MatrixBLS, MatrixFreeBLS


class Predictor(NamedTuple):
    """A guess of a point on a bifurcated branch."""

    #: the solution guess
    x: Array
    #: the parameter value
    p: Any


class SimpleBranchPoint:
    """
    Normal form of a branch point with one-dimensional kernel:

        a dp + b1 x dp + b2/2 x^2 + b3/6 x^3 = 0
    """

    def __init__(self, x0, p0, params, lens, zeta, zeta_star, a, b1, b2, b3, psi01, type):
        #: the branch point
        self.x0 = x0
        #: the parameter value at the branch point
        self.p0 = p0
        #: the parameter record at the branch point
        self.params = params
        #: the lens of the continuation parameter
        self.lens = lens
        #: the kernel vector of the Jacobian
        self.zeta = zeta
        #: the kernel vector of the adjoint, normalized by <zeta_star, zeta> = 1
        self.zeta_star = zeta_star
        #: the normal form coefficients
        self.a = a
        self.b1 = b1
        self.b2 = b2
        self.b3 = b3
        #: the solution of L psi01 = E(dF/dp)
        self.psi01 = psi01
        #: "transcritical", "pitchfork" or "fold"
        self.type = type

    def predictor(self, ds: float, ampfactor: float = 1.0) -> Predictor | None:
        """
        Guess a point on the bifurcated branch at a distance ds in parameter.

        Folds are no branch points, there is no bifurcated branch to predict.
        """
        if self.type == "transcritical":
            amp = -2 * ds * self.b1 / self.b2 * ampfactor
            return Predictor(self.x0 + amp * self.zeta - ds * self.psi01, self.p0 + ds)
        if self.type == "pitchfork":
            # the bifurcated branch exists on one side of the branch point only
            dsfactor = 1 if self.b1 * self.b3 < 0 else -1
            dp = abs(ds) * dsfactor
            amp = np.sqrt(-6 * dp * self.b1 / self.b3) * ampfactor
            return Predictor(self.x0 + amp * self.zeta - dp * self.psi01, self.p0 + dp)
        print("Warning: the branch point is a fold, there is no bifurcated branch to switch to")
        return None

    def __repr__(self) -> str:
        return (
            f"SimpleBranchPoint(type={self.type!r}, p0={self.p0!r}, a={self.a:.3e}, "
            f"b1={self.b1:.3e}, b2={self.b2:.3e}, b3={self.b3:.3e})"
        )


class NdBranchPoint:
    """
    Normal form of a branch point with n-dimensional kernel, given by the
    vector a, the matrix B1 and the tensors B2, B3.
    """

    def __init__(self, x0, p0, params, lens, zeta, zeta_star, a, B1, B2, B3):
        #: the branch point
        self.x0 = x0
        #: the parameter value at the branch point
        self.p0 = p0
        #: the parameter record at the branch point
        self.params = params
        #: the lens of the continuation parameter
        self.lens = lens
        #: the kernel basis (list of vectors)
        self.zeta = zeta
        #: the adjoint kernel basis, bi-orthogonal to the kernel basis
        self.zeta_star = zeta_star
        #: the normal form coefficients
        self.a = a
        self.B1 = B1
        self.B2 = B2
        self.B3 = B3

    @property
    def dim(self) -> int:
        """Dimension of the kernel."""
        return len(self.zeta)

    def reduced_form(self, x: Array, dp: Any) -> Array:
        """The reduced equation on the kernel coordinates x."""
        return (
            self.a * dp
            + self.B1 @ x * dp
            + 0.5 * np.einsum("ijk,j,k->i", self.B2, x, x)
            + np.einsum("ijkl,j,k,l->i", self.B3, x, x, x) / 6
        )

    def reduced_jacobian(self, x: Array, dp: Any) -> Array:
        """Jacobian of the reduced equation with respect to x."""
        return self.B1 * dp + np.einsum("imk,k->im", self.B2, x) + 0.5 * np.einsum("imkl,k,l->im", self.B3, x, x)

    def lift(self, x: Array, dp: Any = 0.0) -> Array:
        """Guess of a solution of the full problem from kernel coordinates x."""
        out = self.x0.copy()
        for xi, zeta in zip(x, self.zeta):
            out = out + xi * zeta
        return out

    __call__ = lift

    def __repr__(self) -> str:
        return f"NdBranchPoint(dim={self.dim}, p0={self.p0!r})"


def _range_solver(L: Any, zeta: list[Array], zeta_star: list[Array]):
    """
    Returns a function solving L psi = E(rhs), E(x) = x - sum_i <zeta*_i, x> zeta_i,
    with the regular bordered system [L Z*; Z^T 0] (psi orthogonal to the kernel).
    """
    n = len(zeta)

    def E(x):
        for z, zs in zip(zeta, zeta_star):
            x = x - dot(zs, x) * z
        return x

    if n == 1:
        bls = MatrixBLS() if is_assembled(L) else MatrixFreeBLS()

        def solve(rhs):
            psi, _, success, _ = bls.solve(L, zeta_star[0], zeta[0], 0.0, E(rhs), 0.0)
            if not success:
                print("Warning: the bordered solve of the normal form failed")
            return psi

        return solve

    assert is_assembled(L), "Normal forms of branch points with kernel dimension > 1 require an assembled Jacobian"
    cols = np.column_stack(zeta_star)
    rows = np.conj(np.vstack(zeta))
    if sp.issparse(L):
        M = sp.bmat([[L, sp.csc_matrix(cols)], [sp.csc_matrix(rows), None]], format="csc")
    else:
        M = np.block([[np.asarray(L), cols], [rows, np.zeros((n, n))]])
    linear_solver = DefaultLinearSolver()

    def solve(rhs):
        sol, success, _ = linear_solver.solve(M, np.append(E(rhs), np.zeros(n)))
        if not success:
            print("Warning: the bordered solve of the normal form failed")
        return sol[:-n]

    return solve


def _eigen_solver(branch: Branch) -> EigenSolver:
    if branch.contparams is not None:
        return branch.contparams.newton_options.eigen_solver
    return EigenSolver()


def kernel_basis(
    problem: Any, x0: Array, params: Params, dim: int, eigen_solver: EigenSolver, nev: int | None = None,
    issymmetric: bool | None = None,
) -> tuple[list[Array], list[Array]]:
    """
    Compute the kernel of the Jacobian and the one of its adjoint from the
    eigenvalues closest to zero. The adjoint basis is bi-orthogonalized:
    <zeta*_i, zeta_j> = delta_ij.
    """
    L = problem.jacobian(x0, params)
    n_total = L.shape[0] if hasattr(L, "shape") else len(x0)
    k = None if nev is None or nev >= n_total - 1 else max(nev, dim)
    vals, vecs, success, _ = eigen_solver.solve(L, k, n_total)
    assert success, "Eigen solve at the branch point failed"
    order = np.argsort(np.abs(vals))[:dim]
    real = not np.iscomplexobj(x0)
    zeta = []
    for i in order:
        z = vecs[i]
        if real:
            # fix the phase before taking the real part
            z = np.real(z * np.exp(-1j * np.angle(z[np.argmax(np.abs(z))])))
        zeta.append(z / norm(z))
    if issymmetric is None:
        issymmetric = getattr(problem, "issymmetric", False)
    if issymmetric:
        zeta_star = [z.copy() for z in zeta]
    else:
        Lt = problem.jacobian_adjoint(x0, params)
        zeta_star = []
        for v in eigen_solver.adjoint_bases(Lt, vals[order], n_total):
            if real:
                v = np.real(v * np.exp(-1j * np.angle(v[np.argmax(np.abs(v))])))
            zeta_star.append(v)
    # bi-orthogonalize
    G = np.array([[dot(zs, z) for z in zeta] for zs in zeta_star])
    C = np.linalg.inv(G)
    zeta_star = [sum(C[i, k] * zeta_star[k] for k in range(dim)) for i in range(dim)]
    return zeta, zeta_star


def _branch_point_data(problem: Any, branch: Branch, ind_bif: int):
    special = branch.special_points[ind_bif]
    params = problem.set_param(branch.params, special.param)
    return special, np.asarray(special.x), special.param, params


def compute_normal_form_1d(
    problem: Any,
    branch: Branch,
    ind_bif: int,
    delta: float = 1e-8,
    nev: int | None = None,
    issymmetric: bool | None = None,
    tol_fold: float = 1e-3,
    verbose: bool = False,
) -> SimpleBranchPoint:
    """
    Compute the normal form of a simple branch point of a branch.

    Parameters
    ----------
    problem
        The problem the branch was computed for.
    branch
        The branch.
    ind_bif
        Index of the special point in branch.special_points.
    delta
        Finite difference step for the derivatives with respect to the parameter.
    nev
        Number of eigenvalues to compute for finding the kernel.
    issymmetric
        Is the Jacobian symmetric? Defaults to the setting of the problem.
    tol_fold
        If |a| exceeds this tolerance, the point is classified as a fold.
    verbose
        Print the normal form coefficients?

    Returns
    -------
    SimpleBranchPoint
        The normal form.
    """
    special, x0, p0, params = _branch_point_data(problem, branch, ind_bif)
    zeta, zeta_star = kernel_basis(problem, x0, params, 1, _eigen_solver(branch), nev, issymmetric)
    zeta, zeta_star = zeta[0], zeta_star[0]
    L = problem.jacobian(x0, params)
    solve = _range_solver(L, [zeta], [zeta_star])
    lens = problem.lens

    # derivative with respect to the parameter
    params_p = lens.set(params, p0 + delta)
    params_m = lens.set(params, p0 - delta)
    R01 = (problem(x0, params_p) - problem(x0, params_m)) / (2 * delta)
    a = np.real(dot(zeta_star, R01))
    psi01 = solve(R01)

    # mixed derivative
    R11 = (apply(problem.jacobian(x0, params_p), zeta) - apply(problem.jacobian(x0, params_m), zeta)) / (2 * delta)
    b1 = np.real(dot(zeta_star, R11 - problem.d2F(x0, params, zeta, psi01)))

    # quadratic coefficient
    R2 = problem.d2F(x0, params, zeta, zeta)
    b2 = np.real(dot(zeta_star, R2))

    # cubic coefficient
    psi02 = solve(R2)
    R3 = problem.d3F(x0, params, zeta, zeta, zeta)
    b3 = np.real(dot(zeta_star, R3 - 3 * problem.d2F(x0, params, zeta, psi02)))

    if abs(a) < tol_fold:
        bp_type = "pitchfork" if 100 * abs(b2 / 2) < abs(b3 / 6) else "transcritical"
    else:
        bp_type = "fold"
    if verbose:
        print(f"Normal form at p = {p0}: a = {a:.3e}, b1 = {b1:.3e}, b2 = {b2:.3e}, b3 = {b3:.3e} ({bp_type})")
    return SimpleBranchPoint(x0, p0, params, lens, zeta, zeta_star, a, b1, b2, b3, psi01, bp_type)


def compute_normal_form(
    problem: Any,
    branch: Branch,
    ind_bif: int,
    delta: float = 1e-8,
    nev: int | None = None,
    issymmetric: bool | None = None,
    verbose: bool = False,
) -> NdBranchPoint:
    """
    Compute the normal form of a branch point with kernel dimension
    branch.kernel_dim(ind_bif).
    """
    special, x0, p0, params = _branch_point_data(problem, branch, ind_bif)
    n = max(branch.kernel_dim(ind_bif), 1)
    zeta, zeta_star = kernel_basis(problem, x0, params, n, _eigen_solver(branch), nev, issymmetric)
    L = problem.jacobian(x0, params)
    solve = _range_solver(L, zeta, zeta_star)
    lens = problem.lens
    params_p = lens.set(params, p0 + delta)
    params_m = lens.set(params, p0 - delta)

    R01 = (problem(x0, params_p) - problem(x0, params_m)) / (2 * delta)
    a = np.array([np.real(dot(zs, R01)) for zs in zeta_star])
    psi01 = solve(R01)

    J_p = problem.jacobian(x0, params_p)
    J_m = problem.jacobian(x0, params_m)
    B1 = np.zeros((n, n))
    for j in range(n):
        R11 = (apply(J_p, zeta[j]) - apply(J_m, zeta[j])) / (2 * delta)
        rhs = R11 - problem.d2F(x0, params, zeta[j], psi01)
        for i in range(n):
            B1[i, j] = np.real(dot(zeta_star[i], rhs))

    B2 = np.zeros((n, n, n))
    psi = {}
    for j in range(n):
        for k in range(j, n):
            d2 = problem.d2F(x0, params, zeta[j], zeta[k])
            psi[j, k] = psi[k, j] = solve(d2)
            for i in range(n):
                B2[i, j, k] = B2[i, k, j] = np.real(dot(zeta_star[i], d2))

    B3 = np.zeros((n, n, n, n))
    for j in range(n):
        for k in range(n):
            for l in range(n):
                rhs = (
                    problem.d3F(x0, params, zeta[j], zeta[k], zeta[l])
                    - problem.d2F(x0, params, zeta[j], psi[k, l])
                    - problem.d2F(x0, params, zeta[k], psi[j, l])
                    - problem.d2F(x0, params, zeta[l], psi[j, k])
                )
                for i in range(n):
                    B3[i, j, k, l] = np.real(dot(zeta_star[i], rhs))
    if verbose:
        print(f"Normal form at p = {p0} with kernel dimension {n}: a = {a}")
    return NdBranchPoint(x0, p0, params, lens, zeta, zeta_star, a, B1, B2, B3)
