"""
Generic vector operations.

The continuation engine never assumes a concrete vector type. It works on
numpy arrays (real or complex) and on BorderedArrays, i.e., on pairs of a
vector and a scalar, that are used to hold the unknowns of augmented
problems such as (x, p) or ((x, p1), p2).
"""

from __future__ import annotations

from typing import Any

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from .types import Array, JacobianLike, Vector


class BorderedArray:
    """
    A vector u bordered by a scalar p.

    Supports the arithmetic needed by the Newton and continuation algorithms:
    addition, subtraction, multiplication with scalars, dot products and norms.
    The vector part may itself be a BorderedArray.
    """

    # let numpy defer binary operations to our own operators
    __array_ufunc__ = None

    def __init__(self, u: Vector, p: Any) -> None:
        """
        Initialize the BorderedArray.

        Parameters
        ----------
        u
            The vector part.
        p
            The scalar part.
        """
        #: the vector part
        self.u = u
        #: the scalar part
        self.p = p

    def copy(self) -> BorderedArray:
        """Return a deep copy."""
        return BorderedArray(copy(self.u), self.p)

    def dot(self, other: BorderedArray) -> Any:
        """Euclidean dot product of the flattened vectors."""
        return dot(self.u, other.u) + np.conj(self.p) * other.p

    def axpy(self, a: Any, x: BorderedArray) -> BorderedArray:
        """In-place self += a * x."""
        self.u = axpy(a, x.u, self.u)
        self.p = self.p + a * x.p
        return self

    def __len__(self) -> int:
        return length(self.u) + 1

    def __add__(self, other: BorderedArray) -> BorderedArray:
        return BorderedArray(self.u + other.u, self.p + other.p)

    def __sub__(self, other: BorderedArray) -> BorderedArray:
        return BorderedArray(self.u - other.u, self.p - other.p)

    def __neg__(self) -> BorderedArray:
        return BorderedArray(-self.u, -self.p)

    def __mul__(self, a: Any) -> BorderedArray:
        return BorderedArray(self.u * a, self.p * a)

    __rmul__ = __mul__

    def __truediv__(self, a: Any) -> BorderedArray:
        return BorderedArray(self.u / a, self.p / a)

    def __repr__(self) -> str:
        return f"BorderedArray(u={self.u!r}, p={self.p!r})"


def dot(x: Vector, y: Vector) -> Any:
    """
    Dot product <x, y> of two vectors (conjugating x).

    Parameters
    ----------
    x
        The first vector.
    y
        The second vector.

    Returns
    -------
    scalar
        The dot product.
    """
    if isinstance(x, BorderedArray):
        return x.dot(y)
    return np.vdot(x, y)


def norm(x: Vector) -> float:
    """Euclidean norm of a vector."""
    if isinstance(x, BorderedArray):
        return float(np.sqrt(abs(x.dot(x))))
    return float(np.linalg.norm(np.ravel(x)))


def norm_inf(x: Vector) -> float:
    """Maximum norm of a vector."""
    if isinstance(x, BorderedArray):
        return max(norm_inf(x.u), float(abs(x.p)))
    if np.size(x) == 0:
        return 0.0
    return float(np.max(np.abs(x)))


def norm_theta(z: BorderedArray, theta: float) -> float:
    """
    Weighted norm used by pseudo-arclength continuation.

    ||z||_theta^2 = theta / length(z.u) * <z.u, z.u> + (1 - theta) * |z.p|^2
    """
    xi_u = theta / length(z.u)
    return float(np.sqrt(xi_u * abs(dot(z.u, z.u)) + (1 - theta) * abs(z.p) ** 2))


def axpy(a: Any, x: Vector, y: Vector) -> Vector:
    """
    Compute y + a * x, in place where the vector type allows it.

    Returns the updated y.
    """
    if isinstance(y, BorderedArray):
        return y.axpy(a, x)
    if isinstance(y, np.ndarray) and np.result_type(y, a, x) == y.dtype:
        y += a * x
        return y
    return y + a * x


def copy(x: Vector) -> Vector:
    """Return a copy of a vector."""
    if isinstance(x, BorderedArray):
        return x.copy()
    return np.array(x, copy=True)


def length(x: Vector) -> int:
    """Number of scalar unknowns stored in a vector."""
    if isinstance(x, BorderedArray):
        return len(x)
    return int(np.size(x))


def zeros_like(x: Vector) -> Vector:
    """Return a zero vector of the same type and shape."""
    if isinstance(x, BorderedArray):
        return BorderedArray(zeros_like(x.u), 0 * x.p)
    return np.zeros_like(x)


def to_flat(x: Vector) -> Array:
    """Flatten a (possibly nested) vector into a 1d numpy array."""
    if isinstance(x, BorderedArray):
        return np.append(to_flat(x.u), x.p)
    return np.ravel(x)


def from_flat(flat: Array, like: Vector) -> Vector:
    """Inverse of to_flat(), restoring the structure of `like`."""
    if isinstance(like, BorderedArray):
        return BorderedArray(from_flat(flat[:-1], like.u), flat[-1])
    return np.reshape(flat, np.shape(like))


def is_assembled(J: Any) -> bool:
    """Is the Jacobian an explicitly assembled (dense or sparse) matrix?"""
    return isinstance(J, np.ndarray) or sp.issparse(J)


def apply(J: JacobianLike, v: Vector) -> Vector:
    """
    Apply a Jacobian to a vector.

    Parameters
    ----------
    J
        The Jacobian: dense array, sparse matrix, LinearOperator or callable.
    v
        The vector.

    Returns
    -------
    Vector
        The product J * v.
    """
    if isinstance(J, np.ndarray) or sp.issparse(J):
        return J @ v
    if isinstance(J, spla.LinearOperator):
        return J.matvec(v)
    assert callable(J), f"Cannot apply a Jacobian of type {type(J).__name__}"
    return J(v)


def transpose(J: JacobianLike) -> JacobianLike:
    """Return the transpose of a Jacobian that knows how to transpose itself."""
    assert not (callable(J) and not isinstance(J, spla.LinearOperator)), (
        "Matrix-free Jacobians given as plain functions cannot be transposed, "
        "please provide the Jacobian adjoint Jt"
    )
    return J.T


def as_operator(J: JacobianLike, n: int, shift: Any = None) -> spla.LinearOperator:
    """
    Wrap a Jacobian (plus optional diagonal shift) as a scipy LinearOperator.

    Parameters
    ----------
    J
        The Jacobian.
    n
        The dimension of the square operator.
    shift
        Optional diagonal shift, the operator is then shift*I + J.

    Returns
    -------
    LinearOperator
        The operator.
    """
    if shift is None and isinstance(J, spla.LinearOperator):
        return J

    def matvec(v: Array) -> Array:
        out = apply(J, v)
        if shift is not None:
            out = out + shift * v
        return out

    dtype = getattr(J, "dtype", None)
    if dtype is None:
        dtype = np.float64
    return spla.LinearOperator((n, n), matvec=matvec, dtype=dtype)


def shifted(J: Any, shift: Any) -> Any:
    """Return the assembled matrix shift*I + J (J itself if shift is None)."""
    if shift is None:
        return J
    if sp.issparse(J):
        return J + shift * sp.identity(J.shape[0], dtype=np.result_type(J.dtype, shift), format="csc")
    return J + shift * np.eye(J.shape[0])
