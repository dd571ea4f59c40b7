"""Common type aliases used throughout the package."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeAlias, Union

import numpy as np
import numpy.typing
import scipy.sparse as sp
import scipy.sparse.linalg as spla

if TYPE_CHECKING:
    from .vectors import BorderedArray

# Common type for Arrays, e.g. the vector of unknowns
Array: TypeAlias = numpy.typing.NDArray[np.float64 | np.complexfloating]

# Type for purely real-valued arrays (e.g. eigenvalue real parts)
RealArray: TypeAlias = numpy.typing.NDArray[np.float64]

# Type for complex-valued arrays (e.g. eigenvalues)
ComplexArray: TypeAlias = numpy.typing.NDArray[np.complexfloating]

# Objects that can be coerced into an Array
ArrayLike: TypeAlias = numpy.typing.ArrayLike

# Common type for dense and sparse matrices
Matrix: TypeAlias = np.ndarray | sp.spmatrix | sp.sparray

# Anything that can act as a Jacobian: an assembled matrix, a LinearOperator
# or a plain callable v -> J*v
JacobianLike: TypeAlias = Union[Matrix, spla.LinearOperator, Callable[[Any], Any]]

# The opaque vector type of the continuation engine
if TYPE_CHECKING:
    Vector: TypeAlias = Union[Array, "BorderedArray"]
else:
    Vector: TypeAlias = Any

# Parameter records can be anything a lens knows how to address
Params: TypeAlias = Any

# Dictionary for recorded data
DataDict: TypeAlias = dict[str, Any]
