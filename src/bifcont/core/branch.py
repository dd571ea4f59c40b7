"""
Data structures for the results of a continuation: the points along a branch,
the special (bifurcation) points detected on it and the branch itself.
"""

from __future__ import annotations

import copy as copy_module
from typing import Any

import numpy as np

from .types import ComplexArray, DataDict, Params, Vector

#: the types of special points detected by the built-in test functions, user events may add their own labels
SPECIAL_POINT_TYPES = ("fold", "bp", "hopf", "nd", "bt", "cusp", "zh", "ns")


class BranchPoint:
    """
    Stores a point of a branch, including the value of the continuation
    parameter, the tangent and some information on the solution.
    """

    def __init__(
        self,
        x: Vector,
        p: Any,
        tau: Any = None,
        step: int = 0,
        ds: float = 0.0,
        iterations: int = 0,
        record: DataDict | None = None,
    ) -> None:
        #: the solution vector
        self.x = x
        #: value of the continuation parameter
        self.p = p
        #: the (normalized) tangent to the branch, a BorderedArray
        self.tau = tau
        #: the continuation step that produced this point
        self.step = step
        #: the step size used to reach this point
        self.ds = ds
        #: number of Newton iterations of the corrector
        self.iterations = iterations
        #: user defined values recorded for this point (defaults to the norm)
        self.record: DataDict = record if record is not None else {}
        #: eigenvalues of the stability Jacobian, sorted by decreasing real part
        self.eigenvalues: ComplexArray | None = None
        #: eigenvectors of the stability Jacobian (one per row), only stored on request
        self.eigenvectors: ComplexArray | None = None
        #: number of true positive eigenvalues
        self.n_unstable: int | None = None
        #: number of true positive eigenvalues with nonzero imaginary part
        self.n_imag: int | None = None
        #: values of the test functions of the events at this point
        self.diagnostics: dict[str, Any] = {}

    def is_stable(self) -> bool | None:
        """Is the solution stable? None if the stability is unknown."""
        if self.n_unstable is None:
            return None
        return self.n_unstable == 0

    def __repr__(self) -> str:
        return f"BranchPoint(step={self.step}, p={self.p!r}, n_unstable={self.n_unstable})"


class SpecialPoint:
    """A special point (bifurcation point, fold, event, ...) detected on a branch."""

    def __init__(
        self,
        type: str,
        idx: int,
        param: Any,
        x: Vector,
        tau: Any = None,
        interval: tuple[Any, Any] = (None, None),
        status: str = "guess",
        params: Params = None,
        **kwargs: Any,
    ) -> None:
        #: the type of the special point, e.g. "fold", "bp", "hopf", "nd", "bt"
        self.type = type
        #: index of the corresponding point in the branch
        self.idx = idx
        #: (interpolated) value of the continuation parameter at the special point
        self.param = param
        #: the solution vector closest to the special point
        self.x = x
        #: the tangent at the special point
        self.tau = tau
        #: the parameter interval containing the special point
        self.interval = interval
        #: "converged" if the location reached the desired precision, else "guess"
        self.status = status
        #: the full parameter record at the special point
        self.params = params
        #: the step that produced this point
        self.step: int = kwargs.pop("step", idx)
        #: the recorded values at the special point
        self.record: DataDict = kwargs.pop("record", {})
        #: change of (unstable eigenvalues, unstable eigenvalues with nonzero imaginary part)
        self.delta: tuple[int, int] = kwargs.pop("delta", (0, 0))
        #: the estimated dimension of the kernel of the Jacobian
        self.kernel_dim: int = kwargs.pop("kernel_dim", abs(self.delta[0]))
        #: indices of the eigenvalues that crossed the imaginary axis
        self.ind_ev: tuple[int, ...] = kwargs.pop("ind_ev", ())
        #: eigenvalues at the special point
        self.eigenvalues: ComplexArray | None = kwargs.pop("eigenvalues", None)
        #: eigenvectors at the special point
        self.eigenvectors: ComplexArray | None = kwargs.pop("eigenvectors", None)
        #: the size of the interval in arclength when the location stopped
        self.precision: float = kwargs.pop("precision", np.nan)
        assert not kwargs, f"Unknown special point attributes: {list(kwargs)}"

    def __repr__(self) -> str:
        return (
            f"SpecialPoint(type={self.type!r}, idx={self.idx}, param={self.param!r}, "
            f"status={self.status!r}, delta={self.delta})"
        )


class Branch:
    """
    A branch is obtained from a parameter continuation and stores a list of
    points, the special points detected along it and the setting of the
    continuation that produced it.
    """

    # static variable counting the number of Branch instances
    _branch_count = 0

    def __init__(
        self,
        functional: Any = None,
        params: Params = None,
        lens: Any = None,
        contparams: Any = None,
        kind: str = "equilibrium",
    ) -> None:
        # generate branch ID
        Branch._branch_count += 1
        #: unique identifier of the branch
        self.id = Branch._branch_count
        #: list of points along the branch
        self.points: list[BranchPoint] = []
        #: list of special points along the branch, with strictly increasing indices
        self.special_points: list[SpecialPoint] = []
        #: the problem (functional) at the end of the continuation
        self.functional = functional
        #: the parameter record the continuation started from
        self.params = params
        #: the lens of the continuation parameter
        self.lens = lens
        #: the continuation parameters used
        self.contparams = contparams
        #: the kind of branch: "equilibrium" or "fold_codim2"
        self.kind = kind

    def __len__(self) -> int:
        return len(self.points)

    def __getitem__(self, index: int) -> BranchPoint:
        return self.points[index]

    def __iter__(self):
        return iter(self.points)

    def is_empty(self) -> bool:
        """Is the current branch empty?"""
        return len(self.points) == 0

    def add_point(self, point: BranchPoint) -> None:
        """Add a point to the branch."""
        self.points.append(point)

    def add_special_point(self, special_point: SpecialPoint) -> None:
        """Add a special point to the branch. Special points must be added in order."""
        if self.special_points:
            assert special_point.idx > self.special_points[-1].idx, (
                "Special points must have strictly increasing indices"
            )
        self.special_points.append(special_point)

    def param_values(self) -> np.ndarray:
        """List of continuation parameter values along the branch."""
        return np.array([pt.p for pt in self.points])

    def record_values(self, key: str = "norm") -> np.ndarray:
        """List of a recorded quantity along the branch."""
        return np.array([pt.record[key] for pt in self.points])

    def stable_points(self) -> list[BranchPoint]:
        """List of the points that are known to be stable."""
        return [pt for pt in self.points if pt.is_stable()]

    def kernel_dim(self, index: int) -> int:
        """The kernel dimension at the special point with the given index."""
        return self.special_points[index].kernel_dim

    def special_point_types(self) -> list[str]:
        """List of the types of the special points."""
        return [sp.type for sp in self.special_points]

    def reversed(self) -> Branch:
        """
        Return a copy of the branch traversed in opposite direction.

        Tangents are negated and indices of special points remapped.
        """
        branch = copy_module.copy(self)
        Branch._branch_count += 1
        branch.id = Branch._branch_count
        n = len(self.points)
        branch.points = []
        for pt in reversed(self.points):
            new_pt = copy_module.copy(pt)
            if pt.tau is not None:
                new_pt.tau = -pt.tau
            branch.points.append(new_pt)
        branch.special_points = []
        for sp in reversed(self.special_points):
            new_sp = copy_module.copy(sp)
            new_sp.idx = n - 1 - sp.idx
            new_sp.interval = (sp.interval[1], sp.interval[0])
            if sp.tau is not None:
                new_sp.tau = -sp.tau
            branch.special_points.append(new_sp)
        return branch

    def concatenate(self, other: Branch) -> Branch:
        """
        Append the branch `other` that starts where this branch ends.

        The first point of `other` is dropped as it coincides with the last
        point of this branch.
        """
        branch = copy_module.copy(self)
        Branch._branch_count += 1
        branch.id = Branch._branch_count
        offset = len(self.points) - 1
        branch.points = list(self.points) + list(other.points[1:])
        branch.special_points = list(self.special_points)
        for sp in other.special_points:
            new_sp = copy_module.copy(sp)
            new_sp.idx = sp.idx + offset
            branch.add_special_point(new_sp)
        branch.functional = other.functional
        return branch

    def __repr__(self) -> str:
        return (
            f"Branch(id={self.id}, kind={self.kind!r}, points={len(self.points)}, "
            f"special_points={self.special_point_types()})"
        )
