"""Core functionality: vectors, lenses, problems, linear and eigen solvers, Newton's method and branches."""

from .branch import Branch, BranchPoint, SpecialPoint
from .eigensolvers import EigenSolver
from .lens import AttributeLens, IndexLens, Lens, lens
from .linear_solvers import DefaultLinearSolver, GMRESSolver, LinearSolver, PartialSchurPreconditioner
from .newton import NewtonOptions, NewtonResult, newton
from .problem import BifurcationProblem
from .vectors import BorderedArray

__all__ = [
    "BorderedArray",
    "Lens",
    "AttributeLens",
    "IndexLens",
    "lens",
    "BifurcationProblem",
    "LinearSolver",
    "DefaultLinearSolver",
    "GMRESSolver",
    "PartialSchurPreconditioner",
    "EigenSolver",
    "NewtonOptions",
    "NewtonResult",
    "newton",
    "Branch",
    "BranchPoint",
    "SpecialPoint",
]
