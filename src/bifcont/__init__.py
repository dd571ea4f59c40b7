"""
bifcont: numerical continuation and bifurcation analysis.

A package for tracking branches of solutions to parametrized nonlinear
equations F(x, p) = 0, detecting and locating their Fold and bifurcation
points, switching to bifurcated branches and continuing Fold points in two
parameters.
"""

from . import codim2
from .codim2 import continuation_fold, continuation_fold_from_branch, newton_fold, newton_fold_from_branch
from .continuation import (
    BorderingBLS,
    ContinuationParameters,
    DeflationOperator,
    MatrixBLS,
    MatrixFreeBLS,
    continuation,
    multicontinuation,
    switch_branch,
)
from .core import (
    BifurcationProblem,
    BorderedArray,
    Branch,
    EigenSolver,
    NewtonOptions,
    lens,
    newton,
)

__all__ = [
    "BifurcationProblem",
    "BorderedArray",
    "Branch",
    "EigenSolver",
    "NewtonOptions",
    "newton",
    "lens",
    "ContinuationParameters",
    "continuation",
    "BorderingBLS",
    "MatrixBLS",
    "MatrixFreeBLS",
    "DeflationOperator",
    "switch_branch",
    "multicontinuation",
    "newton_fold",
    "newton_fold_from_branch",
    "continuation_fold",
    "continuation_fold_from_branch",
    "codim2",
]
