"""
Codim-2 continuation.

This package provides the minimally augmented formulation of Fold points and
the continuation of Fold curves in two parameters.
"""

from .fold import (
    FoldJacobian,
    FoldLinearSolverMinAug,
    FoldProblemMinimallyAugmented,
    continuation_fold,
    continuation_fold_from_branch,
    fold_point,
    newton_fold,
    newton_fold_from_branch,
)

__all__ = [
    "FoldProblemMinimallyAugmented",
    "FoldJacobian",
    "FoldLinearSolverMinAug",
    "fold_point",
    "newton_fold",
    "newton_fold_from_branch",
    "continuation_fold",
    "continuation_fold_from_branch",
]
