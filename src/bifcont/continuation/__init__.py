"""
Continuation and bifurcation tracking functionality.

This package provides the bordered linear solvers, the pseudo-arclength
continuation of branches with the detection of special points, deflation,
normal forms and branch switching.
"""

from .bordered import BorderedLinearSolver, BorderedOperator, BorderingBLS, LSFromBLS, MatrixBLS, MatrixFreeBLS
from .branch_switching import BranchSwitchResult, multicontinuation, switch_branch
from .continuation import continuation
from .continuation_steppers import PseudoArclengthContinuation
from .deflation import DeflationOperator
from .events import ContinuousEvent, DiscreteEvent, Event, EventContext, PairOfEvents
from .normal_forms import NdBranchPoint, SimpleBranchPoint, compute_normal_form, compute_normal_form_1d
from .parameters import ContinuationParameters

__all__ = [
    "BorderedLinearSolver",
    "BorderingBLS",
    "MatrixBLS",
    "MatrixFreeBLS",
    "BorderedOperator",
    "LSFromBLS",
    "ContinuationParameters",
    "PseudoArclengthContinuation",
    "continuation",
    "Event",
    "EventContext",
    "ContinuousEvent",
    "DiscreteEvent",
    "PairOfEvents",
    "DeflationOperator",
    "SimpleBranchPoint",
    "NdBranchPoint",
    "compute_normal_form",
    "compute_normal_form_1d",
    "switch_branch",
    "multicontinuation",
    "BranchSwitchResult",
]
