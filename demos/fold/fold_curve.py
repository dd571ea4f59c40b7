r"""
Continuation of Fold points in two parameters.

The normal form of the Bogdanov-Takens bifurcation
    x' = y
    y' = \beta_1 + \beta_2 x + x^2 + x y
has a curve of Fold points \beta_1 = \beta_2^2 / 4 that contains the
Bogdanov-Takens point \beta_1 = \beta_2 = 0.
"""

import numpy as np

from bifcont import (BifurcationProblem, ContinuationParameters, MatrixBLS, continuation,
                     continuation_fold_from_branch, newton_fold_from_branch)


def rhs(u, par):
    x, y = u
    return np.array([y, par["beta1"] + par["beta2"] * x + x**2 + x * y])


def jacobian(u, par):
    x, y = u
    return np.array([[0.0, 1.0], [par["beta2"] + 2 * x + y, x]])


problem = BifurcationProblem(rhs, np.array([1.0, 0.0]), {"beta1": -1.0, "beta2": -1.0}, "beta1", J=jacobian)

# the equilibria fold at beta1 = 1/4
contparams = ContinuationParameters(ds=0.05, dsmax=0.1, p_max=1.0, max_steps=100, detect_bifurcation=0)
branch = continuation(problem, contparams=contparams)
print(f"Branch of equilibria: {branch}")
for sp in branch.special_points:
    print(f"  {sp}")

result, _ = newton_fold_from_branch(problem, branch, 0, bordered_solver=MatrixBLS(), start_with_eigen=True)
print(f"Refined Fold point: x = {result.solution.u}, beta1 = {result.solution.p:.8f}, "
      f"{result.iterations} Newton iterations")

# continue the Fold in beta2 and detect the Bogdanov-Takens point
fold_contparams = ContinuationParameters(
    ds=0.05, dsmax=0.1, p_max=0.5, max_steps=100, detect_fold=False, detect_bifurcation=0,
    detect_codim2_bifurcation=2,
)
fold_branch = continuation_fold_from_branch(
    problem, branch, 0, "beta2", contparams=fold_contparams, start_with_eigen=True,
    bordered_solver=MatrixBLS(), update_min_aug_every_step=1,
)
print(f"Fold curve: {fold_branch}")
for sp in fold_branch.special_points:
    print(f"  {sp}")
error = max(abs(pt.x.p - pt.p**2 / 4) for pt in fold_branch)
print(f"Maximum deviation from the exact Fold curve: {error:.2e}")
