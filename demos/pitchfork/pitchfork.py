r"""
Branch switching at pitchfork bifurcations.

The trivial branch of the scalar equation
    \mu u - u^3 = 0
has a pitchfork at \mu = 0. The two decoupled copies
    \mu u_i - u_i^3 = 0,  i = 1, 2
have a branch point with a two-dimensional kernel, from which all
bifurcated branches are obtained with deflation.
"""

import numpy as np

from bifcont import BifurcationProblem, ContinuationParameters, continuation, switch_branch


def rhs(u, par):
    return par["mu"] * u - u**3


def jacobian(u, par):
    return np.diag(par["mu"] - 3 * u**2)


contparams = ContinuationParameters(ds=0.05, dsmax=0.1, p_min=-0.5, p_max=0.5, max_steps=100, verbosity=1)

# scalar pitchfork
problem = BifurcationProblem(rhs, np.zeros(1), {"mu": -0.3}, "mu", J=jacobian)
branch = continuation(problem, contparams=contparams)
print(f"Trivial branch: {branch}")
for sp in branch.special_points:
    print(f"  {sp}")

new_branch = switch_branch(problem, branch, 0, contparams, verbosity=1)
print(f"Bifurcated branch: {new_branch}")
print(f"  u at mu = {new_branch[-1].p:.3f}: {new_branch[-1].x[0]:.6f} (exact: {np.sqrt(new_branch[-1].p):.6f})")

# two-dimensional kernel
problem2 = BifurcationProblem(rhs, np.zeros(2), {"mu": -0.3}, "mu", J=jacobian)
branch2 = continuation(problem2, contparams=contparams.copy(verbosity=0))
print(f"Trivial branch with a double eigenvalue: {branch2}")
result = switch_branch(problem2, branch2, 0, contparams.copy(max_steps=20, verbosity=0), verbosity=1)
print(f"Found {len(result.after)} solutions after and {len(result.before)} before the branch point")
for sol in result.after:
    print(f"  u = {np.round(sol, 4)}")
print(f"{len(result.branches)} bifurcated branches, {result.rejected} rejected roots")
