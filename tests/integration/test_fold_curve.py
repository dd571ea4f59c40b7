"""Integration test locating a Fold point and continuing it in a second parameter."""

import unittest

import numpy as np

from bifcont import BifurcationProblem, ContinuationParameters, continuation
from bifcont.codim2 import continuation_fold_from_branch, newton_fold_from_branch
from bifcont.continuation.bordered import MatrixBLS


def rhs(x, par):
    """x^2 - alpha + beta x: a Fold at x = -beta / 2, alpha = -beta^2 / 4."""
    return x**2 - par["alpha"] + par["beta"] * x


def jacobian(x, par):
    return np.diag(2 * x + par["beta"])


class TestFoldCurve(unittest.TestCase):
    """
    Test the Fold point machinery on a scalar problem with a known Fold curve.

    Tests if it is possible to:
    - detect a Fold point during a parameter continuation
    - refine it with Newton's method on the minimally augmented problem
    - continue it in a second parameter.
    """

    def setUp(self) -> None:
        self.problem = BifurcationProblem(rhs, np.array([1.0]), {"alpha": 1.0, "beta": 0.0}, "alpha", J=jacobian)
        contparams = ContinuationParameters(ds=-0.05, dsmax=0.1, max_steps=60, p_min=-0.5, detect_bifurcation=0)
        self.branch = continuation(self.problem, contparams=contparams)

    def test_fold_detection(self) -> None:
        """The branch folds back at alpha = 0."""
        self.assertEqual(self.branch.special_point_types(), ["fold"])
        fold = self.branch.special_points[0]
        self.assertAlmostEqual(fold.param, 0.0, places=2)
        self.assertAlmostEqual(fold.x[0], 0.0, delta=0.1)

    def test_newton_fold(self) -> None:
        """Refine the Fold point."""
        result, fold_problem = newton_fold_from_branch(self.problem, self.branch, 0, bordered_solver=MatrixBLS())
        self.assertTrue(result.converged)
        self.assertAlmostEqual(result.solution.u[0], 0.0, places=8)
        self.assertAlmostEqual(result.solution.p, 0.0, places=8)
        self.assertEqual(fold_problem.lens.name, "alpha")

    def test_fold_continuation(self) -> None:
        """Continue the Fold point in beta and compare with the exact Fold curve."""
        contparams = ContinuationParameters(ds=0.05, dsmax=0.1, max_steps=40, p_max=1.0, detect_bifurcation=0)
        fold_branch = continuation_fold_from_branch(
            self.problem, self.branch, 0, "beta", contparams=contparams, bordered_solver=MatrixBLS(),
            update_min_aug_every_step=1,
        )
        print(f"Fold curve with {len(fold_branch)} points")
        self.assertGreater(len(fold_branch), 5)
        self.assertEqual(fold_branch.kind, "fold_codim2")
        for pt in fold_branch:
            beta = pt.p
            self.assertAlmostEqual(pt.x.u[0], -beta / 2, places=7)
            self.assertAlmostEqual(pt.x.p, -(beta**2) / 4, places=7)
            self.assertAlmostEqual(pt.record["alpha"], pt.x.p)
        self.assertGreater(fold_branch[-1].p, 0.3)


if __name__ == "__main__":
    unittest.main()
