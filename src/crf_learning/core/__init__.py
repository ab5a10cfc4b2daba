"""Objective evaluation, gradient verification and optimization.

This package holds the training loop independent of any particular scoring
model. Evaluators consume a ``ScoringModel``; the checker and the optimizer
consume any objective/gradient pair.

Available components:
    - LogLikelihood: Regularized log-likelihood objective.
    - LogLikelihoodGradient: Its gradient, written into a caller-owned buffer.
    - FiniteDifferenceChecker: Forward-difference verification of a gradient.
    - LBFGS: Limited-memory BFGS maximizer.
    - CurvatureHistory: Bounded (s, y) history used by LBFGS.
"""

from .gradient_check import FiniteDifferenceChecker
from .lbfgs import LBFGS, CurvatureHistory
from .models import FiniteDifferenceReport, GradientMismatch, LBFGSResult, OptimizerStatus
from .objectives import LogLikelihood, LogLikelihoodGradient, make_objective_pair

__all__ = [
    "CurvatureHistory",
    "FiniteDifferenceChecker",
    "FiniteDifferenceReport",
    "GradientMismatch",
    "LBFGS",
    "LBFGSResult",
    "LogLikelihood",
    "LogLikelihoodGradient",
    "OptimizerStatus",
    "make_objective_pair",
]
