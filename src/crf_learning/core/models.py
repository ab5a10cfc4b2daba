"""Pydantic result containers for the gradient check and the optimizer."""

from enum import Enum

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field, field_validator


class GradientMismatch(BaseModel):
    """A dimension whose analytic and finite-difference derivatives disagree."""

    index: int
    analytic_value: float
    approx_value: float
    absolute_difference: float

    model_config = {"frozen": True}


class FiniteDifferenceReport(BaseModel):
    """Outcome of a finite-difference gradient check.

    ``approximate_gradient`` holds the forward-difference estimate for every
    checked dimension and NaN for dimensions that were skipped.
    """

    step: float
    tolerance: float
    checked: int
    approximate_gradient: np.ndarray
    mismatches: list[GradientMismatch] = Field(default_factory=list)

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @property
    def passed(self) -> bool:
        return not self.mismatches

    @property
    def max_abs_difference(self) -> float:
        if not self.mismatches:
            return 0.0
        return max(m.absolute_difference for m in self.mismatches)

    def to_frame(self) -> pd.DataFrame:
        """Return the mismatches as a DataFrame indexed by dimension."""
        columns = ["index", "analytic_value", "approx_value", "absolute_difference"]
        frame = pd.DataFrame([m.model_dump() for m in self.mismatches], columns=columns)
        return frame.set_index("index")


class OptimizerStatus(Enum):
    """States of an L-BFGS run.

    ``FAILED`` is only visible on the optimizer after a run raised; results
    are never built for failed runs.
    """

    INIT = "init"
    ITERATING = "iterating"
    CONVERGED = "converged"
    MAX_ITERATIONS_REACHED = "max_iterations_reached"
    TIME_LIMIT_REACHED = "time_limit_reached"
    FAILED = "failed"


class LBFGSResult(BaseModel):
    """Learned weights and convergence information of a finished run."""

    weights: np.ndarray
    status: OptimizerStatus
    iterations: int
    objective_value: float
    gradient_norm: float
    function_evaluations: int = 0
    elapsed_seconds: float = 0.0
    objective_trace: list[float] = Field(default_factory=list)

    model_config = {"frozen": True, "arbitrary_types_allowed": True}

    @field_validator("weights")
    def _weights_1d(cls, v: np.ndarray) -> np.ndarray:
        if not isinstance(v, np.ndarray) or v.ndim != 1:
            raise ValueError("weights must be a 1-D numpy.ndarray")
        return v

    @property
    def converged(self) -> bool:
        return self.status is OptimizerStatus.CONVERGED
