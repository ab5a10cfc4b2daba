"""Finite-difference verification of analytic gradients.

Each dimension is checked independently: perturb one coordinate by ``step``,
re-evaluate the objective, and compare the forward difference against the
analytic derivative. The per-dimension checks are mapped (optionally in a
thread pool) and the mismatches reduced into a single report. Disagreements
are diagnostics: they are logged and returned, never raised.
"""

import logging
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import numpy.typing as npt
from tqdm import tqdm

from ..config.config import FiniteDifferenceConfig
from ..utils.exceptions import InvalidDimensionError, check_finite
from .models import FiniteDifferenceReport, GradientMismatch
from .types import ObjectiveProtocol

logger = logging.getLogger(__name__)


class FiniteDifferenceChecker:
    """Compare an analytic gradient against forward differences of the objective."""

    def __init__(
        self,
        objective: ObjectiveProtocol,
        step: float = 1e-8,
        tolerance: float = 0.1,
        max_workers: int | None = None,
        show_progress: bool = False,
    ):
        if step <= 0:
            raise ValueError(f"step must be positive, got {step}")
        if tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {tolerance}")
        self.objective = objective
        self.step = float(step)
        self.tolerance = float(tolerance)
        self.max_workers = max_workers
        self.show_progress = show_progress

    @classmethod
    def from_config(cls, objective: ObjectiveProtocol, config: FiniteDifferenceConfig) -> "FiniteDifferenceChecker":
        return cls(
            objective,
            step=config.step,
            tolerance=config.tolerance,
            max_workers=config.max_workers,
            show_progress=config.show_progress,
        )

    def _difference_quotient(self, weights: np.ndarray, base_value: float, index: int) -> float:
        perturbed = weights.copy()
        perturbed[index] += self.step
        value = check_finite(self.objective.evaluate(perturbed), f"objective perturbed at dimension {index}")
        return (value - base_value) / self.step

    def check(
        self,
        weights: npt.NDArray[np.float64],
        analytic_gradient: npt.NDArray[np.float64],
        dimensions: Iterable[int] | None = None,
    ) -> FiniteDifferenceReport:
        """Check ``analytic_gradient`` at ``weights``.

        Args:
            weights: Point at which the gradient was evaluated. Not modified.
            analytic_gradient: Gradient to verify, same length as ``weights``.
            dimensions: Optional subset of indices to check. Defaults to all.

        Returns:
            FiniteDifferenceReport: Approximations and any mismatches above
                the tolerance, sorted by index.

        """
        w = np.array(weights, dtype=np.float64)
        grad = np.asarray(analytic_gradient, dtype=np.float64)
        if w.ndim != 1 or grad.shape != w.shape:
            raise InvalidDimensionError(
                f"Gradient shape {grad.shape} does not match weight shape {w.shape}"
            )

        indices = sorted(set(range(w.size) if dimensions is None else (int(i) for i in dimensions)))
        if indices and (indices[0] < 0 or indices[-1] >= w.size):
            raise InvalidDimensionError(f"Dimension indices must lie in [0, {w.size})")

        base_value = check_finite(self.objective.evaluate(w), "objective")

        def quotient(index: int) -> float:
            return self._difference_quotient(w, base_value, index)

        progress = dict(total=len(indices), desc="finite differences", disable=not self.show_progress)
        if self.max_workers and self.max_workers > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                quotients = list(tqdm(pool.map(quotient, indices), **progress))
        else:
            quotients = [quotient(i) for i in tqdm(indices, **progress)]

        approx = np.full(w.size, np.nan)
        mismatches = []
        for index, value in zip(indices, quotients):
            approx[index] = value
            difference = abs(grad[index] - value)
            if difference > self.tolerance:
                mismatches.append(
                    GradientMismatch(
                        index=index,
                        analytic_value=float(grad[index]),
                        approx_value=float(value),
                        absolute_difference=float(difference),
                    )
                )
                logger.warning(
                    "Gradient approximation differs by more than %.6f: grad[%d] = %.6f, fdgrad[%d] = %.6f",
                    self.tolerance,
                    index,
                    grad[index],
                    index,
                    value,
                )

        logger.info(
            "Finite-difference check: %d of %d dimension(s) differ by more than %g (h=%g)",
            len(mismatches),
            len(indices),
            self.tolerance,
            self.step,
        )
        return FiniteDifferenceReport(
            step=self.step,
            tolerance=self.tolerance,
            checked=len(indices),
            approximate_gradient=approx,
            mismatches=mismatches,
        )
