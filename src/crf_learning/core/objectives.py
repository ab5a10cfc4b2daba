"""Regularized log-likelihood objective and its gradient.

Both evaluators wrap a shared, read-only ``ScoringModel``. The data term is a
sum of independent per-example contributions, so it may be computed in a
thread pool: each worker returns its own partial result and the partials are
summed afterwards. ``Executor.map`` keeps results in example order, so the
reduction order (and therefore the value) matches the serial computation.

The regularizer is ``lambda_reg * ||W||^2`` and its gradient is
``2 * lambda_reg * W``. A ``LogLikelihoodGradient`` is only meaningful when it
is paired with a ``LogLikelihood`` built from the same model and the same
``lambda_reg``; this is not checked. Use :func:`make_objective_pair` to build a
consistent pair.
"""

import logging
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import TypeVar

import numpy as np
import numpy.typing as npt

from ..utils.exceptions import DimensionError, NotANumberError, check_finite
from .types import ScoringModel
from .weights import check_dimension

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _read_only(weights: np.ndarray) -> np.ndarray:
    view = weights.view()
    view.flags.writeable = False
    return view


class _RegularizedEvaluator:
    def __init__(self, model: ScoringModel, lambda_reg: float, max_workers: int | None = None):
        if lambda_reg < 0:
            raise ValueError(f"lambda_reg must be non-negative, got {lambda_reg}")
        self._model = model
        self._lambda = float(lambda_reg)
        self._max_workers = max_workers

    @property
    def model(self) -> ScoringModel:
        return self._model

    @property
    def lambda_reg(self) -> float:
        return self._lambda

    @property
    def num_features(self) -> int:
        return self._model.num_features

    @property
    def step_size(self) -> int:
        return self._model.step_size

    def regularization_penalty(self, weights: npt.NDArray[np.float64]) -> float:
        """Return ``lambda_reg * ||W||^2``."""
        weights = np.asarray(weights, dtype=np.float64)
        return self._lambda * float(weights @ weights)

    def _prepare(self, weights) -> np.ndarray:
        weights = np.asarray(weights, dtype=np.float64)
        check_dimension(weights, self._model.num_features)
        return _read_only(weights)

    def _map_examples(self, fn: Callable[[int, np.ndarray], T], weights: np.ndarray) -> list[T]:
        num_examples = self._model.num_examples
        if not self._max_workers or self._max_workers <= 1 or num_examples <= 1:
            return [fn(i, weights) for i in range(num_examples)]
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            return list(pool.map(lambda i: fn(i, weights), range(num_examples)))


class LogLikelihood(_RegularizedEvaluator):
    """Regularized log-likelihood ``sum_i log p(y_i | x_i; W) - lambda_reg * ||W||^2``."""

    name = "log_likelihood"

    def evaluate(self, weights: npt.NDArray[np.float64]) -> float:
        """Evaluate the objective at ``weights``.

        Raises:
            InvalidDimensionError: If ``len(weights)`` differs from the model's
                feature dimension.
            NotANumberError: If any per-example term or the total is NaN/Inf.

        """
        w = self._prepare(weights)
        data_term = 0.0
        for index, value in enumerate(self._map_examples(self._model.example_log_likelihood, w)):
            data_term += check_finite(value, f"log-likelihood of example {index}")
        value = check_finite(data_term - self.regularization_penalty(w), "regularized log-likelihood")
        logger.debug("Log-likelihood %.6f (data term %.6f)", value, data_term)
        return value

    def __call__(self, weights: npt.NDArray[np.float64]) -> float:
        return self.evaluate(weights)


class LogLikelihoodGradient(_RegularizedEvaluator):
    """Gradient of :class:`LogLikelihood`: empirical minus expected features minus ``2 * lambda_reg * W``.

    Must share model and ``lambda_reg`` with the objective it differentiates.
    """

    name = "log_likelihood_gradient"

    def evaluate(self, out_grad: npt.NDArray[np.float64], weights: npt.NDArray[np.float64]) -> None:
        """Write the gradient at ``weights`` into ``out_grad`` in place.

        ``out_grad`` is left untouched if evaluation fails.

        Raises:
            InvalidDimensionError: If ``weights`` or ``out_grad`` has the wrong length.
            DimensionError: If the model returns a per-example gradient of the wrong length.
            NotANumberError: If the gradient contains NaN/Inf.

        """
        w = self._prepare(weights)
        n = self._model.num_features
        check_dimension(out_grad, n, "gradient buffer")

        total = np.zeros(n, dtype=np.float64)
        for index, partial in enumerate(self._map_examples(self._model.example_gradient, w)):
            partial = np.asarray(partial, dtype=np.float64)
            if partial.shape != (n,):
                raise DimensionError(
                    f"Gradient of example {index} has shape {partial.shape}, expected ({n},)"
                )
            total += partial
        total -= 2.0 * self._lambda * w

        if not np.all(np.isfinite(total)):
            bad = np.flatnonzero(~np.isfinite(total))
            raise NotANumberError(f"Gradient is not finite at {bad.size} dimension(s), first {bad[0]}")
        out_grad[...] = total

    def gradient(self, weights: npt.NDArray[np.float64]) -> npt.NDArray[np.float64]:
        """Return the gradient at ``weights`` in a freshly allocated array."""
        out = np.empty(self._model.num_features, dtype=np.float64)
        self.evaluate(out, weights)
        return out


def make_objective_pair(
    model: ScoringModel, lambda_reg: float, max_workers: int | None = None
) -> tuple[LogLikelihood, LogLikelihoodGradient]:
    """Build an objective and a gradient sharing the same model and ``lambda_reg``."""
    return (
        LogLikelihood(model, lambda_reg, max_workers=max_workers),
        LogLikelihoodGradient(model, lambda_reg, max_workers=max_workers),
    )
