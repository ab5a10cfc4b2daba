"""Protocols that decouple the evaluators and the optimizer from concrete models.

The optimizer only sees an ``ObjectiveProtocol`` and a ``GradientProtocol``;
the evaluators only see a ``ScoringModel``. A scoring model is shared,
read-only context: evaluation must not change its state.
"""

from __future__ import annotations

from typing import Protocol

import numpy as np
import numpy.typing as npt

WeightArray = npt.NDArray[np.float64]


class ScoringModel(Protocol):
    """Per-example log-likelihood and feature-expectation provider."""

    @property
    def num_features(self) -> int:
        """Expected length of a weight vector."""

    @property
    def num_examples(self) -> int:
        """Number of training examples the data term sums over."""

    @property
    def step_size(self) -> int:
        """Decoding stride, forwarded unchanged by the evaluators."""

    def example_log_likelihood(self, index: int, weights: WeightArray) -> float:
        """Return log p(y* | x) of example ``index`` under ``weights``."""

    def example_gradient(self, index: int, weights: WeightArray) -> WeightArray:
        """Return empirical minus expected features of example ``index``."""


class ObjectiveProtocol(Protocol):
    """Scalar function of a weight vector to be maximized."""

    def evaluate(self, weights: WeightArray) -> float:
        """Return the objective value at ``weights``."""


class GradientProtocol(Protocol):
    """Gradient of an objective, written into a caller-owned buffer."""

    def evaluate(self, out_grad: WeightArray, weights: WeightArray) -> None:
        """Write the gradient at ``weights`` into ``out_grad``."""
