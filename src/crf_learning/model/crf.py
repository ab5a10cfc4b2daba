"""Conditional random field over object boxes.

The label of an image is a bounding box. A box's score is the sum of the
weights of the visual words falling inside it, i.e. ``w . phi(x, box)`` where
``phi`` is the bag-of-words histogram of the box. Candidate boxes have corners
on a grid with spacing ``step_size`` pixels: a step of 1 enumerates every box
(exhaustive search), larger steps give a sliding window. The candidate count
grows with the fourth power of the grid size, so exhaustive search is only
practical for small images.

For each example:

* ``log p(y* | x) = w . phi(x, y*) - log Z(x)`` with
  ``log Z(x) = logsumexp over candidates of w . phi(x, box)``;
* ``d/dw log p(y* | x) = phi(x, y*) - E_{p(box | x)}[phi(x, box)]``.

Box scores come from an integral image of per-cell weight sums, and the
feature expectation from the probability that each grid cell is covered by
the random box. An annotated box is snapped to the nearest candidate on the
grid and its histogram counts grid cells like every other candidate, so the
ground truth is one of the outcomes ``Z`` sums over and ``log p <= 0``.
"""

import logging

import numpy as np
import numpy.typing as npt
from scipy.special import logsumexp

from ..core.weights import as_weight_vector, check_dimension
from ..data.dataset import LocalizationDataset
from ..data.models import BoundingBox, Example, ImageFeatures
from ..utils.exceptions import InvalidDimensionError, NotANumberError

logger = logging.getLogger(__name__)


def grid_boundaries(length: int, step_size: int) -> np.ndarray:
    """Return candidate corner coordinates ``0, s, 2s, ..., length``."""
    bounds = np.arange(0, length, step_size, dtype=np.float64)
    return np.append(bounds, float(length))


class _CandidateLayout:
    """Grid geometry of one image for one step size. Immutable after construction."""

    def __init__(self, image: ImageFeatures, step_size: int):
        self.xs = grid_boundaries(image.width, step_size)
        self.ys = grid_boundaries(image.height, step_size)
        nx, ny = len(self.xs), len(self.ys)
        self.shape = (nx - 1, ny - 1)

        px, py = image.points[:, 0], image.points[:, 1]
        self.cell_x = np.clip(np.searchsorted(self.xs, px, side="right") - 1, 0, nx - 2)
        self.cell_y = np.clip(np.searchsorted(self.ys, py, side="right") - 1, 0, ny - 2)
        self.flat_cell = np.ravel_multi_index((self.cell_x, self.cell_y), self.shape)
        self.words = image.words

        # cover_x[i, l, r] is 1 when cell column i lies in [xs[l], xs[r]).
        ix = np.arange(nx - 1)[:, None, None]
        lx = np.arange(nx)[None, :, None]
        rx = np.arange(nx)[None, None, :]
        self.cover_x = ((lx <= ix) & (ix < rx)).astype(np.float64)
        iy = np.arange(ny - 1)[:, None, None]
        ty = np.arange(ny)[None, :, None]
        by = np.arange(ny)[None, None, :]
        self.cover_y = ((ty <= iy) & (iy < by)).astype(np.float64)

        valid_x = np.arange(nx)[:, None] < np.arange(nx)[None, :]
        valid_y = np.arange(ny)[:, None] < np.arange(ny)[None, :]
        self.valid = valid_x[:, :, None, None] & valid_y[None, None, :, :]
        self.num_candidates = int(self.valid.sum())

    def box_scores(self, weights: np.ndarray) -> np.ndarray:
        """Return scores indexed ``[l, r, t, b]``; invalid boxes get ``-inf``."""
        cell_sums = np.bincount(
            self.flat_cell, weights=weights[self.words], minlength=self.shape[0] * self.shape[1]
        ).reshape(self.shape)
        integral = np.zeros((self.shape[0] + 1, self.shape[1] + 1))
        integral[1:, 1:] = cell_sums.cumsum(axis=0).cumsum(axis=1)
        # score[l, r, t, b] = S[r, b] - S[l, b] - S[r, t] + S[l, t]
        scores = (
            integral[None, :, None, :]
            - integral[:, None, None, :]
            - integral[None, :, :, None]
            + integral[:, None, :, None]
        )
        return np.where(self.valid, scores, -np.inf)

    def box(self, l: int, r: int, t: int, b: int) -> BoundingBox:
        return BoundingBox(left=self.xs[l], top=self.ys[t], right=self.xs[r], bottom=self.ys[b])

    def snap(self, box: BoundingBox) -> tuple[int, int, int, int]:
        """Return ``(l, r, t, b)`` of the valid candidate whose corners are nearest to ``box``."""
        l, r = _snap_interval(self.xs, box.left, box.right)
        t, b = _snap_interval(self.ys, box.top, box.bottom)
        return l, r, t, b

    def histogram(self, l: int, r: int, t: int, b: int, num_features: int) -> np.ndarray:
        """Bag-of-words histogram of candidate ``(l, r, t, b)``, counted by grid cell."""
        inside = (l <= self.cell_x) & (self.cell_x < r) & (t <= self.cell_y) & (self.cell_y < b)
        return np.bincount(self.words[inside], minlength=num_features).astype(np.float64)


def _snap_interval(bounds: np.ndarray, low: float, high: float) -> tuple[int, int]:
    start = int(np.argmin(np.abs(bounds - low)))
    end = int(np.argmin(np.abs(bounds - high)))
    if end <= start:
        # Degenerate after snapping: widen to one grid cell.
        start = min(start, len(bounds) - 2)
        end = start + 1
    return start, end


class ConditionalRandomField:
    """Box-labelled CRF over bag-of-visual-words features.

    The model is shared read-only by the objective and gradient evaluators:
    the per-example methods only read precomputed layouts. ``set_step_size``
    rebuilds the layouts and must not run concurrently with evaluation.
    """

    def __init__(self, dataset: LocalizationDataset, num_features: int | None = None, step_size: int = 1):
        self._dataset = dataset
        self._examples: tuple[Example, ...] = tuple(dataset.examples)
        self._num_features = dataset.num_words if num_features is None else int(num_features)
        if dataset.num_words > self._num_features:
            raise InvalidDimensionError(
                f"Dataset uses {dataset.num_words} visual words but the model has "
                f"{self._num_features} features"
            )
        self._weights: np.ndarray | None = None
        self._step_size = 0
        self._layouts: dict[str, _CandidateLayout] = {}
        self._empirical: tuple[np.ndarray, ...] = ()
        self.set_step_size(step_size)

    @property
    def num_features(self) -> int:
        return self._num_features

    @property
    def num_examples(self) -> int:
        return len(self._examples)

    @property
    def step_size(self) -> int:
        return self._step_size

    @property
    def weights(self) -> np.ndarray | None:
        return None if self._weights is None else self._weights.copy()

    def set_step_size(self, step_size: int) -> None:
        """Set the candidate grid spacing: 1 for exhaustive search, >1 for a sliding window.

        Ground-truth histograms are rebuilt from the annotations snapped to the new grid.
        """
        if int(step_size) != step_size or step_size < 1:
            raise ValueError(f"step_size must be a positive integer, got {step_size}")
        self._step_size = int(step_size)
        self._layouts = {
            image.name: _CandidateLayout(image, self._step_size) for image in self._dataset.images
        }
        self._empirical = tuple(self._histogram(e.image, e.box) for e in self._examples)
        logger.debug(
            "Step size %d: %d candidate box(es) in total",
            self._step_size,
            sum(layout.num_candidates for layout in self._layouts.values()),
        )

    def set_weights(self, weights: npt.NDArray[np.float64]) -> None:
        """Store default weights used by :meth:`predict`."""
        self._weights = as_weight_vector(weights, self._num_features)

    def _histogram(self, image: ImageFeatures, box: BoundingBox) -> np.ndarray:
        layout = self._layouts[image.name]
        return layout.histogram(*layout.snap(box), self._num_features)

    def _scores(self, image: ImageFeatures, weights: np.ndarray) -> tuple[_CandidateLayout, np.ndarray, float]:
        layout = self._layouts[image.name]
        scores = layout.box_scores(weights)
        log_z = float(logsumexp(scores[layout.valid]))
        if not np.isfinite(log_z):
            raise NotANumberError(f"Log partition function of image {image.name!r} is not finite")
        return layout, scores, log_z

    def example_log_likelihood(self, index: int, weights: npt.NDArray[np.float64]) -> float:
        example = self._examples[index]
        _, _, log_z = self._scores(example.image, weights)
        return float(weights @ self._empirical[index]) - log_z

    def example_gradient(self, index: int, weights: npt.NDArray[np.float64]) -> np.ndarray:
        example = self._examples[index]
        layout, scores, log_z = self._scores(example.image, weights)
        probabilities = np.exp(scores - log_z)
        # coverage[i, j] = P(cell (i, j) lies inside the random box)
        columns = np.einsum("ilr,lrtb->itb", layout.cover_x, probabilities)
        coverage = np.einsum("jtb,itb->ij", layout.cover_y, columns)
        expected = np.bincount(
            layout.words,
            weights=coverage[layout.cell_x, layout.cell_y],
            minlength=self._num_features,
        )
        return self._empirical[index] - expected

    def predict(self, image: ImageFeatures | Example, weights: npt.NDArray[np.float64] | None = None) -> BoundingBox:
        """Return the highest-scoring candidate box of ``image``."""
        if isinstance(image, Example):
            image = image.image
        if weights is None:
            if self._weights is None:
                raise ValueError("No weights given and none set on the model")
            weights = self._weights
        weights = np.asarray(weights, dtype=np.float64)
        check_dimension(weights, self._num_features)
        if image.name not in self._layouts:
            self._layouts[image.name] = _CandidateLayout(image, self._step_size)
        layout = self._layouts[image.name]
        scores = layout.box_scores(weights)
        return layout.box(*np.unravel_index(int(np.argmax(scores)), scores.shape))
