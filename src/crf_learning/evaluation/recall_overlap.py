"""Recall-versus-overlap evaluation of learned weights.

For every annotated image the model predicts its highest-scoring box; the
overlap of a prediction is its best intersection-over-union with any
annotated box of that image. Recall at threshold ``t`` is the fraction of
images whose overlap is at least ``t``.
"""

import logging
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
from matplotlib import pyplot as plt

from ..data.dataset import LocalizationDataset
from ..data.models import BoundingBox
from ..model.crf import ConditionalRandomField

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLDS = np.linspace(0.0, 1.0, 21)


def overlap(a: BoundingBox, b: BoundingBox) -> float:
    """Intersection over union of two boxes; 0 when the union is empty."""
    width = min(a.right, b.right) - max(a.left, b.left)
    height = min(a.bottom, b.bottom) - max(a.top, b.top)
    intersection = max(width, 0.0) * max(height, 0.0)
    union = a.area + b.area - intersection
    return intersection / union if union > 0 else 0.0


def prediction_overlaps(
    model: ConditionalRandomField, dataset: LocalizationDataset, weights: np.ndarray
) -> pd.Series:
    """Return the best overlap of each annotated image's prediction, indexed by image name."""
    overlaps = {}
    for image in dataset.images:
        truth = dataset.boxes_for(image.name)
        if not truth:
            continue
        predicted = model.predict(image, weights)
        overlaps[image.name] = max(overlap(predicted, box) for box in truth)
    return pd.Series(overlaps, dtype=float, name="overlap")


def recall_overlap(
    model: ConditionalRandomField,
    dataset: LocalizationDataset,
    weights: np.ndarray,
    thresholds=DEFAULT_THRESHOLDS,
) -> pd.DataFrame:
    """Return a DataFrame with columns ``overlap`` (threshold) and ``recall``."""
    overlaps = prediction_overlaps(model, dataset, weights).to_numpy()
    thresholds = np.asarray(thresholds, dtype=float)
    if overlaps.size:
        recall = (overlaps[None, :] >= thresholds[:, None]).mean(axis=1)
    else:
        recall = np.zeros_like(thresholds)
    return pd.DataFrame({"overlap": thresholds, "recall": recall})


def plot_recall_overlap(table: pd.DataFrame, path: str | Path, title: str = "") -> Path:
    """Save the recall curve of ``table`` as an image."""
    path = Path(path)
    fig, ax = plt.subplots(figsize=(6, 4))
    ax.plot(table["overlap"], table["recall"], marker="o")
    ax.set_xlabel("Overlap (intersection over union)")
    ax.set_ylabel("Recall")
    ax.set_xlim(0, 1)
    ax.set_ylim(0, 1.05)
    ax.grid(True, alpha=0.3)
    if title:
        ax.set_title(title)
    fig.tight_layout()
    fig.savefig(path)
    plt.close(fig)
    return path


def print_recall_overlap(
    name: str,
    dataset: LocalizationDataset,
    step_size: int,
    plot: bool = True,
    weights: np.ndarray | None = None,
    output_dir: str | Path = ".",
) -> pd.DataFrame:
    """Evaluate ``weights`` on ``dataset`` and write ``<name>.txt`` (and ``<name>.png``).

    ``weights`` defaults to the vector attached to the dataset when it was
    loaded with a weights path.
    """
    if weights is None:
        weights = dataset.weights
    if weights is None:
        raise ValueError("No weights given and none attached to the dataset")
    weights = np.asarray(weights, dtype=np.float64)

    model = ConditionalRandomField(dataset, num_features=weights.size, step_size=step_size)
    table = recall_overlap(model, dataset, weights)

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    report_path = output_dir / f"{name}.txt"
    table.to_csv(report_path, sep=" ", index=False, float_format="%.6f")
    logger.info("Wrote recall/overlap report to %s", report_path)
    if plot:
        plot_path = plot_recall_overlap(table, output_dir / f"{name}.png", title=name)
        logger.info("Wrote recall/overlap plot to %s", plot_path)

    at_half = table.loc[np.isclose(table["overlap"], 0.5), "recall"]
    if not at_half.empty:
        logger.info("Recall at overlap 0.5: %.3f", float(at_half.iloc[0]))
    return table
