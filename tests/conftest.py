"""Shared fixtures: stub scoring models, quadratic objectives and small datasets."""

import logging

import numpy as np
import pytest

from crf_learning.data.dataset import LocalizationDataset
from crf_learning.data.models import BoundingBox, ImageFeatures
from crf_learning.utils.exceptions import InvalidDimensionError


class RegularizerOnlyModel:
    """Model without examples: the objective reduces to ``-lambda * ||w||^2``."""

    step_size = 1

    def __init__(self, num_features):
        self.num_features = num_features
        self.num_examples = 0

    def example_log_likelihood(self, index, weights):
        raise AssertionError("no examples")

    def example_gradient(self, index, weights):
        raise AssertionError("no examples")


class ShiftedQuadraticModel:
    """Example ``i`` contributes ``-||w - c_i||^2``."""

    step_size = 1

    def __init__(self, centers):
        self.centers = np.asarray(centers, dtype=float)
        self.num_examples, self.num_features = self.centers.shape

    def example_log_likelihood(self, index, weights):
        diff = weights - self.centers[index]
        return -float(diff @ diff)

    def example_gradient(self, index, weights):
        return -2.0 * (weights - self.centers[index])


class NaNModel(ShiftedQuadraticModel):
    def example_log_likelihood(self, index, weights):
        return float("nan")

    def example_gradient(self, index, weights):
        return np.full(self.num_features, np.inf)


class TargetQuadratic:
    """``f(w) = -||w - target||^2`` as an objective."""

    def __init__(self, target):
        self.target = np.asarray(target, dtype=float)
        self.calls = 0

    def evaluate(self, weights):
        self.calls += 1
        diff = np.asarray(weights) - self.target
        return -float(diff @ diff)


class TargetQuadraticGradient:
    def __init__(self, target, sign=1.0):
        self.target = np.asarray(target, dtype=float)
        self.sign = sign

    def evaluate(self, out_grad, weights):
        if len(out_grad) != len(self.target) or len(weights) != len(self.target):
            raise InvalidDimensionError("length mismatch")
        out_grad[...] = -2.0 * self.sign * (np.asarray(weights) - self.target)


@pytest.fixture
def regularizer_only_model():
    return RegularizerOnlyModel


@pytest.fixture
def shifted_quadratic_model():
    return ShiftedQuadraticModel


@pytest.fixture
def nan_model():
    return NaNModel


@pytest.fixture
def target_quadratic():
    return TargetQuadratic, TargetQuadraticGradient


def make_image(name, rng, width=12, height=12, num_points=40, num_words=5, cluster=None):
    points = rng.uniform(0, [width, height], size=(num_points, 2))
    words = rng.integers(0, num_words - 1, size=num_points)
    if cluster is not None:
        # Put the last word only inside ``cluster`` so it marks the object.
        left, top, right, bottom = cluster
        inside = rng.uniform([left, top], [right, bottom], size=(10, 2))
        points = np.vstack([points, inside])
        words = np.concatenate([words, np.full(10, num_words - 1)])
    return ImageFeatures(name=name, width=width, height=height, points=points, words=words)


@pytest.fixture
def image_factory():
    return make_image


@pytest.fixture
def small_dataset():
    """Three 12x12 images with the object word clustered inside the annotated box."""
    rng = np.random.default_rng(7)
    images, boxes = [], {}
    for i, box in enumerate([(0, 0, 8, 8), (4, 4, 12, 12), (0, 4, 8, 12)]):
        name = f"img{i}"
        images.append(make_image(name, rng, cluster=box))
        boxes[name] = [BoundingBox(left=box[0], top=box[1], right=box[2], bottom=box[3])]
    return LocalizationDataset(images=images, boxes=boxes)


@pytest.fixture
def dataset_files(tmp_path):
    """Write a subset list, feature files and an annotation file; return their paths."""
    rng = np.random.default_rng(3)
    features_dir = tmp_path / "features"
    features_dir.mkdir()
    subset = tmp_path / "subset.txt"
    bboxes = tmp_path / "boxes.ess"

    subset.write_text("cow1 16 12\ncow2 16 12\n")
    for name in ("cow1", "cow2"):
        points = rng.uniform(0, [16, 12], size=(25, 2))
        words = rng.integers(0, 6, size=25)
        lines = [f"{x:.2f} {y:.2f} {w}" for (x, y), w in zip(points, words)]
        (features_dir / f"{name}.txt").write_text("\n".join(lines) + "\n")
    bboxes.write_text("cow1 0 0 8 8\ncow2.png 4 2 16 12\ncow2 0 0 4 4\nunknown 0 0 1 1\n")
    return {"images": features_dir, "subset": subset, "bboxes": bboxes, "root": tmp_path}


@pytest.fixture
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)
