"""Training session tying data loading, gradient checking, training and evaluation together."""

import logging
import time
from pathlib import Path

import numpy as np

from .config.config import AppConfig, RunMode
from .core.gradient_check import FiniteDifferenceChecker
from .core.lbfgs import LBFGS
from .core.models import FiniteDifferenceReport, LBFGSResult
from .core.objectives import make_objective_pair
from .core.weights import initialize_weights
from .data.dataset import LocalizationDataset
from .evaluation.recall_overlap import print_recall_overlap
from .model.crf import ConditionalRandomField
from .persistence.weights import load_weights, save_weights

logger = logging.getLogger(__name__)


class TrainingSession:
    """Runs the configured stages for one dataset.

    Attributes:
        config (AppConfig): The application configuration object, the shared
            instance from ``AppConfig.get_instance()`` unless one is given.
        dataset (LocalizationDataset | None): Loaded training data.
        model (ConditionalRandomField | None): Scoring model over ``dataset``.
        weights (np.ndarray | None): Initial weights, replaced by learned ones after training.
        gradient_report (FiniteDifferenceReport | None): Result of the gradient check.
        training_result (LBFGSResult | None): Result of the last training run.

    """

    def __init__(self, config: AppConfig | None = None, dataset: LocalizationDataset | None = None):
        self.config = config or AppConfig.get_instance()
        self.dataset = dataset
        self.model: ConditionalRandomField | None = None
        self.weights: np.ndarray | None = None
        self.gradient_report: FiniteDifferenceReport | None = None
        self.training_result: LBFGSResult | None = None

    def load(self) -> None:
        """Load the dataset (unless given), build the model and the initial weights.

        Load errors propagate: a missing file is fatal at startup.
        """
        paths = self.config.paths
        if self.dataset is None:
            logger.info("Loading images from %s (subset %s)", paths.images, paths.subset)
            self.dataset = LocalizationDataset.from_paths(paths.images, paths.subset, paths.bboxes)

        model_config = self.config.model
        self.model = ConditionalRandomField(
            self.dataset, num_features=model_config.num_weights, step_size=model_config.step_size
        )
        self.weights = initialize_weights(
            model_config.num_weights, model_config.init_scheme, rng=model_config.seed
        )
        self.model.set_weights(self.weights)
        logger.info(
            "%d example(s), %d weight(s), step size %d, lambda %g",
            self.model.num_examples,
            model_config.num_weights,
            self.model.step_size,
            model_config.lambda_reg,
        )

    def verify_gradient(self) -> FiniteDifferenceReport:
        objective, gradient = make_objective_pair(
            self.model, self.config.model.lambda_reg, max_workers=self.config.model.max_workers
        )
        value = objective.evaluate(self.weights)
        logger.info("Log-likelihood = %.6f", value)
        analytic = gradient.gradient(self.weights)
        logger.info("Gradient = (%s, ...)", ", ".join(f"{g:.2f}" for g in analytic[:3]))

        fd_config = self.config.finite_difference
        dimensions = None
        if fd_config.max_dimensions is not None:
            dimensions = range(min(fd_config.max_dimensions, analytic.size))
        checker = FiniteDifferenceChecker.from_config(objective, fd_config)
        self.gradient_report = checker.check(self.weights, analytic, dimensions=dimensions)
        return self.gradient_report

    def train(self) -> LBFGSResult:
        objective, gradient = make_objective_pair(
            self.model, self.config.model.lambda_reg, max_workers=self.config.model.max_workers
        )
        optimizer = LBFGS.from_config(objective, gradient, self.config.lbfgs)

        logger.info("Learning parameters with L-BFGS...")
        start = time.monotonic()
        self.training_result = optimizer.learn_weights(self.weights)
        logger.info("Computing weights took %.6f seconds.", time.monotonic() - start)

        self.weights = self.training_result.weights
        self.model.set_weights(self.weights)
        paths = self.config.paths
        save_weights(self.weights, Path(paths.output_dir) / paths.weights_file)
        return self.training_result

    def evaluate(self):
        """Write the recall/overlap report.

        Uses the weights of this session's training run, or the stored weight
        file when training did not run in this session.
        """
        paths = self.config.paths
        weights = self.weights if self.training_result is not None else None
        if weights is None:
            weights = load_weights(Path(paths.output_dir) / paths.weights_file)
        return print_recall_overlap(
            paths.report_name,
            self.dataset,
            self.config.model.step_size,
            plot=True,
            weights=weights,
            output_dir=paths.output_dir,
        )

    def run(self) -> None:
        """Run the configured stages in the order gradient check, training, evaluation."""
        if self.model is None:
            self.load()
        modes = set(self.config.modes)
        if RunMode.VERIFY_GRADIENT in modes:
            self.verify_gradient()
        if RunMode.TRAIN in modes:
            self.train()
        if RunMode.EVALUATE in modes:
            self.evaluate()
