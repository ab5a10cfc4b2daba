"""Command line interface for gradient checking, training and evaluation."""

from __future__ import annotations

import argparse
import logging
import sys

from .config.config import AppConfig, RunMode, WeightInitScheme
from .logging_config import setup_logging
from .pipeline import TrainingSession
from .utils.exceptions import CRFLearningError, OptimizationError

LOGGER = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    defaults = AppConfig.get_instance()
    parser = argparse.ArgumentParser(
        prog="crf_learning", description="Train CRF weights for object localization with L-BFGS."
    )
    parser.add_argument("--images", default=defaults.paths.images, help="Directory of feature files")
    parser.add_argument("--subset", default=defaults.paths.subset, help="Subset list (name width height)")
    parser.add_argument("--bboxes", default=defaults.paths.bboxes, help="Annotation file")
    parser.add_argument("--weights-file", default=defaults.paths.weights_file, help="Output weight file name")
    parser.add_argument("--report-name", default=defaults.paths.report_name, help="Recall/overlap report name")
    parser.add_argument("--output-dir", default=defaults.paths.output_dir, help="Directory for written files")
    parser.add_argument("--num-weights", type=int, default=defaults.model.num_weights)
    parser.add_argument("--step-size", type=int, default=defaults.model.step_size, help="1 = exhaustive search")
    parser.add_argument("--lambda", dest="lambda_reg", type=float, default=defaults.model.lambda_reg)
    parser.add_argument(
        "--init",
        choices=[scheme.value for scheme in WeightInitScheme],
        default=defaults.model.init_scheme.value,
    )
    parser.add_argument("--seed", type=int, default=None, help="Seed for uniform initialization")
    parser.add_argument("--workers", type=int, default=None, help="Threads for evaluation")
    parser.add_argument("--fd-step", type=float, default=defaults.finite_difference.step)
    parser.add_argument("--fd-tolerance", type=float, default=defaults.finite_difference.tolerance)
    parser.add_argument("--fd-dimensions", type=int, default=None, help="Check only the first N dimensions")
    parser.add_argument("--memory", type=int, default=defaults.lbfgs.memory)
    parser.add_argument("--max-iterations", type=int, default=defaults.lbfgs.max_iterations)
    parser.add_argument("--max-seconds", type=float, default=None)
    parser.add_argument(
        "--mode",
        action="append",
        choices=[mode.value for mode in RunMode],
        help="Stage to run; repeat for several (default: verify-gradient)",
    )
    parser.add_argument("--log-dir", default="logs")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging on the console")
    return parser


def config_from_args(args: argparse.Namespace) -> AppConfig:
    """Copy the shared configuration and apply the command line options to it."""
    config = AppConfig.default()
    config.paths.images = args.images
    config.paths.subset = args.subset
    config.paths.bboxes = args.bboxes
    config.paths.weights_file = args.weights_file
    config.paths.report_name = args.report_name
    config.paths.output_dir = args.output_dir
    config.model.num_weights = args.num_weights
    config.model.step_size = args.step_size
    config.model.lambda_reg = args.lambda_reg
    config.model.init_scheme = WeightInitScheme(args.init)
    config.model.seed = args.seed
    config.model.max_workers = args.workers
    config.finite_difference.step = args.fd_step
    config.finite_difference.tolerance = args.fd_tolerance
    config.finite_difference.max_dimensions = args.fd_dimensions
    config.finite_difference.max_workers = args.workers
    config.lbfgs.memory = args.memory
    config.lbfgs.max_iterations = args.max_iterations
    config.lbfgs.max_seconds = args.max_seconds
    if args.mode:
        config.modes = [RunMode(mode) for mode in args.mode]
    return config


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, log_dir=args.log_dir)
    config = config_from_args(args)
    AppConfig.set_instance(config)

    session = TrainingSession()
    try:
        session.run()
    except OptimizationError as exc:
        LOGGER.error("Training failed with %s: %s", exc.kind.value, exc)
        return 2
    except CRFLearningError as exc:
        LOGGER.error("%s: %s", exc.kind.value, exc)
        return 1
    LOGGER.info("Done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
