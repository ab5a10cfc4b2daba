"""Configuration module for the CRF learning application."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, ClassVar

__all__ = [
    "RunMode",
    "WeightInitScheme",
    "DataPathsConfig",
    "ModelConfig",
    "FiniteDifferenceConfig",
    "LBFGSConfig",
    "AppConfig",
]


class RunMode(Enum):
    """Stages the training driver can run."""

    VERIFY_GRADIENT = "verify-gradient"
    TRAIN = "train"
    EVALUATE = "evaluate"


class WeightInitScheme(Enum):
    """How the initial weight vector is built."""

    ZEROS = "zeros"
    RAMP = "ramp"
    UNIFORM = "uniform"


@dataclass
class DataPathsConfig:
    """Locations of the training data and of the files the driver writes."""

    images: str = "../cows-train/EUCSURF-3000/"
    subset: str = "../subsets/cows_train_width_height.txt"
    bboxes: str = "../cows-train/Annotations/TUcow_train.ess"
    weights_file: str = "log_likelihood_weights_cow.txt"
    report_name: str = "test_output"
    output_dir: str = "."


DEFAULT_NUM_WEIGHTS = 3000
DEFAULT_STEP_SIZE = 16
DEFAULT_LAMBDA_REG = 1000.0


@dataclass
class ModelConfig:
    """Objective and scoring-model parameters.

    ``step_size`` is forwarded unchanged to the scoring model: 1 enumerates
    every candidate box, larger values use a sliding window with that stride.
    """

    num_weights: int = DEFAULT_NUM_WEIGHTS
    step_size: int = DEFAULT_STEP_SIZE
    lambda_reg: float = DEFAULT_LAMBDA_REG
    init_scheme: WeightInitScheme = WeightInitScheme.RAMP
    seed: int | None = None
    max_workers: int | None = None


@dataclass
class FiniteDifferenceConfig:
    """Finite-difference gradient check parameters.

    ``step`` trades truncation error against cancellation noise and
    ``tolerance`` sets how large a disagreement is reported.
    """

    step: float = 1e-8
    tolerance: float = 0.1
    max_dimensions: int | None = None
    max_workers: int | None = None
    show_progress: bool = True


@dataclass
class LBFGSConfig:
    """Limited-memory BFGS parameters."""

    memory: int = 10
    max_iterations: int = 100
    gradient_tolerance: float = 1e-5
    relative_tolerance: float = 1e-10
    max_seconds: float | None = None
    c1: float = 1e-4
    c2: float = 0.9


@dataclass
class AppConfig:
    """Application configuration for a training run.

    Groups the data locations, model parameters, gradient-check and optimizer
    settings, and the list of stages to run. Stages always execute in the
    order gradient check, training, evaluation.
    """

    paths: DataPathsConfig = field(default_factory=DataPathsConfig)
    model: ModelConfig = field(default_factory=ModelConfig)
    finite_difference: FiniteDifferenceConfig = field(default_factory=FiniteDifferenceConfig)
    lbfgs: LBFGSConfig = field(default_factory=LBFGSConfig)
    modes: list[RunMode] = field(default_factory=lambda: [RunMode.VERIFY_GRADIENT])

    _instance: ClassVar["AppConfig | None"] = None

    @classmethod
    def get_instance(cls) -> "AppConfig":
        """Get the singleton instance of the AppConfig.

        Returns:
            AppConfig: The application configuration.

        """
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def set_instance(cls, config: "AppConfig"):
        """Explicitly set the singleton instance (useful for testing or custom configs)."""
        cls._instance = config

    @staticmethod
    def default() -> "AppConfig":
        config = AppConfig.get_instance()
        return config.model_copy(deep=True)

    def model_copy(self, deep: bool = True) -> "AppConfig":
        """Create a copy of the AppConfig instance.

        Args:
            deep (bool, optional): Whether to copy the nested sections too.
                Defaults to True.

        Returns:
            AppConfig: A new instance of AppConfig with the same parameters.

        """
        from copy import deepcopy

        return deepcopy(self) if deep else self.__class__(**self.__dict__)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
