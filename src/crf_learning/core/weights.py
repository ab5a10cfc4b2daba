"""Weight vector construction and initialization.

Random initialization always goes through an explicit ``numpy.random.Generator``
so that runs are reproducible from a seed.
"""

import numpy as np
import numpy.typing as npt

from ..config.config import WeightInitScheme
from ..utils.exceptions import InvalidDimensionError

__all__ = [
    "as_weight_vector",
    "check_dimension",
    "initialize_weights",
    "ramp_weights",
    "random_weights",
]


def as_weight_vector(values, dimension: int | None = None) -> npt.NDArray[np.float64]:
    """Return a fresh 1-D float64 copy of ``values``.

    Raises:
        InvalidDimensionError: If ``values`` is not 1-D or its length differs
            from ``dimension``.

    """
    weights = np.array(values, dtype=np.float64)
    if weights.ndim != 1:
        raise InvalidDimensionError(f"Weight vector must be 1-D, got {weights.ndim}-D")
    if dimension is not None:
        check_dimension(weights, dimension)
    return weights


def check_dimension(vector: np.ndarray, dimension: int, name: str = "weight vector") -> None:
    if vector.ndim != 1 or vector.shape[0] != dimension:
        raise InvalidDimensionError(
            f"{name} has shape {vector.shape}, expected ({dimension},)"
        )


def _as_generator(rng: np.random.Generator | int | None) -> np.random.Generator:
    if isinstance(rng, np.random.Generator):
        return rng
    return np.random.default_rng(rng)


def random_weights(
    num_weights: int,
    rng: np.random.Generator | int | None = None,
    low: float = -1.0,
    high: float = 1.0,
) -> npt.NDArray[np.float64]:
    """Draw weights uniformly from ``[low, high)``.

    Args:
        num_weights (int): Dimension of the vector.
        rng (np.random.Generator | int | None): Generator or seed. ``None``
            creates an unseeded generator.
        low (float): Lower bound.
        high (float): Upper bound.

    """
    if num_weights < 0:
        raise InvalidDimensionError(f"num_weights must be >= 0, got {num_weights}")
    return _as_generator(rng).uniform(low, high, size=num_weights)


def ramp_weights(
    num_weights: int, start: float = 0.0, increment: float = 1e-5
) -> npt.NDArray[np.float64]:
    """Return ``start + i * increment`` for ``i`` in ``range(num_weights)``."""
    if num_weights < 0:
        raise InvalidDimensionError(f"num_weights must be >= 0, got {num_weights}")
    return start + increment * np.arange(num_weights, dtype=np.float64)


def initialize_weights(
    num_weights: int,
    scheme: WeightInitScheme = WeightInitScheme.RAMP,
    rng: np.random.Generator | int | None = None,
) -> npt.NDArray[np.float64]:
    """Build an initial weight vector with the given scheme."""
    if scheme is WeightInitScheme.ZEROS:
        return np.zeros(num_weights, dtype=np.float64)
    if scheme is WeightInitScheme.RAMP:
        return ramp_weights(num_weights)
    if scheme is WeightInitScheme.UNIFORM:
        return random_weights(num_weights, rng)
    raise ValueError(f"Unknown weight initialization scheme: {scheme!r}")
