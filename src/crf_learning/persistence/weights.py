"""Plain-text weight files: one real value per line, ascending index, no header."""

import logging
import math
from pathlib import Path

import numpy as np
import numpy.typing as npt

from ..core.weights import as_weight_vector
from ..utils.exceptions import WeightsIOError, WeightsParseError

logger = logging.getLogger(__name__)

# 17 significant digits round-trip every float64 exactly.
DEFAULT_PRECISION = 17


def serialize_weights(weights: npt.NDArray[np.float64], precision: int = DEFAULT_PRECISION) -> str:
    """Render ``weights`` as text, one value per line with a trailing newline."""
    weights = as_weight_vector(weights)
    return "".join(f"{value:.{precision}g}\n" for value in weights)


def deserialize_weights(text: str) -> npt.NDArray[np.float64]:
    """Parse text written by :func:`serialize_weights`.

    The dimension is the number of lines; a final newline does not start an
    extra line.

    Raises:
        WeightsParseError: If a line is blank, not a finite real number, or uses
            digit separators.

    """
    lines = text.splitlines()
    values = np.empty(len(lines), dtype=np.float64)
    for number, line in enumerate(lines, start=1):
        if "_" in line:
            raise WeightsParseError(number, line)
        try:
            value = float(line)
        except ValueError:
            raise WeightsParseError(number, line) from None
        if not math.isfinite(value):
            raise WeightsParseError(number, line)
        values[number - 1] = value
    return values


def save_weights(
    weights: npt.NDArray[np.float64], path: str | Path, precision: int = DEFAULT_PRECISION
) -> Path:
    """Write ``weights`` to ``path``.

    Raises:
        WeightsIOError: If the file cannot be written.

    """
    path = Path(path)
    text = serialize_weights(weights, precision=precision)
    try:
        path.write_text(text)
    except OSError as exc:
        raise WeightsIOError(f"Could not write weight file {path}: {exc}") from exc
    logger.info("Stored %d weights in %s", text.count("\n"), path)
    return path


def load_weights(path: str | Path) -> npt.NDArray[np.float64]:
    """Read a weight vector from ``path``.

    Raises:
        WeightsIOError: If the file cannot be read.
        WeightsParseError: If a line is not a real number.

    """
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as exc:
        raise WeightsIOError(f"Could not read weight file {path}: {exc}") from exc
    weights = deserialize_weights(text)
    logger.debug("Loaded %d weights from %s", weights.size, path)
    return weights
