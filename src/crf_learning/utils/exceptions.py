"""Custom exception types for the CRF learning package.

Every exception carries an :class:`ErrorKind` so callers can dispatch on the
kind of failure instead of catching numeric codes.
"""

import math
from enum import Enum


class ErrorKind(Enum):
    """Kinds of failure surfaced by loading, evaluation, training and persistence."""

    FILE_NOT_FOUND = "file_not_found"
    DATA_FORMAT = "data_format"
    INVALID_DIMENSION = "invalid_dimension"
    DIMENSION_ERROR = "dimension_error"
    NOT_A_NUMBER = "not_a_number"
    ROUNDOFF_ERROR = "roundoff_error"
    IO_ERROR = "io_error"
    PARSE_ERROR = "parse_error"


class CRFLearningError(Exception):
    """Base exception class for this package."""

    kind: ErrorKind


class DataFileNotFoundError(CRFLearningError, FileNotFoundError):
    """Raised when an image, feature or annotation file cannot be opened."""

    kind = ErrorKind.FILE_NOT_FOUND

    def __init__(self, path, message: str | None = None):
        self.path = str(path)
        super().__init__(message or f"Could not open data file: {self.path}")


class DataFormatError(CRFLearningError):
    """Raised when a data file is readable but its contents are malformed."""

    kind = ErrorKind.DATA_FORMAT


class InvalidDimensionError(CRFLearningError):
    """Raised when a weight vector does not match the model's feature dimension."""

    kind = ErrorKind.INVALID_DIMENSION


class OptimizationError(CRFLearningError):
    """Raised when a training run cannot continue."""


class DimensionError(OptimizationError):
    """Raised when a gradient or history vector has the wrong length during training."""

    kind = ErrorKind.DIMENSION_ERROR


class NotANumberError(OptimizationError):
    """Raised when an objective or gradient evaluation produces NaN or Inf."""

    kind = ErrorKind.NOT_A_NUMBER


class RoundoffError(OptimizationError):
    """Raised when the line search cannot find an acceptable step."""

    kind = ErrorKind.ROUNDOFF_ERROR


class WeightsIOError(CRFLearningError, OSError):
    """Raised when a weight file cannot be read or written."""

    kind = ErrorKind.IO_ERROR


class WeightsParseError(CRFLearningError, ValueError):
    """Raised when a line of a weight file is not a valid real number."""

    kind = ErrorKind.PARSE_ERROR

    def __init__(self, line_number: int, line: str):
        self.line_number = line_number
        self.line = line
        super().__init__(f"Line {line_number} is not a valid real number: {line!r}")


def check_finite(value: float, what: str) -> float:
    """Return ``value`` as a float, raising NotANumberError if it is NaN or Inf."""
    value = float(value)
    if not math.isfinite(value):
        raise NotANumberError(f"{what} is not finite ({value})")
    return value
