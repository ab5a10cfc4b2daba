"""Logging configuration for training and evaluation runs."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Third-party loggers that flood DEBUG output while plotting.
NOISY_LOGGERS = ("matplotlib", "PIL")


def setup_logging(level=logging.INFO, log_dir="logs", log_name="crf_learning.log") -> Path:
    """Route log records to stdout and to a rotating file.

    The console shows ``level`` and above, the file always receives DEBUG so
    per-iteration optimizer traces are kept even for quiet console runs.

    Args:
        level (int): Console logging level, default is logging.INFO.
        log_dir (str): Directory to store log files, default is "logs".
        log_name (str): File name of the rotating log inside ``log_dir``.

    Returns:
        Path: The path of the log file.

    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file_path = log_dir / log_name

    file_formatter = logging.Formatter(
        "%(asctime)s - %(levelname)-8s - %(name)-30s - %(funcName)s:%(lineno)d - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    console_formatter = logging.Formatter("%(asctime)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S")

    root_logger = logging.getLogger()
    if root_logger.hasHandlers():
        root_logger.handlers.clear()
    root_logger.setLevel(logging.DEBUG)

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(console_formatter)
    stream_handler.setLevel(level)
    root_logger.addHandler(stream_handler)

    file_handler = RotatingFileHandler(log_file_path, maxBytes=5 * 1024 * 1024, backupCount=3)
    file_handler.setFormatter(file_formatter)
    file_handler.setLevel(logging.DEBUG)
    root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.info("Logging to %s (console level: %s)", log_file_path, logging.getLevelName(level))
    return log_file_path
