"""
Logger Utility for hostaudit
Provides consistent logging configuration and the raw finding audit trail
"""

import logging
import os
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from hostaudit.core.model import Finding, format_record

LOGGER_NAME = "hostaudit"
DEFAULT_LOG_FILENAME = "hostaudit.log"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"


def console_level(verbosity: int) -> int:
    """0 = quiet, 1 = normal, 2+ = debug."""
    if verbosity <= 0:
        return logging.WARNING
    if verbosity == 1:
        return logging.INFO
    return logging.DEBUG


def rotate_log_file(log_path: Path) -> None:
    """Keep the previous run's log as `<name>.bak`."""
    if log_path.exists():
        backup = log_path.with_name(log_path.name + ".bak")
        try:
            os.replace(log_path, backup)
        except OSError as e:
            logging.getLogger(__name__).warning(f"Cannot rotate log file {log_path}: {e}")


def setup_logger(verbosity: int = 1,
                 log_file: Optional[str] = None,
                 stealth: bool = False,
                 console: Optional[Console] = None,
                 logger_name: str = LOGGER_NAME) -> logging.Logger:
    """Set up logger with console and file output.

    In stealth mode nothing is written to disk and the console only shows
    warnings and errors.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    # Clear existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=console or Console(stderr=True),
        show_time=True,
        show_path=(verbosity >= 2),
        rich_tracebacks=True,
        markup=False,
    )
    console_handler.setLevel(logging.WARNING if stealth else console_level(verbosity))
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file and not stealth:
        log_path = Path(log_file)
        try:
            log_path.parent.mkdir(parents=True, exist_ok=True)
            rotate_log_file(log_path)
            file_handler = logging.FileHandler(log_path, encoding="utf-8")
        except OSError as e:
            logger.warning(f"Cannot open log file {log_path}: {e}; logging to console only")
        else:
            file_handler.setLevel(logging.DEBUG)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
            logger.addHandler(file_handler)
            logger.debug(f"Detailed logs saved to: {log_path}")

    return logger


class FindingLogger:
    """Sink observer writing each finding as a machine-parseable FINDING| line."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(f"{LOGGER_NAME}.findings")

    def __call__(self, finding: Finding) -> None:
        self.logger.debug(format_record(finding))
