"""Logging setup with colored console output and performance tracking."""

import logging
import os
import sys
import time
from pathlib import Path
from typing import Optional
from logging.handlers import RotatingFileHandler


# ANSI color codes
class Colors:
    RESET = "\033[0m"
    RED = "\033[91m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    GRAY = "\033[90m"


class ColoredFormatter(logging.Formatter):
    """Formatter with color support."""

    COLORS = {
        "DEBUG": Colors.GRAY,
        "INFO": Colors.BLUE,
        "WARNING": Colors.YELLOW,
        "ERROR": Colors.RED,
        "CRITICAL": Colors.RED,
    }

    def format(self, record):
        """Format log record with colors."""
        if sys.stderr.isatty():  # Only colorize for terminals
            record = logging.makeLogRecord(record.__dict__)
            levelname = record.levelname
            if levelname in self.COLORS:
                record.levelname = f"{self.COLORS[levelname]}{levelname}{Colors.RESET}"

        return super().format(record)


class PerformanceLogger:
    """Track operation performance."""

    def __init__(self, logger: logging.Logger, operation: str):
        """Initialize performance logger."""
        self.logger = logger
        self.operation = operation
        self.start_time = None
        self.duration = 0.0

    def __enter__(self):
        """Start timing."""
        self.start_time = time.monotonic()
        self.logger.debug(f"Started: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """End timing and log."""
        self.duration = time.monotonic() - self.start_time

        if exc_type is None:
            self.logger.info(f"Completed: {self.operation} ({self.duration:.2f}s)")
        else:
            self.logger.error(f"Failed: {self.operation} ({self.duration:.2f}s)")


def debug_requested() -> bool:
    """Return True when the DEBUG environment variable is set."""
    return "DEBUG" in os.environ


def setup_logging(
    level: str = "WARNING",
    log_file: Optional[Path] = None,
    verbose: bool = False
) -> None:
    """
    Setup application logging.

    Console output goes to stderr so that JSON results on stdout stay parseable.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        verbose: Enable verbose logging
    """
    if debug_requested():
        level = "DEBUG"

    numeric_level = getattr(logging, level.upper(), logging.WARNING)

    root_logger = logging.getLogger("secretsquirrel")
    root_logger.setLevel(logging.DEBUG if log_file else numeric_level)
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)

    if verbose:
        console_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    else:
        console_format = "%(asctime)s - %(levelname)s - %(message)s"

    console_formatter = ColoredFormatter(
        console_format,
        datefmt="%Y-%m-%d %H:%M:%S"
    )
    console_handler.setFormatter(console_formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10 * 1024 * 1024,  # 10 MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)  # Always debug in file

        file_format = "%(asctime)s - %(name)s - %(levelname)s - %(threadName)s - %(message)s"
        file_handler.setFormatter(logging.Formatter(file_format, datefmt="%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(file_handler)


def get_logger(name: str) -> logging.Logger:
    """Get logger for module."""
    if name.startswith("secretsquirrel."):
        return logging.getLogger(name)
    return logging.getLogger(f"secretsquirrel.{name}")
