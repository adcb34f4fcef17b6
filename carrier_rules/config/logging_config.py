"""Centralized logging configuration for the rule engine.

This module provides a single source of truth for logging configuration,
ensuring consistent logging behavior across all modules.
"""

import logging
import sys
from pathlib import Path
from typing import Optional


def setup_logging(
    level: str = "INFO",
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """Set up logging configuration for the application.

    Configures root logger with console handler and optional file handler.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL). Default: INFO
        log_file: Optional path to log file. If None, only console logging.
        format_string: Optional custom format string. If None, uses default format.

    Returns:
        Configured root logger instance

    Example:
        >>> logger = setup_logging(level="DEBUG")
        >>> logger.debug("Evaluating surcharge rules")
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    if format_string is None:
        format_string = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)

    # Remove existing handlers to avoid duplicates
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(file_handler)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module.

    The logger inherits configuration from the root logger.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def configure_from_environment() -> logging.Logger:
    """Configure logging at the level of the `log_level` setting (LOG_LEVEL).

    Used by command-line entry points. Library callers keep their own
    logging setup untouched.
    """
    from carrier_rules.config.settings import get_settings

    return setup_logging(level=get_settings().log_level)
