"""
Logging configuration for the piam-anc formula.

Console output goes to stderr so that machine-readable command output
(descriptor JSON, caveats) stays alone on stdout.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "piam_formula"

_logger: Optional[logging.Logger] = None


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    verbose: bool = False,
    quiet: bool = False,
    propagate: bool = False,
) -> logging.Logger:
    """
    Configure the formula logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file that receives every record at DEBUG level
        verbose: Force DEBUG on the console
        quiet: Drop the console handler entirely
        propagate: Let records reach the root logger (pytest caplog needs this)

    Returns:
        The configured "piam_formula" logger
    """
    global _logger

    if verbose:
        effective_level = "DEBUG"
    elif quiet:
        effective_level = "WARNING"
    else:
        effective_level = level.upper()

    numeric_level = getattr(logging, effective_level, None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if log_file else numeric_level)
    logger.handlers.clear()

    if not quiet:
        console = logging.StreamHandler(sys.stderr)
        console.setLevel(numeric_level)
        console.setFormatter(PhaseFormatter(
            "%(phase_label)s %(message)s",
            use_colors=sys.stderr.isatty(),
        ))
        logger.addHandler(console)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        ))
        logger.addHandler(file_handler)

    logger.propagate = propagate

    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Return the formula logger, configuring defaults on first use."""
    global _logger
    if _logger is None:
        _logger = setup_logging()
    return _logger


class PhaseFormatter(logging.Formatter):
    """
    Console formatter that prefixes each record with a Homebrew-style marker.

    INFO records get "==>", warnings and errors get their level name, and
    colors are applied only when writing to a terminal.
    """

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[1;34m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    MARKERS = {
        "DEBUG": "-->",
        "INFO": "==>",
        "WARNING": "Warning:",
        "ERROR": "Error:",
        "CRITICAL": "Error:",
    }

    def __init__(self, fmt: str, use_colors: bool = True):
        super().__init__(fmt)
        self.use_colors = use_colors

    def format(self, record: logging.LogRecord) -> str:
        marker = self.MARKERS.get(record.levelname, record.levelname)
        if self.use_colors:
            color = self.COLORS.get(record.levelname, "")
            record.phase_label = f"{color}{marker}{self.RESET}"
        else:
            record.phase_label = marker
        return super().format(record)
