"""
Small helpers shared across piam_formula modules.
"""

from __future__ import annotations

import os
import sys

DEBUG_ENV_VAR = "PIAM_FORMULA_DEBUG"


def debug_enabled() -> bool:
    """Return True when PIAM_FORMULA_DEBUG=1 is set in the environment."""
    return os.environ.get(DEBUG_ENV_VAR, "0") == "1"


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log a verbose-only message through the formula logger.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled for this call
    """
    if not (verbose or debug_enabled()):
        return
    try:
        from .logging_config import get_logger
        get_logger().info(msg)
    except ValueError:
        print(f"[piam_formula] {msg}", file=sys.stderr)


def format_bytes(size: int) -> str:
    """Render a byte count the way download progress lines show it."""
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"
