"""Logging setup for the command line.

Library modules only ever call ``logging.getLogger(__name__)``; the CLI
attaches a single rich handler to the ``monoexec`` logger, writing to
stderr so child output on stdout stays clean.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVELS = ("silent", "error", "warn", "info", "verbose", "debug")

_LEVEL_MAP = {
    "silent": logging.CRITICAL + 1,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "verbose": logging.DEBUG,
    "debug": logging.DEBUG,
}


def configure_logging(level: str = "info") -> logging.Logger:
    """Set the monoexec logger's level and attach the rich handler once."""
    if level not in _LEVEL_MAP:
        raise ValueError(f"Unknown log level '{level}'. Valid levels: {', '.join(LOG_LEVELS)}")

    package_logger = logging.getLogger("monoexec")
    package_logger.setLevel(_LEVEL_MAP[level])
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        handler = RichHandler(
            console=Console(stderr=True),
            show_time=False,
            show_path=False,
            markup=False,
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        package_logger.addHandler(handler)
    return package_logger
