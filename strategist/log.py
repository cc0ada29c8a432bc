"""Logging setup for the strategist package.

All modules log through children of the ``strategist`` logger.
The console handler uses Rich formatting on stderr so it never
interleaves with JSON written to stdout by the CLI.
"""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

_ROOT = "strategist"


def setup_logging(level: int | str = logging.INFO, log_file: str | None = None) -> logging.Logger:
    """Install console (and optional file) handlers on the package logger.

    Args:
        level: Logging level name or number.
        log_file: Optional path for a plain-text log file.

    Returns:
        The ``strategist`` root logger.
    """
    logger = logging.getLogger(_ROOT)
    logger.setLevel(level)
    logger.handlers.clear()

    console_handler = RichHandler(
        console=Console(stderr=True),
        show_time=True,
        show_path=False,
        rich_tracebacks=True,
    )
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the package root.

    Accepts either a bare component name or a module ``__name__``.
    """
    if name == _ROOT or name.startswith(_ROOT + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{_ROOT}.{name}")
