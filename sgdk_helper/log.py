"""Logging setup for the command-line entry point.

Library modules only ever call ``logging.getLogger(__name__)``; handlers are
attached here, once, by the CLI.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(message)s"


def setup_logging(level: str = "INFO", trace: bool = False) -> None:
    """Configure the root logger with a rich handler on stderr.

    Args:
        level: Log level name.
        trace: Force DEBUG so every external command is shown.
    """
    root = logging.getLogger()
    effective = logging.DEBUG if trace else getattr(logging, level, logging.INFO)
    root.setLevel(effective)

    # Called once per process; re-entry only adjusts the level
    if any(isinstance(h, RichHandler) for h in root.handlers):
        return

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)


__all__ = ["setup_logging"]
