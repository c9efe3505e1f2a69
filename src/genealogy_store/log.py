"""Logging setup: rich console output plus an optional log file."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def configure_logging(level: str | int = "INFO", log_file: str | None = None, console: Console | None = None) -> None:
    """Configure the ``genealogy_store`` logger hierarchy once per process."""
    logger = logging.getLogger("genealogy_store")
    logger.setLevel(level if isinstance(level, int) else level.upper())

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(RichHandler(console=console or Console(stderr=True), show_path=False))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logger.addHandler(file_handler)

    logger.propagate = False
