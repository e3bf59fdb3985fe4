"""Logging setup for structedit.

All modules log through children of the ``structedit`` logger::

    from structedit.utils.logging import get_logger

    logger = get_logger(__name__)

Entry points (the CLI, an API process) call :func:`setup_logging` once to
attach a rich console handler at the configured level.
"""

from __future__ import annotations

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

from structedit.config import settings

ROOT_LOGGER_NAME = "structedit"
LOG_FORMAT = "%(name)s | %(message)s"
LOG_DATE_FORMAT = "[%X]"


def setup_logging(level: Optional[str] = None, console: Optional[Console] = None) -> logging.Logger:
    """Attach a rich handler to the ``structedit`` logger.

    Safe to call more than once: existing handlers are replaced.
    """
    level_name = (level or settings.log_level).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.handlers.clear()
    root.setLevel(log_level)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=True,
    )
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, LOG_DATE_FORMAT))
    root.addHandler(handler)
    root.propagate = False
    return root


def get_logger(name: str) -> logging.Logger:
    """Get a logger in the ``structedit`` namespace."""
    if name == ROOT_LOGGER_NAME or name.startswith(f"{ROOT_LOGGER_NAME}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
