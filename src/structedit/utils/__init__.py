"""Shared utilities."""

from .logging import get_logger, setup_logging
from .loop import background_loop, run_sync

__all__ = ["background_loop", "get_logger", "run_sync", "setup_logging"]
