"""Utility helpers shared across sqlmark."""

from .debounce import DebouncedHandler
from .logging import get_log_path, setup_logging

__all__ = ["DebouncedHandler", "get_log_path", "setup_logging"]
