"""Common utilities for the portal."""

from .logger import setup_logger, get_logger, configure_logging
from .config import load_visibility_config

__all__ = ["configure_logging", "get_logger", "load_visibility_config", "setup_logger"]
