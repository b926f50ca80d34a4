"""Shared utilities for ruuvitrack services."""

from .models import Reading
from .config import load_yaml_config, get_config_path
from .logging import setup_logging

__all__ = [
    "Reading",
    "load_yaml_config",
    "get_config_path",
    "setup_logging",
]
