"""Unified configuration system for the workflow system."""

from .unified_config import UnifiedConfig, ConfigError, config

# Import all constants (star import acceptable for config constants)
from .constants import *  # noqa: F403

__all__ = [
    'UnifiedConfig',
    'ConfigError',
    'config',
]
