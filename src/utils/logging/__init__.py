"""Structured logging for the workflow system."""

from .logger import get_logger, StructuredLogger

from .framework import (
    log_execution,  # Decorator for function logging
    log_operation,  # Context manager for scoped operations
    get_smart_logger,  # Factory for smart loggers
    SmartLogger,
)

from .multi_file_logger import MultiFileLogger, migrate_to_multi_file_logging

# Route the global logger to per-component files on import
migrate_to_multi_file_logging()

__all__ = [
    "get_logger",
    "StructuredLogger",
    "MultiFileLogger",
    "SmartLogger",
    "log_execution",
    "log_operation",
    "get_smart_logger",
]
