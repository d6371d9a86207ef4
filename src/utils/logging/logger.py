"""Structured JSON logging for the workflow system.

Every entry is one JSON object per line:
- ``timestamp``, ``level`` and ``message`` (a snake_case event name)
- arbitrary keyword context supplied by the caller
- ``correlation_id`` when one is active in the current context

Usage:
    logger = get_logger("workflow")
    logger.info("workflow_step_start", component="workflow", step_id="step-1")
"""

import json
import logging
import logging.handlers
import os
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

# Per-task correlation id; each asyncio task sees its own copy
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def set_correlation_id(correlation_id: Optional[str]):
    """Set (or clear, with None) the correlation id for the current context."""
    _correlation_id.set(correlation_id)


def _level_from_env(default: int = logging.INFO) -> int:
    """Read LOG_LEVEL from the environment, falling back to ``default``."""
    level_name = os.getenv("LOG_LEVEL")
    if not level_name:
        return default
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else default


class StructuredLogger:
    """Single-file JSON logger that stamps the active correlation id."""

    def __init__(self, log_file: str = "logs/system.log", level: Optional[int] = None):
        """Initialize the logger.

        Args:
            log_file: Path to log file (will create directory if needed)
            level: Logging level (default: LOG_LEVEL env or INFO)
        """
        self.level = level if level is not None else _level_from_env()
        self.logger = logging.getLogger("workflow_builder")
        self.logger.setLevel(self.level)

        # Remove any existing handlers to avoid duplicates
        self.logger.handlers.clear()

        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=50*1024*1024,  # 50MB per file
            backupCount=5,
            encoding='utf-8'
        )
        handler.setFormatter(logging.Formatter('%(message)s'))
        self.logger.addHandler(handler)
        self.logger.propagate = False

    def _build_entry(self, level: int, message: str, **kwargs) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "message": message,
            **kwargs
        }

        correlation_id = get_correlation_id()
        if correlation_id and "correlation_id" not in entry:
            entry["correlation_id"] = correlation_id

        return json.dumps(entry, default=str)

    def _log(self, level: int, message: str, **kwargs):
        """Internal logging method with JSON formatting."""
        self.logger.log(level, self._build_entry(level, message, **kwargs))

    def isEnabledFor(self, level: int) -> bool:
        return level >= self.level

    def debug(self, message: str, **kwargs):
        """Log debug message."""
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        """Log info message."""
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message."""
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message."""
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message."""
        self._log(logging.CRITICAL, message, **kwargs)


# Global logger instance, replaced by the multi-file logger on package import
_logger = None


def get_logger(component: Optional[str] = None) -> StructuredLogger:
    """Get the global logger instance (singleton).

    Args:
        component: Component name (ignored - callers pass ``component=`` per entry)

    Returns:
        The global StructuredLogger instance
    """
    global _logger
    if _logger is None:
        _logger = StructuredLogger()
    return _logger
