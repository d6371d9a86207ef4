"""Component-based log file separation.

Each component gets its own log file, with an additional error log that
captures all ERROR level messages across components.

Log Files:
- workflow.log: Workflow loading, editing, routing and execution
- storage.log: Definition persistence
- system.log: Configuration and everything else
- errors.log: All ERROR level messages (cross-component)
"""

import logging
import logging.handlers
import os
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from .logger import StructuredLogger, _level_from_env


class MultiFileLogger(StructuredLogger):
    """Logger that routes messages to different files based on component."""

    COMPONENT_FILES = {
        'workflow': 'workflow.log',
        'storage': 'storage.log',
        'system': 'system.log',
        'config': 'system.log',
        'cli': 'system.log',
    }

    def __init__(self, log_dir: str = "logs", level: Optional[int] = None):
        """Initialize multi-file logger.

        Args:
            log_dir: Directory for log files
            level: Logging level (default: LOG_LEVEL env or INFO)
        """
        # Parent __init__ is skipped on purpose: handlers are per component here
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.level = level if level is not None else _level_from_env()
        self.handlers: Dict[str, logging.Handler] = {}
        self._files: Dict[str, logging.Handler] = {}
        self.lock = Lock()

        self.logger = logging.getLogger("workflow_builder")
        self.logger.setLevel(self.level)
        self.logger.handlers.clear()
        self.logger.propagate = False

        self._setup_handlers()
        self._setup_error_handler()

    def _setup_handlers(self):
        """Create one handler per log file, shared by components that alias it."""
        for component, filename in self.COMPONENT_FILES.items():
            handler = self._files.get(filename)
            if handler is None:
                handler = logging.handlers.RotatingFileHandler(
                    self.log_dir / filename,
                    maxBytes=50*1024*1024,  # 50MB per file
                    backupCount=5,
                    encoding='utf-8'
                )
                handler.setFormatter(logging.Formatter('%(message)s'))
                handler.setLevel(self.level)
                self._files[filename] = handler
            self.handlers[component] = handler

    def _setup_error_handler(self):
        """Create special handler for all ERROR level messages."""
        error_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / 'errors.log',
            maxBytes=50*1024*1024,  # 50MB
            backupCount=10,
            encoding='utf-8'
        )
        error_handler.setFormatter(logging.Formatter('%(message)s'))
        error_handler.setLevel(logging.ERROR)
        self.handlers['_errors'] = error_handler

    def _get_handler(self, component: Optional[str]) -> logging.Handler:
        """Get the appropriate handler for a component."""
        if component and component in self.handlers:
            return self.handlers[component]
        return self.handlers['system']

    def _log(self, level: int, message: str, **kwargs):
        """Route a JSON entry to the component file (and errors.log)."""
        if level < self.level:
            return

        record = logging.LogRecord(
            name=self.logger.name,
            level=level,
            pathname="",
            lineno=0,
            msg=self._build_entry(level, message, **kwargs),
            args=(),
            exc_info=None
        )

        with self.lock:
            handler = self._get_handler(kwargs.get('component'))
            if level >= handler.level:
                handler.emit(record)

            if level >= logging.ERROR:
                self.handlers['_errors'].emit(record)


_multi_logger = None
_multi_logger_lock = Lock()


def get_multi_file_logger() -> MultiFileLogger:
    """Get the global multi-file logger instance (singleton).

    The directory comes from LOG_DIR (default ``logs``).
    """
    global _multi_logger
    if _multi_logger is None:
        with _multi_logger_lock:
            if _multi_logger is None:
                _multi_logger = MultiFileLogger(log_dir=os.getenv("LOG_DIR", "logs"))
    return _multi_logger


def migrate_to_multi_file_logging():
    """Replace the single-file global logger with the multi-file logger."""
    from . import logger as logger_module

    logger_module._logger = get_multi_file_logger()
