"""Shared infrastructure for the workflow system.

- config/: Layered configuration (env > system_config.json > defaults)
- logging/: Structured JSON logging routed per component
- storage/: SQLite-backed document storage with an async adapter
"""

from .logging import get_logger

__all__ = ['get_logger']
