"""Unified configuration system with clear precedence."""

import os
import json
from typing import Dict, Any, Union
from pathlib import Path

from dotenv import load_dotenv


# Import logger lazily to avoid circular imports
logger = None


def _get_logger():
    """Lazy logger initialization to avoid circular imports."""
    global logger
    if logger is None:
        from ..logging import get_smart_logger
        logger = get_smart_logger("config")
    return logger


class ConfigError(Exception):
    """Configuration-related errors."""
    pass


class UnifiedConfig:
    """Unified configuration with clear precedence:

    Precedence (highest to lowest):
    1. Environment variables (a local ``.env`` file is loaded first)
    2. system_config.json
    3. Code defaults
    """

    ENV_MAPPINGS = {
        # Database
        'DB_PATH': 'database.path',
        'DB_THREAD_POOL_SIZE': 'database.thread_pool_size',

        # Logging
        'LOG_LEVEL': 'logging.level',
        'LOG_DIR': 'logging.external_logs_dir',

        # Workflow
        'WORKFLOW_MAX_ITERATIONS': 'workflow.max_iterations',
        'WORKFLOW_MAX_DEPTH': 'workflow.max_depth',
        'WORKFLOW_CONTINUE_ON_ITERATION_ERROR': 'workflow.continue_on_iteration_error',
    }

    def __init__(self, config_file: str = "system_config.json"):
        self._config_file = config_file
        self._config: Dict[str, Any] = {}
        self._defaults = self._get_code_defaults()

        load_dotenv()
        self._load_json_config()
        self._apply_env_overrides()

        _get_logger().info("unified_config_loaded",
                           config_file=config_file,
                           config_sections=list(self._config.keys()))

    def _get_code_defaults(self) -> Dict[str, Any]:
        """Code defaults as fallback."""
        return {
            "database": {
                "path": "workflows.db",
                "thread_pool_size": 4,
                "thread_prefix": "sqlite_"
            },
            "logging": {
                "level": "INFO",
                "external_logs_dir": "logs"
            },
            "workflow": {
                "max_iterations": 1000,
                "max_depth": 32,
                "continue_on_iteration_error": True
            }
        }

    def _load_json_config(self):
        """Load configuration from JSON file."""
        config_path = Path(self._config_file)
        if not config_path.exists():
            _get_logger().debug("config_file_not_found",
                                path=str(config_path),
                                using_defaults=True)
            self._config = self._deep_merge(self._defaults, {})
            return

        try:
            with open(config_path, 'r') as f:
                file_config = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            _get_logger().error("config_file_load_error",
                                path=str(config_path),
                                error=str(e),
                                using_defaults=True)
            self._config = self._deep_merge(self._defaults, {})
            return

        self._config = self._deep_merge(self._defaults, file_config)
        _get_logger().info("config_file_loaded",
                           path=str(config_path),
                           sections=list(file_config.keys()))

    def _apply_env_overrides(self):
        """Apply environment variable overrides."""
        for env_var, config_path in self.ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value is not None:
                converted_value = self._convert_env_value(value)
                self._set_nested_value(self._config, config_path, converted_value)
                _get_logger().debug("env_override_applied",
                                    env_var=env_var,
                                    config_path=config_path,
                                    value=converted_value)

    def _convert_env_value(self, value: str) -> Union[str, int, float, bool]:
        """Convert environment variable string to appropriate type."""
        if value.lower() in ('true', 'false'):
            return value.lower() == 'true'

        try:
            if '.' not in value:
                return int(value)
        except ValueError:
            pass

        try:
            return float(value)
        except ValueError:
            pass

        return value

    def _deep_merge(self, base: Dict, override: Dict) -> Dict:
        """Deep merge two dictionaries without mutating either."""
        result = {
            key: self._deep_merge(value, {}) if isinstance(value, dict) else value
            for key, value in base.items()
        }

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _set_nested_value(self, config: Dict, path: str, value: Any):
        """Set a nested configuration value using dot notation."""
        keys = path.split('.')
        current = config

        for key in keys[:-1]:
            if key not in current or not isinstance(current[key], dict):
                current[key] = {}
            current = current[key]

        current[keys[-1]] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            path: Dot-separated path like 'workflow.max_iterations'
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        current = self._config

        try:
            for key in path.split('.'):
                current = current[key]
            return current
        except (KeyError, TypeError):
            return default

    def set(self, path: str, value: Any):
        """Override a value at runtime (tests, CLI flags)."""
        self._set_nested_value(self._config, path, value)

    # Property shortcuts for common values
    @property
    def db_path(self) -> str:
        return self.get('database.path', 'workflows.db')

    @property
    def log_level(self) -> str:
        return self.get('logging.level', 'INFO')

    @property
    def log_dir(self) -> str:
        return self.get('logging.external_logs_dir', 'logs')

    @property
    def workflow_max_iterations(self) -> int:
        return int(self.get('workflow.max_iterations', 1000))

    @property
    def workflow_max_depth(self) -> int:
        return int(self.get('workflow.max_depth', 32))

    @property
    def workflow_continue_on_iteration_error(self) -> bool:
        return bool(self.get('workflow.continue_on_iteration_error', True))


# Singleton instance
config = UnifiedConfig()
