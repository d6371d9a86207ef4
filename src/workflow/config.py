"""Workflow runtime configuration"""

from src.utils.config import config


def workflow_defaults() -> dict:
    """Current runtime limits, read through the unified config on every call"""
    return {
        "max_iterations": config.workflow_max_iterations,
        "max_depth": config.workflow_max_depth,
        "continue_on_iteration_error": config.workflow_continue_on_iteration_error,
    }


# Prefix for generated condition path ids
CONDITION_PATH_ID_PREFIX = "path"

# Keys inside an integration_action's parameters that carry JSON text
CUSTOM_VARIABLES_KEY = "customVariables"

# Log levels a log_event step may use
LOG_EVENT_LEVELS = ("debug", "info", "warning", "error")
