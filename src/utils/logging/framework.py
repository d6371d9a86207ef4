"""Logging framework with decorators, context managers, and auto-detection.

- Decorator for automatic function/method logging
- Context manager for scoped operations with correlation ids
- Auto component detection from module paths
"""

import functools
import inspect
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Callable, Dict, Optional, Union

from .logger import get_correlation_id as _get_correlation_id
from .logger import set_correlation_id as _set_correlation_id
from .multi_file_logger import get_multi_file_logger

# Per-task operation context
_operation_context: ContextVar[Dict[str, Any]] = ContextVar("operation_context", default={})


def _get_component_from_module(module_name: str) -> str:
    """Auto-detect component from module path."""
    component_map = {
        'workflow.repository': 'storage',
        'workflow.cli': 'cli',
        'workflow': 'workflow',
        'utils.storage': 'storage',
        'utils.config': 'config',
    }

    for pattern, component in component_map.items():
        if pattern in module_name:
            return component

    return 'system'


def _get_operation_context() -> Dict[str, Any]:
    """Get current operation context."""
    return _operation_context.get()


def _update_operation_context(context: Dict[str, Any]):
    """Update operation context."""
    current = dict(_operation_context.get())
    current.update(context)
    _operation_context.set(current)


class SmartLogger:
    """Logger that auto-detects its component and injects scoped context."""

    def __init__(self, component: Optional[str] = None, auto_detect: bool = True):
        """Initialize smart logger.

        Args:
            component: Explicit component name
            auto_detect: Whether to auto-detect component from caller
        """
        self._logger = get_multi_file_logger()

        if component:
            self._component = component
        elif auto_detect:
            frame = inspect.currentframe()
            try:
                caller_frame = frame.f_back
                module_name = caller_frame.f_globals.get('__name__', 'unknown')
                self._component = _get_component_from_module(module_name)
            finally:
                del frame
        else:
            self._component = 'system'

    @property
    def component(self) -> str:
        return self._component

    def _log(self, level: str, message: str, **kwargs):
        """Internal logging with automatic context injection."""
        kwargs.setdefault('component', self._component)

        correlation_id = _get_correlation_id()
        if correlation_id:
            kwargs['correlation_id'] = correlation_id

        for key, value in _get_operation_context().items():
            kwargs.setdefault(key, value)

        getattr(self._logger, level)(message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log('info', message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log('error', message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log('warning', message, **kwargs)

    def debug(self, message: str, **kwargs):
        self._log('debug', message, **kwargs)

    def isEnabledFor(self, level: int) -> bool:
        """Check if the underlying logger is enabled for ``level``."""
        return self._logger.isEnabledFor(level)


def log_execution(func_or_component: Union[Callable, str, None] = None, operation: Optional[str] = None,
                  include_args: bool = True, include_result: bool = True,
                  log_errors: bool = True, component: Optional[str] = None):
    """Decorator for automatic function/method execution logging.

    Works on plain and ``async`` functions.

    Example:
        @log_execution(component="storage", operation="async_get")
        async def get(self, namespace, key):
            ...
    """
    if callable(func_or_component):
        return _create_wrapper(func_or_component, component, operation,
                               include_args, include_result, log_errors)

    actual_component = func_or_component or component

    def decorator(func: Callable) -> Callable:
        return _create_wrapper(func, actual_component, operation,
                               include_args, include_result, log_errors)
    return decorator


def _summarize_result(result: Any) -> Dict[str, Any]:
    result_str = str(result)
    if len(result_str) > 1000:
        return {'result_preview': result_str[:500] + '...', 'result_size': len(result_str)}
    return {'result': result}


def _create_wrapper(func: Callable, component: Optional[str], operation: Optional[str],
                    include_args: bool, include_result: bool, log_errors: bool) -> Callable:
    """Create the actual wrapper function for logging."""
    func_component = component or _get_component_from_module(func.__module__)
    op_name = operation or func.__name__

    def _start(args, kwargs):
        func_logger = SmartLogger(func_component)
        exec_id = str(uuid.uuid4())[:8]

        log_args = {}
        if include_args and args:
            # Skip 'self' for methods
            start_idx = 1 if hasattr(args[0], func.__name__) else 0
            log_args['args'] = args[start_idx:]
        if include_args and kwargs:
            log_args['kwargs'] = kwargs

        func_logger.debug(f"function_start_{op_name}",
                          operation=op_name,
                          function=func.__name__,
                          execution_id=exec_id,
                          **log_args)
        return func_logger, exec_id, time.time()

    def _complete(func_logger, exec_id, start_time, result):
        log_result = _summarize_result(result) if include_result else {}
        func_logger.debug(f"function_complete_{op_name}",
                          operation=op_name,
                          function=func.__name__,
                          execution_id=exec_id,
                          duration_seconds=round(time.time() - start_time, 3),
                          success=True,
                          **log_result)

    def _failed(func_logger, exec_id, start_time, error):
        if log_errors:
            func_logger.error(f"function_error_{op_name}",
                              operation=op_name,
                              function=func.__name__,
                              execution_id=exec_id,
                              duration_seconds=round(time.time() - start_time, 3),
                              success=False,
                              error=str(error),
                              error_type=type(error).__name__)

    if inspect.iscoroutinefunction(func):
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs):
            func_logger, exec_id, start_time = _start(args, kwargs)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                _failed(func_logger, exec_id, start_time, e)
                raise
            _complete(func_logger, exec_id, start_time, result)
            return result
        return async_wrapper

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        func_logger, exec_id, start_time = _start(args, kwargs)
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            _failed(func_logger, exec_id, start_time, e)
            raise
        _complete(func_logger, exec_id, start_time, result)
        return result
    return wrapper


@contextmanager
def log_operation(component: Optional[str] = None, operation: str = "operation",
                  correlation_id: Optional[str] = None, **context):
    """Context manager for scoped operation logging with automatic correlation.

    Example:
        with log_operation("workflow", "workflow_run", workflow_id=workflow_id):
            ...  # every SmartLogger entry inside carries the correlation id
    """
    if not component:
        frame = inspect.currentframe()
        try:
            caller_frame = frame.f_back.f_back
            module_name = caller_frame.f_globals.get('__name__', 'unknown')
            component = _get_component_from_module(module_name)
        finally:
            del frame

    if not correlation_id:
        correlation_id = str(uuid.uuid4())[:8]

    op_logger = SmartLogger(component)

    prev_correlation_id = _get_correlation_id()
    prev_context = _get_operation_context()

    _set_correlation_id(correlation_id)
    _update_operation_context({'operation': operation, **context})

    op_logger.info(f"operation_start_{operation}")
    start_time = time.time()

    try:
        yield correlation_id
    except Exception as e:
        op_logger.error(f"operation_error_{operation}",
                        duration_seconds=round(time.time() - start_time, 3),
                        success=False,
                        error=str(e),
                        error_type=type(e).__name__)
        raise
    else:
        op_logger.info(f"operation_complete_{operation}",
                       duration_seconds=round(time.time() - start_time, 3),
                       success=True)
    finally:
        _set_correlation_id(prev_correlation_id)
        _operation_context.set(prev_context)


def get_smart_logger(component: Optional[str] = None) -> SmartLogger:
    """Get a smart logger instance with optional component override."""
    if component:
        return SmartLogger(component)
    frame = inspect.currentframe()
    try:
        module_name = frame.f_back.f_globals.get('__name__', 'unknown')
    finally:
        del frame
    return SmartLogger(_get_component_from_module(module_name))
