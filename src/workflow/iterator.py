"""``for_each`` expansion: one child variable frame per source element"""

from typing import Any, Iterator, Optional

from src.utils.config import CURRENT_INDEX_SCOPE, CURRENT_ITEM_SCOPE
from src.utils.logging import get_logger
from .config import workflow_defaults
from .models import ForEachConfig
from .variables import VariableContext, lookup, strip_placeholder

logger = get_logger("workflow")


def resolve_source(source_variable: str, context: VariableContext) -> Any:
    """Value named by ``sourceVariable`` (bare, dotted, ``{x}`` or ``{{x}}``)"""
    path = strip_placeholder(source_variable)
    if not path:
        return None
    return lookup(path, context)


def iteration_items(config: ForEachConfig, context: VariableContext,
                    max_iterations: Optional[int] = None) -> list:
    """Elements to iterate, capped at ``max_iterations``.

    Missing or non-list sources give an empty list.
    """
    items = resolve_source(config.source_variable, context)
    if not isinstance(items, (list, tuple)):
        logger.debug("workflow_for_each_no_items",
                     component="workflow",
                     source_variable=config.source_variable,
                     value_type=type(items).__name__)
        return []

    if max_iterations is None:
        max_iterations = workflow_defaults()["max_iterations"]

    if len(items) > max_iterations:
        logger.warning("workflow_for_each_truncated",
                       component="workflow",
                       source_variable=config.source_variable,
                       collection_size=len(items),
                       max_iterations=max_iterations)
        items = items[:max_iterations]
    return list(items)


def expand(config: ForEachConfig, context: VariableContext,
           max_iterations: Optional[int] = None) -> Iterator[VariableContext]:
    """Yield one child context per element, in source order"""
    for index, item in enumerate(iteration_items(config, context, max_iterations)):
        yield context.child(**{CURRENT_ITEM_SCOPE: item, CURRENT_INDEX_SCOPE: index})
