"""Condition evaluation and first-match routing for ``conditional_paths``"""

from typing import Any, Callable, Dict, List, NamedTuple, Optional

from src.utils.logging import get_logger
from .models import (
    Condition, ConditionPath, ConditionalPathsConfig, DEFAULT_PATH_SLOT, Operator, WorkflowStep
)
from .variables import (
    TEMPLATE_PATTERN, VariableContext, lookup, render_text, strip_placeholder, stringify
)

logger = get_logger("workflow")


def _is_blank(text: Optional[str]) -> bool:
    return text is None or not text.strip()


def _as_number(text: Optional[str]) -> Optional[float]:
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def _greater_than(field: Optional[str], value: str) -> bool:
    left, right = _as_number(field), _as_number(value)
    if left is None or right is None:
        return False
    return left > right


def _less_than(field: Optional[str], value: str) -> bool:
    left, right = _as_number(field), _as_number(value)
    if left is None or right is None:
        return False
    return left < right


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",")]


# Each comparison gets the resolved field (None when missing) and the rendered value
_COMPARISONS: Dict[str, Callable[[Optional[str], str], bool]] = {
    Operator.EQUALS.value: lambda field, value: (field or "") == value,
    Operator.NOT_EQUALS.value: lambda field, value: (field or "") != value,
    Operator.CONTAINS.value: lambda field, value: value.lower() in (field or "").lower(),
    Operator.NOT_CONTAINS.value: lambda field, value: value.lower() not in (field or "").lower(),
    Operator.STARTS_WITH.value: lambda field, value: (field or "").startswith(value),
    Operator.ENDS_WITH.value: lambda field, value: (field or "").endswith(value),
    Operator.IN.value: lambda field, value: (field or "") in _split_list(value),
    Operator.NOT_IN.value: lambda field, value: (field or "") not in _split_list(value),
    Operator.GREATER_THAN.value: _greater_than,
    Operator.LESS_THAN.value: _less_than,
    Operator.IS_EMPTY.value: lambda field, value: _is_blank(field),
    Operator.IS_NOT_EMPTY.value: lambda field, value: not _is_blank(field),
}


def resolve_field(field: str, context: VariableContext) -> Optional[str]:
    """Text value of a condition's left-hand side, None when it does not resolve.

    ``field`` is normally a path (``trigger.category``), optionally wrapped in
    ``{{ }}``. A field that mixes text and placeholders is rendered instead.
    """
    path = strip_placeholder(field)
    if TEMPLATE_PATTERN.search(path):
        return render_text(field, context)

    value = lookup(path, context)
    if value is None:
        return None
    if isinstance(value, (list, dict)) and not value:
        return ""
    return stringify(value)


def render_condition_value(value: Any, context: VariableContext) -> str:
    if value is None:
        return ""
    text = value if isinstance(value, str) else stringify(value)
    return render_text(text, context)


def evaluate_condition(condition: Condition, context: VariableContext) -> bool:
    """Evaluate one condition. Never raises; unknown operators are False."""
    comparison = _COMPARISONS.get(condition.operator)
    if comparison is None:
        logger.warning("workflow_condition_unknown_operator",
                       component="workflow",
                       operator=condition.operator,
                       field=condition.field)
        return False

    field_value = resolve_field(condition.field, context)
    compare_value = render_condition_value(condition.value, context)
    result = comparison(field_value, compare_value)

    logger.debug("workflow_condition_evaluated",
                 component="workflow",
                 field=condition.field,
                 operator=condition.operator,
                 field_value=field_value,
                 compare_value=compare_value,
                 result=result)
    return result


def path_matches(path: ConditionPath, context: VariableContext) -> bool:
    """All conditions hold. A path without conditions never matches."""
    if not path.conditions:
        return False
    return all(evaluate_condition(condition, context) for condition in path.conditions)


class RouteDecision(NamedTuple):
    """Outcome of routing: the matched path id (None for the default path)"""
    path_id: Optional[str]
    steps: List[WorkflowStep]

    @property
    def is_default(self) -> bool:
        return self.path_id is None

    @property
    def label(self) -> str:
        return self.path_id if self.path_id is not None else DEFAULT_PATH_SLOT


def select_path(config: ConditionalPathsConfig, context: VariableContext) -> RouteDecision:
    """First matching path in declaration order, else the default path"""
    for path in config.conditions:
        if path_matches(path, context):
            return RouteDecision(path.id, list(path.path_steps))
    return RouteDecision(None, list(config.default_path.steps))


def route(config: ConditionalPathsConfig, context: VariableContext) -> List[WorkflowStep]:
    return select_path(config, context).steps
