"""Action dispatch boundary and the built-in actions.

Leaf steps are executed by async callables registered per step type::

    async def executor(step, resolved_config, context) -> ActionResult

``resolved_config`` is the step's config document with every template
already rendered. Integrations (CRM, ticketing, AI drafting) plug in here;
only ``log_event`` and ``data_transformation`` ship with the package.
"""

import ast
import json
import operator
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict

from src.utils.logging import get_logger
from .config import LOG_EVENT_LEVELS
from .exceptions import ActionNotRegisteredError
from .models import StepType, WorkflowStep
from .variables import VariableContext, lookup, lookup_in, strip_placeholder

logger = get_logger("workflow")


class ActionResult(BaseModel):
    """What an executor hands back: a value and, optionally, where to bind it"""
    model_config = ConfigDict(frozen=True)

    value: Any = None
    result_variable: Optional[str] = None


ActionExecutor = Callable[[WorkflowStep, Dict[str, Any], VariableContext], Awaitable[Any]]


class ActionRegistry:
    """Maps leaf step types to executors"""

    def __init__(self, executors: Optional[Dict[StepType, ActionExecutor]] = None):
        self._executors: Dict[StepType, ActionExecutor] = {}
        for step_type, executor in (executors or {}).items():
            self.register(step_type, executor)

    def register(self, step_type: Union[StepType, str],
                 executor: Optional[ActionExecutor] = None):
        """Register ``executor`` for ``step_type``. Usable as a decorator."""
        step_type = StepType(step_type)

        def decorator(func: ActionExecutor) -> ActionExecutor:
            self._executors[step_type] = func
            return func

        if executor is not None:
            return decorator(executor)
        return decorator

    def get(self, step_type: Union[StepType, str]) -> ActionExecutor:
        try:
            return self._executors[StepType(step_type)]
        except KeyError:
            raise ActionNotRegisteredError(str(StepType(step_type).value)) from None

    def __contains__(self, step_type: Union[StepType, str]) -> bool:
        return StepType(step_type) in self._executors

    @property
    def step_types(self) -> Iterable[StepType]:
        return tuple(self._executors)

    def copy(self) -> "ActionRegistry":
        return ActionRegistry(dict(self._executors))


# ---------------------------------------------------------------------------
# log_event
# ---------------------------------------------------------------------------

async def log_event_action(step: WorkflowStep, resolved_config: Dict[str, Any],
                           context: VariableContext) -> ActionResult:
    """Write the rendered message to the workflow log"""
    message = resolved_config.get("message") or step.name
    level = str(resolved_config.get("level") or "info").lower()
    if level not in LOG_EVENT_LEVELS:
        level = "info"

    getattr(logger, level)("workflow_log_event",
                           component="workflow",
                           step_id=step.id,
                           step_name=step.name,
                           event_message=message)
    return ActionResult(value={"logged": True, "message": message, "level": level})


# ---------------------------------------------------------------------------
# data_transformation
# ---------------------------------------------------------------------------

_BINARY_OPERATORS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Mod: operator.mod,
}

_UNARY_OPERATORS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}


def _evaluate_node(node: ast.AST) -> float:
    if isinstance(node, ast.Expression):
        return _evaluate_node(node.body)

    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
            and not isinstance(node.value, bool):
        return float(node.value)

    if isinstance(node, ast.BinOp):
        left = _evaluate_node(node.left)
        right = _evaluate_node(node.right)
        if isinstance(node.op, ast.Div):
            return 0.0 if right == 0 else left / right
        if isinstance(node.op, ast.Mod) and right == 0:
            return 0.0
        op = _BINARY_OPERATORS.get(type(node.op))
        if op is not None:
            return op(left, right)

    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPERATORS.get(type(node.op))
        if op is not None:
            return op(_evaluate_node(node.operand))

    raise ValueError(f"Unsupported expression in formula: {ast.dump(node)}")


def evaluate_formula(formula: str) -> float:
    """Arithmetic over numbers only, rounded to 2 decimals. x / 0 gives 0."""
    if not formula or not formula.strip():
        raise ValueError("Formula is empty")
    try:
        tree = ast.parse(formula.strip(), mode="eval")
    except SyntaxError as e:
        raise ValueError(f"Formula is not a valid arithmetic expression: {formula}") from e
    return round(_evaluate_node(tree), 2)


def _transformation_source(transformation: Dict[str, Any], context: VariableContext) -> Any:
    source = transformation.get("source")
    if not isinstance(source, str):
        return source

    value = lookup(strip_placeholder(source), context)
    if value is None:
        # A {{placeholder}} source arrives already rendered as JSON text
        try:
            value = json.loads(source)
        except ValueError:
            return None
    return value


def apply_transformation(transformation: Dict[str, Any], context: VariableContext) -> Any:
    """``json_path`` extraction or key ``mapping`` over a variable"""
    kind = transformation.get("type")
    source = _transformation_source(transformation, context)

    if kind == "json_path":
        return lookup_in(source, str(transformation.get("path", "")))

    if kind == "mapping":
        mapping = transformation.get("mapping") or {}
        if isinstance(source, list):
            return [{target: lookup_in(item, path) for target, path in mapping.items()}
                    for item in source]
        return {target: lookup_in(source, path) for target, path in mapping.items()}

    raise ValueError(f"Unknown transformation type: {kind}")


async def data_transformation_action(step: WorkflowStep, resolved_config: Dict[str, Any],
                                     context: VariableContext) -> ActionResult:
    formula = resolved_config.get("formula")
    if formula:
        value = evaluate_formula(formula)
    elif resolved_config.get("transformation"):
        value = apply_transformation(resolved_config["transformation"], context)
    else:
        raise ValueError("data_transformation needs a formula or a transformation")

    logger.debug("workflow_transformation_applied",
                 component="workflow",
                 step_id=step.id,
                 value=value)
    return ActionResult(value=value)


def default_action_registry() -> ActionRegistry:
    """Registry with the built-in actions"""
    return ActionRegistry({
        StepType.LOG_EVENT: log_event_action,
        StepType.DATA_TRANSFORMATION: data_transformation_action,
    })
