"""Local, per-step validation.

Issues are reported, not raised: the runner skips only the offending step and
the editor can show every problem at once.
"""

import json
from typing import Any, Iterable, List, Optional, Set

from pydantic import BaseModel, ConfigDict

from src.utils.logging import get_logger
from .config import CUSTOM_VARIABLES_KEY, workflow_defaults
from .models import (
    OPERATOR_VALUES, ConditionalPathsConfig, ForEachConfig, WorkflowDefinition, WorkflowStep,
    walk_steps
)

logger = get_logger("workflow")


class ValidationIssue(BaseModel):
    """One problem found on one step"""
    model_config = ConfigDict(frozen=True)

    step_id: str
    code: str
    message: str
    path_id: Optional[str] = None

    def __str__(self) -> str:
        where = f"{self.step_id}/{self.path_id}" if self.path_id else self.step_id
        return f"[{self.code}] {where}: {self.message}"


def _custom_variables_sources(step: WorkflowStep) -> List[Any]:
    sources = []
    parameters = getattr(step.config, "parameters", None)
    if isinstance(parameters, dict) and CUSTOM_VARIABLES_KEY in parameters:
        sources.append(parameters[CUSTOM_VARIABLES_KEY])
    extra = step.config.model_extra or {}
    if CUSTOM_VARIABLES_KEY in extra:
        sources.append(extra[CUSTOM_VARIABLES_KEY])
    return sources


def _check_custom_variables(step: WorkflowStep) -> List[ValidationIssue]:
    issues = []
    for raw in _custom_variables_sources(step):
        if raw is None or isinstance(raw, dict):
            continue
        if not isinstance(raw, str):
            issues.append(ValidationIssue(
                step_id=step.id, code="invalid_custom_variables",
                message=f"customVariables must be a JSON object, got {type(raw).__name__}"))
            continue
        if not raw.strip():
            continue
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            issues.append(ValidationIssue(
                step_id=step.id, code="invalid_custom_variables",
                message=f"customVariables is not valid JSON: {e.msg}"))
            continue
        if not isinstance(parsed, dict):
            issues.append(ValidationIssue(
                step_id=step.id, code="invalid_custom_variables",
                message="customVariables must decode to a JSON object"))
    return issues


def _check_router(step: WorkflowStep, config: ConditionalPathsConfig) -> List[ValidationIssue]:
    issues = []
    if not config.conditions and not config.default_path.steps:
        issues.append(ValidationIssue(
            step_id=step.id, code="empty_router",
            message="Router has no condition paths and no default steps"))

    for path in config.conditions:
        if not path.conditions:
            issues.append(ValidationIssue(
                step_id=step.id, path_id=path.id, code="empty_condition_path",
                message="Condition path has no conditions"))
        for condition in path.conditions:
            if condition.operator not in OPERATOR_VALUES:
                issues.append(ValidationIssue(
                    step_id=step.id, path_id=path.id, code="unknown_operator",
                    message=f"Unknown operator '{condition.operator}'"))
    return issues


def validate_step(step: WorkflowStep, depth: int = 0,
                  max_depth: Optional[int] = None) -> List[ValidationIssue]:
    """Issues on ``step`` itself. Nested steps are not visited."""
    if max_depth is None:
        max_depth = workflow_defaults()["max_depth"]

    issues: List[ValidationIssue] = []
    if depth >= max_depth:
        issues.append(ValidationIssue(
            step_id=step.id, code="max_depth_exceeded",
            message=f"Step is nested {depth} levels deep (limit {max_depth})"))

    config = step.config
    if isinstance(config, ConditionalPathsConfig):
        issues.extend(_check_router(step, config))
    elif isinstance(config, ForEachConfig):
        if not config.source_variable or not config.source_variable.strip():
            issues.append(ValidationIssue(
                step_id=step.id, code="missing_source_variable",
                message="for_each step has no sourceVariable"))

    issues.extend(_check_custom_variables(step))
    return issues


def validate_workflow(definition: WorkflowDefinition,
                      max_depth: Optional[int] = None) -> List[ValidationIssue]:
    """Issues across the whole tree, in traversal order"""
    issues: List[ValidationIssue] = []
    for step, depth in walk_steps(definition.steps):
        issues.extend(validate_step(step, depth=depth, max_depth=max_depth))

    if issues:
        logger.info("workflow_validation_issues",
                    component="workflow",
                    issue_count=len(issues),
                    step_ids=sorted(invalid_step_ids(issues)))
    return issues


def invalid_step_ids(issues: Iterable[ValidationIssue]) -> Set[str]:
    return {issue.step_id for issue in issues}


def is_valid(definition: WorkflowDefinition) -> bool:
    return not validate_workflow(definition)
