"""Workflow step tree - typed steps, branching, iteration and variable resolution"""

from .models import (
    StepType, Operator, Condition, ConditionPath, DefaultPath, StepConfig,
    ConditionalPathsConfig, ForEachConfig, WorkflowStep, WorkflowDefinition,
    register_step_config, default_config, new_step,
)
from .variables import VariableContext, render, resolve, lookup, resolve_value
from .conditions import evaluate_condition, path_matches, route, select_path
from .iterator import expand
from .serialization import load_definition, to_document, to_json
from .validation import ValidationIssue, validate_step, validate_workflow
from .actions import ActionRegistry, ActionResult, default_action_registry
from .runner import WorkflowRunner, WorkflowRun, RunStatus, StepOutcome
from .repository import WorkflowRepository
from .exceptions import (
    WorkflowError, WorkflowValidationError, DuplicateStepIdError, StepNotFoundError,
    InvalidStepPlacementError, StepExecutionError, ActionNotRegisteredError,
)

__all__ = [
    'StepType',
    'Operator',
    'Condition',
    'ConditionPath',
    'DefaultPath',
    'StepConfig',
    'ConditionalPathsConfig',
    'ForEachConfig',
    'WorkflowStep',
    'WorkflowDefinition',
    'register_step_config',
    'default_config',
    'new_step',
    'VariableContext',
    'render',
    'resolve',
    'lookup',
    'resolve_value',
    'evaluate_condition',
    'path_matches',
    'route',
    'select_path',
    'expand',
    'load_definition',
    'to_document',
    'to_json',
    'ValidationIssue',
    'validate_step',
    'validate_workflow',
    'ActionRegistry',
    'ActionResult',
    'default_action_registry',
    'WorkflowRunner',
    'WorkflowRun',
    'RunStatus',
    'StepOutcome',
    'WorkflowRepository',
    'WorkflowError',
    'WorkflowValidationError',
    'DuplicateStepIdError',
    'StepNotFoundError',
    'InvalidStepPlacementError',
    'StepExecutionError',
    'ActionNotRegisteredError',
]
