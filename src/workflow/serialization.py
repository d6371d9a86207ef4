"""JSON document form of workflow definitions.

The document is a list of step objects (camelCase keys). Loading also accepts
the stored ``{"steps": [...]}`` wrapper and raw JSON text. Documents go back
out exactly as they came in, apart from the load-time repairs done by the
models (missing ``strategy_update`` target type, flat single-condition paths).
"""

import json
from typing import Any, Dict, List, Union

from src.utils.logging import get_logger
from .exceptions import WorkflowValidationError
from .models import WorkflowDefinition, WorkflowStep

logger = get_logger("workflow")

DocumentSource = Union[str, bytes, List[Dict[str, Any]], Dict[str, Any], WorkflowDefinition]


def _dump_kwargs() -> Dict[str, Any]:
    return {"by_alias": True, "exclude_unset": True, "mode": "json"}


def _extract_steps(source: DocumentSource) -> List[Any]:
    if isinstance(source, (str, bytes)):
        try:
            source = json.loads(source)
        except json.JSONDecodeError as e:
            raise WorkflowValidationError(f"Workflow document is not valid JSON: {e}") from e

    if isinstance(source, dict):
        if "steps" not in source:
            raise WorkflowValidationError("Workflow document object has no 'steps' key")
        source = source["steps"]
        if source is None:
            return []

    if not isinstance(source, list):
        raise WorkflowValidationError(
            f"Workflow document must be a list of steps, got {type(source).__name__}"
        )
    return source


def load_definition(source: DocumentSource) -> WorkflowDefinition:
    """Build a definition from a document.

    Raises:
        WorkflowValidationError: the document is not a step list
        pydantic.ValidationError: a step does not match its type's shape
        DuplicateStepIdError: two nodes share an id
    """
    if isinstance(source, WorkflowDefinition):
        return source

    definition = WorkflowDefinition(steps=_extract_steps(source))
    logger.debug("workflow_definition_loaded",
                 component="workflow",
                 root_steps=len(definition.steps),
                 total_steps=len(definition.step_ids()))
    return definition


def step_from_document(document: Dict[str, Any]) -> WorkflowStep:
    return WorkflowStep.model_validate(document)


def step_to_document(step: WorkflowStep) -> Dict[str, Any]:
    return step.model_dump(**_dump_kwargs())


def to_document(definition: WorkflowDefinition) -> List[Dict[str, Any]]:
    """Root step list, ready for ``json.dumps``"""
    return [step_to_document(step) for step in definition.steps]


def to_json(definition: WorkflowDefinition, indent: int = 2) -> str:
    return json.dumps(to_document(definition), indent=indent)
