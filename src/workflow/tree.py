"""Structural editing of a workflow definition.

Every function returns a new :class:`WorkflowDefinition`. Only the nodes on
the path from the root to the edited list are copied; every other subtree is
shared with the input definition.
"""

import uuid
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from src.utils.logging import get_logger
from .config import CONDITION_PATH_ID_PREFIX
from .exceptions import InvalidStepPlacementError, StepNotFoundError
from .models import (
    CHILD_STEPS_SLOT,
    Condition,
    ConditionPath,
    ConditionalPathsConfig,
    StepConfig,
    StepSlot,
    StepType,
    WorkflowDefinition,
    WorkflowStep,
    check_unique_ids,
    default_config,
    get_config_model,
    walk_steps,
)

logger = get_logger("workflow")

StepsOrDefinition = Union[WorkflowDefinition, List[WorkflowStep]]
_ListEdit = Callable[[List[WorkflowStep], int], List[WorkflowStep]]


def _steps_of(tree: StepsOrDefinition) -> List[WorkflowStep]:
    return tree.steps if isinstance(tree, WorkflowDefinition) else tree


def iter_child_lists(step: WorkflowStep) -> List[Tuple[StepSlot, List[WorkflowStep]]]:
    """Nested step lists of ``step`` as ``(slot, steps)`` pairs"""
    return step.child_lists()


def walk(tree: StepsOrDefinition) -> Iterator[Tuple[WorkflowStep, int]]:
    """Depth-first pre-order traversal yielding ``(step, depth)``"""
    return walk_steps(_steps_of(tree))


def find_step(tree: StepsOrDefinition, step_id: str) -> Optional[WorkflowStep]:
    return next((step for step, _depth in walk(tree) if step.id == step_id), None)


def _require_step(tree: StepsOrDefinition, step_id: str) -> WorkflowStep:
    step = find_step(tree, step_id)
    if step is None:
        raise StepNotFoundError(step_id)
    return step


def _edit_siblings(steps: List[WorkflowStep], step_id: str,
                   edit: _ListEdit) -> Optional[List[WorkflowStep]]:
    """Apply ``edit`` to the sibling list holding ``step_id``.

    Returns the rebuilt list, or None when the id is not in this subtree.
    """
    for index, step in enumerate(steps):
        if step.id == step_id:
            return edit(list(steps), index)

    for index, step in enumerate(steps):
        for slot, children in step.child_lists():
            edited = _edit_siblings(children, step_id, edit)
            if edited is not None:
                rebuilt = list(steps)
                rebuilt[index] = step.with_child_list(slot, edited)
                return rebuilt
    return None


def _rebuild(definition: WorkflowDefinition, steps: List[WorkflowStep]) -> WorkflowDefinition:
    # model_copy skips validators, so ids are checked here
    check_unique_ids(steps)
    return definition.model_copy(update={"steps": steps})


def _apply(definition: WorkflowDefinition, step_id: str, edit: _ListEdit) -> WorkflowDefinition:
    steps = _edit_siblings(definition.steps, step_id, edit)
    if steps is None:
        raise StepNotFoundError(step_id)
    return _rebuild(definition, steps)


def _replace_step(definition: WorkflowDefinition, step_id: str,
                  replace: Callable[[WorkflowStep], WorkflowStep]) -> WorkflowDefinition:
    def edit(siblings: List[WorkflowStep], index: int) -> List[WorkflowStep]:
        siblings[index] = replace(siblings[index])
        return siblings
    return _apply(definition, step_id, edit)


def _default_slot(parent: WorkflowStep) -> StepSlot:
    if parent.type == StepType.FOR_EACH:
        return CHILD_STEPS_SLOT
    if parent.type == StepType.CONDITIONAL_PATHS:
        raise InvalidStepPlacementError(
            f"Step '{parent.id}' is a router; choose a condition path id or 'defaultPath'"
        )
    raise InvalidStepPlacementError(f"Step '{parent.id}' ({parent.type.value}) cannot hold nested steps")


def append_step(definition: WorkflowDefinition, step: WorkflowStep,
                parent_id: Optional[str] = None, slot: Optional[StepSlot] = None,
                index: Optional[int] = None) -> WorkflowDefinition:
    """Insert ``step`` at the root or into a container's nested list.

    Args:
        parent_id: Container to insert into, None for the root list
        slot: ``childSteps`` for for_each; a path id or ``defaultPath`` for a router
        index: Position in the target list, appended when None
    """
    def insert(steps: List[WorkflowStep]) -> List[WorkflowStep]:
        steps = list(steps)
        if index is None:
            steps.append(step)
        else:
            steps.insert(index, step)
        return steps

    if parent_id is None:
        updated = _rebuild(definition, insert(definition.steps))
    else:
        parent = _require_step(definition, parent_id)
        target_slot = slot or _default_slot(parent)
        children = dict(parent.child_lists())
        if target_slot not in children:
            raise InvalidStepPlacementError(
                f"Step '{parent_id}' has no nested step list '{target_slot}'"
            )
        updated = _replace_step(
            definition, parent_id,
            lambda node: node.with_child_list(target_slot, insert(children[target_slot]))
        )

    logger.debug("workflow_step_appended",
                 component="workflow",
                 step_id=step.id,
                 step_type=step.type.value,
                 parent_id=parent_id,
                 slot=slot)
    return updated


def update_step(definition: WorkflowDefinition, step_id: str, *,
                name: Optional[str] = None,
                step_type: Optional[StepType] = None,
                config: Optional[Union[StepConfig, Dict[str, Any]]] = None) -> WorkflowDefinition:
    """Change a node's name, type or config.

    A type change without an explicit config resets the config to the new
    type's default; nothing is migrated.
    """
    def replace(step: WorkflowStep) -> WorkflowStep:
        new_type = StepType(step_type) if step_type is not None else step.type
        if config is not None:
            new_config = config if isinstance(config, StepConfig) else \
                get_config_model(new_type).model_validate(config)
        elif new_type != step.type:
            new_config = default_config(new_type)
            logger.info("workflow_step_type_changed",
                        component="workflow",
                        step_id=step.id,
                        old_type=step.type.value,
                        new_type=new_type.value)
        else:
            new_config = step.config

        # Revalidate so a mismatched config is rejected; extra keys ride along
        fields = {**(step.model_extra or {}), "id": step.id, "type": new_type, "config": new_config}
        if name is not None:
            fields["name"] = name
        elif "name" in step.model_fields_set:
            fields["name"] = step.name
        return WorkflowStep.model_validate(fields)

    return _replace_step(definition, step_id, replace)


def remove_step(definition: WorkflowDefinition, step_id: str) -> WorkflowDefinition:
    """Remove a node (and its subtree) from wherever it sits"""
    def edit(siblings: List[WorkflowStep], index: int) -> List[WorkflowStep]:
        del siblings[index]
        return siblings

    updated = _apply(definition, step_id, edit)
    logger.debug("workflow_step_removed", component="workflow", step_id=step_id)
    return updated


def move_step(definition: WorkflowDefinition, step_id: str, to_index: int) -> WorkflowDefinition:
    """Reorder a node among its siblings. ``to_index`` is clamped to the list."""
    def edit(siblings: List[WorkflowStep], index: int) -> List[WorkflowStep]:
        step = siblings.pop(index)
        siblings.insert(max(0, min(to_index, len(siblings))), step)
        return siblings
    return _apply(definition, step_id, edit)


# ---------------------------------------------------------------------------
# Condition paths
# ---------------------------------------------------------------------------

def new_condition_path(path_id: Optional[str] = None) -> ConditionPath:
    """Path with one blank condition, as offered to the editor"""
    return ConditionPath(
        id=path_id or f"{CONDITION_PATH_ID_PREFIX}-{uuid.uuid4().hex[:12]}",
        conditions=[Condition()],
        path_steps=[],
    )


def _router_config(step: WorkflowStep) -> ConditionalPathsConfig:
    if not isinstance(step.config, ConditionalPathsConfig):
        raise InvalidStepPlacementError(f"Step '{step.id}' is not a conditional_paths step")
    return step.config


def _edit_paths(definition: WorkflowDefinition, router_id: str,
                edit: Callable[[List[ConditionPath]], List[ConditionPath]]) -> WorkflowDefinition:
    def replace(step: WorkflowStep) -> WorkflowStep:
        config = _router_config(step)
        paths = edit(list(config.conditions))
        return step.model_copy(update={"config": config.model_copy(update={"conditions": paths})})
    return _replace_step(definition, router_id, replace)


def _path_index(paths: List[ConditionPath], path_id: str) -> int:
    for index, path in enumerate(paths):
        if path.id == path_id:
            return index
    raise InvalidStepPlacementError(f"Condition path '{path_id}' not found")


def add_condition_path(definition: WorkflowDefinition, router_id: str,
                       path: Optional[ConditionPath] = None,
                       index: Optional[int] = None) -> WorkflowDefinition:
    path = path or new_condition_path()

    def edit(paths: List[ConditionPath]) -> List[ConditionPath]:
        if any(existing.id == path.id for existing in paths):
            raise InvalidStepPlacementError(f"Condition path '{path.id}' already exists")
        if index is None:
            paths.append(path)
        else:
            paths.insert(index, path)
        return paths

    return _edit_paths(definition, router_id, edit)


def update_condition_path(definition: WorkflowDefinition, router_id: str, path_id: str,
                          conditions: List[Union[Condition, Dict[str, Any]]]) -> WorkflowDefinition:
    """Replace a path's conditions, keeping its steps"""
    new_conditions = [c if isinstance(c, Condition) else Condition.model_validate(c)
                      for c in conditions]

    def edit(paths: List[ConditionPath]) -> List[ConditionPath]:
        position = _path_index(paths, path_id)
        paths[position] = paths[position].model_copy(update={"conditions": new_conditions})
        return paths

    return _edit_paths(definition, router_id, edit)


def remove_condition_path(definition: WorkflowDefinition, router_id: str,
                          path_id: str) -> WorkflowDefinition:
    def edit(paths: List[ConditionPath]) -> List[ConditionPath]:
        del paths[_path_index(paths, path_id)]
        return paths
    return _edit_paths(definition, router_id, edit)


def move_condition_path(definition: WorkflowDefinition, router_id: str,
                        path_id: str, to_index: int) -> WorkflowDefinition:
    def edit(paths: List[ConditionPath]) -> List[ConditionPath]:
        path = paths.pop(_path_index(paths, path_id))
        paths.insert(max(0, min(to_index, len(paths))), path)
        return paths
    return _edit_paths(definition, router_id, edit)
