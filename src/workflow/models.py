"""Data models for the workflow step tree"""

import uuid
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, SerializeAsAny, model_validator

from src.utils.config import STRATEGY_TARGET_KEY_RESULT, STRATEGY_TARGET_OBJECTIVE
from .exceptions import DuplicateStepIdError, InvalidStepPlacementError


class StepType(str, Enum):
    """Types of workflow steps"""
    # Leaf steps, handed to an action executor
    INTEGRATION_ACTION = "integration_action"
    STRATEGY_UPDATE = "strategy_update"
    DATA_SOURCE_QUERY = "data_source_query"
    SPLYNX_QUERY = "splynx_query"  # Platform query
    DATA_TRANSFORMATION = "data_transformation"
    LOG_EVENT = "log_event"
    NOTIFICATION = "notification"
    CREATE_WORK_ITEM = "create_work_item"
    AI_DRAFT_RESPONSE = "ai_draft_response"
    SPLYNX_TICKET_MESSAGE = "splynx_ticket_message"

    # Containers, evaluated by the core
    FOR_EACH = "for_each"
    CONDITIONAL_PATHS = "conditional_paths"


CONTAINER_STEP_TYPES = frozenset({StepType.FOR_EACH, StepType.CONDITIONAL_PATHS})


class Operator(str, Enum):
    """Comparison operators available to conditions (closed set)"""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    IN = "in"
    NOT_IN = "not_in"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


OPERATOR_VALUES = frozenset(op.value for op in Operator)


class StrategyTarget(str, Enum):
    """What a strategy_update step writes to"""
    KEY_RESULT = STRATEGY_TARGET_KEY_RESULT
    OBJECTIVE = STRATEGY_TARGET_OBJECTIVE


DEFAULT_PATH_SLOT = "defaultPath"
CHILD_STEPS_SLOT = "childSteps"

StepSlot = str
StepList = List["WorkflowStep"]


class _DocumentModel(BaseModel):
    """Base for every model that is part of the persisted document"""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")


# ---------------------------------------------------------------------------
# Step configs
# ---------------------------------------------------------------------------

class StepConfig(_DocumentModel):
    """Base config. Containers override the child-list accessors."""

    def child_lists(self) -> List[Tuple[StepSlot, StepList]]:
        """Nested step lists held by this config, in declaration order"""
        return []

    def with_child_list(self, slot: StepSlot, steps: StepList) -> "StepConfig":
        """Copy of this config with one nested step list replaced"""
        raise InvalidStepPlacementError(
            f"{type(self).__name__} has no nested step list '{slot}'"
        )


class LeafStepConfig(StepConfig):
    """Config shared by every step that is dispatched to an action executor"""
    result_variable: Optional[str] = Field(None, alias="resultVariable")


class IntegrationActionConfig(LeafStepConfig):
    integration_id: Optional[Union[int, str]] = Field(None, alias="integrationId")
    action: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)


class StrategyUpdateConfig(LeafStepConfig):
    target_type: StrategyTarget = Field(StrategyTarget.KEY_RESULT, alias="type")
    target_id: Optional[Union[int, str]] = Field(None, alias="targetId")
    target_id_variable: Optional[str] = Field(None, alias="targetIdVariable")
    update_type: str = Field("set_value", alias="updateType")
    value: Any = None

    @model_validator(mode="before")
    @classmethod
    def _repair_missing_target_type(cls, data: Any) -> Any:
        # Older documents omit the target type; they always meant a key result
        if isinstance(data, dict) and not data.get("type") and not data.get("target_type"):
            return {**data, "type": StrategyTarget.KEY_RESULT.value}
        return data


class DataSourceQueryConfig(LeafStepConfig):
    source_table: Optional[str] = Field(None, alias="sourceTable")
    query_config: Dict[str, Any] = Field(default_factory=dict, alias="queryConfig")
    update_key_result: Optional[Dict[str, Any]] = Field(None, alias="updateKeyResult")


class PlatformQueryConfig(LeafStepConfig):
    action: Optional[str] = None
    entity: Optional[str] = None
    mode: str = "count"
    filters: List[Dict[str, Any]] = Field(default_factory=list)
    date_range: Optional[str] = Field(None, alias="dateRange")
    limit: Optional[Union[int, str]] = None
    customer_id: Optional[Union[int, str]] = Field(None, alias="customerId")


class DataTransformationConfig(LeafStepConfig):
    formula: Optional[str] = None
    transformation: Optional[Dict[str, Any]] = None


class LogEventConfig(LeafStepConfig):
    message: Optional[str] = None
    level: str = "info"


class NotificationConfig(LeafStepConfig):
    channel: Optional[str] = Field(None, alias="type")
    recipient: Optional[str] = None
    message: Optional[str] = None
    template: Optional[str] = None


class CreateWorkItemConfig(LeafStepConfig):
    title: Optional[str] = None
    description: Optional[str] = None
    assignee_id: Optional[Union[int, str]] = Field(None, alias="assigneeId")
    due_date: Optional[str] = Field(None, alias="dueDate")
    status: str = "Planning"
    external_reference: Optional[str] = Field(None, alias="externalReference")
    template_id: Optional[Union[int, str]] = Field(None, alias="templateId")
    team_id: Optional[Union[int, str]] = Field(None, alias="teamId")


class AIDraftResponseConfig(LeafStepConfig):
    work_item_id: Optional[Union[int, str]] = Field(None, alias="workItemId")
    context_sources: List[str] = Field(default_factory=list, alias="contextSources")
    system_prompt: Optional[str] = Field(None, alias="systemPrompt")


class TicketMessageConfig(LeafStepConfig):
    ticket_id: Optional[Union[int, str]] = Field(None, alias="ticketId")
    message: str = ""
    is_hidden: bool = Field(True, alias="isHidden")


# ---------------------------------------------------------------------------
# Branching and iteration
# ---------------------------------------------------------------------------

class Condition(_DocumentModel):
    """One comparison: resolved ``field`` <operator> rendered ``value``"""
    field: str = ""
    operator: str = Operator.EQUALS.value
    value: Any = ""


class ConditionPath(_DocumentModel):
    """AND-combined conditions plus the steps to run when they all hold"""
    id: str
    conditions: List[Condition] = Field(default_factory=list)
    path_steps: List["WorkflowStep"] = Field(default_factory=list, alias="pathSteps")

    @model_validator(mode="before")
    @classmethod
    def _lift_simple_condition(cls, data: Any) -> Any:
        # Single-condition paths were once stored flat: {field, operator, value, pathSteps}
        if isinstance(data, dict) and "conditions" not in data and data.get("field"):
            lifted = {k: v for k, v in data.items() if k not in ("field", "operator", "value")}
            lifted["conditions"] = [{
                "field": data["field"],
                "operator": data.get("operator", Operator.EQUALS.value),
                "value": data.get("value", ""),
            }]
            return lifted
        return data


class DefaultPath(_DocumentModel):
    steps: List["WorkflowStep"] = Field(default_factory=list)


class ConditionalPathsConfig(StepConfig):
    """First-match router over ordered condition paths"""
    conditions: List[ConditionPath] = Field(default_factory=list)
    default_path: DefaultPath = Field(default_factory=DefaultPath, alias="defaultPath")

    def child_lists(self) -> List[Tuple[StepSlot, StepList]]:
        lists = [(path.id, path.path_steps) for path in self.conditions]
        lists.append((DEFAULT_PATH_SLOT, self.default_path.steps))
        return lists

    def with_child_list(self, slot: StepSlot, steps: StepList) -> "ConditionalPathsConfig":
        if slot == DEFAULT_PATH_SLOT:
            return self.model_copy(update={
                "default_path": self.default_path.model_copy(update={"steps": list(steps)})
            })

        for index, path in enumerate(self.conditions):
            if path.id == slot:
                paths = list(self.conditions)
                paths[index] = path.model_copy(update={"path_steps": list(steps)})
                return self.model_copy(update={"conditions": paths})

        raise InvalidStepPlacementError(f"Condition path '{slot}' not found")

    def find_path(self, path_id: str) -> Optional[ConditionPath]:
        return next((path for path in self.conditions if path.id == path_id), None)


class ForEachConfig(StepConfig):
    """Runs ``childSteps`` once per element of an array-valued variable"""
    source_variable: str = Field("", alias="sourceVariable")
    child_steps: List["WorkflowStep"] = Field(default_factory=list, alias="childSteps")

    def child_lists(self) -> List[Tuple[StepSlot, StepList]]:
        return [(CHILD_STEPS_SLOT, self.child_steps)]

    def with_child_list(self, slot: StepSlot, steps: StepList) -> "ForEachConfig":
        if slot != CHILD_STEPS_SLOT:
            raise InvalidStepPlacementError(f"for_each has no nested step list '{slot}'")
        return self.model_copy(update={"child_steps": list(steps)})


# ---------------------------------------------------------------------------
# Config registry
# ---------------------------------------------------------------------------

_STEP_CONFIG_REGISTRY: Dict[StepType, Type[StepConfig]] = {}

# Document shapes a freshly created (or re-typed) node starts with
_DEFAULT_CONFIG_DOCUMENTS: Dict[StepType, Dict[str, Any]] = {
    StepType.STRATEGY_UPDATE: {"type": StrategyTarget.KEY_RESULT.value, "updateType": "set_value"},
    StepType.CONDITIONAL_PATHS: {"conditions": [], "defaultPath": {"steps": []}},
    StepType.FOR_EACH: {"sourceVariable": "", "childSteps": []},
}


def register_step_config(step_type: StepType,
                         default_document: Optional[Dict[str, Any]] = None
                         ) -> Callable[[Type[StepConfig]], Type[StepConfig]]:
    """Class decorator binding a config model to a step type.

    Registering a type touches no other type's model.
    """
    def decorator(config_cls: Type[StepConfig]) -> Type[StepConfig]:
        _STEP_CONFIG_REGISTRY[step_type] = config_cls
        if default_document is not None:
            _DEFAULT_CONFIG_DOCUMENTS[step_type] = default_document
        return config_cls
    return decorator


for _step_type, _config_cls in (
    (StepType.INTEGRATION_ACTION, IntegrationActionConfig),
    (StepType.STRATEGY_UPDATE, StrategyUpdateConfig),
    (StepType.DATA_SOURCE_QUERY, DataSourceQueryConfig),
    (StepType.SPLYNX_QUERY, PlatformQueryConfig),
    (StepType.DATA_TRANSFORMATION, DataTransformationConfig),
    (StepType.LOG_EVENT, LogEventConfig),
    (StepType.NOTIFICATION, NotificationConfig),
    (StepType.CREATE_WORK_ITEM, CreateWorkItemConfig),
    (StepType.AI_DRAFT_RESPONSE, AIDraftResponseConfig),
    (StepType.SPLYNX_TICKET_MESSAGE, TicketMessageConfig),
    (StepType.FOR_EACH, ForEachConfig),
    (StepType.CONDITIONAL_PATHS, ConditionalPathsConfig),
):
    register_step_config(_step_type)(_config_cls)


def get_config_model(step_type: StepType) -> Type[StepConfig]:
    """Config model registered for ``step_type``"""
    try:
        return _STEP_CONFIG_REGISTRY[StepType(step_type)]
    except KeyError:
        raise ValueError(f"No config model registered for step type: {step_type}") from None


def default_config(step_type: StepType) -> StepConfig:
    """Fresh config for a new node of ``step_type``"""
    step_type = StepType(step_type)
    return get_config_model(step_type).model_validate(_DEFAULT_CONFIG_DOCUMENTS.get(step_type, {}))


# ---------------------------------------------------------------------------
# Step nodes
# ---------------------------------------------------------------------------

class WorkflowStep(_DocumentModel):
    """Single node of the workflow tree"""

    id: str
    type: StepType
    name: str = ""
    config: SerializeAsAny[StepConfig] = Field(default_factory=StepConfig)

    @model_validator(mode="before")
    @classmethod
    def _coerce_config(cls, data: Any) -> Any:
        """Validate ``config`` against the model registered for ``type``"""
        if not isinstance(data, dict):
            return data

        try:
            step_type = StepType(data.get("type"))
        except ValueError:
            return data  # the enum field reports the unknown type

        config_cls = get_config_model(step_type)
        config = data.get("config")

        if isinstance(config, config_cls):
            return data
        if isinstance(config, StepConfig):
            raise ValueError(
                f"{type(config).__name__} does not match step type '{step_type.value}'"
            )
        if config is None:
            return {**data, "config": default_config(step_type)}
        return {**data, "config": config_cls.model_validate(config)}

    @property
    def is_container(self) -> bool:
        return self.type in CONTAINER_STEP_TYPES

    def child_lists(self) -> List[Tuple[StepSlot, StepList]]:
        return self.config.child_lists()

    def with_child_list(self, slot: StepSlot, steps: StepList) -> "WorkflowStep":
        return self.model_copy(update={"config": self.config.with_child_list(slot, steps)})


for _model in (ConditionPath, DefaultPath, ConditionalPathsConfig, ForEachConfig):
    _model.model_rebuild()


def new_step_id() -> str:
    return f"step-{uuid.uuid4().hex[:12]}"


def new_step(step_type: StepType, name: str = "New Step", step_id: Optional[str] = None,
             config: Optional[Union[StepConfig, Dict[str, Any]]] = None) -> WorkflowStep:
    """Create a node with the default config for its type"""
    return WorkflowStep(
        id=step_id or new_step_id(),
        type=step_type,
        name=name,
        config=config if config is not None else default_config(step_type),
    )


def walk_steps(steps: StepList, depth: int = 0) -> Iterator[Tuple[WorkflowStep, int]]:
    """Depth-first pre-order traversal yielding ``(step, depth)``"""
    for step in steps:
        yield step, depth
        for _slot, children in step.child_lists():
            yield from walk_steps(children, depth + 1)


def check_unique_ids(steps: StepList):
    """Raise DuplicateStepIdError on the first id seen twice anywhere in ``steps``"""
    seen = set()
    for step, _depth in walk_steps(steps):
        if step.id in seen:
            raise DuplicateStepIdError(step.id)
        seen.add(step.id)


class WorkflowDefinition(BaseModel):
    """Root of the tree: an ordered list of steps, persisted as one document"""
    model_config = ConfigDict(frozen=True)

    steps: List[WorkflowStep] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "WorkflowDefinition":
        check_unique_ids(self.steps)
        return self

    def walk(self) -> Iterator[Tuple[WorkflowStep, int]]:
        return walk_steps(self.steps)

    def step_ids(self) -> List[str]:
        return [step.id for step, _depth in self.walk()]

    def __len__(self) -> int:
        return len(self.steps)
