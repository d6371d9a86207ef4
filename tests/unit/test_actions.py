"""
Unit tests for the action registry and built-in actions.
"""

import pytest

from src.workflow import actions as actions_module
from src.workflow.actions import (
    ActionRegistry,
    ActionResult,
    apply_transformation,
    data_transformation_action,
    default_action_registry,
    evaluate_formula,
    log_event_action,
)
from src.workflow.exceptions import ActionNotRegisteredError
from src.workflow.models import StepType, new_step
from src.workflow.variables import VariableContext


class TestActionRegistry:
    """Executor registration and lookup."""

    def test_register_and_get(self, empty_registry):
        async def executor(step, config, context):
            return ActionResult(value=1)

        empty_registry.register(StepType.NOTIFICATION, executor)

        assert StepType.NOTIFICATION in empty_registry
        assert empty_registry.get("notification") is executor

    def test_register_as_decorator(self, empty_registry):
        @empty_registry.register(StepType.CREATE_WORK_ITEM)
        async def create(step, config, context):
            return None

        assert empty_registry.get(StepType.CREATE_WORK_ITEM) is create

    def test_missing_executor(self, empty_registry):
        with pytest.raises(ActionNotRegisteredError) as exc_info:
            empty_registry.get(StepType.AI_DRAFT_RESPONSE)
        assert exc_info.value.step_type == "ai_draft_response"

    def test_default_registry_has_builtins(self):
        registry = default_action_registry()
        assert set(registry.step_types) == {StepType.LOG_EVENT, StepType.DATA_TRANSFORMATION}

    def test_copy_is_independent(self):
        registry = default_action_registry()
        clone = registry.copy()

        async def executor(step, config, context):
            return None

        clone.register(StepType.NOTIFICATION, executor)
        assert StepType.NOTIFICATION not in registry


class TestFormula:
    """Safe arithmetic."""

    @pytest.mark.parametrize("formula,expected", [
        ("1 + 2", 3.0),
        ("10 / 4", 2.5),
        ("10 / 3", 3.33),
        ("(2 + 3) * 4 - 1", 19.0),
        ("-5 + 2", -3.0),
        ("7 % 4", 3.0),
        ("12.3456 * 1", 12.35),
    ])
    def test_arithmetic(self, formula, expected):
        assert evaluate_formula(formula) == expected

    def test_division_by_zero_is_zero(self):
        assert evaluate_formula("5 / 0") == 0
        assert evaluate_formula("5 / (2 - 2)") == 0

    @pytest.mark.parametrize("formula", [
        "",
        "__import__('os')",
        "a + 1",
        "{total} * 2",
        "2 ** 8",
        "1 +",
        "True + 1",
    ])
    def test_rejects_anything_but_numbers(self, formula):
        with pytest.raises(ValueError):
            evaluate_formula(formula)


class TestTransformations:
    """json_path and mapping."""

    @pytest.fixture
    def context(self):
        return VariableContext(frames=[{
            "customer": {"name": "Acme", "services": [{"id": 1, "plan": "fiber"}, {"id": 2, "plan": "voip"}]},
        }])

    def test_json_path(self, context):
        transformation = {"type": "json_path", "source": "customer", "path": "services[1].plan"}
        assert apply_transformation(transformation, context) == "voip"

    def test_json_path_with_wrapped_source(self, context):
        transformation = {"type": "json_path", "source": "{{customer.services}}", "path": "[0].id"}
        assert apply_transformation(transformation, context) == 1

    def test_json_path_with_rendered_source(self, context):
        transformation = {"type": "json_path", "source": '[{"id": 5}]', "path": "[0].id"}
        assert apply_transformation(transformation, context) == 5

    def test_mapping_over_object(self, context):
        transformation = {"type": "mapping", "source": "customer", "mapping": {"customerName": "name"}}
        assert apply_transformation(transformation, context) == {"customerName": "Acme"}

    def test_mapping_over_list(self, context):
        transformation = {"type": "mapping", "source": "customer.services",
                          "mapping": {"serviceId": "id", "missing": "nope"}}
        assert apply_transformation(transformation, context) == [
            {"serviceId": 1, "missing": None},
            {"serviceId": 2, "missing": None},
        ]

    def test_unknown_transformation(self, context):
        with pytest.raises(ValueError):
            apply_transformation({"type": "pivot", "source": "customer"}, context)


class TestBuiltinActions:
    """log_event and data_transformation executors."""

    @pytest.mark.asyncio
    async def test_log_event_writes_entry(self, monkeypatch):
        entries = []

        class FakeLogger:
            def __getattr__(self, level):
                return lambda message, **kwargs: entries.append((level, message, kwargs))

        monkeypatch.setattr(actions_module, "logger", FakeLogger())
        step = new_step(StepType.LOG_EVENT, name="Note", step_id="s1")

        result = await log_event_action(step, {"message": "Deal closed", "level": "warning"},
                                        VariableContext())

        assert result.value == {"logged": True, "message": "Deal closed", "level": "warning"}
        assert entries == [("warning", "workflow_log_event",
                            {"component": "workflow", "step_id": "s1", "step_name": "Note",
                             "event_message": "Deal closed"})]

    @pytest.mark.asyncio
    async def test_log_event_unknown_level_falls_back_to_info(self):
        step = new_step(StepType.LOG_EVENT, name="Note", step_id="s1")
        result = await log_event_action(step, {"message": "x", "level": "shout"}, VariableContext())
        assert result.value["level"] == "info"

    @pytest.mark.asyncio
    async def test_data_transformation_formula(self):
        step = new_step(StepType.DATA_TRANSFORMATION, step_id="s1")
        result = await data_transformation_action(step, {"formula": "40 / 3"}, VariableContext())
        assert result.value == 13.33

    @pytest.mark.asyncio
    async def test_data_transformation_requires_input(self):
        step = new_step(StepType.DATA_TRANSFORMATION, step_id="s1")
        with pytest.raises(ValueError):
            await data_transformation_action(step, {"formula": None, "transformation": None},
                                             VariableContext())
