"""
Unit tests for local step validation.
"""

import pytest

from src.workflow.models import WorkflowStep
from src.workflow.serialization import load_definition
from src.workflow.validation import (
    invalid_step_ids,
    is_valid,
    validate_step,
    validate_workflow,
)


def step(document):
    return WorkflowStep.model_validate(document)


def codes(issues):
    return [issue.code for issue in issues]


class TestValidateStep:
    """Issues reported on a single step."""

    def test_valid_leaf(self):
        assert validate_step(step({"id": "s", "type": "log_event", "config": {"message": "hi"}})) == []

    def test_unknown_operator(self):
        issues = validate_step(step({
            "id": "r", "type": "conditional_paths",
            "config": {"conditions": [{
                "id": "p", "conditions": [{"field": "trigger.x", "operator": "matches", "value": "1"}],
                "pathSteps": [],
            }]},
        }))

        assert codes(issues) == ["unknown_operator"]
        assert issues[0].path_id == "p"
        assert "matches" in issues[0].message

    def test_path_without_conditions(self):
        issues = validate_step(step({
            "id": "r", "type": "conditional_paths",
            "config": {"conditions": [{"id": "p", "conditions": [], "pathSteps": []}]},
        }))
        assert codes(issues) == ["empty_condition_path"]

    def test_router_with_nothing_to_run(self):
        issues = validate_step(step({"id": "r", "type": "conditional_paths", "config": {}}))
        assert codes(issues) == ["empty_router"]

    def test_router_with_only_default_steps_is_valid(self):
        issues = validate_step(step({
            "id": "r", "type": "conditional_paths",
            "config": {"conditions": [], "defaultPath": {"steps": [
                {"id": "d", "type": "log_event", "config": {}}
            ]}},
        }))
        assert issues == []

    @pytest.mark.parametrize("source", ["", "   "])
    def test_for_each_without_source(self, source):
        issues = validate_step(step({"id": "l", "type": "for_each", "config": {"sourceVariable": source}}))
        assert codes(issues) == ["missing_source_variable"]

    @pytest.mark.parametrize("raw", ['{"a": ', "[1, 2]", 5])
    def test_malformed_custom_variables(self, raw):
        issues = validate_step(step({
            "id": "s", "type": "integration_action",
            "config": {"parameters": {"customVariables": raw}},
        }))
        assert codes(issues) == ["invalid_custom_variables"]

    @pytest.mark.parametrize("raw", ['{"region": "emea"}', "", {"region": "emea"}])
    def test_well_formed_custom_variables(self, raw):
        issues = validate_step(step({
            "id": "s", "type": "integration_action",
            "config": {"parameters": {"customVariables": raw}},
        }))
        assert issues == []

    def test_custom_variables_on_config_itself(self):
        issues = validate_step(step({
            "id": "s", "type": "notification", "config": {"customVariables": "{oops"},
        }))
        assert codes(issues) == ["invalid_custom_variables"]

    def test_depth_limit(self):
        leaf = step({"id": "s", "type": "log_event", "config": {}})
        assert codes(validate_step(leaf, depth=3, max_depth=3)) == ["max_depth_exceeded"]
        assert validate_step(leaf, depth=2, max_depth=3) == []


class TestValidateWorkflow:
    """Issues across a tree."""

    def test_sample_documents_are_valid(self, router_document, loop_document, nested_document):
        for document in (router_document, loop_document, nested_document):
            assert is_valid(load_definition(document))

    def test_issues_are_local_to_their_step(self, loop_document):
        loop_document[0]["config"]["childSteps"].append(
            {"id": "bad-loop", "type": "for_each", "config": {"sourceVariable": ""}}
        )
        issues = validate_workflow(load_definition(loop_document))

        assert invalid_step_ids(issues) == {"bad-loop"}

    def test_depth_is_measured_from_root(self, nested_document):
        issues = validate_workflow(load_definition(nested_document), max_depth=3)
        assert invalid_step_ids(issues) == {"step-2a-i-x"}

    def test_issue_string(self):
        issues = validate_step(step({"id": "l", "type": "for_each", "config": {}}))
        assert str(issues[0]) == "[missing_source_variable] l: for_each step has no sourceVariable"
