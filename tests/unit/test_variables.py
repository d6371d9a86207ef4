"""
Unit tests for variable scopes and template rendering.

Tests cover:
- Frame chaining and shadowing
- Dotted and bracketed path lookup
- {{scope.path}} and legacy {name} rendering
- Stringification rules
- Recursive config resolution
"""

import pytest

from src.workflow.variables import (
    VariableContext,
    find_placeholders,
    lookup,
    parse_path,
    render,
    resolve,
    resolve_legacy,
    resolve_value,
    stringify,
    strip_placeholder,
)


@pytest.fixture
def context():
    root = VariableContext.for_trigger(
        {"category": "sales", "customer": {"name": "Acme", "tags": ["vip", "emea"]}},
        workItem={"id": 42},
        pathResults=[{"workItemId": 7}, {"workItemId": 8}],
    )
    return root


class TestVariableContext:
    """Frame chain behaviour."""

    def test_empty_context_has_one_frame(self):
        context = VariableContext()
        assert context.depth == 1
        assert context.get("anything") is None

    def test_child_does_not_modify_parent(self, context):
        child = context.child(currentItem={"name": "Ada"})

        assert child.get("currentItem") == {"name": "Ada"}
        assert "currentItem" not in context
        assert child.depth == context.depth + 1

    def test_inner_frame_shadows_outer(self, context):
        child = context.child(workItem={"id": 99})

        assert child.get("workItem") == {"id": 99}
        assert context.get("workItem") == {"id": 42}

    def test_with_binding_returns_new_context(self, context):
        updated = context.with_binding("score", 3)

        assert updated.get("score") == 3
        assert "score" not in context

    def test_with_binding_targets_innermost_frame(self, context):
        child = context.child().with_binding("score", 3)

        assert child.frames[-1] == {"score": 3}
        assert "score" not in child.frames[0]

    def test_result_variables_exclude_reserved_names(self, context):
        child = context.child(currentItem=1, currentIndex=0)
        names = child.result_variables()

        assert "workItem" in names
        assert "trigger" not in names
        assert "currentItem" not in names
        assert "currentIndex" not in names


class TestLookup:
    """Path parsing and lookup."""

    def test_parse_path_with_brackets(self):
        assert parse_path("pathResults[0].workItemId") == ["pathResults", 0, "workItemId"]
        assert parse_path("matrix[1][2]") == ["matrix", 1, 2]

    @pytest.mark.parametrize("path", ["", "   ", "a..b", "a.[x]"])
    def test_parse_path_rejects_malformed(self, path):
        assert parse_path(path) == []

    def test_lookup_nested(self, context):
        assert lookup("trigger.customer.name", context) == "Acme"
        assert lookup("trigger.customer.tags[1]", context) == "emea"
        assert lookup("pathResults[1].workItemId", context) == 8

    def test_lookup_numeric_segment_on_list(self, context):
        assert lookup("trigger.customer.tags.0", context) == "vip"

    @pytest.mark.parametrize("path", [
        "missing",
        "trigger.missing",
        "trigger.customer.name.first",
        "trigger.customer.tags[5]",
        "workItem.id.value",
    ])
    def test_lookup_miss_returns_none(self, context, path):
        assert lookup(path, context) is None

    def test_resolve_stringifies(self, context):
        assert resolve("workItem.id", context) == "42"
        assert resolve("nope", context) is None

    def test_legacy_resolution_ignores_reserved_scopes(self, context):
        assert resolve_legacy("workItem", context) == '{"id": 42}'
        assert resolve_legacy("trigger", context) is None
        assert resolve_legacy("currentItem", context.child(currentItem="x")) is None


class TestStringify:
    """Text form of values."""

    @pytest.mark.parametrize("value,expected", [
        (True, "true"),
        (False, "false"),
        (3.0, "3"),
        (2.5, "2.5"),
        (7, "7"),
        ({"a": 1}, '{"a": 1}'),
        ([1, "b"], '[1, "b"]'),
        ("text", "text"),
    ])
    def test_stringify(self, value, expected):
        assert stringify(value) == expected


class TestRender:
    """Template rendering."""

    def test_double_brace_placeholder(self, context):
        result = render("Deal for {{trigger.customer.name}}", context)
        assert result.text == "Deal for Acme"
        assert result.unresolved == []

    def test_whitespace_inside_braces(self, context):
        assert render("{{ trigger.category }}", context).text == "sales"

    def test_legacy_placeholder(self, context):
        context = context.with_binding("total", 12.0)
        assert render("Total: {total}", context).text == "Total: 12"

    def test_legacy_placeholder_cannot_reach_trigger(self, context):
        result = render("{trigger}", context)
        assert result.text == "{trigger}"
        assert result.unresolved == ["trigger"]

    def test_unresolved_placeholders_stay_literal(self, context):
        result = render("Hi {{trigger.nobody}} and {ghost}", context)

        assert result.text == "Hi {{trigger.nobody}} and {ghost}"
        assert result.unresolved == ["trigger.nobody", "ghost"]

    def test_mixed_forms_in_one_pass(self, context):
        context = context.with_binding("count", 2)
        result = render("{{trigger.category}}: {count} items", context)
        assert result.text == "sales: 2 items"

    def test_json_text_is_left_alone(self, context):
        text = '{"key": "value", "n": 1}'
        assert render(text, context).text == text

    def test_rendered_values_are_not_rescanned(self):
        context = VariableContext.for_trigger({"note": "{{trigger.secret}}", "secret": "s3"})
        assert render("{{trigger.note}}", context).text == "{{trigger.secret}}"

    def test_empty_template(self, context):
        assert render("", context).text == ""


class TestResolveValue:
    """Recursive resolution of config documents."""

    def test_nested_structures(self, context):
        unresolved = []
        config = {
            "title": "Call {{trigger.customer.name}}",
            "parameters": {"tags": ["{{trigger.customer.tags[0]}}", "{missing}"], "limit": 5},
            "flag": True,
        }

        resolved = resolve_value(config, context, unresolved)

        assert resolved == {
            "title": "Call Acme",
            "parameters": {"tags": ["vip", "{missing}"], "limit": 5},
            "flag": True,
        }
        assert unresolved == ["missing"]

    def test_input_is_not_mutated(self, context):
        config = {"title": "{{trigger.category}}"}
        resolve_value(config, context)
        assert config == {"title": "{{trigger.category}}"}


class TestPlaceholderHelpers:
    """Reference parsing helpers."""

    @pytest.mark.parametrize("reference,expected", [
        ("{{trigger.items}}", "trigger.items"),
        ("{{ trigger.items }}", "trigger.items"),
        ("{items}", "items"),
        ("items", "items"),
        ("  customer.services ", "customer.services"),
    ])
    def test_strip_placeholder(self, reference, expected):
        assert strip_placeholder(reference) == expected

    def test_find_placeholders_in_order_without_duplicates(self):
        text = "{{a.b}} {c} {{a.b}} {{d}}"
        assert find_placeholders(text) == ["a.b", "c", "d"]
