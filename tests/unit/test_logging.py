"""
Unit tests for structured logging and the logging framework helpers.
"""

import asyncio
import json
import uuid

import pytest

from src.utils.logging import get_logger, get_smart_logger, log_execution, log_operation
from src.utils.logging.logger import get_correlation_id
from src.utils.logging.multi_file_logger import get_multi_file_logger


def read_entries(filename):
    path = get_multi_file_logger().log_dir / filename
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line]


def marker():
    return f"test-{uuid.uuid4().hex[:8]}"


class TestComponentRouting:

    def test_entries_are_json_in_component_file(self):
        tag = marker()
        get_logger("workflow").info("workflow_test_entry", component="workflow", tag=tag)

        entries = [e for e in read_entries("workflow.log") if e.get("tag") == tag]
        assert len(entries) == 1
        assert entries[0]["message"] == "workflow_test_entry"
        assert entries[0]["level"] == "INFO"
        assert "timestamp" in entries[0]

    def test_errors_are_copied_to_errors_log(self):
        tag = marker()
        get_smart_logger("storage").error("storage_test_failure", tag=tag)

        assert [e["component"] for e in read_entries("storage.log") if e.get("tag") == tag] == ["storage"]
        assert len([e for e in read_entries("errors.log") if e.get("tag") == tag]) == 1

    def test_unknown_component_goes_to_system_log(self):
        tag = marker()
        get_logger().warning("odd_entry", component="elsewhere", tag=tag)

        assert len([e for e in read_entries("system.log") if e.get("tag") == tag]) == 1


class TestLogOperation:

    def test_correlation_id_is_stamped_and_restored(self):
        tag = marker()
        with log_operation("workflow", "unit_operation", correlation_id=tag) as correlation_id:
            assert correlation_id == tag
            get_logger("workflow").info("inside_operation", component="workflow")

        assert get_correlation_id() is None
        messages = [e["message"] for e in read_entries("workflow.log") if e.get("correlation_id") == tag]
        assert messages == [
            "operation_start_unit_operation",
            "inside_operation",
            "operation_complete_unit_operation",
        ]

    @pytest.mark.asyncio
    async def test_concurrent_operations_keep_their_own_ids(self):
        first, second = marker(), marker()
        seen = {}

        async def operate(tag):
            with log_operation("workflow", "concurrent_operation", correlation_id=tag):
                await asyncio.sleep(0)
                seen[tag] = get_correlation_id()
                get_logger("workflow").info("inside_concurrent_operation", component="workflow", tag=tag)

        await asyncio.gather(operate(first), operate(second))

        assert seen == {first: first, second: second}
        for tag in (first, second):
            entries = [e for e in read_entries("workflow.log")
                       if e.get("message") == "inside_concurrent_operation" and e.get("tag") == tag]
            assert [e["correlation_id"] for e in entries] == [tag]

    def test_error_is_logged_and_reraised(self):
        tag = marker()
        with pytest.raises(KeyError):
            with log_operation("workflow", "failing_operation", correlation_id=tag):
                raise KeyError("missing")

        errors = [e for e in read_entries("errors.log") if e.get("correlation_id") == tag]
        assert errors[0]["message"] == "operation_error_failing_operation"
        assert errors[0]["error_type"] == "KeyError"


class TestLogExecution:

    def test_sync_failure_is_logged(self):
        tag = marker()

        @log_execution(component="workflow", operation=tag)
        def explode():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            explode()

        assert [e["message"] for e in read_entries("errors.log") if e.get("operation") == tag] == [
            f"function_error_{tag}"]

    @pytest.mark.asyncio
    async def test_async_function_keeps_its_result(self):
        @log_execution(component="storage")
        async def fetch(value):
            return value * 2

        assert await fetch(21) == 42
