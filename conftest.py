"""
Global pytest configuration and fixtures for workflow tests.

Fixtures are organized by purpose: sample documents, action recording,
runner construction and storage.
"""

import os
import sys
import copy
import tempfile
from pathlib import Path
from typing import Any, Dict, List

import pytest
import pytest_asyncio

# Add the project root to Python path for src imports
sys.path.insert(0, str(Path(__file__).parent))

# Keep test log files out of the working tree
os.environ.setdefault("LOG_DIR", tempfile.mkdtemp(prefix="workflow-test-logs-"))

from src.workflow.actions import ActionRegistry, ActionResult, default_action_registry
from src.workflow.models import StepType, CONTAINER_STEP_TYPES
from src.workflow.runner import WorkflowRunner
from src.utils.storage import AsyncStoreAdapter


# ============================================================================
# Sample Documents
# ============================================================================

ROUTER_DOCUMENT: List[Dict[str, Any]] = [
    {
        "id": "step-route",
        "type": "conditional_paths",
        "name": "Route by category",
        "config": {
            "conditions": [
                {
                    "id": "path-support",
                    "conditions": [
                        {"field": "{{trigger.category}}", "operator": "equals", "value": "support"}
                    ],
                    "pathSteps": [
                        {"id": "step-support-log", "type": "log_event", "name": "Support",
                         "config": {"message": "Support ticket {{trigger.ticketId}}"}}
                    ],
                },
                {
                    "id": "path-billing",
                    "conditions": [
                        {"field": "trigger.category", "operator": "in", "value": "billing, invoices"},
                        {"field": "trigger.amount", "operator": "greater_than", "value": "100"},
                    ],
                    "pathSteps": [
                        {"id": "step-billing-item", "type": "create_work_item", "name": "Billing review",
                         "config": {"title": "Review invoice for {{trigger.customer.name}}"}}
                    ],
                },
            ],
            "defaultPath": {
                "steps": [
                    {"id": "step-default-log", "type": "log_event", "name": "Fallback",
                     "config": {"message": "Unrouted {{trigger.category}}", "level": "warning"}}
                ]
            },
        },
    }
]

LOOP_DOCUMENT: List[Dict[str, Any]] = [
    {
        "id": "step-loop",
        "type": "for_each",
        "name": "Each contact",
        "config": {
            "sourceVariable": "trigger.contacts",
            "childSteps": [
                {"id": "step-follow-up", "type": "create_work_item", "name": "Follow up",
                 "config": {"title": "Follow up: {{currentItem.name}}",
                            "description": "Contact #{{currentIndex}}",
                            "resultVariable": "workItem"}}
            ],
        },
    }
]

NESTED_DOCUMENT: List[Dict[str, Any]] = [
    {
        "id": "step-1",
        "type": "integration_action",
        "name": "Fetch customer",
        "config": {"integrationId": 7, "action": "get_customer",
                   "parameters": {"customerId": "{{trigger.customerId}}"},
                   "resultVariable": "customer"},
    },
    {
        "id": "step-2",
        "type": "for_each",
        "name": "Each service",
        "config": {
            "sourceVariable": "{{customer.services}}",
            "childSteps": [
                {
                    "id": "step-2a",
                    "type": "conditional_paths",
                    "name": "Service status",
                    "config": {
                        "conditions": [
                            {
                                "id": "path-blocked",
                                "conditions": [
                                    {"field": "currentItem.status", "operator": "equals", "value": "blocked"}
                                ],
                                "pathSteps": [
                                    {
                                        "id": "step-2a-i",
                                        "type": "conditional_paths",
                                        "name": "Escalate?",
                                        "config": {
                                            "conditions": [
                                                {
                                                    "id": "path-vip",
                                                    "conditions": [
                                                        {"field": "customer.tier", "operator": "equals",
                                                         "value": "vip"}
                                                    ],
                                                    "pathSteps": [
                                                        {"id": "step-2a-i-x", "type": "splynx_ticket_message",
                                                         "name": "Notify",
                                                         "config": {"ticketId": "{{currentItem.ticketId}}",
                                                                    "message": "Escalated",
                                                                    "isHidden": False}}
                                                    ],
                                                }
                                            ],
                                            "defaultPath": {"steps": []},
                                        },
                                    }
                                ],
                            }
                        ],
                        "defaultPath": {
                            "steps": [
                                {"id": "step-2a-d", "type": "strategy_update", "name": "Count active",
                                 "config": {"type": "key_result", "targetId": 12,
                                            "updateType": "increment", "value": 1}}
                            ]
                        },
                    },
                }
            ],
        },
    },
]


@pytest.fixture
def router_document():
    return copy.deepcopy(ROUTER_DOCUMENT)


@pytest.fixture
def loop_document():
    return copy.deepcopy(LOOP_DOCUMENT)


@pytest.fixture
def nested_document():
    return copy.deepcopy(NESTED_DOCUMENT)


@pytest.fixture
def sales_trigger():
    return {"category": "sales", "ticketId": 991, "amount": 250, "customer": {"name": "Acme"}}


# ============================================================================
# Action Recording
# ============================================================================

class RecordingActions:
    """Registry whose executors record every dispatch.

    ``results`` maps step ids to values the executor should return;
    ``failures`` maps step ids to exceptions it should raise.
    """

    def __init__(self):
        self.calls: List[Dict[str, Any]] = []
        self.results: Dict[str, Any] = {}
        self.failures: Dict[str, Exception] = {}
        self.registry = default_action_registry()
        for step_type in StepType:
            if step_type not in CONTAINER_STEP_TYPES:
                self.registry.register(step_type, self._execute)

    async def _execute(self, step, resolved_config, context):
        self.calls.append({
            "step_id": step.id,
            "config": resolved_config,
            "context": context,
        })
        if step.id in self.failures:
            raise self.failures[step.id]
        return ActionResult(value=self.results.get(step.id, {"stepId": step.id}))

    def step_ids(self) -> List[str]:
        return [call["step_id"] for call in self.calls]

    def configs_for(self, step_id: str) -> List[Dict[str, Any]]:
        return [call["config"] for call in self.calls if call["step_id"] == step_id]


@pytest.fixture
def recording_actions():
    return RecordingActions()


@pytest.fixture
def runner(recording_actions):
    """Runner dispatching every leaf to the recorder"""
    return WorkflowRunner(actions=recording_actions.registry)


@pytest.fixture
def empty_registry():
    return ActionRegistry()


# ============================================================================
# Environment and Storage
# ============================================================================

@pytest.fixture
def mock_env_vars(monkeypatch):
    """Workflow limits set through the environment."""
    env_vars = {
        "WORKFLOW_MAX_ITERATIONS": "5",
        "WORKFLOW_MAX_DEPTH": "4",
        "WORKFLOW_CONTINUE_ON_ITERATION_ERROR": "false",
        "LOG_LEVEL": "DEBUG",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest_asyncio.fixture
async def store_adapter(tmp_path):
    """Async store backed by a throwaway SQLite file."""
    adapter = AsyncStoreAdapter(db_path=str(tmp_path / "workflows.db"), max_workers=1)
    yield adapter
    await adapter.close()


# ============================================================================
# Markers
# ============================================================================

def pytest_collection_modifyitems(config, items):
    """Add markers based on test location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)

        if "slow" in item.name:
            item.add_marker(pytest.mark.slow)
