"""
Central constants for the workflow system.

Single source of truth for scope names, storage namespaces and
other repeated values.
"""

# Variable scope names
TRIGGER_SCOPE = "trigger"
CURRENT_ITEM_SCOPE = "currentItem"
CURRENT_INDEX_SCOPE = "currentIndex"
STEP_OUTPUT_TEMPLATE = "step{index}Output"

# Names that are never part of the flat result-variable namespace
RESERVED_SCOPE_NAMES = frozenset({TRIGGER_SCOPE, CURRENT_ITEM_SCOPE, CURRENT_INDEX_SCOPE})

# Storage namespaces
WORKFLOW_DEFINITION_NAMESPACE = ("workflow", "definitions")
WORKFLOW_RUN_NAMESPACE = ("workflow", "runs")

# Strategy update targets
STRATEGY_TARGET_KEY_RESULT = "key_result"
STRATEGY_TARGET_OBJECTIVE = "objective"
