"""Workflow exceptions"""

from typing import List, Optional


class WorkflowError(Exception):
    """Base exception for workflow errors"""
    pass


class WorkflowValidationError(WorkflowError):
    """A workflow document or edit violates a structural invariant"""

    def __init__(self, message: str, issues: Optional[List["object"]] = None):
        self.issues = issues or []
        super().__init__(message)


class DuplicateStepIdError(WorkflowValidationError):
    """Two nodes in one tree share an id"""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Duplicate step id in workflow tree: {step_id}")


class StepNotFoundError(WorkflowValidationError):
    """No node with the given id exists in the tree"""

    def __init__(self, step_id: str):
        self.step_id = step_id
        super().__init__(f"Step '{step_id}' not found in workflow")


class InvalidStepPlacementError(WorkflowValidationError):
    """A step list slot does not exist on the target container"""
    pass


class StepExecutionError(WorkflowError):
    """An action executor failed for a specific step"""

    def __init__(self, step_id: str, step_name: str, original_error: Exception):
        self.step_id = step_id
        self.step_name = step_name
        self.original_error = original_error
        super().__init__(
            f"Error executing step {step_id} ({step_name}): {original_error}"
        )


class ActionNotRegisteredError(WorkflowError):
    """No action executor is registered for a leaf step type"""

    def __init__(self, step_type: str):
        self.step_type = step_type
        super().__init__(f"No action executor registered for step type: {step_type}")
