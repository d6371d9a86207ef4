"""Sequential workflow runner.

Walks the step tree depth-first, strictly in order. Containers run their
nested steps in a child variable frame that is dropped when they finish, so
nothing a branch or an iteration binds is visible to its siblings. Leaf steps
are rendered against the current context and handed to the executor
registered for their type.
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from src.utils.config import STEP_OUTPUT_TEMPLATE, TRIGGER_SCOPE
from src.utils.logging import get_logger, log_operation
from .actions import ActionRegistry, ActionResult, default_action_registry
from .conditions import select_path
from .config import workflow_defaults
from .exceptions import ActionNotRegisteredError, StepExecutionError
from .iterator import expand
from .models import (
    ConditionalPathsConfig, ForEachConfig, StepType, WorkflowDefinition, WorkflowStep,
    get_config_model
)
from .serialization import DocumentSource, load_definition
from .validation import ValidationIssue, validate_step
from .variables import VariableContext, resolve_value

logger = get_logger("workflow")

PATH_RESULTS_VARIABLE = "pathResults"
LAST_OUTPUT_VARIABLE = "lastOutput"


def _outputs_of(context: VariableContext) -> Dict[str, Any]:
    return {k: v for k, v in context.flatten().items() if k != TRIGGER_SCOPE}


class RunStatus(str, Enum):
    """Workflow run states"""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class StepOutcome(str, Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"      # Failed local validation
    FAILED = "failed"
    PREVIEWED = "previewed"  # Dry run, not dispatched


class StepRecord(BaseModel):
    """History entry for one visited step"""
    step_id: str
    step_name: str
    step_type: str
    depth: int = 0
    outcome: StepOutcome = StepOutcome.COMPLETED
    iteration: Optional[int] = None
    route: Optional[str] = None
    iterations: Optional[int] = None
    resolved_config: Optional[Dict[str, Any]] = None
    result: Any = None
    error: Optional[str] = None
    issues: List[ValidationIssue] = []
    timestamp: datetime = Field(default_factory=datetime.now)
    duration_ms: int = 0


class WorkflowRun(BaseModel):
    """One execution of a workflow definition"""
    id: str
    status: RunStatus = RunStatus.RUNNING
    dry_run: bool = False
    workflow_id: Optional[str] = None
    trigger: Dict[str, Any] = {}
    history: List[StepRecord] = []
    unresolved_variables: List[str] = []
    issues: List[ValidationIssue] = []
    outputs: Dict[str, Any] = {}
    error: Optional[str] = None
    failed_step_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    def records_for(self, step_id: str) -> List[StepRecord]:
        return [record for record in self.history if record.step_id == step_id]

    def note_unresolved(self, names: List[str]):
        for name in names:
            if name not in self.unresolved_variables:
                self.unresolved_variables.append(name)


class WorkflowRunner:
    """Runs a definition against a trigger payload"""

    def __init__(self, actions: Optional[ActionRegistry] = None,
                 max_iterations: Optional[int] = None,
                 max_depth: Optional[int] = None,
                 continue_on_iteration_error: Optional[bool] = None):
        defaults = workflow_defaults()
        self.actions = actions if actions is not None else default_action_registry()
        self.max_iterations = max_iterations if max_iterations is not None \
            else defaults["max_iterations"]
        self.max_depth = max_depth if max_depth is not None else defaults["max_depth"]
        self.continue_on_iteration_error = continue_on_iteration_error \
            if continue_on_iteration_error is not None else defaults["continue_on_iteration_error"]

    async def run(self, definition: DocumentSource,
                  trigger: Optional[Dict[str, Any]] = None,
                  variables: Optional[Dict[str, Any]] = None,
                  dry_run: bool = False,
                  workflow_id: Optional[str] = None,
                  run_id: Optional[str] = None) -> WorkflowRun:
        """Execute ``definition`` and return the run record.

        Executor failures outside loops end the run with FAILED status; they
        are not raised to the caller.
        """
        definition = load_definition(definition)
        run = WorkflowRun(
            id=run_id or f"run-{uuid.uuid4().hex[:12]}",
            dry_run=dry_run,
            workflow_id=workflow_id,
            trigger=dict(trigger or {}),
        )
        context = VariableContext.for_trigger(trigger, **(variables or {}))
        run.outputs = _outputs_of(context)

        logger.info("workflow_run_started",
                    component="workflow",
                    run_id=run.id,
                    workflow_id=workflow_id,
                    root_steps=len(definition.steps),
                    dry_run=dry_run)

        with log_operation("workflow", "workflow_run", correlation_id=run.id):
            try:
                await self._run_steps(definition.steps, context, run, depth=0, root=True)
                run.status = RunStatus.COMPLETED
            except StepExecutionError as e:
                run.status = RunStatus.FAILED
                run.error = str(e)
                run.failed_step_id = e.step_id
                logger.error("workflow_run_failed",
                             component="workflow",
                             run_id=run.id,
                             step_id=e.step_id,
                             error=str(e.original_error),
                             error_type=type(e.original_error).__name__)
            finally:
                run.completed_at = datetime.now()

        logger.info("workflow_run_finished",
                    component="workflow",
                    run_id=run.id,
                    status=run.status.value,
                    steps_visited=len(run.history),
                    unresolved_variables=run.unresolved_variables,
                    duration=(run.completed_at - run.created_at).total_seconds())
        return run

    async def preview(self, definition: DocumentSource,
                      trigger: Optional[Dict[str, Any]] = None,
                      variables: Optional[Dict[str, Any]] = None) -> WorkflowRun:
        """Dry run: render and route without dispatching any action"""
        return await self.run(definition, trigger=trigger, variables=variables, dry_run=True)

    async def _run_steps(self, steps: List[WorkflowStep], context: VariableContext,
                         run: WorkflowRun, depth: int, root: bool = False,
                         iteration: Optional[int] = None,
                         path_results: Optional[List[Any]] = None) -> VariableContext:
        """Run a sibling list in order, threading bindings forward"""
        for index, step in enumerate(steps):
            context, output, _record = await self._run_step(step, context, run, depth, iteration)
            if output is not None:
                if root:
                    context = context.with_binding(STEP_OUTPUT_TEMPLATE.format(index=index + 1), output)
                if path_results is not None:
                    path_results.append(output)
                    context = context.with_binding(PATH_RESULTS_VARIABLE, list(path_results))
                    context = context.with_binding(LAST_OUTPUT_VARIABLE, output)
            if root:
                # Kept current so a failed run still reports what completed
                run.outputs = _outputs_of(context)
        return context

    async def _run_step(self, step: WorkflowStep, context: VariableContext, run: WorkflowRun,
                        depth: int, iteration: Optional[int]
                        ) -> Tuple[VariableContext, Any, StepRecord]:
        record = StepRecord(
            step_id=step.id,
            step_name=step.name,
            step_type=step.type.value,
            depth=depth,
            iteration=iteration,
        )
        run.history.append(record)

        issues = validate_step(step, depth=depth, max_depth=self.max_depth)
        if issues:
            record.outcome = StepOutcome.SKIPPED
            record.issues = issues
            run.issues.extend(issues)
            logger.warning("workflow_step_skipped_invalid",
                           component="workflow",
                           run_id=run.id,
                           step_id=step.id,
                           issues=[issue.code for issue in issues])
            return context, None, record

        logger.info("workflow_step_start",
                    component="workflow",
                    run_id=run.id,
                    step_id=step.id,
                    step_type=step.type.value,
                    step_name=step.name,
                    depth=depth)

        start_time = datetime.now()
        try:
            if isinstance(step.config, ConditionalPathsConfig):
                output = await self._run_router(step, step.config, context, run, depth, iteration, record)
            elif isinstance(step.config, ForEachConfig):
                output = await self._run_for_each(step, step.config, context, run, depth, record)
            else:
                context, output = await self._run_action(step, context, run, record)
        except StepExecutionError as e:
            record.outcome = StepOutcome.FAILED
            record.error = str(e.original_error) if e.step_id == step.id else str(e)
            raise
        finally:
            record.duration_ms = int((datetime.now() - start_time).total_seconds() * 1000)

        if record.outcome == StepOutcome.COMPLETED:
            record.result = output

        logger.info("workflow_step_completed",
                    component="workflow",
                    run_id=run.id,
                    step_id=step.id,
                    outcome=record.outcome.value,
                    duration_ms=record.duration_ms)
        return context, output, record

    async def _run_action(self, step: WorkflowStep, context: VariableContext, run: WorkflowRun,
                          record: StepRecord) -> Tuple[VariableContext, Any]:
        unresolved: List[str] = []
        document = step.config.model_dump(by_alias=True, mode="json")
        resolved_config = resolve_value(document, context, unresolved)
        run.note_unresolved(unresolved)

        if unresolved:
            logger.warning("workflow_step_unresolved_variables",
                           component="workflow",
                           run_id=run.id,
                           step_id=step.id,
                           unresolved=unresolved)

        try:
            get_config_model(step.type).model_validate(resolved_config)
        except ValidationError as e:
            raise StepExecutionError(step.id, step.name, e) from e

        if run.dry_run:
            record.outcome = StepOutcome.PREVIEWED
            record.resolved_config = resolved_config
            return context, None

        try:
            executor = self.actions.get(step.type)
            result = await executor(step, resolved_config, context)
        except ActionNotRegisteredError as e:
            raise StepExecutionError(step.id, step.name, e) from e
        except Exception as e:
            logger.error("workflow_action_failed",
                         component="workflow",
                         run_id=run.id,
                         step_id=step.id,
                         step_type=step.type.value,
                         error=str(e),
                         error_type=type(e).__name__)
            raise StepExecutionError(step.id, step.name, e) from e

        if not isinstance(result, ActionResult):
            result = ActionResult(value=result)

        result_variable = result.result_variable or resolved_config.get("resultVariable")
        if result_variable:
            context = context.with_binding(result_variable, result.value)
            logger.debug("workflow_result_bound",
                         component="workflow",
                         run_id=run.id,
                         step_id=step.id,
                         result_variable=result_variable)
        return context, result.value

    async def _run_router(self, step: WorkflowStep, config: ConditionalPathsConfig,
                          context: VariableContext, run: WorkflowRun, depth: int,
                          iteration: Optional[int], record: StepRecord) -> Dict[str, Any]:
        decision = select_path(config, context)
        record.route = decision.label

        logger.info("workflow_route_selected",
                    component="workflow",
                    run_id=run.id,
                    step_id=step.id,
                    path=decision.label,
                    step_count=len(decision.steps))

        # Nested routers keep appending to the results they inherit
        inherited = context.get(PATH_RESULTS_VARIABLE)
        path_results = list(inherited) if isinstance(inherited, list) else []
        child = context.child(**{PATH_RESULTS_VARIABLE: list(path_results)})

        await self._run_steps(decision.steps, child, run, depth + 1,
                              iteration=iteration, path_results=path_results)
        return {
            "matchedPath": decision.path_id,
            "defaultPathExecuted": decision.is_default,
            "pathResults": path_results,
        }

    async def _run_for_each(self, step: WorkflowStep, config: ForEachConfig,
                            context: VariableContext, run: WorkflowRun, depth: int,
                            record: StepRecord) -> Dict[str, Any]:
        processed = 0
        success_count = 0
        errors: List[Dict[str, Any]] = []
        results: List[Dict[str, Any]] = []

        for index, item_context in enumerate(expand(config, context, self.max_iterations)):
            processed += 1
            # A failing child does not stop its later siblings
            for child in config.child_steps:
                try:
                    item_context, output, child_record = await self._run_step(
                        child, item_context, run, depth + 1, index)
                except StepExecutionError as e:
                    if not self.continue_on_iteration_error:
                        raise
                    error = str(e.original_error)
                    errors.append({"itemIndex": index, "stepId": e.step_id, "error": error})
                    results.append({"itemIndex": index, "stepId": child.id,
                                    "stepName": child.name, "error": error})
                    logger.warning("workflow_for_each_iteration_failed",
                                   component="workflow",
                                   run_id=run.id,
                                   step_id=step.id,
                                   iteration=index,
                                   failed_step_id=e.step_id,
                                   error=error)
                    continue

                if child_record.outcome in (StepOutcome.COMPLETED, StepOutcome.PREVIEWED):
                    success_count += 1
                    results.append({"itemIndex": index, "stepId": child.id,
                                    "stepName": child.name,
                                    "outcome": child_record.outcome.value, "result": output})

        record.iterations = processed
        logger.info("workflow_for_each_complete",
                    component="workflow",
                    run_id=run.id,
                    step_id=step.id,
                    iterations_completed=processed,
                    success_count=success_count,
                    error_count=len(errors))
        return {
            "itemsProcessed": processed,
            "successCount": success_count,
            "errorCount": len(errors),
            "errors": errors,
            "results": results,
        }
