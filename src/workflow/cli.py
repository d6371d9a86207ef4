"""Command line tools for workflow documents.

    python workflow_cli.py validate workflow.json
    python workflow_cli.py preview workflow.json --trigger '{"category": "sales"}'
    python workflow_cli.py run workflow.json --trigger @trigger.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from src.utils.logging import get_smart_logger
from .exceptions import WorkflowError
from .models import WorkflowDefinition
from .runner import RunStatus, StepOutcome, WorkflowRun, WorkflowRunner
from .serialization import load_definition
from .validation import validate_workflow

logger = get_smart_logger("cli")

# ANSI color codes
GREEN = '\033[32m'
YELLOW = '\033[33m'
RED = '\033[31m'
DIM = '\033[2m'
BOLD = '\033[1m'
RESET = '\033[0m'

_OUTCOME_COLORS = {
    StepOutcome.COMPLETED: GREEN,
    StepOutcome.PREVIEWED: DIM,
    StepOutcome.SKIPPED: YELLOW,
    StepOutcome.FAILED: RED,
}


def _read_definition(path: str) -> WorkflowDefinition:
    return load_definition(Path(path).read_text(encoding="utf-8"))


def _parse_trigger(raw: Optional[str]) -> Dict[str, Any]:
    """Trigger payload from inline JSON or ``@file.json``"""
    if not raw:
        return {}
    if raw.startswith("@"):
        raw = Path(raw[1:]).read_text(encoding="utf-8")
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("Trigger payload must be a JSON object")
    return payload


def format_run(run: WorkflowRun) -> List[str]:
    """Indented execution trace, one line per visited step"""
    lines = []
    for record in run.history:
        color = _OUTCOME_COLORS.get(record.outcome, "")
        indent = "  " * record.depth
        details = []
        if record.iteration is not None:
            details.append(f"item {record.iteration}")
        if record.route is not None:
            details.append(f"path={record.route}")
        if record.iterations is not None:
            details.append(f"iterations={record.iterations}")
        if record.error:
            details.append(record.error)
        for issue in record.issues:
            details.append(issue.message)
        suffix = f" {DIM}({'; '.join(details)}){RESET}" if details else ""
        lines.append(f"{indent}{color}{record.outcome.value:<9}{RESET} "
                     f"{record.step_type} {BOLD}{record.step_name or record.step_id}{RESET}{suffix}")

        if record.resolved_config:
            for key, value in record.resolved_config.items():
                if isinstance(value, str) and value:
                    lines.append(f"{indent}            {DIM}{key}: {value}{RESET}")

    if run.unresolved_variables:
        lines.append(f"{YELLOW}Unresolved variables: {', '.join(run.unresolved_variables)}{RESET}")

    status_color = GREEN if run.status == RunStatus.COMPLETED else RED
    lines.append(f"{status_color}Run {run.id}: {run.status.value}{RESET}")
    if run.error:
        lines.append(f"{RED}{run.error}{RESET}")
    return lines


def cmd_validate(args) -> int:
    definition = _read_definition(args.file)
    issues = validate_workflow(definition)
    if not issues:
        print(f"{GREEN}OK{RESET}: {len(definition.step_ids())} steps, no issues")
        return 0

    for issue in issues:
        print(f"{YELLOW}{issue}{RESET}")
    print(f"{RED}{len(issues)} issue(s){RESET}")
    return 1


def _execute(args, dry_run: bool) -> int:
    definition = _read_definition(args.file)
    trigger = _parse_trigger(args.trigger)
    runner = WorkflowRunner()
    run = asyncio.run(runner.run(definition, trigger=trigger, dry_run=dry_run))

    for line in format_run(run):
        print(line)
    return 0 if run.status == RunStatus.COMPLETED else 1


def cmd_preview(args) -> int:
    return _execute(args, dry_run=True)


def cmd_run(args) -> int:
    return _execute(args, dry_run=False)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Workflow document tools")
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Report validation issues")
    validate_parser.add_argument("file", help="Workflow JSON document")
    validate_parser.set_defaults(handler=cmd_validate)

    for name, handler, help_text in (
        ("preview", cmd_preview, "Dry run: resolve templates and routes without dispatching"),
        ("run", cmd_run, "Run with the built-in actions"),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("file", help="Workflow JSON document")
        sub.add_argument("--trigger", help="Trigger payload as JSON text or @file.json")
        sub.set_defaults(handler=handler)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger.info("workflow_cli_command", command=args.command, file=args.file)

    try:
        return args.handler(args)
    except (OSError, ValueError, ValidationError, WorkflowError) as e:
        logger.error("workflow_cli_failed", command=args.command, error=str(e),
                     error_type=type(e).__name__)
        print(f"{RED}Error:{RESET} {e}", file=sys.stderr)
        return 2
