"""
Workflow Engine CLI.

Provides commands for:
- Running a workflow file against canned handler responses
- Validating a workflow before it is run
- Finding where a failed run should resume
"""

from __future__ import annotations

import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, Optional

import click

from workflow_engine.events import (
    EVENT_STEP_COMPLETE,
    EVENT_STEP_ERROR,
    EVENT_STEP_START,
    WorkflowEventBus,
    create_run_emitter,
)
from workflow_engine.executor import (
    WorkflowExecutor,
    can_resume_workflow,
    get_resume_node_id,
    parse_mode,
)
from workflow_engine.errors import WorkflowError
from workflow_engine.models import WorkflowRun, parse_workflow
from workflow_engine.observability import setup_logging
from workflow_engine.validation import validate_workflow


class CannedHandlers:
    """
    ExecutionHandlers that answer from a JSON file instead of a wallet or
    script runner. Useful for dry runs and demos.

    File shape:
        {
          "transactions": {"tx-1": {"success": true, "txHash": "0xabc"}},
          "scripts": {"deploy": {"success": true, "output": "ok"}},
          "adapters": {"postgres.query": {"success": true, "data": []}}
        }

    Adapter responses are looked up by ``adapter_id.operation`` first, then by
    ``adapter_id``. Anything without a canned response fails.
    """

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        responses = responses or {}
        self.transactions: Dict[str, Any] = responses.get("transactions", {})
        self.scripts: Dict[str, Any] = responses.get("scripts", {})
        self.adapters: Dict[str, Any] = responses.get("adapters", {})

    @classmethod
    def from_file(cls, path: str | Path) -> "CannedHandlers":
        with open(path) as f:
            return cls(json.load(f))

    def execute_transaction(self, transaction_id, wallet_id, args):
        return self.transactions.get(
            transaction_id,
            {"success": False, "error": f"No canned response for transaction {transaction_id}"},
        )

    def execute_script(self, script_id, flags=None, env_var_keys=None):
        return self.scripts.get(
            script_id,
            {"success": False, "error": f"No canned response for script {script_id}"},
        )

    def execute_adapter(self, adapter_id, operation, config, input):
        for key in (f"{adapter_id}.{operation}", adapter_id):
            if key in self.adapters:
                return self.adapters[key]
        return {"success": False, "error": f"No canned response for adapter {adapter_id}.{operation}"}


def _load_json(path: str) -> Any:
    with open(path) as f:
        return json.load(f)


def _load_workflow(path: str):
    data = _load_json(path)
    # Stored workflows wrap the graph under "definition"
    if isinstance(data, dict) and "definition" in data and "nodes" not in data:
        data = data["definition"]
    return parse_workflow(data)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
@click.option("-q", "--quiet", is_flag=True, help="Suppress output")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, quiet: bool):
    """Workflow Engine - run and inspect blockchain automation workflows."""
    ctx.ensure_object(dict)
    setup_logging()

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    elif quiet:
        logging.getLogger().setLevel(logging.ERROR)

    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet


@cli.command("run")
@click.argument("workflow_file", type=click.Path(exists=True))
@click.option(
    "--mode", "-m",
    type=click.Choice(["full", "single", "upto", "resume"]),
    default="full",
    show_default=True,
    help="Execution mode",
)
@click.option(
    "--node", "-n",
    help="Target node for single/upto, start node for resume",
)
@click.option(
    "--vars",
    "vars_file",
    type=click.Path(exists=True),
    help="JSON file with initial variables (resume variables in resume mode)",
)
@click.option(
    "--handlers",
    "handlers_file",
    type=click.Path(exists=True),
    help="JSON file with canned handler responses",
)
@click.option("--workflow-id", default=None, help="Workflow ID recorded on the run")
@click.option(
    "--output", "-o",
    type=click.Path(),
    help="Path to write the run JSON",
)
@click.option("--events", is_flag=True, help="Print step events as they happen")
@click.pass_context
def run_command(
    ctx: click.Context,
    workflow_file: str,
    mode: str,
    node: Optional[str],
    vars_file: Optional[str],
    handlers_file: Optional[str],
    workflow_id: Optional[str],
    output: Optional[str],
    events: bool,
):
    """
    Execute a workflow from a JSON file.

    WORKFLOW_FILE: Path to workflow JSON

    Examples:

        # Run the whole workflow with canned responses
        workflow-engine run ./mint.json --handlers responses.json

        # Run up to a node and keep the run record
        workflow-engine run ./mint.json -m upto -n n2 -o run.json

        # Resume after fixing a failure
        workflow-engine run ./mint.json -m resume -n n3 --vars run-vars.json
    """
    if mode != "full" and not node:
        click.echo(f"Error: --node is required for {mode} mode", err=True)
        sys.exit(2)

    try:
        definition = _load_workflow(workflow_file)
    except Exception as e:
        click.echo(f"Error loading workflow: {e}", err=True)
        sys.exit(1)

    variables = _load_json(vars_file) if vars_file else {}
    handlers = CannedHandlers.from_file(handlers_file) if handlers_file else CannedHandlers()

    if mode == "full":
        mode_data: Dict[str, Any] = {"type": "full"}
        initial_variables = variables
    elif mode == "resume":
        mode_data = {"type": "resume", "fromNodeId": node, "variables": variables}
        initial_variables = {}
    else:
        mode_data = {"type": mode, "nodeId": node}
        initial_variables = variables

    workflow_id = workflow_id or Path(workflow_file).stem
    run_id = str(uuid.uuid4())
    emitter = None
    if events:
        bus = WorkflowEventBus()
        bus.on(EVENT_STEP_START, lambda _run, node_id, label, node_type: click.echo(f"  > {label} ({node_type})"))
        bus.on(EVENT_STEP_COMPLETE, lambda _run, node_id, out: click.echo(f"  ✓ {node_id}"))
        bus.on(EVENT_STEP_ERROR, lambda _run, node_id, error: click.echo(f"  ✗ {node_id}: {error}"))
        emitter = create_run_emitter(run_id, bus)

    if not ctx.obj.get("quiet"):
        click.echo(f"Executing workflow: {workflow_id} ({mode})")
        click.echo(f"Nodes: {len(definition.nodes)}")

    executor = WorkflowExecutor(handlers=handlers)
    run = executor.execute(
        definition,
        parse_mode(mode_data),
        workflow_id=workflow_id,
        run_id=run_id,
        initial_variables=initial_variables,
        emitter=emitter,
    )

    click.echo(f"\nStatus: {run.status.value}")
    for log in run.step_logs:
        status_icon = "✓" if log.status.value == "completed" else "✗"
        click.echo(f"  {status_icon} {log.node_name or log.node_id}: {log.status.value}")
    if run.error:
        click.echo(f"Error: {run.error}")

    if output:
        with open(output, "w") as f:
            json.dump(run.to_json_dict(), f, indent=2)
        click.echo(f"\nRun saved to: {output}")
    elif ctx.obj.get("verbose"):
        click.echo("\nVariables:")
        click.echo(json.dumps(run.variables, indent=2, default=str))

    sys.exit(0 if run.is_success else 1)


@cli.command("validate")
@click.argument("workflow_file", type=click.Path(exists=True))
@click.option(
    "--required-args",
    type=click.Path(exists=True),
    help="JSON file mapping transaction ids to required argument names",
)
def validate_command(workflow_file: str, required_args: Optional[str]):
    """
    Check a workflow for problems before running it.

    WORKFLOW_FILE: Path to workflow JSON
    """
    try:
        definition = _load_workflow(workflow_file)
    except Exception as e:
        click.echo(f"Error loading workflow: {e}", err=True)
        sys.exit(1)

    issues = validate_workflow(
        definition,
        required_args=_load_json(required_args) if required_args else None,
    )
    if not issues:
        click.echo("✓ Workflow is valid")
        return

    click.echo(f"✗ {len(issues)} issue(s) found:")
    for issue in issues:
        click.echo(f"  [{issue.code}] {issue.message}")
    sys.exit(1)


@cli.command("resume-point")
@click.argument("run_file", type=click.Path(exists=True))
@click.argument("workflow_file", type=click.Path(exists=True))
def resume_point_command(run_file: str, workflow_file: str):
    """
    Print the node a stored run should resume from.

    RUN_FILE: Path to run JSON (as written by ``run --output``)
    WORKFLOW_FILE: Path to workflow JSON
    """
    try:
        run = WorkflowRun.model_validate(_load_json(run_file))
        definition = _load_workflow(workflow_file)
    except (OSError, ValueError, WorkflowError) as e:
        click.echo(f"Error loading files: {e}", err=True)
        sys.exit(1)

    if not can_resume_workflow(run):
        click.echo(f"Run {run.id} is {run.status.value} and cannot be resumed", err=True)
        sys.exit(1)

    node_id = get_resume_node_id(run, definition)
    if node_id is None:
        click.echo("No resume point found", err=True)
        sys.exit(1)
    click.echo(node_id)


# Alias for compatibility
app = cli


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
