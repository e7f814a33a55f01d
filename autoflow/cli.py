"""Command line interface for autoflow workers and workflows."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import timedelta
from pathlib import Path
from typing import Any, Awaitable, List, Optional, TypeVar

import typer
import yaml

from .config import load_config
from .errors import AutoflowError
from .models import WorkflowStatus
from .persistence.models import RunStatus
from .runtime import QUEUE_ALIASES, get_runtime
from .transports import InMemoryTransport

T = TypeVar("T")

app = typer.Typer(help="CLI for autoflow workflows")

worker_app = typer.Typer(help="Commands for running queue workers")
workflow_app = typer.Typer(help="Commands for managing workflows")
run_app = typer.Typer(help="Commands for inspecting runs")
logs_app = typer.Typer(help="Commands for run log maintenance")

app.add_typer(worker_app, name="worker")
app.add_typer(workflow_app, name="workflow")
app.add_typer(run_app, name="run")
app.add_typer(logs_app, name="logs")


@app.callback()
def main() -> None:
    """Autoflow CLI entry point."""
    logging.basicConfig(
        level=load_config().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _run(coro: Awaitable[T]) -> T:
    """Run a coroutine and turn autoflow errors into a red message and exit 1."""
    try:
        return asyncio.run(coro)
    except AutoflowError as e:
        typer.secho(str(e), fg=typer.colors.RED)
        if e.details:
            typer.secho(json.dumps(e.details, indent=2, default=str), fg=typer.colors.RED)
        raise typer.Exit(code=1)


def _parse_json(value: Optional[str], option: str) -> Any:
    if not value:
        return {}
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        typer.secho(f"{option} is not valid JSON: {e}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@worker_app.command("start")
def worker_start(
    queue: Optional[List[str]] = typer.Option(
        None, help="Queue to consume (document, ai, action); repeat for several. Default: all"
    ),
    lifespan: Optional[float] = None,
) -> None:
    """
    Run queue workers in this process.

    Example:
        autoflow worker start
        autoflow worker start --queue ai --queue action --lifespan 300
    """
    unknown = [q for q in queue or [] if q not in QUEUE_ALIASES]
    if unknown:
        typer.secho(f"Unknown queue: {', '.join(unknown)}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    runtime = get_runtime()
    names = [QUEUE_ALIASES[q] for q in queue] if queue else None
    typer.echo(f"Starting workers: {', '.join(names or QUEUE_ALIASES.values())}")
    asyncio.run(runtime.run_workers(names, lifespan=lifespan))


@workflow_app.command("create")
def workflow_create(
    path: Path,
    owner: str = typer.Option(..., help="Owner id of the new workflow"),
) -> None:
    """
    Create a workflow from a YAML or JSON definition file.

    Example:
        autoflow workflow create ./invoice.yaml --owner alice
    """
    if not path.exists():
        typer.secho("Specified path does not exist", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    with open(path) as f:
        data = yaml.safe_load(f) or {}

    workflow = _run(get_runtime().workflows.create(owner, data))
    typer.echo(f"Workflow created: {workflow.id}")
    for step in workflow.steps:
        typer.echo(f"- {step.id}\t{step.type}\t{step.name}")


@workflow_app.command("list")
def workflow_list(
    owner: Optional[str] = None,
    status: Optional[WorkflowStatus] = None,
) -> None:
    """List workflows with their status."""
    repo = get_runtime().repository
    workflows = _run(repo.list_workflows(owner_id=owner, status=status))
    if not workflows:
        typer.echo("No workflows found")
        return
    for wf in workflows:
        typer.echo(f"{wf.id}\t{wf.status.value}\t{wf.name}")


@workflow_app.command("activate")
def workflow_activate(
    workflow_id: str,
    owner: str = typer.Option(..., help="Owner id of the workflow"),
) -> None:
    """Mark a workflow as active so it can be triggered."""
    workflow = _run(get_runtime().workflows.activate(workflow_id, owner))
    typer.echo(f"Workflow {workflow.id}: {workflow.status.value}")


@workflow_app.command("trigger")
def workflow_trigger(
    workflow_id: str,
    owner: str = typer.Option(..., help="Owner id of the workflow"),
    input: Optional[str] = typer.Option(None, "--input", help="Run input as JSON"),
) -> None:
    """
    Start a run of an active workflow.

    Example:
        autoflow workflow trigger <id> --owner alice --input '{"name": "Ada"}'
    """
    run_input = _parse_json(input, "--input")
    runtime = get_runtime()
    run_id = _run(runtime.workflows.trigger(workflow_id, owner, run_input))
    typer.echo(f"Run created: {run_id}")
    if isinstance(runtime.transport, InMemoryTransport):
        typer.secho(
            "Warning: the inmemory transport keeps jobs in this process only; "
            "they are lost when it exits and the run will stay processing. "
            "Configure the redis transport to hand runs to workers.",
            fg=typer.colors.YELLOW,
        )
    else:
        typer.echo("Start workers with: autoflow worker start")


@run_app.command("list")
def run_list(
    owner: Optional[str] = None,
    workflow: Optional[str] = None,
    status: Optional[RunStatus] = None,
) -> None:
    """List runs, newest first."""
    repo = get_runtime().repository
    runs = _run(repo.list_runs(owner_id=owner, workflow_id=workflow, status=status))
    if not runs:
        typer.echo("No runs found")
        return
    for run in runs:
        typer.echo(f"{run.id}\t{run.workflow_id}\t{run.status.value}\t{run.started_at}")


@run_app.command("show")
def run_show(run_id: str) -> None:
    """Show status, output and the log stream of a run."""
    repo = get_runtime().repository
    run = _run(repo.find_run(run_id))
    if run is None:
        typer.echo("Run not found")
        raise typer.Exit(code=1)

    typer.echo(f"Run {run.id}: {run.status.value}")
    typer.echo(f"Workflow: {run.workflow_id}")
    if run.current_step_id:
        typer.echo(f"Current step: {run.current_step_id}")
    if run.error:
        typer.echo(f"Error: {run.error}")
    if run.output:
        typer.echo(f"Output: {json.dumps(run.output, indent=2, default=str)}")

    logs = _run(repo.list_logs(run_id))
    for entry in logs:
        typer.echo(f"[{entry.timestamp}] {entry.level.value.upper()} {entry.message}")


@run_app.command("cancel")
def run_cancel(
    run_id: str,
    owner: str = typer.Option(..., help="Owner id of the run"),
) -> None:
    """Cancel a pending or processing run."""
    run = _run(get_runtime().runs.cancel(run_id, owner))
    typer.echo(f"Run {run.id}: {run.status.value}")


@logs_app.command("purge")
def logs_purge(days: int = typer.Option(30, help="Keep entries newer than this")) -> None:
    """Delete run log entries older than the retention window."""
    removed = _run(get_runtime().runs.purge_logs(timedelta(days=days)))
    typer.echo(f"Purged {removed} log entries")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
