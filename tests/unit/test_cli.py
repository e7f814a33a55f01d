import asyncio

import pytest
from typer.testing import CliRunner

import autoflow.runtime as runtime_module
from autoflow.cli import app
from autoflow.persistence import LogEntry

WORKFLOW_YAML = """
name: Invoice intake
steps:
  - id: extract
    name: Extract
    type: ai_process
    config:
      prompt: "Extract {{extractedText}}"
    nextStepId: mail
  - id: mail
    name: Mail
    type: email
    config:
      to: ops@example.com
      subject: Invoice
"""


@pytest.fixture
def cli_runtime(runtime, monkeypatch):
    monkeypatch.setattr(runtime_module, "_runtime_instance", runtime)
    return runtime


def _create(runner, tmp_path) -> str:
    path = tmp_path / "workflow.yaml"
    path.write_text(WORKFLOW_YAML)
    result = runner.invoke(app, ["workflow", "create", str(path), "--owner", "alice"])
    assert result.exit_code == 0, result.output
    first_line = result.output.splitlines()[0]
    assert first_line.startswith("Workflow created: ")
    return first_line.split(": ", 1)[1]


def test_workflow_create_and_list(cli_runtime, tmp_path):
    runner = CliRunner()
    workflow_id = _create(runner, tmp_path)

    result = runner.invoke(app, ["workflow", "list", "--owner", "alice"])
    assert result.exit_code == 0, result.output
    assert f"{workflow_id}\tdraft\tInvoice intake" in result.output

    result = runner.invoke(app, ["workflow", "list", "--owner", "bob"])
    assert "No workflows found" in result.output


def test_workflow_create_invalid_definition(cli_runtime, tmp_path):
    path = tmp_path / "bad.yaml"
    path.write_text("name: Broken\nsteps: []\n")

    result = CliRunner().invoke(app, ["workflow", "create", str(path), "--owner", "alice"])
    assert result.exit_code == 1
    assert "Invalid workflow definition" in result.output


def test_workflow_create_missing_file(cli_runtime, tmp_path):
    result = CliRunner().invoke(
        app, ["workflow", "create", str(tmp_path / "nope.yaml"), "--owner", "alice"]
    )
    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_trigger_and_show_run(cli_runtime, tmp_path):
    runner = CliRunner()
    workflow_id = _create(runner, tmp_path)

    result = runner.invoke(app, ["workflow", "trigger", workflow_id, "--owner", "alice"])
    assert result.exit_code == 1
    assert "must be active" in result.output

    result = runner.invoke(app, ["workflow", "activate", workflow_id, "--owner", "alice"])
    assert result.exit_code == 0, result.output
    assert "active" in result.output

    result = runner.invoke(
        app,
        [
            "workflow",
            "trigger",
            workflow_id,
            "--owner",
            "alice",
            "--input",
            '{"extractedText": "Total 42"}',
        ],
    )
    assert result.exit_code == 0, result.output
    run_id = result.output.splitlines()[0].split(": ", 1)[1]
    assert "inmemory transport keeps jobs in this process only" in result.output

    result = runner.invoke(app, ["run", "show", run_id])
    assert result.exit_code == 0, result.output
    assert f"Run {run_id}: processing" in result.output
    assert "Current step: extract" in result.output
    assert "INFO Run created" in result.output

    result = runner.invoke(app, ["run", "list", "--owner", "alice"])
    assert run_id in result.output


def test_trigger_rejects_bad_json(cli_runtime, tmp_path):
    runner = CliRunner()
    workflow_id = _create(runner, tmp_path)
    result = runner.invoke(
        app, ["workflow", "trigger", workflow_id, "--owner", "alice", "--input", "{oops"]
    )
    assert result.exit_code == 1
    assert "--input is not valid JSON" in result.output


def test_run_show_missing(cli_runtime):
    result = CliRunner().invoke(app, ["run", "show", "missing"])
    assert result.exit_code == 1
    assert "Run not found" in result.output


def test_run_cancel(cli_runtime, tmp_path):
    runner = CliRunner()
    workflow_id = _create(runner, tmp_path)
    runner.invoke(app, ["workflow", "activate", workflow_id, "--owner", "alice"])
    result = runner.invoke(app, ["workflow", "trigger", workflow_id, "--owner", "alice"])
    run_id = result.output.splitlines()[0].split(": ", 1)[1]

    result = runner.invoke(app, ["run", "cancel", run_id, "--owner", "bob"])
    assert result.exit_code == 1

    result = runner.invoke(app, ["run", "cancel", run_id, "--owner", "alice"])
    assert result.exit_code == 0, result.output
    assert f"Run {run_id}: cancelled" in result.output


def test_logs_purge(cli_runtime):
    asyncio.run(cli_runtime.repository.append_log(LogEntry(run_id="r1", message="fresh")))

    result = CliRunner().invoke(app, ["logs", "purge", "--days", "30"])
    assert result.exit_code == 0, result.output
    assert "Purged 0 log entries" in result.output


def test_worker_start_rejects_unknown_queue(cli_runtime):
    result = CliRunner().invoke(app, ["worker", "start", "--queue", "email"])
    assert result.exit_code == 1
    assert "Unknown queue: email" in result.output
