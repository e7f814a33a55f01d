"""Workflow and run service tests."""

from datetime import timedelta

import pytest

from autoflow.errors import AuthorizationError, NotFoundError, ValidationError
from autoflow.models import WorkflowStatus, utc_now
from autoflow.persistence import LogEntry
from autoflow.persistence.models import RunStatus

DEFINITION = {
    "name": "  Invoice intake  ",
    "description": "",
    "steps": [
        {
            "id": "extract",
            "name": "Extract",
            "type": "ai_process",
            "config": {"prompt": "Extract {{extractedText}}"},
            "nextStepId": "mail",
        },
        {
            "id": "mail",
            "name": "Mail",
            "type": "email",
            "config": {"to": "ops@example.com", "subject": "Invoice"},
        },
    ],
}


@pytest.mark.asyncio
async def test_create_stores_draft_for_owner(runtime):
    workflow = await runtime.workflows.create("alice", {**DEFINITION, "ownerId": "mallory"})

    assert workflow.owner_id == "alice"
    assert workflow.status == WorkflowStatus.DRAFT
    assert workflow.name == "Invoice intake"
    assert workflow.description is None
    assert (await runtime.repository.find_workflow(workflow.id)).name == "Invoice intake"


@pytest.mark.asyncio
async def test_create_assigns_missing_step_ids(runtime):
    steps = [{"name": "Only", "type": "save_data", "config": {"collection": "c"}}]
    workflow = await runtime.workflows.create("alice", {"name": "W", "steps": steps})
    assert workflow.steps[0].id


@pytest.mark.asyncio
async def test_create_reports_field_errors(runtime):
    bad = {
        "name": "W",
        "steps": [
            {"name": "Mail", "type": "email", "config": {"to": "not-an-email", "subject": "s"}}
        ],
    }
    with pytest.raises(ValidationError) as excinfo:
        await runtime.workflows.create("alice", bad)

    assert excinfo.value.message == "Invalid workflow definition"
    assert any("to" in detail["field"] for detail in excinfo.value.details)


@pytest.mark.asyncio
async def test_create_rejects_dangling_links(runtime):
    steps = [dict(DEFINITION["steps"][0])]
    with pytest.raises(ValidationError, match="unknown steps"):
        await runtime.workflows.create("alice", {"name": "W", "steps": steps})


@pytest.mark.asyncio
async def test_create_requires_steps(runtime):
    with pytest.raises(ValidationError):
        await runtime.workflows.create("alice", {"name": "W", "steps": []})


@pytest.mark.asyncio
async def test_get_checks_owner(runtime):
    workflow = await runtime.workflows.create("alice", DEFINITION)

    with pytest.raises(AuthorizationError):
        await runtime.workflows.get(workflow.id, "bob")
    with pytest.raises(NotFoundError):
        await runtime.workflows.get("missing", "alice")


@pytest.mark.asyncio
async def test_update_keeps_protected_fields(runtime):
    workflow = await runtime.workflows.create("alice", DEFINITION)

    updated = await runtime.workflows.update(
        workflow.id,
        "alice",
        {"name": "Renamed", "id": "other", "ownerId": "bob", "createdAt": utc_now()},
    )

    assert updated.id == workflow.id
    assert updated.owner_id == "alice"
    assert updated.created_at == workflow.created_at
    assert updated.name == "Renamed"
    assert updated.updated_at >= workflow.updated_at


@pytest.mark.asyncio
async def test_list_is_scoped_to_owner(runtime):
    mine = await runtime.workflows.create("alice", DEFINITION)
    await runtime.workflows.create("bob", DEFINITION)
    await runtime.workflows.activate(mine.id, "alice")

    assert [w.id for w in await runtime.workflows.list("alice")] == [mine.id]
    assert await runtime.workflows.list("alice", status=WorkflowStatus.PAUSED) == []


@pytest.mark.asyncio
async def test_trigger_requires_active_workflow(runtime):
    workflow = await runtime.workflows.create("alice", DEFINITION)

    with pytest.raises(ValidationError, match="must be active"):
        await runtime.workflows.trigger(workflow.id, "alice", {})

    await runtime.workflows.activate(workflow.id, "alice")
    run_id = await runtime.workflows.trigger(workflow.id, "alice", {"extractedText": "x"})
    run = await runtime.runs.get(run_id, "alice")
    assert run.status == RunStatus.PROCESSING
    assert run.input == {"extractedText": "x"}

    await runtime.workflows.pause(workflow.id, "alice")
    with pytest.raises(ValidationError):
        await runtime.workflows.trigger(workflow.id, "alice", {})


@pytest.mark.asyncio
async def test_delete_rejected_while_runs_active(runtime):
    workflow = await runtime.workflows.create("alice", DEFINITION)
    await runtime.workflows.activate(workflow.id, "alice")
    run_id = await runtime.workflows.trigger(workflow.id, "alice")

    with pytest.raises(ValidationError, match="running executions"):
        await runtime.workflows.delete(workflow.id, "alice")

    await runtime.runs.cancel(run_id, "alice")
    await runtime.workflows.delete(workflow.id, "alice")
    assert await runtime.repository.find_workflow(workflow.id) is None


@pytest.mark.asyncio
async def test_run_queries_check_owner(runtime):
    workflow = await runtime.workflows.create("alice", DEFINITION)
    await runtime.workflows.activate(workflow.id, "alice")
    run_id = await runtime.workflows.trigger(workflow.id, "alice")

    with pytest.raises(AuthorizationError):
        await runtime.runs.get(run_id, "bob")
    with pytest.raises(AuthorizationError):
        await runtime.runs.logs(run_id, "bob")

    logs = await runtime.runs.logs(run_id, "alice")
    assert logs[0].message == "Run created"
    assert await runtime.runs.ai_outputs(run_id, "alice") == []
    assert [r.id for r in await runtime.runs.list("alice")] == [run_id]
    assert await runtime.runs.list("bob") == []


@pytest.mark.asyncio
async def test_cancel_returns_cancelled_run(runtime):
    workflow = await runtime.workflows.create("alice", DEFINITION)
    await runtime.workflows.activate(workflow.id, "alice")
    run_id = await runtime.workflows.trigger(workflow.id, "alice")

    run = await runtime.runs.cancel(run_id, "alice")
    assert run.status == RunStatus.CANCELLED

    with pytest.raises(ValidationError, match="cannot be cancelled"):
        await runtime.runs.cancel(run_id, "alice")


@pytest.mark.asyncio
async def test_retry_starts_new_run_with_same_input(runtime):
    workflow = await runtime.workflows.create("alice", DEFINITION)
    await runtime.workflows.activate(workflow.id, "alice")
    run_id = await runtime.workflows.trigger(workflow.id, "alice", {"extractedText": "x"})
    await runtime.runs.cancel(run_id, "alice")

    retry_id = await runtime.runs.retry(run_id, "alice")

    assert retry_id != run_id
    retried = await runtime.runs.get(retry_id, "alice")
    assert retried.input == {"extractedText": "x"}
    assert retried.workflow_id == workflow.id


@pytest.mark.asyncio
async def test_purge_logs_uses_retention(runtime):
    now = utc_now()
    await runtime.repository.append_log(
        LogEntry(run_id="r1", message="old", timestamp=now - timedelta(days=31))
    )
    await runtime.repository.append_log(LogEntry(run_id="r1", message="new"))

    assert await runtime.runs.purge_logs() == 1
    assert [e.message for e in await runtime.repository.list_logs("r1")] == ["new"]
    assert await runtime.runs.purge_logs(timedelta(seconds=0)) == 1
