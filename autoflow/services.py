"""Workflow and run services used by the CLI and other front ends."""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any, Dict, List, Mapping, Optional

import pydantic

from .constants import LOG_RETENTION, MAX_LOGS_PER_RUN
from .errors import AuthorizationError, NotFoundError, ValidationError
from .graph import validate_links
from .models import Workflow, WorkflowStatus, utc_now
from .orchestrator import RunOrchestrator
from .persistence import WorkflowRepository
from .persistence.models import AIOutput, LogEntry, Run, RunStatus

logger = logging.getLogger(__name__)

# Fields callers may not change through ``update``.
_PROTECTED_FIELDS = ("id", "ownerId", "createdAt")


def _build_workflow(data: Mapping[str, Any]) -> Workflow:
    try:
        workflow = Workflow.model_validate(dict(data))
    except pydantic.ValidationError as e:
        raise ValidationError(
            "Invalid workflow definition",
            details=[
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ],
        ) from e
    validate_links(workflow.steps)
    return workflow


class WorkflowService:
    """CRUD and triggering for workflow definitions, scoped to an owner."""

    def __init__(self, repository: WorkflowRepository, orchestrator: RunOrchestrator) -> None:
        self._repository = repository
        self._orchestrator = orchestrator

    async def create(self, owner_id: str, data: Mapping[str, Any]) -> Workflow:
        """Validate and store a new workflow in ``draft`` status.

        Steps without an ``id`` get a fresh uuid.
        """
        workflow = _build_workflow(
            {**data, "ownerId": owner_id, "status": WorkflowStatus.DRAFT.value}
        )
        await self._repository.save_workflow(workflow)
        logger.info(
            f"Workflow {workflow.id} created for {owner_id} with {len(workflow.steps)} steps"
        )
        return workflow

    async def get(self, workflow_id: str, owner_id: str) -> Workflow:
        workflow = await self._repository.find_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow")
        if workflow.owner_id != owner_id:
            raise AuthorizationError("You do not have access to this workflow")
        return workflow

    async def list(
        self, owner_id: str, status: Optional[WorkflowStatus] = None
    ) -> List[Workflow]:
        return await self._repository.list_workflows(owner_id=owner_id, status=status)

    async def update(
        self, workflow_id: str, owner_id: str, changes: Mapping[str, Any]
    ) -> Workflow:
        current = await self.get(workflow_id, owner_id)
        data: Dict[str, Any] = current.model_dump(by_alias=True)
        data.update({k: v for k, v in changes.items() if k not in _PROTECTED_FIELDS})
        data["updatedAt"] = utc_now()

        workflow = _build_workflow(data)
        await self._repository.save_workflow(workflow)
        logger.info(f"Workflow {workflow_id} updated")
        return workflow

    async def delete(self, workflow_id: str, owner_id: str) -> None:
        await self.get(workflow_id, owner_id)
        if await self._repository.count_active_runs(workflow_id) > 0:
            raise ValidationError("Cannot delete workflow with running executions")
        await self._repository.delete_workflow(workflow_id)
        logger.info(f"Workflow {workflow_id} deleted")

    async def activate(self, workflow_id: str, owner_id: str) -> Workflow:
        return await self.update(
            workflow_id, owner_id, {"status": WorkflowStatus.ACTIVE.value}
        )

    async def pause(self, workflow_id: str, owner_id: str) -> Workflow:
        return await self.update(
            workflow_id, owner_id, {"status": WorkflowStatus.PAUSED.value}
        )

    async def trigger(
        self,
        workflow_id: str,
        owner_id: str,
        input: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Start a run of an active workflow; returns the run id."""
        workflow = await self.get(workflow_id, owner_id)
        if workflow.status != WorkflowStatus.ACTIVE:
            raise ValidationError("Workflow must be active to trigger")
        run_id = await self._orchestrator.create_run(workflow_id, owner_id, input or {})
        logger.info(f"Workflow {workflow_id} triggered as run {run_id}")
        return run_id


class RunService:
    """Read access to runs plus cancel and retry."""

    def __init__(self, repository: WorkflowRepository, orchestrator: RunOrchestrator) -> None:
        self._repository = repository
        self._orchestrator = orchestrator

    async def get(self, run_id: str, owner_id: str) -> Run:
        run = await self._repository.find_run(run_id)
        if run is None:
            raise NotFoundError("Run")
        if run.owner_id != owner_id:
            raise AuthorizationError("You do not have access to this run")
        return run

    async def list(
        self,
        owner_id: str,
        status: Optional[RunStatus] = None,
        workflow_id: Optional[str] = None,
    ) -> List[Run]:
        return await self._repository.list_runs(
            owner_id=owner_id, workflow_id=workflow_id, status=status
        )

    async def logs(self, run_id: str, owner_id: str) -> List[LogEntry]:
        await self.get(run_id, owner_id)
        return await self._repository.list_logs(run_id, limit=MAX_LOGS_PER_RUN)

    async def ai_outputs(self, run_id: str, owner_id: str) -> List[AIOutput]:
        await self.get(run_id, owner_id)
        return await self._repository.list_ai_outputs(run_id)

    async def cancel(self, run_id: str, owner_id: str) -> Run:
        await self._orchestrator.cancel_run(run_id, owner_id)
        return await self.get(run_id, owner_id)

    async def retry(self, run_id: str, owner_id: str) -> str:
        """Start a new run of the same workflow with the same input."""
        run = await self.get(run_id, owner_id)
        new_run_id = await self._orchestrator.create_run(
            run.workflow_id, owner_id, run.input
        )
        logger.info(f"Run {run_id} retried as {new_run_id}")
        return new_run_id

    async def purge_logs(self, retention: timedelta = LOG_RETENTION) -> int:
        """Delete log entries older than ``retention``."""
        removed = await self._repository.purge_logs(utc_now() - retention)
        logger.info(f"Purged {removed} log entries older than {retention}")
        return removed
