"""Run orchestrator: advances runs through their step graph."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Union

from .constants import DEFAULT_FILE_TYPE
from .contracts import ActionJob, AIJob, DocumentJob
from .dispatch import QueueDispatcher
from .errors import AuthorizationError, NotFoundError, ValidationError
from .graph import StepGraph
from .models import ACTION_STEP_TYPES, Step, StepType, Workflow, utc_now
from .persistence import WorkflowRepository
from .persistence.models import (
    ACTIVE_RUN_STATUSES,
    LogEntry,
    LogLevel,
    Run,
    RunStatus,
)

logger = logging.getLogger(__name__)


class RunOrchestrator:
    """Creates runs, dispatches their steps and resolves step outcomes.

    Every state change goes through ``repository.update_run`` with the
    field values it was decided on as preconditions, so concurrent or late
    reports for the same run cannot both take effect. Reports for a step
    that is no longer current (wrong step, run not processing, or an older
    step epoch) are logged and dropped.
    """

    def __init__(
        self,
        repository: WorkflowRepository,
        dispatcher: QueueDispatcher,
        upload_dir: str = "uploads",
    ) -> None:
        self._repository = repository
        self._dispatcher = dispatcher
        self._upload_dir = upload_dir

    @property
    def repository(self) -> WorkflowRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Run lifecycle
    async def create_run(
        self,
        workflow_id: str,
        owner_id: str,
        input: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Create a run and either queue document extraction or its first step.

        Returns:
            The new run id.
        """
        workflow = await self._repository.find_workflow(workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow")

        run = Run(workflow_id=workflow_id, owner_id=owner_id, input=dict(input or {}))
        await self._repository.create_run(run)
        await self.add_log(
            run.id, LogLevel.INFO, "Run created", metadata={"workflowId": workflow_id}
        )
        logger.info(f"Run {run.id} created for workflow {workflow_id}")

        if run.input.get("filePath") or run.input.get("fileId"):
            file_url = run.input.get("filePath") or os.path.join(
                self._upload_dir, str(run.input["fileId"])
            )
            await self._dispatcher.enqueue_document(
                DocumentJob(
                    run_id=run.id,
                    file_url=file_url,
                    file_type=run.input.get("fileType") or DEFAULT_FILE_TYPE,
                )
            )
            await self.add_log(run.id, LogLevel.INFO, "Document processing queued")
            return run.id

        await self._start(run.id, workflow)
        return run.id

    async def start_first_step(self, run_id: str) -> None:
        """Move a pending run onto its first step and queue it."""
        workflow = await self.get_workflow_for_run(run_id)
        await self._start(run_id, workflow)

    async def _start(self, run_id: str, workflow: Workflow) -> None:
        first = StepGraph.from_workflow(workflow).first
        if first is None:
            await self.fail_run(run_id, "Workflow has no steps")
            return

        started = await self._repository.update_run(
            run_id,
            {"status": RunStatus.PROCESSING, "current_step_id": first.id},
            expected={"status": RunStatus.PENDING},
        )
        if not started:
            logger.warning(f"Run {run_id} is no longer pending; first step not started")
            return
        await self.queue_step(run_id, first)

    async def queue_step(self, run_id: str, step: Step) -> None:
        """Put ``step`` on the queue that handles its type."""
        run = await self._repository.find_run(run_id)
        if run is None or run.is_terminal:
            logger.debug(f"Not queueing step {step.id}: run {run_id} missing or finished")
            return

        step_type = StepType(step.type)
        if step_type == StepType.AI_PROCESS:
            await self._dispatcher.enqueue_ai(
                AIJob(
                    run_id=run_id,
                    step_id=step.id,
                    prompt=step.config.prompt,
                    output_schema=step.config.output_schema,
                    model=step.config.model,
                    provider=step.config.provider,
                    temperature=step.config.temperature,
                ),
                epoch=run.step_epoch,
            )
        elif step_type in ACTION_STEP_TYPES:
            await self._dispatcher.enqueue_action(
                ActionJob(
                    run_id=run_id,
                    step_id=step.id,
                    action_type=step_type,
                    config=step.config.model_dump(
                        mode="json", by_alias=True, exclude_none=True
                    ),
                    data=run.output if run.output else run.input,
                ),
                epoch=run.step_epoch,
            )
        else:
            await self.add_log(
                run_id,
                LogLevel.ERROR,
                f"No queue handles step type {step_type.value}",
                step_id=step.id,
            )
            await self.fail_step(
                run_id,
                step.id,
                f"Unsupported step type: {step_type.value}",
                epoch=run.step_epoch,
            )
            return

        await self.add_log(
            run_id,
            LogLevel.INFO,
            f"Step {step.name} queued",
            step_id=step.id,
            metadata={"type": step_type.value},
        )

    # ------------------------------------------------------------------
    # Step outcomes
    @staticmethod
    def _is_current(run: Run, step_id: str, epoch: Optional[int]) -> bool:
        return (
            run.status == RunStatus.PROCESSING
            and run.current_step_id == step_id
            and (epoch is None or epoch == run.step_epoch)
        )

    @staticmethod
    def _current_guard(run: Run, step_id: str) -> Dict[str, Any]:
        return {
            "status": RunStatus.PROCESSING,
            "current_step_id": step_id,
            "step_epoch": run.step_epoch,
        }

    async def current_run(
        self, run_id: str, step_id: str, epoch: Optional[int] = None
    ) -> Optional[Run]:
        """Return the run if ``step_id`` at ``epoch`` is still its current step.

        Executors call this before any side effect so that a retried job
        whose step has already been resolved does nothing.
        """
        run = await self._repository.find_run(run_id)
        if run is None or not self._is_current(run, step_id, epoch):
            return None
        return run

    async def _ignore_stale(self, run_id: str, step_id: str, kind: str) -> None:
        logger.warning(f"Run {run_id}: stale {kind} for step {step_id} ignored")
        await self.add_log(
            run_id, LogLevel.WARN, f"Stale {kind} ignored", step_id=step_id
        )

    async def complete_step(
        self,
        run_id: str,
        step_id: str,
        output: Dict[str, Any],
        epoch: Optional[int] = None,
    ) -> None:
        """Merge ``output`` into the run and advance to the next step."""
        run = await self._repository.find_run(run_id)
        if run is None:
            raise NotFoundError("Run")
        workflow = await self._repository.find_workflow(run.workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow")
        graph = StepGraph.from_workflow(workflow)
        step = graph.get(step_id)
        if step is None:
            raise NotFoundError("Step")

        if not self._is_current(run, step_id, epoch):
            await self._ignore_stale(run_id, step_id, "completion")
            return

        next_step = graph.next_of(step)
        patch: Dict[str, Any] = {
            "output": {**run.output, **output},
            "step_epoch": run.step_epoch + 1,
        }
        if next_step is not None:
            patch["current_step_id"] = next_step.id
        if not await self._repository.update_run(
            run_id, patch, expected=self._current_guard(run, step_id)
        ):
            await self._ignore_stale(run_id, step_id, "completion")
            return

        await self.add_log(
            run_id, LogLevel.INFO, f"Step {step.name} completed", step_id=step_id
        )

        if next_step is not None:
            await self.queue_step(run_id, next_step)
        else:
            await self.complete_run(run_id)

    async def fail_step(
        self,
        run_id: str,
        step_id: str,
        error: str,
        epoch: Optional[int] = None,
    ) -> None:
        """Route a failed step to its error handler or fail the run."""
        run = await self._repository.find_run(run_id)
        if run is None:
            logger.warning(f"fail_step for unknown run {run_id}")
            return
        workflow = await self._repository.find_workflow(run.workflow_id)
        if workflow is None:
            logger.warning(f"fail_step for run {run_id} without a workflow")
            return
        graph = StepGraph.from_workflow(workflow)
        step = graph.get(step_id)
        if step is None:
            logger.warning(f"fail_step for unknown step {step_id} of run {run_id}")
            return

        if not self._is_current(run, step_id, epoch):
            await self._ignore_stale(run_id, step_id, "failure")
            return

        await self.add_log(
            run_id,
            LogLevel.ERROR,
            f"Step {step.name} failed: {error}",
            step_id=step_id,
            metadata={"error": error},
        )

        handler = graph.error_handler_of(step)
        if handler is None:
            await self._finish(
                run_id,
                RunStatus.FAILED,
                error=error,
                expected=self._current_guard(run, step_id),
            )
            return

        moved = await self._repository.update_run(
            run_id,
            {"current_step_id": handler.id, "step_epoch": run.step_epoch + 1},
            expected=self._current_guard(run, step_id),
        )
        if not moved:
            await self._ignore_stale(run_id, step_id, "failure")
            return
        await self.add_log(
            run_id,
            LogLevel.INFO,
            f"Routing to error handler {handler.name}",
            step_id=handler.id,
        )
        await self.queue_step(run_id, handler)

    async def complete_run(self, run_id: str) -> None:
        await self._finish(run_id, RunStatus.COMPLETED)

    async def fail_run(self, run_id: str, error: str) -> None:
        await self._finish(run_id, RunStatus.FAILED, error=error)

    async def _finish(
        self,
        run_id: str,
        status: RunStatus,
        error: Optional[str] = None,
        expected: Optional[Dict[str, Any]] = None,
    ) -> bool:
        patch: Dict[str, Any] = {
            "status": status,
            "completed_at": utc_now(),
            "current_step_id": None,
        }
        if error is not None:
            patch["error"] = error
        finished = await self._repository.update_run(
            run_id, patch, expected=expected or {"status": ACTIVE_RUN_STATUSES}
        )
        if not finished:
            logger.debug(f"Run {run_id} already finished; {status.value} not applied")
            return False

        if status == RunStatus.COMPLETED:
            logger.info(f"Run {run_id} completed")
            await self.add_log(run_id, LogLevel.INFO, "Run completed")
        else:
            logger.error(f"Run {run_id} failed: {error}")
            await self.add_log(run_id, LogLevel.ERROR, f"Run failed: {error}")
        return True

    async def cancel_run(self, run_id: str, owner_id: str) -> None:
        """Cancel a pending or processing run owned by ``owner_id``."""
        run = await self._repository.find_run(run_id)
        if run is None:
            raise NotFoundError("Run")
        if run.owner_id != owner_id:
            raise AuthorizationError()
        if run.status not in ACTIVE_RUN_STATUSES:
            raise ValidationError("Run cannot be cancelled")

        cancelled = await self._repository.update_run(
            run_id,
            {
                "status": RunStatus.CANCELLED,
                "completed_at": utc_now(),
                "current_step_id": None,
            },
            expected={"status": ACTIVE_RUN_STATUSES},
        )
        if not cancelled:
            raise ValidationError("Run cannot be cancelled")
        logger.info(f"Run {run_id} cancelled by {owner_id}")
        await self.add_log(run_id, LogLevel.WARN, "Run cancelled by user")

    # ------------------------------------------------------------------
    async def add_log(
        self,
        run_id: str,
        level: Union[LogLevel, str],
        message: str,
        step_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self._repository.append_log(
            LogEntry(
                run_id=run_id,
                step_id=step_id,
                level=LogLevel(level),
                message=message,
                metadata=metadata,
            )
        )

    async def get_workflow_for_run(self, run_id: str) -> Workflow:
        run = await self._repository.find_run(run_id)
        if run is None:
            raise NotFoundError("Run")
        workflow = await self._repository.find_workflow(run.workflow_id)
        if workflow is None:
            raise NotFoundError("Workflow")
        return workflow
