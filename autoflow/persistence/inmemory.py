"""In-memory implementation of the workflow repository."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from ..models import Workflow, WorkflowStatus
from .models import ACTIVE_RUN_STATUSES, AIOutput, LogEntry, Run, RunStatus
from .repository import Expected, WorkflowRepository, matches


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflows and runs in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, Workflow] = {}
        self._runs: Dict[str, Run] = {}
        self._logs: Dict[str, List[LogEntry]] = defaultdict(list)
        self._ai_outputs: Dict[str, List[AIOutput]] = defaultdict(list)
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    async def save_workflow(self, workflow: Workflow) -> None:
        self._workflows[workflow.id] = workflow.model_copy(deep=True)

    async def find_workflow(self, workflow_id: str) -> Workflow | None:
        wf = self._workflows.get(workflow_id)
        return wf.model_copy(deep=True) if wf else None

    async def list_workflows(
        self,
        owner_id: Optional[str] = None,
        status: Optional[WorkflowStatus] = None,
    ) -> list[Workflow]:
        workflows = [
            wf.model_copy(deep=True)
            for wf in self._workflows.values()
            if (owner_id is None or wf.owner_id == owner_id)
            and (status is None or wf.status == status)
        ]
        return sorted(workflows, key=lambda wf: wf.created_at, reverse=True)

    async def delete_workflow(self, workflow_id: str) -> None:
        self._workflows.pop(workflow_id, None)

    # ------------------------------------------------------------------
    async def create_run(self, run: Run) -> None:
        self._runs[run.id] = run.model_copy(deep=True)

    async def find_run(self, run_id: str) -> Run | None:
        run = self._runs.get(run_id)
        return run.model_copy(deep=True) if run else None

    async def update_run(
        self,
        run_id: str,
        patch: Mapping[str, Any],
        expected: Optional[Expected] = None,
    ) -> bool:
        async with self._lock:
            run = self._runs.get(run_id)
            if run is None:
                return False
            for field, wanted in (expected or {}).items():
                if not matches(getattr(run, field), wanted):
                    return False
            self._runs[run_id] = run.model_copy(update=dict(patch), deep=True)
            return True

    async def list_runs(
        self,
        owner_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
    ) -> list[Run]:
        runs = [
            run.model_copy(deep=True)
            for run in self._runs.values()
            if (owner_id is None or run.owner_id == owner_id)
            and (workflow_id is None or run.workflow_id == workflow_id)
            and (status is None or run.status == status)
        ]
        return sorted(runs, key=lambda run: run.started_at, reverse=True)

    async def count_active_runs(self, workflow_id: str) -> int:
        return sum(
            1
            for run in self._runs.values()
            if run.workflow_id == workflow_id and run.status in ACTIVE_RUN_STATUSES
        )

    # ------------------------------------------------------------------
    async def append_log(self, entry: LogEntry) -> None:
        self._logs[entry.run_id].append(entry)

    async def list_logs(self, run_id: str, limit: int = 1000) -> list[LogEntry]:
        entries = sorted(self._logs.get(run_id, []), key=lambda e: e.timestamp)
        return entries[:limit]

    async def purge_logs(self, older_than: datetime) -> int:
        removed = 0
        for run_id, entries in self._logs.items():
            kept = [e for e in entries if e.timestamp >= older_than]
            removed += len(entries) - len(kept)
            self._logs[run_id] = kept
        return removed

    async def save_ai_output(self, record: AIOutput) -> None:
        self._ai_outputs[record.run_id].append(record)

    async def list_ai_outputs(self, run_id: str) -> list[AIOutput]:
        return sorted(self._ai_outputs.get(run_id, []), key=lambda r: r.created_at)
