"""Repository abstraction for workflow and run persistence."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional, Protocol

from ..models import Workflow, WorkflowStatus
from .models import AIOutput, LogEntry, Run, RunStatus

# ``expected`` values for conditional run updates: either a single value the
# field must equal, or a tuple of allowed values.
Expected = Mapping[str, Any]


def matches(current: Any, wanted: Any) -> bool:
    """Return ``True`` when ``current`` satisfies an ``expected`` entry."""
    if isinstance(wanted, (tuple, list, set, frozenset)):
        return current in wanted
    return current == wanted


class WorkflowRepository(Protocol):
    """Protocol for workflow and run persistence backends."""

    async def save_workflow(self, workflow: Workflow) -> None:
        """Insert or replace a workflow definition."""

    async def find_workflow(self, workflow_id: str) -> Workflow | None:
        """Return the workflow or ``None``."""

    async def list_workflows(
        self,
        owner_id: Optional[str] = None,
        status: Optional[WorkflowStatus] = None,
    ) -> list[Workflow]:
        """Return workflows, newest first."""

    async def delete_workflow(self, workflow_id: str) -> None:
        """Remove a workflow definition."""

    async def create_run(self, run: Run) -> None:
        """Persist a new run."""

    async def find_run(self, run_id: str) -> Run | None:
        """Return the run or ``None``."""

    async def update_run(
        self,
        run_id: str,
        patch: Mapping[str, Any],
        expected: Optional[Expected] = None,
    ) -> bool:
        """Apply ``patch`` atomically if every ``expected`` field still holds.

        Returns ``False`` when the run is missing or a precondition failed.
        """

    async def list_runs(
        self,
        owner_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
    ) -> list[Run]:
        """Return runs, newest first."""

    async def count_active_runs(self, workflow_id: str) -> int:
        """Number of pending or processing runs of a workflow."""

    async def append_log(self, entry: LogEntry) -> None:
        """Append an entry to a run's log stream."""

    async def list_logs(self, run_id: str, limit: int = 1000) -> list[LogEntry]:
        """Return a run's log entries in chronological order."""

    async def purge_logs(self, older_than: datetime) -> int:
        """Delete log entries older than ``older_than``; return the count."""

    async def save_ai_output(self, record: AIOutput) -> None:
        """Persist an AI call audit record."""

    async def list_ai_outputs(self, run_id: str) -> list[AIOutput]:
        """Return a run's AI call records in chronological order."""
