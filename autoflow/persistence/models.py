"""Data models for persisted run state."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import Field

from ..models import CamelModel, new_id, utc_now


class RunStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_RUN_STATUSES = (RunStatus.PENDING, RunStatus.PROCESSING)
TERMINAL_RUN_STATUSES = (RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED)


class LogLevel(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class Run(CamelModel):
    """One execution of a workflow."""

    id: str = Field(default_factory=new_id)
    workflow_id: str
    owner_id: str
    status: RunStatus = RunStatus.PENDING
    input: dict[str, Any] = Field(default_factory=dict)
    output: dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None
    current_step_id: Optional[str] = None
    # Bumped every time a step is resolved; jobs carry the value they were
    # dispatched with so late or duplicate reports can be told apart.
    step_epoch: int = 0
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_RUN_STATUSES


class LogEntry(CamelModel):
    """Append-only event in a run's log stream."""

    id: str = Field(default_factory=new_id)
    run_id: str
    step_id: Optional[str] = None
    level: LogLevel = LogLevel.INFO
    message: str
    metadata: Optional[dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=utc_now)


class AIOutput(CamelModel):
    """Audit record of a single AI provider call."""

    id: str = Field(default_factory=new_id)
    run_id: str
    step_id: str
    model: str
    provider: str
    prompt: str
    response: Any
    tokens_used: int = 0
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    latency_ms: int
    cost: Optional[float] = None
    created_at: datetime = Field(default_factory=utc_now)
