from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Column, DateTime
from sqlmodel import Field, SQLModel


class WorkflowRow(SQLModel, table=True):
    """Workflow definition stored as a JSON document plus lookup columns."""

    __tablename__ = "workflows"

    id: str = Field(primary_key=True)
    owner_id: str = Field(index=True)
    status: str = Field(default="draft", index=True)
    document: dict = Field(sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))


class RunRow(SQLModel, table=True):
    """Represents one execution of a workflow."""

    __tablename__ = "runs"

    id: str = Field(primary_key=True)
    workflow_id: str = Field(index=True)
    owner_id: str = Field(index=True)
    status: str = Field(default="pending", index=True)
    input: dict = Field(sa_column=Column(JSON, nullable=False))
    output: dict = Field(sa_column=Column(JSON, nullable=False))
    error: Optional[str] = None
    current_step_id: Optional[str] = None
    step_epoch: int = 0
    started_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    completed_at: Optional[datetime] = Field(
        default=None, sa_column=Column(DateTime(timezone=True), nullable=True)
    )


class LogRow(SQLModel, table=True):
    """Append-only run log entry."""

    __tablename__ = "run_logs"

    id: str = Field(primary_key=True)
    run_id: str = Field(index=True)
    step_id: Optional[str] = None
    level: str = Field(default="info")
    message: str
    # ``metadata`` is reserved on declarative models.
    details: Optional[dict] = Field(default=None, sa_column=Column("metadata", JSON))
    timestamp: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )


class AIOutputRow(SQLModel, table=True):
    """Audit trail of AI provider calls."""

    __tablename__ = "ai_outputs"

    id: str = Field(primary_key=True)
    run_id: str = Field(index=True)
    step_id: str
    model: str
    provider: str
    prompt: str
    response: Optional[dict] = Field(default=None, sa_column=Column(JSON))
    tokens_used: int = 0
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    latency_ms: int = 0
    cost: Optional[float] = None
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
