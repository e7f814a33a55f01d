"""Job contracts exchanged between the orchestrator and queue workers."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import Field

from .models import CamelModel, StepType, new_id, utc_now

PayloadT = TypeVar("PayloadT", bound=CamelModel)


class DocumentJob(CamelModel):
    """Extract text from an uploaded file before the first step runs."""

    run_id: str
    file_url: str
    file_type: str


class AIJob(CamelModel):
    """Run one ``ai_process`` step."""

    run_id: str
    step_id: str
    prompt: str
    output_schema: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    model: Optional[str] = None
    provider: Optional[str] = None
    temperature: Optional[float] = None


class ActionJob(CamelModel):
    """Run one ``email``, ``webhook`` or ``save_data`` step."""

    run_id: str
    step_id: str
    action_type: StepType
    config: Dict[str, Any] = Field(default_factory=dict)
    data: Dict[str, Any] = Field(default_factory=dict)


class Job(CamelModel):
    """
    Envelope stored on a queue: payload plus delivery bookkeeping.
    """

    job_id: str = Field(default_factory=new_id)
    queue: str
    name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    attempt: int = 1
    attempts: int = 1
    backoff_delay: float = 1.0
    epoch: Optional[int] = None
    enqueued_at: datetime = Field(default_factory=utc_now)
    finished_at: Optional[datetime] = None
    failed_reason: Optional[str] = None

    @property
    def exhausted(self) -> bool:
        """``True`` once this delivery is the last one allowed."""
        return self.attempt >= self.attempts

    def payload(self, model: Type[PayloadT]) -> PayloadT:
        """Validate ``data`` against the payload contract of this queue."""
        return model.model_validate(self.data)

    def bump_attempt(self) -> "Job":
        """Copy of this job for the next delivery attempt."""
        return self.model_copy(
            update={"attempt": self.attempt + 1, "enqueued_at": utc_now()}
        )

    def to_json(self) -> str:
        """Serialize job to JSON."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str | bytes) -> "Job":
        """Deserialize job from JSON."""
        return cls.model_validate_json(data)
