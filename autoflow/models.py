"""Workflow definition models: steps, per-type configuration and triggers."""

from __future__ import annotations

import re
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_URL_ADAPTER = TypeAdapter(AnyHttpUrl)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class CamelModel(BaseModel):
    """Base model exchanging camelCase keys with the outside world."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class StepType(str, Enum):
    AI_PROCESS = "ai_process"
    EMAIL = "email"
    WEBHOOK = "webhook"
    SAVE_DATA = "save_data"
    CONDITION = "condition"
    TRANSFORM = "transform"
    DOCUMENT_PROCESS = "document_process"


ACTION_STEP_TYPES = frozenset({StepType.EMAIL, StepType.WEBHOOK, StepType.SAVE_DATA})


class WorkflowStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    ARCHIVED = "archived"


class TriggerType(str, Enum):
    MANUAL = "manual"
    WEBHOOK = "webhook"
    SCHEDULE = "schedule"


class Trigger(CamelModel):
    type: TriggerType = TriggerType.MANUAL
    config: Dict[str, Any] = Field(default_factory=dict)


def _is_template(value: str) -> bool:
    return value.startswith("{{")


# ----------------------------------------------------------------------
# Per-type step configuration


class AIProcessConfig(CamelModel):
    prompt: str = Field(min_length=1)
    model: Optional[str] = None
    output_schema: Optional[Dict[str, Any]] = Field(default=None, alias="schema")
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    provider: Optional[str] = None


class EmailConfig(CamelModel):
    to: str = Field(min_length=1)
    subject: str = Field(min_length=1)
    template: Optional[str] = None
    body: Optional[str] = None

    @field_validator("to")
    @classmethod
    def _email_or_template(cls, value: str) -> str:
        if _EMAIL_RE.match(value) or _is_template(value):
            return value
        raise ValueError(
            "Must be a valid email address or a template string (e.g., {{user.email}})"
        )


class WebhookConfig(CamelModel):
    url: str = Field(min_length=1)
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body_template: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _url_or_template(cls, value: str) -> str:
        if _is_template(value):
            return value
        try:
            _URL_ADAPTER.validate_python(value)
        except ValueError:
            raise ValueError(
                "Must be a valid URL or a template string (e.g., {{webhookUrl}})"
            ) from None
        return value


class SaveDataConfig(CamelModel):
    collection: str = Field(min_length=1)
    mapping: Optional[Dict[str, str]] = None


class ConditionConfig(CamelModel):
    expression: str = Field(min_length=1)
    then_step_id: Optional[str] = None
    else_step_id: Optional[str] = None


class TransformConfig(CamelModel):
    expression: Optional[str] = None


class DocumentProcessConfig(CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# ----------------------------------------------------------------------
# Steps: a tagged union keyed by ``type``


class StepBase(CamelModel):
    id: str = Field(default_factory=new_id)
    name: str = Field(min_length=1)
    next_step_id: Optional[str] = None
    on_error_step_id: Optional[str] = None


class AIProcessStep(StepBase):
    type: Literal["ai_process"] = "ai_process"
    config: AIProcessConfig


class EmailStep(StepBase):
    type: Literal["email"] = "email"
    config: EmailConfig


class WebhookStep(StepBase):
    type: Literal["webhook"] = "webhook"
    config: WebhookConfig


class SaveDataStep(StepBase):
    type: Literal["save_data"] = "save_data"
    config: SaveDataConfig


class ConditionStep(StepBase):
    type: Literal["condition"] = "condition"
    config: ConditionConfig


class TransformStep(StepBase):
    type: Literal["transform"] = "transform"
    config: TransformConfig = Field(default_factory=TransformConfig)


class DocumentProcessStep(StepBase):
    type: Literal["document_process"] = "document_process"
    config: DocumentProcessConfig = Field(default_factory=DocumentProcessConfig)


Step = Annotated[
    Union[
        AIProcessStep,
        EmailStep,
        WebhookStep,
        SaveDataStep,
        ConditionStep,
        TransformStep,
        DocumentProcessStep,
    ],
    Field(discriminator="type"),
]

STEP_ADAPTER: TypeAdapter[Step] = TypeAdapter(Step)


def parse_step(data: Dict[str, Any]) -> Step:
    """Validate a raw step mapping against the schema for its ``type``."""
    return STEP_ADAPTER.validate_python(data)


class Workflow(CamelModel):
    """A user-authored trigger plus an ordered chain of steps."""

    id: str = Field(default_factory=new_id)
    owner_id: str
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    trigger: Trigger = Field(default_factory=Trigger)
    steps: List[Step] = Field(min_length=1)
    status: WorkflowStatus = WorkflowStatus.DRAFT
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator("name", "description", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("description")
    @classmethod
    def _empty_description(cls, value: Optional[str]) -> Optional[str]:
        return value or None
