"""Autoflow: queue-driven workflow runs over AI, email and webhook steps."""

from .dispatch import QueueDispatcher
from .execute import QueueWorker
from .models import Step, StepType, Workflow, WorkflowStatus
from .orchestrator import RunOrchestrator
from .persistence import get_repository
from .runtime import Runtime, get_runtime
from .services import RunService, WorkflowService
from .templates import build_prompt, render_template
from .transports import get_transport

__version__ = "0.1.0"
__all__ = [
    "QueueDispatcher",
    "QueueWorker",
    "RunOrchestrator",
    "RunService",
    "Runtime",
    "Step",
    "StepType",
    "Workflow",
    "WorkflowService",
    "WorkflowStatus",
    "build_prompt",
    "get_repository",
    "get_runtime",
    "get_transport",
    "render_template",
]
