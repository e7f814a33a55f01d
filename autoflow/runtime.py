"""Process wiring: one place that builds every autoflow component."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List, Optional

from .config import AutoflowConfig, load_config
from .constants import ACTION_QUEUE, AI_QUEUE, DOCUMENT_QUEUE, QUEUE_NAMES
from .dispatch import QueueDispatcher
from .execute import QueueWorker
from .executors import ActionExecutor, AIExecutor, DocumentExecutor
from .mailer import SmtpEmailSender
from .orchestrator import RunOrchestrator
from .persistence import WorkflowRepository, get_repository
from .providers import ProviderRegistry, build_registry
from .services import RunService, WorkflowService
from .transports import BaseTransport, get_transport
from .webhooks import WebhookCaller

logger = logging.getLogger(__name__)

# Short names accepted by ``autoflow worker start --queue``.
QUEUE_ALIASES: Dict[str, str] = {
    "document": DOCUMENT_QUEUE,
    "ai": AI_QUEUE,
    "action": ACTION_QUEUE,
}


class Runtime:
    """Holds the repository, transport, orchestrator, services and executors."""

    def __init__(
        self,
        config: Optional[AutoflowConfig] = None,
        repository: Optional[WorkflowRepository] = None,
        transport: Optional[BaseTransport] = None,
        providers: Optional[ProviderRegistry] = None,
        mailer: Optional[SmtpEmailSender] = None,
        webhooks: Optional[WebhookCaller] = None,
    ) -> None:
        self.config = config or load_config()
        self.repository = repository or get_repository(config=self.config)
        self.transport = transport or get_transport(config=self.config)
        self.dispatcher = QueueDispatcher(self.transport, self.config.queues)
        self.orchestrator = RunOrchestrator(
            self.repository, self.dispatcher, upload_dir=self.config.upload_dir
        )
        self.workflows = WorkflowService(self.repository, self.orchestrator)
        self.runs = RunService(self.repository, self.orchestrator)

        self.providers = providers or build_registry(self.config.ai)
        self.document_executor = DocumentExecutor(self.orchestrator)
        self.ai_executor = AIExecutor(self.orchestrator, self.providers)
        self.action_executor = ActionExecutor(
            self.orchestrator,
            mailer or SmtpEmailSender(self.config.email),
            webhooks or WebhookCaller(),
        )

    def worker(self, queue: str) -> QueueWorker:
        """Build the worker for one queue (full name or short alias)."""
        queue = QUEUE_ALIASES.get(queue, queue)
        options = self.dispatcher.options(queue)
        if queue == DOCUMENT_QUEUE:
            return QueueWorker(
                self.transport,
                queue,
                self.document_executor.handle,
                options,
                on_exhausted=self.document_executor.on_exhausted,
            )
        if queue == AI_QUEUE:
            return QueueWorker(self.transport, queue, self.ai_executor.handle, options)
        if queue == ACTION_QUEUE:
            return QueueWorker(self.transport, queue, self.action_executor.handle, options)
        raise ValueError(f"Unknown queue: {queue}")

    def workers(self, queues: Optional[Iterable[str]] = None) -> List[QueueWorker]:
        return [self.worker(queue) for queue in (queues or QUEUE_NAMES)]

    async def run_workers(
        self, queues: Optional[Iterable[str]] = None, lifespan: Optional[float] = None
    ) -> None:
        """Run workers for ``queues`` (all by default) until ``lifespan`` expires."""
        await self.transport.connect()
        try:
            await asyncio.gather(*(w.start(lifespan=lifespan) for w in self.workers(queues)))
        finally:
            await self.transport.disconnect()


_runtime_instance: Runtime | None = None


def get_runtime(config: Optional[AutoflowConfig] = None) -> Runtime:
    """Return the process-wide runtime, building it on first use."""
    global _runtime_instance
    if _runtime_instance is None or config is not None:
        _runtime_instance = Runtime(config=config)
    return _runtime_instance
