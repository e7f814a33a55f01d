"""Queue dispatcher for autoflow step jobs."""

from __future__ import annotations

import logging
from typing import Dict, Optional

from .config import QueueOptions, default_queue_options
from .constants import ACTION_QUEUE, AI_QUEUE, DOCUMENT_QUEUE
from .contracts import ActionJob, AIJob, DocumentJob, Job
from .models import CamelModel
from .transports import BaseTransport

logger = logging.getLogger(__name__)


class QueueDispatcher:
    """Service responsible for putting step jobs on the right queue.

    Each queue has its own ``QueueOptions``; the attempt budget and backoff
    base are stamped onto the job envelope so any worker can honour them.
    """

    def __init__(
        self,
        transport: BaseTransport,
        queues: Optional[Dict[str, QueueOptions]] = None,
    ) -> None:
        self._transport = transport
        self._queues = queues or default_queue_options()

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    def options(self, queue: str) -> QueueOptions:
        return self._queues.get(queue) or QueueOptions()

    async def enqueue(
        self,
        queue: str,
        name: str,
        payload: CamelModel,
        epoch: Optional[int] = None,
    ) -> Job:
        """Wrap ``payload`` in a job envelope and publish it on ``queue``.

        Args:
            queue: Target queue name.
            name: Job name, informational only.
            payload: One of the queue payload contracts.
            epoch: Step epoch of the run at dispatch time.

        Returns:
            The published job.
        """
        opts = self.options(queue)
        job = Job(
            queue=queue,
            name=name,
            data=payload.model_dump(mode="json", by_alias=True),
            attempts=opts.attempts,
            backoff_delay=opts.backoff_delay,
            epoch=epoch,
        )
        await self._transport.publish(queue, job)
        logger.info(f"Enqueued job {job.job_id} ({name}) on {queue}")
        return job

    async def enqueue_document(self, payload: DocumentJob) -> Job:
        return await self.enqueue(DOCUMENT_QUEUE, "process", payload)

    async def enqueue_ai(self, payload: AIJob, epoch: Optional[int] = None) -> Job:
        return await self.enqueue(AI_QUEUE, "process", payload, epoch)

    async def enqueue_action(
        self, payload: ActionJob, epoch: Optional[int] = None
    ) -> Job:
        return await self.enqueue(ACTION_QUEUE, "execute", payload, epoch)
