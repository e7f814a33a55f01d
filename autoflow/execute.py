"""Job execution runtime for autoflow queues."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

from .config import QueueOptions
from .contracts import Job
from .errors import UnrecoverableError
from .models import utc_now
from .transports import BaseTransport
from .utils.ratelimit import RateLimiter
from .utils.retry import compute_backoff

logger = logging.getLogger(__name__)

JobHandler = Callable[[Job], Awaitable[Any]]
ExhaustedHook = Callable[[Job, BaseException], Awaitable[None]]


class QueueWorker:
    """Consumes one queue and runs a handler for every job.

    Up to ``options.concurrency`` handlers run at once and job starts are
    throttled by the optional rate limit. A failing job is re-published with
    exponential backoff until its attempts are used up; an
    ``UnrecoverableError`` fails it straight away.
    """

    def __init__(
        self,
        transport: BaseTransport,
        queue: str,
        handler: JobHandler,
        options: Optional[QueueOptions] = None,
        on_exhausted: Optional[ExhaustedHook] = None,
    ) -> None:
        self._transport = transport
        self.queue = queue
        self._handler = handler
        self.options = options or QueueOptions()
        self._on_exhausted = on_exhausted
        self._semaphore = asyncio.Semaphore(self.options.concurrency)
        self._limiter = (
            RateLimiter(self.options.rate_limit_max, self.options.rate_limit_duration)
            if self.options.rate_limit_max
            else None
        )
        self._tasks: Set[asyncio.Task] = set()

    async def start(self, lifespan: Optional[float] = None) -> None:
        """Start consuming jobs; returns after ``lifespan`` seconds if given."""
        logger.info(
            f"Worker for {self.queue} started (concurrency={self.options.concurrency})"
        )
        async for raw_message, job in self._transport.subscribe(
            self.queue, lifespan=lifespan
        ):
            await self._semaphore.acquire()
            if self._limiter is not None:
                await self._limiter.acquire()
            task = asyncio.create_task(self._run(raw_message, job))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._tasks:
            await asyncio.gather(*self._tasks)
        logger.info(f"Worker for {self.queue} stopped")

    async def _run(self, raw_message: Any, job: Job) -> None:
        try:
            await self.process(job)
            await self._transport.ack(raw_message)
        finally:
            self._semaphore.release()

    async def process(self, job: Job) -> bool:
        """Run the handler for a single delivery of ``job``.

        Returns ``True`` when the handler succeeded. Failures are either
        scheduled for another attempt or recorded as failed.
        """
        logger.debug(
            f"Processing job {job.job_id} on {self.queue} "
            f"(attempt {job.attempt}/{job.attempts})"
        )
        try:
            await self._handler(job)
        except UnrecoverableError as e:
            logger.error(f"Job {job.job_id} failed permanently: {e}")
            await self._fail(job, e)
            return False
        except Exception as e:
            if not job.exhausted:
                delay = compute_backoff(job.attempt, job.backoff_delay)
                logger.warning(
                    f"Job {job.job_id} on {self.queue} failed (attempt "
                    f"{job.attempt}/{job.attempts}): {e}; retrying in {delay:.1f}s"
                )
                await self._transport.publish(self.queue, job.bump_attempt(), delay=delay)
                return False
            logger.error(
                f"Job {job.job_id} on {self.queue} failed after {job.attempts} attempts: {e}"
            )
            await self._fail(job, e)
            return False

        done = job.model_copy(update={"finished_at": utc_now()})
        await self._transport.record_result(
            self.queue, done, "completed", self.options.remove_on_complete
        )
        logger.info(f"Job {job.job_id} on {self.queue} completed")
        return True

    async def _fail(self, job: Job, error: BaseException) -> None:
        failed = job.model_copy(
            update={"finished_at": utc_now(), "failed_reason": str(error)}
        )
        await self._transport.record_result(
            self.queue, failed, "failed", self.options.remove_on_fail
        )
        if self._on_exhausted is not None:
            await self._on_exhausted(failed, error)
