"""Redis transport for cross-process job queues."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Optional, Tuple

import redis.asyncio as redis
from pydantic import ValidationError

from ..config import RetentionConfig
from ..contracts import Job
from .base import BaseTransport, JobOutcome

logger = logging.getLogger(__name__)


class RedisTransport(BaseTransport[str]):
    """Redis-based transport for distributed job queues.

    Ready jobs live in a list, retries wait in a sorted set scored by the
    time they become due, and finished jobs are kept in per-outcome sorted
    sets scored by completion time.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "autoflow",
    ) -> None:
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.prefix = prefix
        self._redis: Optional[Any] = None

    def _key(self, topic: str, suffix: Optional[str] = None) -> str:
        key = f"{self.prefix}:{topic}"
        return f"{key}:{suffix}" if suffix else key

    async def connect(self) -> None:
        """Connect to Redis."""
        self._redis = redis.Redis(
            host=self.host,
            port=self.port,
            db=self.db,
            password=self.password,
            decode_responses=True,
        )
        await self._redis.ping()

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._redis:
            await self._redis.aclose()
            self._redis = None

    async def publish(self, topic: str, job: Job, delay: float = 0.0) -> None:
        """Push job onto the ready list, or park it until ``delay`` elapses."""
        if not self._redis:
            await self.connect()

        job_json = job.to_json()
        if delay > 0:
            await self._redis.zadd(
                self._key(topic, "delayed"), {job_json: time.time() + delay}
            )
        else:
            await self._redis.lpush(self._key(topic), job_json)

    async def _promote_due(self, topic: str) -> None:
        delayed_key = self._key(topic, "delayed")
        due = await self._redis.zrangebyscore(delayed_key, 0, time.time())
        for job_json in due:
            # Only the consumer that removes the entry moves it.
            if await self._redis.zrem(delayed_key, job_json):
                await self._redis.lpush(self._key(topic), job_json)

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[str, Job]]:
        """Consume jobs from a Redis queue."""
        if not self._redis:
            await self.connect()

        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            await self._promote_due(topic)
            result = await self._redis.brpop(self._key(topic), timeout=1)

            if result:
                _, job_json = result
                try:
                    job = Job.from_json(job_json)
                except ValidationError as e:
                    logger.error(f"Dropping unparseable job on {topic}: {e}")
                    continue
                yield job_json, job

            await asyncio.sleep(0.01)

    async def ack(self, raw_message: str) -> None:
        """No-op acknowledgment for Redis transport (job already popped)."""
        pass

    async def record_result(
        self, topic: str, job: Job, outcome: JobOutcome, retention: RetentionConfig
    ) -> None:
        if not self._redis:
            await self.connect()

        key = self._key(topic, outcome)
        now = time.time()
        await self._redis.zadd(key, {job.to_json(): now})
        await self._redis.zremrangebyscore(key, 0, now - retention.age)
        await self._redis.zremrangebyrank(key, 0, -(retention.count + 1))

    async def finished(self, topic: str, outcome: JobOutcome) -> list[Job]:
        if not self._redis:
            await self.connect()

        members = await self._redis.zrange(self._key(topic, outcome), 0, -1)
        return [Job.from_json(member) for member in members]
