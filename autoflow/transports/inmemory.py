"""In-memory transport for testing."""

from __future__ import annotations

import asyncio
import heapq
import itertools
import time
from collections import defaultdict, deque
from datetime import timedelta
from typing import AsyncIterator, Deque, Dict, List, Optional, Tuple

from ..config import RetentionConfig
from ..contracts import Job
from ..models import utc_now
from .base import BaseTransport, JobOutcome

RawJob = Tuple[str, Job]


class InMemoryTransport(BaseTransport[RawJob]):
    """Simple in-process queues for unit tests and single-process use."""

    def __init__(self, poll_interval: float = 0.05) -> None:
        self._queues: Dict[str, Deque[RawJob]] = defaultdict(deque)
        self._delayed: Dict[str, List[Tuple[float, int, RawJob]]] = defaultdict(list)
        self._finished: Dict[Tuple[str, str], Deque[Job]] = defaultdict(deque)
        self._seq = itertools.count()
        self._lock = asyncio.Lock()
        self._poll_interval = poll_interval

    async def publish(self, topic: str, job: Job, delay: float = 0.0) -> None:
        """Publish job to in-memory queue."""
        raw = (job.to_json(), job)
        async with self._lock:
            if delay > 0:
                heapq.heappush(
                    self._delayed[topic], (time.monotonic() + delay, next(self._seq), raw)
                )
            else:
                self._queues[topic].append(raw)

    def _promote_due(self, topic: str) -> None:
        heap = self._delayed[topic]
        now = time.monotonic()
        while heap and heap[0][0] <= now:
            _, _, raw = heapq.heappop(heap)
            self._queues[topic].append(raw)

    def pending(self, topic: str) -> int:
        """Number of ready plus delayed jobs on ``topic``."""
        return len(self._queues[topic]) + len(self._delayed[topic])

    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawJob, Job]]:
        """Consume jobs from topic.

        Args:
            topic: The queue to consume from
            lifespan: Maximum time in seconds to keep consuming. If None, runs indefinitely.
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        while True:
            if lifespan is not None and loop.time() - start_time >= lifespan:
                break

            raw_message = None
            async with self._lock:
                self._promote_due(topic)
                if self._queues[topic]:
                    raw_message = self._queues[topic].popleft()

            if raw_message is not None:
                yield raw_message, raw_message[1]
                continue

            await asyncio.sleep(self._poll_interval)

    async def ack(self, raw_message: RawJob) -> None:
        """No-op acknowledgment for in-memory transport."""
        pass

    async def record_result(
        self, topic: str, job: Job, outcome: JobOutcome, retention: RetentionConfig
    ) -> None:
        kept = self._finished[(topic, outcome)]
        kept.append(job)
        cutoff = utc_now() - timedelta(seconds=retention.age)
        while kept and (
            len(kept) > retention.count
            or (kept[0].finished_at is not None and kept[0].finished_at < cutoff)
        ):
            kept.popleft()

    async def finished(self, topic: str, outcome: JobOutcome) -> list[Job]:
        return list(self._finished[(topic, outcome)])
