"""Base transport interface for autoflow job queues."""

from __future__ import annotations

import abc
from typing import AsyncIterator, Generic, Literal, Optional, Tuple, TypeVar

from ..config import RetentionConfig
from ..contracts import Job

RawMessageT = TypeVar("RawMessageT")

JobOutcome = Literal["completed", "failed"]


class BaseTransport(Generic[RawMessageT], metaclass=abc.ABCMeta):
    """Abstract base transport for durable job queues."""

    async def connect(self) -> None:
        """Open connection to broker (no-op by default)."""
        pass

    async def disconnect(self) -> None:
        """Close connection to broker (no-op by default)."""
        pass

    @abc.abstractmethod
    async def publish(self, topic: str, job: Job, delay: float = 0.0) -> None:
        """Put a job on a queue, optionally not before ``delay`` seconds."""
        raise NotImplementedError

    @abc.abstractmethod
    async def subscribe(
        self, topic: str, lifespan: Optional[float] = None
    ) -> AsyncIterator[Tuple[RawMessageT, Job]]:
        """Yield raw transport message and Job pairs.

        Args:
            topic: The queue to consume from
            lifespan: Maximum time in seconds to keep consuming. If None, runs indefinitely.
        """
        raise NotImplementedError

    @abc.abstractmethod
    async def ack(self, raw_message: RawMessageT) -> None:
        """Acknowledge successful processing."""
        raise NotImplementedError

    @abc.abstractmethod
    async def record_result(
        self, topic: str, job: Job, outcome: JobOutcome, retention: RetentionConfig
    ) -> None:
        """Keep a finished job around, bounded by ``retention`` count and age."""
        raise NotImplementedError

    @abc.abstractmethod
    async def finished(self, topic: str, outcome: JobOutcome) -> list[Job]:
        """Return retained finished jobs, oldest first."""
        raise NotImplementedError
