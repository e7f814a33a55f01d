"""Job queue backends.

The in-memory transport keeps queues inside one process; the Redis transport
lets document, AI and action workers run as separate processes.
"""

from __future__ import annotations

import os
from typing import Optional

from ..config import AutoflowConfig, load_config
from .base import BaseTransport, JobOutcome
from .inmemory import InMemoryTransport


def get_transport(
    backend: Optional[str] = None, config: Optional[AutoflowConfig] = None
) -> BaseTransport:
    """Return the queue transport for ``backend``.

    ``backend`` falls back to ``AUTOFLOW_TRANSPORT`` and then to
    ``config.transport.backend``. Redis connection settings come from
    ``config.transport.redis``.
    """

    config = config or load_config()
    backend = (
        backend
        or os.getenv("AUTOFLOW_TRANSPORT")
        or config.transport.backend
    ).lower()

    if backend == "inmemory":
        return InMemoryTransport()
    elif backend == "redis":
        from .redis import RedisTransport

        redis_conf = config.transport.redis
        return RedisTransport(
            host=redis_conf.host,
            port=redis_conf.port,
            db=redis_conf.db,
            password=redis_conf.password,
        )
    else:
        raise ValueError(f"Unsupported transport backend: {backend}")


__all__ = ["BaseTransport", "InMemoryTransport", "JobOutcome", "get_transport"]
