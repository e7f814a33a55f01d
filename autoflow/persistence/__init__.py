"""Persistence layer for autoflow workflows and runs."""

from __future__ import annotations

import os
from typing import Optional

from ..config import AutoflowConfig, load_config
from .inmemory import InMemoryWorkflowRepository
from .models import AIOutput, LogEntry, LogLevel, Run, RunStatus
from .repository import WorkflowRepository
from .sql import SQLWorkflowRepository

_repository_instance: WorkflowRepository | None = None


def get_repository(
    database_url: Optional[str] = None, config: Optional[AutoflowConfig] = None
) -> WorkflowRepository:
    """Factory function to obtain a workflow repository.

    The repository backend is selected based on ``database_url`` which can be
    provided explicitly, via environment variable ``AUTOFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, an in-memory repository is returned.
    """

    global _repository_instance
    if _repository_instance is not None and database_url is None and config is None:
        return _repository_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("AUTOFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or config.database_url
    )

    if not database_url:
        _repository_instance = InMemoryWorkflowRepository()
    else:
        _repository_instance = SQLWorkflowRepository(database_url)
    return _repository_instance


__all__ = [
    "AIOutput",
    "LogEntry",
    "LogLevel",
    "Run",
    "RunStatus",
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "SQLWorkflowRepository",
    "get_repository",
]
