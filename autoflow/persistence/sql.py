"""SQL implementation of the workflow repository (SQLite or PostgreSQL)."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any, AsyncIterator, Mapping, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlmodel import SQLModel, col

from ..db.models import AIOutputRow, LogRow, RunRow, WorkflowRow
from ..models import Workflow, WorkflowStatus
from .models import ACTIVE_RUN_STATUSES, AIOutput, LogEntry, Run, RunStatus
from .repository import Expected, WorkflowRepository


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def normalize_database_url(database_url: str) -> str:
    """Map plain ``sqlite://`` / ``postgres://`` URLs onto async drivers."""
    if "+" in database_url.split("://", 1)[0]:
        return database_url
    if database_url.startswith("sqlite://"):
        return "sqlite+aiosqlite://" + database_url[len("sqlite://"):]
    for prefix in ("postgresql://", "postgres://"):
        if database_url.startswith(prefix):
            return "postgresql+asyncpg://" + database_url[len(prefix):]
    raise ValueError(f"Unsupported database backend: {database_url}")


class SQLWorkflowRepository(WorkflowRepository):
    """Persist workflows, runs and logs through SQLModel tables."""

    def __init__(self, database_url: str, echo: bool = False) -> None:
        self.database_url = normalize_database_url(database_url)
        connect_args = (
            {"check_same_thread": False} if self.database_url.startswith("sqlite") else {}
        )
        self.engine = create_async_engine(
            self.database_url, echo=echo, future=True, connect_args=connect_args
        )
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Schema management
    async def init_db(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(SQLModel.metadata.create_all)
        self._initialized = True

    async def dispose(self) -> None:
        await self.engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if not self._initialized:
            async with self._init_lock:
                if not self._initialized:
                    await self.init_db()
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield session

    # ------------------------------------------------------------------
    # Row conversion
    @staticmethod
    def _run_from_row(row: RunRow) -> Run:
        return Run(
            id=row.id,
            workflow_id=row.workflow_id,
            owner_id=row.owner_id,
            status=RunStatus(row.status),
            input=row.input or {},
            output=row.output or {},
            error=row.error,
            current_step_id=row.current_step_id,
            step_epoch=row.step_epoch,
            started_at=row.started_at,
            completed_at=row.completed_at,
        )

    @staticmethod
    def _log_from_row(row: LogRow) -> LogEntry:
        return LogEntry(
            id=row.id,
            run_id=row.run_id,
            step_id=row.step_id,
            level=row.level,
            message=row.message,
            metadata=row.details,
            timestamp=row.timestamp,
        )

    # ------------------------------------------------------------------
    # Workflows
    async def save_workflow(self, workflow: Workflow) -> None:
        row = WorkflowRow(
            id=workflow.id,
            owner_id=workflow.owner_id,
            status=_plain(workflow.status),
            document=workflow.model_dump(mode="json", by_alias=True),
            created_at=workflow.created_at,
        )
        async with self.session() as session:
            await session.merge(row)
            await session.commit()

    async def find_workflow(self, workflow_id: str) -> Workflow | None:
        async with self.session() as session:
            row = await session.get(WorkflowRow, workflow_id)
        return Workflow.model_validate(row.document) if row else None

    async def list_workflows(
        self,
        owner_id: Optional[str] = None,
        status: Optional[WorkflowStatus] = None,
    ) -> list[Workflow]:
        stmt = select(WorkflowRow).order_by(col(WorkflowRow.created_at).desc())
        if owner_id is not None:
            stmt = stmt.where(col(WorkflowRow.owner_id) == owner_id)
        if status is not None:
            stmt = stmt.where(col(WorkflowRow.status) == _plain(status))
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [Workflow.model_validate(row.document) for row in rows]

    async def delete_workflow(self, workflow_id: str) -> None:
        async with self.session() as session:
            await session.execute(
                delete(WorkflowRow).where(col(WorkflowRow.id) == workflow_id)
            )
            await session.commit()

    # ------------------------------------------------------------------
    # Runs
    async def create_run(self, run: Run) -> None:
        row = RunRow(
            id=run.id,
            workflow_id=run.workflow_id,
            owner_id=run.owner_id,
            status=_plain(run.status),
            input=run.input,
            output=run.output,
            error=run.error,
            current_step_id=run.current_step_id,
            step_epoch=run.step_epoch,
            started_at=run.started_at,
            completed_at=run.completed_at,
        )
        async with self.session() as session:
            session.add(row)
            await session.commit()

    async def find_run(self, run_id: str) -> Run | None:
        async with self.session() as session:
            row = await session.get(RunRow, run_id)
        return self._run_from_row(row) if row else None

    async def update_run(
        self,
        run_id: str,
        patch: Mapping[str, Any],
        expected: Optional[Expected] = None,
    ) -> bool:
        stmt = update(RunRow).where(col(RunRow.id) == run_id)
        for field, wanted in (expected or {}).items():
            column = col(getattr(RunRow, field))
            if isinstance(wanted, (tuple, list, set, frozenset)):
                stmt = stmt.where(column.in_([_plain(w) for w in wanted]))
            elif wanted is None:
                stmt = stmt.where(column.is_(None))
            else:
                stmt = stmt.where(column == _plain(wanted))
        stmt = stmt.values(**{key: _plain(value) for key, value in patch.items()})
        async with self.session() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def list_runs(
        self,
        owner_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        status: Optional[RunStatus] = None,
    ) -> list[Run]:
        stmt = select(RunRow).order_by(col(RunRow.started_at).desc())
        if owner_id is not None:
            stmt = stmt.where(col(RunRow.owner_id) == owner_id)
        if workflow_id is not None:
            stmt = stmt.where(col(RunRow.workflow_id) == workflow_id)
        if status is not None:
            stmt = stmt.where(col(RunRow.status) == _plain(status))
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._run_from_row(row) for row in rows]

    async def count_active_runs(self, workflow_id: str) -> int:
        stmt = (
            select(func.count())
            .select_from(RunRow)
            .where(col(RunRow.workflow_id) == workflow_id)
            .where(col(RunRow.status).in_([s.value for s in ACTIVE_RUN_STATUSES]))
        )
        async with self.session() as session:
            return (await session.execute(stmt)).scalar_one()

    # ------------------------------------------------------------------
    # Logs and AI outputs
    async def append_log(self, entry: LogEntry) -> None:
        row = LogRow(
            id=entry.id,
            run_id=entry.run_id,
            step_id=entry.step_id,
            level=_plain(entry.level),
            message=entry.message,
            details=entry.metadata,
            timestamp=entry.timestamp,
        )
        async with self.session() as session:
            session.add(row)
            await session.commit()

    async def list_logs(self, run_id: str, limit: int = 1000) -> list[LogEntry]:
        stmt = (
            select(LogRow)
            .where(col(LogRow.run_id) == run_id)
            .order_by(col(LogRow.timestamp).asc())
            .limit(limit)
        )
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [self._log_from_row(row) for row in rows]

    async def purge_logs(self, older_than: datetime) -> int:
        async with self.session() as session:
            result = await session.execute(
                delete(LogRow).where(col(LogRow.timestamp) < older_than)
            )
            await session.commit()
        return result.rowcount or 0

    async def save_ai_output(self, record: AIOutput) -> None:
        row = AIOutputRow(
            id=record.id,
            run_id=record.run_id,
            step_id=record.step_id,
            model=record.model,
            provider=record.provider,
            prompt=record.prompt,
            response=record.response,
            tokens_used=record.tokens_used,
            prompt_tokens=record.prompt_tokens,
            completion_tokens=record.completion_tokens,
            latency_ms=record.latency_ms,
            cost=record.cost,
            created_at=record.created_at,
        )
        async with self.session() as session:
            session.add(row)
            await session.commit()

    async def list_ai_outputs(self, run_id: str) -> list[AIOutput]:
        stmt = (
            select(AIOutputRow)
            .where(col(AIOutputRow.run_id) == run_id)
            .order_by(col(AIOutputRow.created_at).asc())
        )
        async with self.session() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [
            AIOutput(
                id=row.id,
                run_id=row.run_id,
                step_id=row.step_id,
                model=row.model,
                provider=row.provider,
                prompt=row.prompt,
                response=row.response,
                tokens_used=row.tokens_used,
                prompt_tokens=row.prompt_tokens,
                completion_tokens=row.completion_tokens,
                latency_ms=row.latency_ms,
                cost=row.cost,
                created_at=row.created_at,
            )
            for row in rows
        ]
