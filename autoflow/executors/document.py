"""Document extraction executor."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from ..contracts import DocumentJob, Job
from ..orchestrator import RunOrchestrator
from ..persistence.models import LogLevel, RunStatus

logger = logging.getLogger(__name__)


def _read_pdf(path: str) -> str:
    import fitz  # PyMuPDF

    with fitz.open(path) as doc:
        return "\n\n".join(page.get_text() for page in doc)


async def extract_text(path: str, file_type: str) -> str:
    """Return the text of a PDF, or the file decoded as UTF-8 otherwise."""
    if file_type == "application/pdf":
        return await asyncio.to_thread(_read_pdf, path)
    return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")


class DocumentExecutor:
    """Extracts an uploaded file into the run input, then starts the run."""

    def __init__(self, orchestrator: RunOrchestrator) -> None:
        self._orchestrator = orchestrator

    async def handle(self, job: Job) -> None:
        payload = job.payload(DocumentJob)
        repository = self._orchestrator.repository
        logger.info(f"Processing document for run {payload.run_id} ({payload.file_type})")

        try:
            text = await extract_text(payload.file_url, payload.file_type)
        except Exception as e:
            logger.error(f"Document processing failed for run {payload.run_id}: {e}")
            await self._orchestrator.add_log(
                payload.run_id, LogLevel.ERROR, f"Document processing failed: {e}"
            )
            raise

        run = await repository.find_run(payload.run_id)
        if run is None:
            logger.warning(f"Run {payload.run_id} vanished before its document was processed")
            return

        merged = {
            **run.input,
            "extractedText": text,
            "originalFile": payload.file_url,
            "fileType": payload.file_type,
        }
        if not await repository.update_run(
            payload.run_id, {"input": merged}, expected={"status": RunStatus.PENDING}
        ):
            logger.warning(f"Run {payload.run_id} is no longer pending; document ignored")
            return

        await self._orchestrator.add_log(
            payload.run_id,
            LogLevel.INFO,
            f"Document processed: {len(text)} characters extracted",
        )
        await self._orchestrator.start_first_step(payload.run_id)

    async def on_exhausted(self, job: Job, error: BaseException) -> None:
        """Fail the run once extraction has run out of attempts."""
        payload = job.payload(DocumentJob)
        await self._orchestrator.fail_run(
            payload.run_id, f"Document processing failed: {error}"
        )
