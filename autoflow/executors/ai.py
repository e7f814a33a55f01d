"""AI step executor."""

from __future__ import annotations

import logging

from ..constants import DEFAULT_AI_SCHEMA
from ..contracts import AIJob, Job
from ..errors import UnrecoverableError
from ..orchestrator import RunOrchestrator
from ..persistence.models import AIOutput
from ..providers import CompletionOptions, ProviderRegistry, is_quota_error
from ..templates import render_template

logger = logging.getLogger(__name__)


class AIExecutor:
    """Runs an ``ai_process`` step against the configured provider."""

    def __init__(self, orchestrator: RunOrchestrator, providers: ProviderRegistry) -> None:
        self._orchestrator = orchestrator
        self._providers = providers

    async def handle(self, job: Job) -> None:
        payload = job.payload(AIJob)
        repository = self._orchestrator.repository
        logger.info(f"Processing AI job {job.job_id} for run {payload.run_id}")

        run = await self._orchestrator.current_run(
            payload.run_id, payload.step_id, job.epoch
        )
        if run is None:
            logger.warning(
                f"Step {payload.step_id} of run {payload.run_id} is no longer "
                f"current; AI job {job.job_id} dropped"
            )
            return

        try:
            prompt = render_template(payload.prompt, {**run.input, **run.output})
            provider = self._providers.get(payload.provider)
            result = await provider.complete_with_schema(
                prompt,
                payload.output_schema or DEFAULT_AI_SCHEMA,
                options=CompletionOptions(
                    model=payload.model, temperature=payload.temperature
                ),
            )
            await repository.save_ai_output(
                AIOutput(
                    run_id=payload.run_id,
                    step_id=payload.step_id,
                    model=result.model,
                    provider=provider.name,
                    prompt=prompt,
                    response=result.data,
                    tokens_used=result.tokens_used,
                    prompt_tokens=result.prompt_tokens,
                    completion_tokens=result.completion_tokens,
                    latency_ms=result.latency_ms,
                )
            )
        except Exception as e:
            logger.error(f"AI step {payload.step_id} of run {payload.run_id} failed: {e}")
            await self._orchestrator.fail_step(
                payload.run_id, payload.step_id, str(e), epoch=job.epoch
            )
            if is_quota_error(e):
                raise UnrecoverableError(f"AI quota or rate limit exceeded: {e}") from e
            raise

        logger.info(
            f"AI step {payload.step_id} of run {payload.run_id} done with "
            f"{provider.name}/{result.model} ({result.tokens_used} tokens)"
        )
        await self._orchestrator.complete_step(
            payload.run_id, payload.step_id, {payload.step_id: result.data}, epoch=job.epoch
        )
