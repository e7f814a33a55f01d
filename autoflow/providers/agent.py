"""AI providers backed by pydantic-ai agents."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from pydantic_ai import Agent, StructuredDict
from pydantic_ai.exceptions import ModelHTTPError
from pydantic_ai.models import Model
from pydantic_ai.settings import ModelSettings

from ..constants import DEFAULT_MODELS
from .base import (
    CompletionOptions,
    CompletionResult,
    QuotaExceededError,
    StructuredResult,
)

logger = logging.getLogger(__name__)

ModelFactory = Callable[[str], Model]

# Used when a step sets no temperature.
TEXT_TEMPERATURE = 0.7
SCHEMA_TEMPERATURE = 0.3
MAX_TOKENS = 2000


class AgentProvider:
    """Run prompts through a pydantic-ai ``Agent`` for one provider.

    ``model_factory`` turns a model name into a pydantic-ai model, which
    lets tests plug in ``TestModel`` or ``FunctionModel``.
    """

    def __init__(
        self,
        name: str,
        model_factory: ModelFactory,
        default_model: Optional[str] = None,
    ) -> None:
        self.name = name
        self._model_factory = model_factory
        self.default_model = default_model or DEFAULT_MODELS.get(name, name)

    def _settings(
        self, options: Optional[CompletionOptions], default_temperature: float
    ) -> Tuple[str, ModelSettings]:
        options = options or CompletionOptions()
        model_name = options.model or self.default_model
        settings = ModelSettings(
            temperature=(
                options.temperature
                if options.temperature is not None
                else default_temperature
            ),
            max_tokens=options.max_tokens or MAX_TOKENS,
        )
        return model_name, settings

    async def _run(
        self,
        prompt: str,
        output_type: Any,
        system_prompt: Optional[str],
        options: Optional[CompletionOptions],
        default_temperature: float,
    ) -> Tuple[Any, Dict[str, int], str]:
        model_name, settings = self._settings(options, default_temperature)
        agent = Agent(
            self._model_factory(model_name),
            output_type=output_type,
            instructions=system_prompt,
        )
        start = time.perf_counter()
        try:
            result = await agent.run(prompt, model_settings=settings)
        except ModelHTTPError as e:
            logger.error(f"{self.name} call to {model_name} failed: {e}")
            if e.status_code == 429:
                raise QuotaExceededError(str(e), details=e.body) from e
            raise
        latency_ms = int((time.perf_counter() - start) * 1000)

        # A method in pydantic-ai 1.x, a property from 2.0 on.
        usage = result.usage() if callable(result.usage) else result.usage
        stats = {
            "tokens_used": usage.total_tokens or 0,
            "prompt_tokens": usage.input_tokens or 0,
            "completion_tokens": usage.output_tokens or 0,
            "latency_ms": latency_ms,
        }
        logger.debug(
            f"{self.name} completion with {model_name}: "
            f"{stats['tokens_used']} tokens in {latency_ms}ms"
        )
        return result.output, stats, model_name

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        output, stats, model_name = await self._run(
            prompt, str, system_prompt, options, TEXT_TEMPERATURE
        )
        return CompletionResult(content=output, model=model_name, **stats)

    async def complete_with_schema(
        self,
        prompt: str,
        schema: Dict[str, Any],
        system_prompt: Optional[str] = None,
        options: Optional[CompletionOptions] = None,
    ) -> StructuredResult:
        output, stats, model_name = await self._run(
            prompt,
            StructuredDict(schema, name="response"),
            system_prompt,
            options,
            SCHEMA_TEMPERATURE,
        )
        return StructuredResult(data=output, model=model_name, **stats)


def openai_factory(api_key: str) -> ModelFactory:
    from pydantic_ai.models.openai import OpenAIChatModel
    from pydantic_ai.providers.openai import OpenAIProvider

    provider = OpenAIProvider(api_key=api_key)
    return lambda model_name: OpenAIChatModel(model_name, provider=provider)


def groq_factory(api_key: str) -> ModelFactory:
    from pydantic_ai.models.groq import GroqModel
    from pydantic_ai.providers.groq import GroqProvider

    provider = GroqProvider(api_key=api_key)
    return lambda model_name: GroqModel(model_name, provider=provider)


def gemini_factory(api_key: str) -> ModelFactory:
    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    provider = GoogleProvider(api_key=api_key)
    return lambda model_name: GoogleModel(model_name, provider=provider)


MODEL_FACTORIES: Dict[str, Callable[[str], ModelFactory]] = {
    "openai": openai_factory,
    "groq": groq_factory,
    "gemini": gemini_factory,
}
