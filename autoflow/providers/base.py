"""AI provider contract shared by every backend."""

from __future__ import annotations

from typing import Any, Dict, Optional, Protocol

from pydantic import BaseModel

from ..errors import AutoflowError


class CompletionOptions(BaseModel):
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None


class CompletionResult(BaseModel):
    content: str
    tokens_used: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model: str
    latency_ms: int = 0


class StructuredResult(BaseModel):
    data: Any
    tokens_used: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    model: str
    latency_ms: int = 0


class ProviderError(AutoflowError):
    """An AI provider is missing or returned an error."""

    code = "PROVIDER_ERROR"


class QuotaExceededError(ProviderError):
    """The provider rejected the call because of quota or rate limits."""

    code = "QUOTA_EXCEEDED"


_QUOTA_MARKERS = ("429", "quota", "rate limit", "too many requests")


def is_quota_error(error: BaseException) -> bool:
    """Quota and rate-limit failures are not worth retrying."""
    if isinstance(error, QuotaExceededError):
        return True
    message = str(error).lower()
    return any(marker in message for marker in _QUOTA_MARKERS)


class AIProvider(Protocol):
    """Protocol implemented by AI completion backends."""

    name: str

    async def complete(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        options: Optional[CompletionOptions] = None,
    ) -> CompletionResult:
        """Free-text completion."""

    async def complete_with_schema(
        self,
        prompt: str,
        schema: Dict[str, Any],
        system_prompt: Optional[str] = None,
        options: Optional[CompletionOptions] = None,
    ) -> StructuredResult:
        """Completion whose output is a JSON object shaped by ``schema``."""
